"""
Approval Workflow - the depot officer's terminal decision.

    pending --approve--> approved
    pending --reject-->  rejected

Deciding on a material that is already approved or rejected is a no-op, so a
double submission from a slow client never moves officer_approval_date.
"""
from datetime import datetime
from typing import Any, Dict

from railtrace.models.enums import ApprovalDecision, RequestStatus
from railtrace.services.reconciler import MaterialState

TRANSITIONS = {
    (RequestStatus.PENDING, ApprovalDecision.APPROVE): RequestStatus.APPROVED,
    (RequestStatus.PENDING, ApprovalDecision.REJECT): RequestStatus.REJECTED,
}


def is_terminal(status: RequestStatus) -> bool:
    return status != RequestStatus.PENDING


def decide(state: MaterialState, decision: ApprovalDecision, now: datetime) -> Dict[str, Any]:
    """Delta for a decision; empty when the material is already terminal."""
    next_status = TRANSITIONS.get((state.request_status, decision))
    if next_status is None:
        return {}
    return {"request_status": next_status, "officer_approval_date": now}
