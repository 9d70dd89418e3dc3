"""Helper for writing append-only audit events."""
from typing import Any, Optional

from sqlalchemy.orm import Session

from railtrace.models.audit import AuditEvent


def record_audit(
    db: Session,
    event_type: str,
    entity_type: str,
    entity_id: Any,
    user_id: Optional[str] = None,
    **payload: Any
) -> AuditEvent:
    """Add an audit event to the current transaction. The caller commits."""
    event = AuditEvent(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=str(entity_id),
        user_id=user_id,
        payload_json=payload or None,
    )
    db.add(event)
    return event
