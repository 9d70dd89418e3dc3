"""
Internal audit logging model - NOT a user-facing domain object.

Provides an immutable, append-only trail of who did what to which material
or ledger entry. Ledger rows only ever change their status, so the actor
behind a verification or closure is recorded here.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, JSON
from railtrace.database import Base


class AuditEvent(Base):
    """
    Immutable audit event.

    Invariants:
    - Once written, never edited or deleted
    - Append-only
    """
    __tablename__ = "audit_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    event_type = Column(String, nullable=False, index=True)  # e.g., "fault_verified"
    entity_type = Column(String, nullable=False)  # "Material" or "Fault"
    entity_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=True)  # Nullable for device and sweep events
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    payload_json = Column(JSON, nullable=True)


class AuditEventType:
    """Enumeration of audit event types."""
    # Material lifecycle
    MATERIAL_CREATED = "material_created"
    INSTALLATION_UPDATED = "installation_updated"
    AI_VERIFICATION_RESET = "ai_verification_reset"
    ROLLUP_RECONCILED = "rollup_reconciled"

    # Ledger lifecycle
    FAULT_APPENDED = "fault_appended"
    FAULT_VERIFIED = "fault_verified"
    FAULT_CLOSED = "fault_closed"

    # Depot approval
    APPROVAL_DECIDED = "approval_decided"
    APPROVAL_IGNORED_TERMINAL = "approval_ignored_terminal"
