"""Enums for the material lifecycle - every string-typed state lives here."""
from enum import Enum


class InstallationStatus(str, Enum):
    """Forward-only: once Installed, never back to NotInstalled."""
    NOT_INSTALLED = "NotInstalled"
    INSTALLED = "Installed"


class Condition(str, Enum):
    """Condition label reported by the hardware gateway or Inference Service."""
    OK = "ok"
    FAULTY = "faulty"
    RUST = "rust"
    MISSING = "missing"


class FaultSource(str, Enum):
    HARDWARE_AUTO = "hardware_auto"
    AI_AUTO = "ai_auto"
    MANUAL_MAINTENANCE = "manual_maintenance"

    @property
    def is_automated(self) -> bool:
        return self is not FaultSource.MANUAL_MAINTENANCE


class Severity(str, Enum):
    """
    Totally ordered by declaration: low < medium < high < critical.

    The str mixin would otherwise compare alphabetically, so ordering is
    overridden to use rank.
    """
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return list(Severity).index(self)

    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


# Severity derived from an automated condition; "ok" has none.
CONDITION_SEVERITY = {
    Condition.MISSING: Severity.CRITICAL,
    Condition.FAULTY: Severity.HIGH,
    Condition.RUST: Severity.MEDIUM,
}


class FaultStatus(str, Enum):
    """Material rollup status. Absent (None) while the asset is fault-free."""
    PENDING_VERIFICATION = "pending_verification"
    VERIFIED = "verified"


class LedgerStatus(str, Enum):
    """Status of a single Fault ledger entry - the only field ever edited."""
    OPEN = "open"
    VERIFIED = "verified"
    CLOSED = "closed"


class RequestStatus(str, Enum):
    """Depot approval. Terminal once non-pending."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class Role(str, Enum):
    """Roles supplied by the Access Service."""
    MANUFACTURER = "manufacturer"
    MANUFACTURER_ADMIN = "manufacturer_admin"
    TRACK_INSTALLER = "track_installer"
    MAINTENANCE = "maintenance"
    DEPOT_OFFICER = "depot_officer"
