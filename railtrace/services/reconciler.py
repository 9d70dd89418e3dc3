"""
Severity & Status Reconciler.

Pure functions that compute the next Material state from its current state,
its ledger entries and the input that triggered the write. They never touch
the database: the Write Coordinator reads the inputs, calls one of the
``reconcile_*`` functions and commits the returned delta.

Rollup rules:
- The rollup is derived from the ledger alone, so replaying the same entries
  in any order converges to the same severity and status.
- Severity is the maximum over active (not closed) entries.
- Engineer verification dominates automated re-detection: a verified rollup
  reopens only when an open entry is strictly more severe than every
  verified entry.
- No active entries means no fault: every rollup field is cleared together.
"""
from dataclasses import dataclass, fields
from datetime import date, datetime
from typing import Any, Dict, Iterable, Optional, Sequence

from railtrace.models.enums import (
    FaultSource,
    FaultStatus,
    InstallationStatus,
    LedgerStatus,
    RequestStatus,
    Severity,
)
from railtrace.services.errors import RefusalError
from railtrace.services.normalizer import FaultObservation

ROLLUP_FIELDS = (
    "fault_type",
    "fault_severity",
    "fault_detected_at",
    "fault_source",
    "fault_status",
    "maintenance_notes",
)

INSTALLATION_FIELDS = (
    "installation_status",
    "gps_location",
    "tms_track_id",
    "depot_entry_date",
    "jio_tag_photo_ref",
)


@dataclass(frozen=True)
class LedgerEntry:
    """Read-only view of one Fault row."""
    id: int
    component_type: str
    failure_type: str
    severity: Severity
    description: Optional[str]
    source: FaultSource
    status: LedgerStatus
    time_of_occurrence: datetime

    @classmethod
    def from_row(cls, fault) -> "LedgerEntry":
        return cls(
            id=fault.id,
            component_type=fault.component_type,
            failure_type=fault.failure_type,
            severity=fault.severity,
            description=fault.description,
            source=fault.source,
            status=fault.status,
            time_of_occurrence=fault.time_of_occurrence,
        )


@dataclass(frozen=True)
class MaterialState:
    """Read-only view of the mutable part of a Material document."""
    material_id: str
    version: int
    installation_status: InstallationStatus = InstallationStatus.NOT_INSTALLED
    gps_location: Optional[str] = None
    tms_track_id: Optional[str] = None
    depot_entry_date: Optional[date] = None
    jio_tag_photo_ref: Optional[str] = None
    ai_verified: bool = False
    ai_verification_status: Optional[str] = None
    ai_verified_component: Optional[str] = None
    ai_verified_confidence: Optional[float] = None
    ai_verified_at: Optional[datetime] = None
    fault_type: Optional[str] = None
    fault_severity: Optional[Severity] = None
    fault_detected_at: Optional[datetime] = None
    fault_source: Optional[FaultSource] = None
    fault_status: Optional[FaultStatus] = None
    maintenance_notes: Optional[str] = None
    reconciled_through: int = 0
    engineer_remarks: Optional[str] = None
    engineer_root_cause: Optional[str] = None
    engineer_preventive_action: Optional[str] = None
    engineer_gps_location: Optional[str] = None
    engineer_photo_ref: Optional[str] = None
    last_maintenance_date: Optional[datetime] = None
    request_status: RequestStatus = RequestStatus.PENDING
    officer_approval_date: Optional[datetime] = None

    @classmethod
    def from_row(cls, material) -> "MaterialState":
        return cls(**{f.name: getattr(material, f.name) for f in fields(cls)})


def dominant(entries: Iterable[LedgerEntry]) -> LedgerEntry:
    """Most severe entry; ties go to the later occurrence."""
    return max(entries, key=lambda e: (e.severity.rank, e.time_of_occurrence, e.id))


def most_recent(entries: Iterable[LedgerEntry]) -> LedgerEntry:
    return max(entries, key=lambda e: (e.time_of_occurrence, e.id))


def compute_rollup(entries: Sequence[LedgerEntry]) -> Dict[str, Any]:
    """Derive the fault rollup fields from a material's ledger entries."""
    active = [e for e in entries if e.status != LedgerStatus.CLOSED]
    if not active:
        return {name: None for name in ROLLUP_FIELDS}

    open_entries = [e for e in active if e.status == LedgerStatus.OPEN]
    verified_entries = [e for e in active if e.status == LedgerStatus.VERIFIED]

    if verified_entries:
        top_verified = dominant(verified_entries)
        if not open_entries or dominant(open_entries).severity <= top_verified.severity:
            return _rollup(top_verified, top_verified, FaultStatus.VERIFIED)

    return _rollup(dominant(active), most_recent(open_entries), FaultStatus.PENDING_VERIFICATION)


def _rollup(top: LedgerEntry, recent: LedgerEntry, status: FaultStatus) -> Dict[str, Any]:
    return {
        "fault_type": top.failure_type,
        "fault_severity": top.severity,
        "fault_status": status,
        "fault_detected_at": recent.time_of_occurrence,
        "fault_source": recent.source,
        "maintenance_notes": recent.description,
    }


def diff(state: MaterialState, target: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only the fields whose value actually changes."""
    return {name: value for name, value in target.items() if getattr(state, name) != value}


def watermark(state: MaterialState, through: int) -> int:
    """Highest ledger change folded into the rollup; never moves backwards."""
    return max(state.reconciled_through, through)


def reconcile_ledger(
    state: MaterialState,
    entries: Sequence[LedgerEntry],
    observation: Optional[FaultObservation] = None,
    through: int = 0
) -> Dict[str, Any]:
    """
    Next state after the ledger changed, optionally triggered by an observation.

    Automated observations also refresh the AI verification fields. The
    aiVerified latch only ever moves to True here. ``through`` is the newest
    ledger change id that was visible before ``entries`` were read.
    """
    target = compute_rollup(entries)
    target["reconciled_through"] = watermark(state, through)

    if observation is not None and observation.source.is_automated:
        target.update({
            "ai_verified": True,
            "ai_verification_status": observation.status_line,
            "ai_verified_component": observation.component_type,
            "ai_verified_confidence": observation.confidence,
            "ai_verified_at": observation.detected_at,
        })

    return diff(state, target)


def reconcile_verification(
    state: MaterialState,
    entries: Sequence[LedgerEntry],
    engineer_remarks: str,
    root_cause: Optional[str],
    preventive_action: Optional[str],
    engineer_gps_location: Optional[str],
    engineer_photo_ref: Optional[str],
    now: datetime,
    through: int = 0
) -> Dict[str, Any]:
    """Engineer fields plus the rollup recomputed after a ledger entry was verified."""
    target = compute_rollup(entries)
    if target["fault_status"] is None:
        raise RefusalError(
            f"REFUSAL: Material {state.material_id} has no active fault to verify."
        )
    target["reconciled_through"] = watermark(state, through)

    target.update({
        "engineer_remarks": engineer_remarks,
        "engineer_root_cause": root_cause,
        "engineer_preventive_action": preventive_action,
        "last_maintenance_date": now,
    })
    # Optional fields keep their previous value when not supplied
    if engineer_gps_location is not None:
        target["engineer_gps_location"] = engineer_gps_location
    if engineer_photo_ref is not None:
        target["engineer_photo_ref"] = engineer_photo_ref
    return diff(state, target)


def reconcile_installation(state: MaterialState, changes: Dict[str, Any]) -> Dict[str, Any]:
    """
    Installation crew update: free overwrite except the forward-only status.
    """
    unknown = set(changes) - set(INSTALLATION_FIELDS)
    if unknown:
        raise RefusalError(
            f"REFUSAL: Installation crew cannot set {', '.join(sorted(unknown))}."
        )

    requested = changes.get("installation_status")
    if (
        requested == InstallationStatus.NOT_INSTALLED
        and state.installation_status == InstallationStatus.INSTALLED
    ):
        raise RefusalError(
            f"REFUSAL: Material {state.material_id} is already Installed; "
            "installation status cannot move back to NotInstalled."
        )

    return diff(state, {k: v for k, v in changes.items() if v is not None})


def reset_ai_verification(state: MaterialState) -> Dict[str, Any]:
    """Explicit manual reset of the AI latch, outside the automated path."""
    return diff(state, {"ai_verified": False, "ai_verification_status": None})
