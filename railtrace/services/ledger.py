"""
Fault Ledger - append-only collection of fault events.

Every detection or manual report becomes one row. Rows are never deleted and
never edited except for their status. Each operation commits on its own so a
ledger entry survives even when the rollup write that follows it fails.

Every append and status change also writes a LedgerChange row; the sweep
finds materials whose rollup has not caught up with those changes.
"""
from typing import List, Optional, Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from railtrace.logging_config import get_logger
from railtrace.models.audit import AuditEventType
from railtrace.models.domain import Fault, LedgerChange
from railtrace.models.enums import FaultSource, LedgerStatus
from railtrace.services.audit import record_audit
from railtrace.services.errors import NotFoundError, RefusalError, ValidationError
from railtrace.services.normalizer import FaultObservation, ManualFaultReport

logger = get_logger(__name__)


class FaultLedger:
    """Access to the faults table."""

    def __init__(self, db: Session):
        self.db = db

    def append(
        self,
        entry: Union[FaultObservation, ManualFaultReport],
        created_by: Optional[str] = None
    ) -> Fault:
        """
        Append a new open ledger entry.

        Duplicate detections are accepted as-is; they are collapsed only when
        the Material rollup is computed.
        """
        if isinstance(entry, FaultObservation):
            if entry.clears:
                raise ValidationError("condition", "an 'ok' observation does not open a fault")
            fault = Fault(
                material_id=entry.material_id,
                component_type=entry.component_type,
                failure_type=entry.failure_label,
                severity=entry.severity,
                description=entry.description or entry.status_line,
                gps=entry.gps.as_dict() if entry.gps else None,
                images=[],
                confidence=entry.confidence,
                source=entry.source,
                created_by=created_by,
                time_of_occurrence=entry.detected_at,
            )
        else:
            fault = Fault(
                material_id=entry.material_id,
                component_type=entry.component_type,
                failure_type=entry.failure_type,
                severity=entry.severity,
                description=entry.description,
                gps=entry.gps.as_dict() if entry.gps else None,
                images=list(entry.images),
                confidence=None,
                source=entry.source,
                created_by=created_by,
                time_of_occurrence=entry.reported_at,
            )
        fault.status = LedgerStatus.OPEN

        self.db.add(fault)
        self.db.flush()
        self._record_change(fault)
        record_audit(
            self.db,
            AuditEventType.FAULT_APPENDED,
            "Fault",
            fault.id,
            user_id=created_by,
            material_id=fault.material_id,
            component_type=fault.component_type,
            severity=fault.severity.value,
            source=fault.source.value,
        )
        self.db.commit()
        self.db.refresh(fault)

        logger.info(
            "Fault appended to ledger",
            fault_id=fault.id,
            material_id=fault.material_id,
            component_type=fault.component_type,
            severity=fault.severity.value,
            source=fault.source.value,
        )
        return fault

    def get(self, fault_id: int) -> Fault:
        fault = self.db.query(Fault).filter(Fault.id == fault_id).first()
        if not fault:
            raise NotFoundError("Fault", fault_id)
        return fault

    def list_for_material(self, material_id: str) -> List[Fault]:
        """All entries for a material, oldest first, closed ones included."""
        return (
            self.db.query(Fault)
            .filter(Fault.material_id == material_id)
            .order_by(Fault.id)
            .all()
        )

    def close(self, fault_id: int, resolved_by: Optional[str] = None) -> Fault:
        """Close an entry. Closing an already-closed entry is a no-op."""
        fault = self.get(fault_id)
        if fault.status == LedgerStatus.CLOSED:
            return fault

        previous = fault.status
        fault.status = LedgerStatus.CLOSED
        self._record_change(fault)
        record_audit(
            self.db,
            AuditEventType.FAULT_CLOSED,
            "Fault",
            fault.id,
            user_id=resolved_by,
            material_id=fault.material_id,
            previous_status=previous.value,
        )
        self.db.commit()
        logger.info("Fault closed", fault_id=fault.id, material_id=fault.material_id)
        return fault

    def mark_verified(self, fault_id: int, verified_by: Optional[str] = None) -> Fault:
        """
        Mark an entry as engineer-verified.

        Refused for closed entries; idempotent for already-verified ones.
        """
        fault = self.get(fault_id)
        if fault.status == LedgerStatus.CLOSED:
            raise RefusalError(
                f"REFUSAL: Fault {fault_id} is closed and can no longer be verified."
            )
        if fault.status == LedgerStatus.VERIFIED:
            return fault

        fault.status = LedgerStatus.VERIFIED
        self._record_change(fault)
        record_audit(
            self.db,
            AuditEventType.FAULT_VERIFIED,
            "Fault",
            fault.id,
            user_id=verified_by,
            material_id=fault.material_id,
        )
        self.db.commit()
        logger.info("Fault verified", fault_id=fault.id, material_id=fault.material_id)
        return fault

    def close_cleared_component(
        self,
        material_id: str,
        component_type: str,
        resolved_by: Optional[str] = None
    ) -> List[Fault]:
        """
        Close the open automated entries of one component after an "ok" reading.

        Verified entries and manual reports are left for an engineer to close,
        and other components are never touched.
        """
        cleared = (
            self.db.query(Fault)
            .filter(
                Fault.material_id == material_id,
                Fault.component_type == component_type.lower(),
                Fault.status == LedgerStatus.OPEN,
                Fault.source.in_([FaultSource.HARDWARE_AUTO, FaultSource.AI_AUTO]),
            )
            .all()
        )
        for fault in cleared:
            fault.status = LedgerStatus.CLOSED
            self._record_change(fault)
            record_audit(
                self.db,
                AuditEventType.FAULT_CLOSED,
                "Fault",
                fault.id,
                user_id=resolved_by,
                material_id=material_id,
                previous_status=LedgerStatus.OPEN.value,
                reason="ok_reading",
            )
        if cleared:
            self.db.commit()
            logger.info(
                "Open faults cleared by ok reading",
                material_id=material_id,
                component_type=component_type,
                fault_ids=[f.id for f in cleared],
            )
        return cleared

    def last_change_id(self, material_id: str) -> int:
        """Id of the newest ledger change for a material, 0 if it has none."""
        return (
            self.db.query(func.max(LedgerChange.id))
            .filter(LedgerChange.material_id == material_id)
            .scalar()
        ) or 0

    def _record_change(self, fault: Fault) -> None:
        self.db.add(LedgerChange(material_id=fault.material_id, fault_id=fault.id, status=fault.status))
