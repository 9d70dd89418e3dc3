"""
Material lifecycle - the entry point for every actor.

Fault-related inputs flow Normalizer -> Fault Ledger (committed on its own)
-> Reconciler -> Write Coordinator -> Material. The ledger append is allowed
to succeed even when the rollup write after it fails; ``reconcile`` and
``sweep`` fold such entries in later.
"""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from railtrace.clients.blob_store import BlobStore
from railtrace.clients.inference import InferenceClient
from railtrace.logging_config import get_logger
from railtrace.models.audit import AuditEventType
from railtrace.models.domain import Fault, LedgerChange, Material
from railtrace.models.enums import (
    ApprovalDecision,
    FaultSource,
    InstallationStatus,
    RequestStatus,
)
from railtrace.services import approval, reconciler
from railtrace.services.audit import record_audit
from railtrace.services.errors import (
    ConcurrentUpdateError,
    NotFoundError,
    RefusalError,
    UpstreamError,
    ValidationError,
)
from railtrace.services.ledger import FaultLedger
from railtrace.services.normalizer import (
    FaultObservation,
    normalize_detection,
    normalize_manual_report,
)
from railtrace.services.reconciler import LedgerEntry, MaterialState
from railtrace.services.write_coordinator import WriteCoordinator

logger = get_logger(__name__)


@dataclass
class Outcome:
    """Result of a lifecycle call: the committed document and the ledger entry, if any."""
    material: Material
    fault: Optional[Fault] = None


class MaterialLifecycle:
    """Coordinates the ledger, the reconciler and the write path."""

    def __init__(
        self,
        db: Session,
        inference: Optional[InferenceClient] = None,
        blob_store: Optional[BlobStore] = None,
        coordinator: Optional[WriteCoordinator] = None
    ):
        self.db = db
        self.inference = inference
        self.blob_store = blob_store
        self.ledger = FaultLedger(db)
        self.coordinator = coordinator or WriteCoordinator(db)

    # ------------------------------------------------------------------
    # Material registry
    # ------------------------------------------------------------------

    def create_material(
        self,
        material_id: str,
        fitting_type: str,
        created_by: Optional[str] = None,
        drawing_number: Optional[str] = None,
        material_spec: Optional[str] = None,
        batch_number: Optional[str] = None,
        manufacturer_id: Optional[str] = None,
        manufacturing_date: Optional[date] = None
    ) -> Material:
        """Register a newly manufactured fitting. Its manufacturing attributes never change."""
        if not material_id or not material_id.strip():
            raise ValidationError("materialId", "is required")
        if not fitting_type or not fitting_type.strip():
            raise ValidationError("fittingType", "is required")

        material_id = material_id.strip()
        if self.db.query(Material).filter(Material.material_id == material_id).first():
            raise RefusalError(f"REFUSAL: Material {material_id} already exists.")

        material = Material(
            material_id=material_id,
            version=1,
            fitting_type=fitting_type.strip(),
            drawing_number=drawing_number,
            material_spec=material_spec,
            batch_number=batch_number,
            manufacturer_id=manufacturer_id,
            manufacturing_date=manufacturing_date,
            created_by=created_by,
            installation_status=InstallationStatus.NOT_INSTALLED,
            ai_verified=False,
            request_status=RequestStatus.PENDING,
            reconciled_through=0,
        )
        self.db.add(material)
        record_audit(
            self.db,
            AuditEventType.MATERIAL_CREATED,
            "Material",
            material_id,
            user_id=created_by,
            fitting_type=material.fitting_type,
            batch_number=batch_number,
        )
        self.db.commit()
        self.db.refresh(material)
        logger.info("Material created", material_id=material_id, fitting_type=material.fitting_type)
        return material

    def get_material(self, material_id: str) -> Material:
        material = self.db.query(Material).filter(Material.material_id == material_id).first()
        if not material:
            raise NotFoundError("Material", material_id)
        return material

    def list_materials(self, fitting_type: Optional[str] = None) -> List[Material]:
        query = self.db.query(Material)
        if fitting_type:
            query = query.filter(Material.fitting_type == fitting_type)
        return query.order_by(Material.created_at.desc()).all()

    def list_faults(self, material_id: str) -> List[Fault]:
        self.get_material(material_id)
        return self.ledger.list_for_material(material_id)

    def update_installation(
        self,
        material_id: str,
        changes: Dict[str, Any],
        updated_by: Optional[str] = None
    ) -> Outcome:
        """Installation crew fields. Installed never goes back to NotInstalled."""
        def compute(material: Material) -> Dict[str, Any]:
            return reconciler.reconcile_installation(MaterialState.from_row(material), changes)

        material = self.coordinator.apply(material_id, compute)
        self._audit(
            AuditEventType.INSTALLATION_UPDATED,
            material_id,
            updated_by,
            fields=sorted(k for k, v in changes.items() if v is not None),
        )
        return Outcome(material)

    # ------------------------------------------------------------------
    # Fault detection and reporting
    # ------------------------------------------------------------------

    def submit_detection(
        self,
        raw: Dict[str, Any],
        source: FaultSource = FaultSource.HARDWARE_AUTO,
        submitted_by: Optional[str] = None
    ) -> Outcome:
        """
        Hardware gateway / AI pipeline detection.

        A non-ok condition appends an open ledger entry; "ok" closes the open
        automated entries of the same component only. Either way the rollup is
        recomputed from the ledger and the AI latch is set.
        """
        if not source.is_automated:
            raise ValidationError("source", "detections must come from an automated source")

        observation = normalize_detection(raw, source)
        self.get_material(observation.material_id)

        fault = None
        if observation.clears:
            self.ledger.close_cleared_component(
                observation.material_id, observation.component_type, resolved_by=submitted_by
            )
        else:
            fault = self.ledger.append(observation, created_by=submitted_by)

        material = self._write_rollup(observation.material_id, observation)
        return Outcome(material, fault)

    def verify_with_inference(
        self,
        material_id: str,
        image_ref: str,
        requested_by: Optional[str] = None
    ) -> Outcome:
        """Classify a stored photo and feed the result in as an ai_auto detection."""
        if not image_ref:
            raise ValidationError("imageRef", "is required")
        if self.inference is None:
            raise UpstreamError("inference-service", "not configured")

        self.get_material(material_id)
        # Fails closed: nothing has been written if classification fails.
        classification = self.inference.classify(image_ref)
        return self.submit_detection(
            classification.as_detection(material_id),
            source=FaultSource.AI_AUTO,
            submitted_by=requested_by,
        )

    def submit_manual_fault(
        self,
        material_id: str,
        component_type: str,
        failure_type: str,
        severity: str,
        description: str,
        gps: Optional[Dict[str, Any]] = None,
        images: Optional[List[str]] = None,
        created_by: Optional[str] = None,
        time_of_occurrence: Any = None
    ) -> Outcome:
        """Maintenance staff report; severity is the reporter's call."""
        report = normalize_manual_report(
            material_id,
            component_type,
            failure_type,
            severity,
            description,
            gps=gps,
            images=images,
            reported_at=time_of_occurrence,
        )
        self.get_material(report.material_id)

        fault = self.ledger.append(report, created_by=created_by)
        material = self._write_rollup(report.material_id)
        return Outcome(material, fault)

    # ------------------------------------------------------------------
    # Engineer actions
    # ------------------------------------------------------------------

    def verify_fault(
        self,
        fault_id: int,
        engineer_remarks: str,
        root_cause: Optional[str] = None,
        preventive_action: Optional[str] = None,
        engineer_gps_location: Optional[str] = None,
        engineer_photo_ref: Optional[str] = None,
        verified_by: Optional[str] = None
    ) -> Outcome:
        """
        Engineer confirms a ledger entry.

        Once verified, automated re-detections at the same or lower severity
        no longer change the rollup.
        """
        if not engineer_remarks or not engineer_remarks.strip():
            raise ValidationError("engineerRemarks", "is required")

        fault = self.ledger.mark_verified(fault_id, verified_by=verified_by)
        material_id = fault.material_id
        now = datetime.utcnow()

        def compute(material: Material) -> Dict[str, Any]:
            through = self.ledger.last_change_id(material_id)
            return reconciler.reconcile_verification(
                MaterialState.from_row(material),
                self._entries(material_id),
                engineer_remarks.strip(),
                root_cause,
                preventive_action,
                engineer_gps_location,
                engineer_photo_ref,
                now,
                through=through,
            )

        material = self.coordinator.apply(material_id, compute)
        return Outcome(material, fault)

    def close_fault(self, fault_id: int, resolved_by: Optional[str] = None) -> Outcome:
        fault = self.ledger.close(fault_id, resolved_by=resolved_by)
        material = self._write_rollup(fault.material_id)
        return Outcome(material, fault)

    def reset_ai_verification(self, material_id: str, reset_by: Optional[str] = None) -> Outcome:
        """Manual review may clear the AI latch; the automated path never does."""
        def compute(material: Material) -> Dict[str, Any]:
            return reconciler.reset_ai_verification(MaterialState.from_row(material))

        material = self.coordinator.apply(material_id, compute)
        self._audit(AuditEventType.AI_VERIFICATION_RESET, material_id, reset_by)
        return Outcome(material)

    # ------------------------------------------------------------------
    # Depot approval
    # ------------------------------------------------------------------

    def decide_approval(
        self,
        material_id: str,
        decision: str,
        decided_by: Optional[str] = None
    ) -> Outcome:
        """
        Approve or reject a pending material.

        Deciding on an approved or rejected material returns it unchanged.
        """
        try:
            decision = ApprovalDecision(decision)
        except ValueError:
            raise ValidationError("decision", "must be 'approve' or 'reject'")

        now = datetime.utcnow()
        committed = {}

        def compute(material: Material) -> Dict[str, Any]:
            committed.clear()
            committed.update(approval.decide(MaterialState.from_row(material), decision, now))
            return dict(committed)

        material = self.coordinator.apply(material_id, compute)

        if committed:
            self._audit(
                AuditEventType.APPROVAL_DECIDED,
                material_id,
                decided_by,
                decision=decision.value,
                request_status=material.request_status.value,
            )
        else:
            logger.info(
                "Approval ignored, material already decided",
                material_id=material_id,
                decision=decision.value,
                request_status=material.request_status.value,
            )
            self._audit(
                AuditEventType.APPROVAL_IGNORED_TERMINAL,
                material_id,
                decided_by,
                decision=decision.value,
                request_status=material.request_status.value,
            )
        return Outcome(material)

    # ------------------------------------------------------------------
    # Catch-up path
    # ------------------------------------------------------------------

    def reconcile(self, material_id: str) -> Outcome:
        """Recompute the rollup from the ledger as it stands now."""
        return Outcome(self._write_rollup(material_id))

    def sweep(self) -> List[str]:
        """
        Reconcile every material whose ledger changed past its watermark.

        Covers appends, closures and verifications whose rollup write was
        cancelled or failed. A
        material that keeps conflicting is left for the next sweep.
        """
        rows = (
            self.db.query(Material.material_id)
            .join(LedgerChange, LedgerChange.material_id == Material.material_id)
            .filter(LedgerChange.id > Material.reconciled_through)
            .distinct()
            .all()
        )
        reconciled = []
        for (material_id,) in rows:
            try:
                self._write_rollup(material_id)
            except ConcurrentUpdateError:
                logger.warning("Sweep skipped material after write conflicts", material_id=material_id)
                continue
            self._audit(AuditEventType.ROLLUP_RECONCILED, material_id, None)
            reconciled.append(material_id)

        logger.info("Sweep finished", pending=len(rows), reconciled=len(reconciled))
        return reconciled

    # ------------------------------------------------------------------
    # Photos
    # ------------------------------------------------------------------

    def upload_photo(self, data: bytes, content_type: str = "image/jpeg") -> str:
        if not data:
            raise ValidationError("image", "is empty")
        if self.blob_store is None:
            raise UpstreamError("blob-store", "not configured")
        return self.blob_store.put(data, content_type)

    # ------------------------------------------------------------------

    def _entries(self, material_id: str) -> List[LedgerEntry]:
        return [LedgerEntry.from_row(f) for f in self.ledger.list_for_material(material_id)]

    def _write_rollup(
        self,
        material_id: str,
        observation: Optional[FaultObservation] = None
    ) -> Material:
        def compute(material: Material) -> Dict[str, Any]:
            # Read the change id first: anything committed after it is swept later
            through = self.ledger.last_change_id(material_id)
            return reconciler.reconcile_ledger(
                MaterialState.from_row(material),
                self._entries(material_id),
                observation,
                through=through,
            )

        try:
            return self.coordinator.apply(material_id, compute)
        except (ConcurrentUpdateError, SQLAlchemyError):
            logger.error(
                "Rollup write failed; ledger is intact and will be reconciled later",
                material_id=material_id,
            )
            raise

    def _audit(self, event_type: str, material_id: str, user_id: Optional[str], **payload: Any) -> None:
        record_audit(self.db, event_type, "Material", material_id, user_id=user_id, **payload)
        self.db.commit()
