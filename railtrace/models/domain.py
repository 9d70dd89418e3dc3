"""Domain models - the Material document and the Fault ledger."""
from datetime import datetime
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
)
from sqlalchemy.orm import relationship
from railtrace.database import Base
from railtrace.models.enums import (
    FaultSource,
    FaultStatus,
    InstallationStatus,
    LedgerStatus,
    RequestStatus,
    Severity,
)


class Material(Base):
    """
    One document per physical track fitting, keyed by material_id.

    Invariants enforced through the service layer:
    - Manufacturing attributes are set once at creation and never written again
    - fault_severity is present iff fault_status is present
    - ai_verified only moves false -> true on the automated path
    - request_status leaves pending at most once
    - Every committed write bumps version; writers compare-and-set against it
    """
    __tablename__ = "materials"

    material_id = Column(String, primary_key=True, index=True)
    version = Column(Integer, nullable=False, default=1)

    # Manufacturing attributes (immutable)
    fitting_type = Column(String, nullable=False, index=True)
    drawing_number = Column(String, nullable=True)
    material_spec = Column(String, nullable=True)
    batch_number = Column(String, nullable=True)
    manufacturer_id = Column(String, nullable=True)
    manufacturing_date = Column(Date, nullable=True)
    created_by = Column(String, nullable=True)

    # Installation crew
    installation_status = Column(
        SQLEnum(InstallationStatus), nullable=False, default=InstallationStatus.NOT_INSTALLED
    )
    gps_location = Column(String, nullable=True)
    tms_track_id = Column(String, nullable=True)
    depot_entry_date = Column(Date, nullable=True)
    jio_tag_photo_ref = Column(String, nullable=True)  # Blob Store reference

    # AI verification (latched)
    ai_verified = Column(Boolean, nullable=False, default=False)
    ai_verification_status = Column(String, nullable=True)
    ai_verified_component = Column(String, nullable=True)
    ai_verified_confidence = Column(Float, nullable=True)
    ai_verified_at = Column(DateTime, nullable=True)

    # Fault rollup (derived from the ledger)
    fault_type = Column(String, nullable=True)
    fault_severity = Column(SQLEnum(Severity), nullable=True)
    fault_detected_at = Column(DateTime, nullable=True)
    fault_source = Column(SQLEnum(FaultSource), nullable=True)
    fault_status = Column(SQLEnum(FaultStatus), nullable=True)
    maintenance_notes = Column(String, nullable=True)
    reconciled_through = Column(Integer, nullable=False, default=0)  # highest LedgerChange id folded in

    # Verifying engineer
    engineer_remarks = Column(String, nullable=True)
    engineer_root_cause = Column(String, nullable=True)
    engineer_preventive_action = Column(String, nullable=True)
    engineer_gps_location = Column(String, nullable=True)
    engineer_photo_ref = Column(String, nullable=True)
    last_maintenance_date = Column(DateTime, nullable=True)

    # Depot officer
    request_status = Column(SQLEnum(RequestStatus), nullable=False, default=RequestStatus.PENDING)
    officer_approval_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    faults = relationship("Fault", back_populates="material", order_by="Fault.id")


class Fault(Base):
    """
    Append-only ledger entry, one per detection or manual report.

    Invariants:
    - Never deleted
    - status is the only column written after insert
    - Duplicates are accepted; they are collapsed only in the Material rollup
    """
    __tablename__ = "faults"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    material_id = Column(String, ForeignKey("materials.material_id"), nullable=False, index=True)
    component_type = Column(String, nullable=False)  # stored lower-case
    failure_type = Column(String, nullable=False)
    severity = Column(SQLEnum(Severity), nullable=False)
    description = Column(String, nullable=True)
    gps = Column(JSON, nullable=True)  # {"lat": ..., "lng": ...}
    images = Column(JSON, nullable=False, default=list)  # Blob Store references
    confidence = Column(Float, nullable=True)
    status = Column(SQLEnum(LedgerStatus), nullable=False, default=LedgerStatus.OPEN)
    source = Column(SQLEnum(FaultSource), nullable=False)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    time_of_occurrence = Column(DateTime, nullable=False)

    material = relationship("Material", back_populates="faults")


class LedgerChange(Base):
    """
    One row per ledger write: an append or a status change.

    The id orders every change to the ledger; Material.reconciled_through
    holds the highest change id its rollup has seen, so any change past it
    still needs reconciling.
    """
    __tablename__ = "ledger_changes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    material_id = Column(String, ForeignKey("materials.material_id"), nullable=False, index=True)
    fault_id = Column(Integer, ForeignKey("faults.id"), nullable=False)
    status = Column(SQLEnum(LedgerStatus), nullable=False)
    changed_at = Column(DateTime, nullable=False, default=datetime.utcnow)
