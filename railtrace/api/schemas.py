"""Pydantic schemas for request/response validation.

Wire names are camelCase (materialId, faultSeverity, ...); snake_case is
accepted on input as well. Domain fields that need our own field-level
errors are left optional here and validated by the services.
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from railtrace.models.enums import (
    FaultSource,
    FaultStatus,
    InstallationStatus,
    LedgerStatus,
    RequestStatus,
    Severity,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# Material schemas
class MaterialCreate(CamelModel):
    material_id: Optional[str] = None
    fitting_type: Optional[str] = None
    drawing_number: Optional[str] = None
    material_spec: Optional[str] = None
    batch_number: Optional[str] = None
    manufacturer_id: Optional[str] = None
    manufacturing_date: Optional[date] = None


class InstallationUpdate(CamelModel):
    installation_status: Optional[InstallationStatus] = None
    gps_location: Optional[str] = None
    tms_track_id: Optional[str] = None
    depot_entry_date: Optional[date] = None
    jio_tag_photo_ref: Optional[str] = None


class MaterialResponse(CamelModel):
    material_id: str
    version: int
    fitting_type: str
    drawing_number: Optional[str]
    material_spec: Optional[str]
    batch_number: Optional[str]
    manufacturer_id: Optional[str]
    manufacturing_date: Optional[date]
    created_by: Optional[str]

    installation_status: InstallationStatus
    gps_location: Optional[str]
    tms_track_id: Optional[str]
    depot_entry_date: Optional[date]
    jio_tag_photo_ref: Optional[str]

    ai_verified: bool
    ai_verification_status: Optional[str]
    ai_verified_component: Optional[str]
    ai_verified_confidence: Optional[float]
    ai_verified_at: Optional[datetime]

    fault_type: Optional[str]
    fault_severity: Optional[Severity]
    fault_detected_at: Optional[datetime]
    fault_source: Optional[FaultSource]
    fault_status: Optional[FaultStatus]
    maintenance_notes: Optional[str]

    engineer_remarks: Optional[str]
    engineer_root_cause: Optional[str]
    engineer_preventive_action: Optional[str]
    engineer_gps_location: Optional[str]
    engineer_photo_ref: Optional[str]
    last_maintenance_date: Optional[datetime]

    request_status: RequestStatus
    officer_approval_date: Optional[datetime]

    created_at: datetime
    updated_at: datetime


# Fault schemas
class GpsSchema(CamelModel):
    lat: Optional[float] = None
    lng: Optional[float] = None


class ManualFaultCreate(CamelModel):
    material_id: Optional[str] = None
    component_type: Optional[str] = None
    failure_type: Optional[str] = None
    severity: Optional[str] = None
    description: Optional[str] = None
    gps: Optional[GpsSchema] = None
    images: List[str] = []
    time_of_occurrence: Optional[datetime] = None


class FaultVerify(CamelModel):
    engineer_remarks: Optional[str] = None
    root_cause: Optional[str] = None
    preventive_action: Optional[str] = None
    engineer_gps_location: Optional[str] = None
    engineer_photo_ref: Optional[str] = None


class FaultResponse(CamelModel):
    id: int
    material_id: str
    component_type: str
    failure_type: str
    severity: Severity
    description: Optional[str]
    gps: Optional[Dict[str, Any]]
    images: List[str]
    confidence: Optional[float]
    status: LedgerStatus
    source: FaultSource
    created_by: Optional[str]
    created_at: datetime
    time_of_occurrence: datetime


# Actions
class AiVerifyRequest(CamelModel):
    image_ref: Optional[str] = None


class ApprovalRequest(CamelModel):
    decision: Optional[str] = None


class PhotoUpload(CamelModel):
    image_base64: str = Field(..., min_length=1)
    content_type: str = "image/jpeg"


# Responses
class LifecycleResponse(CamelModel):
    """Every mutating call returns the full reconciled document."""
    ok: bool = True
    fault_id: Optional[int] = None
    rollup: MaterialResponse


class SweepResponse(CamelModel):
    ok: bool = True
    reconciled: List[str]


class PhotoResponse(CamelModel):
    ok: bool = True
    ref: str


class ErrorResponse(BaseModel):
    ok: bool = False
    error: str
    message: str
    details: Dict[str, Any] = {}
    retryable: bool = False
