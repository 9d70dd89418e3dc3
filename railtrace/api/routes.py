"""API routes for the material lifecycle."""
import base64
import binascii
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, status

from railtrace.api.deps import Caller, get_caller, get_lifecycle, require_role
from railtrace.api.schemas import (
    AiVerifyRequest,
    ApprovalRequest,
    ErrorResponse,
    FaultResponse,
    FaultVerify,
    InstallationUpdate,
    LifecycleResponse,
    ManualFaultCreate,
    MaterialCreate,
    MaterialResponse,
    PhotoResponse,
    PhotoUpload,
    SweepResponse,
)
from railtrace.models.enums import FaultSource, Role
from railtrace.services.errors import ValidationError
from railtrace.services.lifecycle import MaterialLifecycle, Outcome

router = APIRouter()

ERROR_RESPONSES = {
    404: {"model": ErrorResponse, "description": "Unknown material or fault"},
    409: {"model": ErrorResponse, "description": "Refused transition or lost concurrent update"},
    422: {"model": ErrorResponse, "description": "Missing or malformed field"},
}


def _respond(outcome: Outcome) -> LifecycleResponse:
    return LifecycleResponse(
        fault_id=outcome.fault.id if outcome.fault is not None else None,
        rollup=MaterialResponse.model_validate(outcome.material),
    )


# Material endpoints
@router.post("/materials", response_model=MaterialResponse, status_code=status.HTTP_201_CREATED,
             responses=ERROR_RESPONSES)
def create_material(
    data: MaterialCreate,
    caller: Caller = Depends(require_role("create materials", Role.MANUFACTURER, Role.MANUFACTURER_ADMIN)),
    lifecycle: MaterialLifecycle = Depends(get_lifecycle)
):
    """Register a newly manufactured fitting."""
    return lifecycle.create_material(
        data.material_id,
        data.fitting_type,
        created_by=caller.user_id,
        drawing_number=data.drawing_number,
        material_spec=data.material_spec,
        batch_number=data.batch_number,
        manufacturer_id=data.manufacturer_id,
        manufacturing_date=data.manufacturing_date,
    )


@router.get("/materials", response_model=List[MaterialResponse])
def list_materials(
    fitting_type: Optional[str] = None,
    caller: Caller = Depends(get_caller),
    lifecycle: MaterialLifecycle = Depends(get_lifecycle)
):
    """List materials, optionally filtered by fitting type."""
    return lifecycle.list_materials(fitting_type)


@router.get("/materials/{material_id}", response_model=MaterialResponse, responses=ERROR_RESPONSES)
def get_material(
    material_id: str,
    caller: Caller = Depends(get_caller),
    lifecycle: MaterialLifecycle = Depends(get_lifecycle)
):
    return lifecycle.get_material(material_id)


@router.get("/materials/{material_id}/faults", response_model=List[FaultResponse],
            responses=ERROR_RESPONSES)
def list_faults(
    material_id: str,
    caller: Caller = Depends(get_caller),
    lifecycle: MaterialLifecycle = Depends(get_lifecycle)
):
    """Full ledger for a material, closed entries included."""
    return lifecycle.list_faults(material_id)


@router.put("/materials/{material_id}/installation", response_model=LifecycleResponse,
            responses=ERROR_RESPONSES)
def update_installation(
    material_id: str,
    data: InstallationUpdate,
    caller: Caller = Depends(require_role("update installation", Role.TRACK_INSTALLER)),
    lifecycle: MaterialLifecycle = Depends(get_lifecycle)
):
    """
    Installation crew fields.
    Refused if it would move an Installed material back to NotInstalled.
    """
    changes = data.model_dump(exclude_none=True, by_alias=False)
    return _respond(lifecycle.update_installation(material_id, changes, updated_by=caller.user_id))


@router.post("/materials/{material_id}/ai-verify", response_model=LifecycleResponse,
             responses={**ERROR_RESPONSES, 502: {"model": ErrorResponse}, 504: {"model": ErrorResponse}})
def verify_with_inference(
    material_id: str,
    data: AiVerifyRequest,
    caller: Caller = Depends(require_role("run AI verification", Role.TRACK_INSTALLER)),
    lifecycle: MaterialLifecycle = Depends(get_lifecycle)
):
    """Classify a stored photo and reconcile the result as an ai_auto detection."""
    return _respond(lifecycle.verify_with_inference(material_id, data.image_ref, requested_by=caller.user_id))


@router.put("/materials/{material_id}/ai-verification/reset", response_model=LifecycleResponse,
            responses=ERROR_RESPONSES)
def reset_ai_verification(
    material_id: str,
    caller: Caller = Depends(require_role("reset AI verification", Role.MAINTENANCE)),
    lifecycle: MaterialLifecycle = Depends(get_lifecycle)
):
    return _respond(lifecycle.reset_ai_verification(material_id, reset_by=caller.user_id))


@router.put("/materials/{material_id}/decision", response_model=LifecycleResponse,
            responses=ERROR_RESPONSES)
def decide_approval(
    material_id: str,
    data: ApprovalRequest,
    caller: Caller = Depends(require_role("decide approvals", Role.DEPOT_OFFICER)),
    lifecycle: MaterialLifecycle = Depends(get_lifecycle)
):
    """
    Approve or reject a pending material.
    A repeated decision returns the existing state unchanged.
    """
    return _respond(lifecycle.decide_approval(material_id, data.decision, decided_by=caller.user_id))


@router.post("/materials/{material_id}/reconcile", response_model=LifecycleResponse,
             responses=ERROR_RESPONSES)
def reconcile_material(
    material_id: str,
    caller: Caller = Depends(require_role("reconcile materials", Role.MAINTENANCE, Role.DEPOT_OFFICER)),
    lifecycle: MaterialLifecycle = Depends(get_lifecycle)
):
    """Recompute the rollup from the ledger."""
    return _respond(lifecycle.reconcile(material_id))


# Detection endpoint (hardware gateway and AI pipeline)
@router.post("/detections", response_model=LifecycleResponse, responses=ERROR_RESPONSES)
def submit_detection(
    payload: Dict[str, Any] = Body(...),
    lifecycle: MaterialLifecycle = Depends(get_lifecycle)
):
    """
    Raw detection payload: materialId, componentType, condition, and
    optionally confidence, gps {lat, lng}, detectedAt (unix seconds) and
    source (hardware_auto by default, or ai_auto).
    """
    try:
        source = FaultSource(payload.get("source") or FaultSource.HARDWARE_AUTO.value)
    except ValueError:
        raise ValidationError("source", "must be hardware_auto or ai_auto")
    return _respond(lifecycle.submit_detection(payload, source=source))


# Fault endpoints
@router.post("/faults", response_model=LifecycleResponse, status_code=status.HTTP_201_CREATED,
             responses=ERROR_RESPONSES)
def submit_manual_fault(
    data: ManualFaultCreate,
    caller: Caller = Depends(require_role("report faults", Role.MAINTENANCE)),
    lifecycle: MaterialLifecycle = Depends(get_lifecycle)
):
    """Log a fault found by maintenance staff and send it to the engineer."""
    return _respond(lifecycle.submit_manual_fault(
        data.material_id,
        data.component_type,
        data.failure_type,
        data.severity,
        data.description,
        gps=data.gps.model_dump() if data.gps else None,
        images=data.images,
        created_by=caller.user_id,
        time_of_occurrence=data.time_of_occurrence,
    ))


@router.put("/faults/{fault_id}/verify", response_model=LifecycleResponse, responses=ERROR_RESPONSES)
def verify_fault(
    fault_id: int,
    data: FaultVerify,
    caller: Caller = Depends(require_role("verify faults", Role.MAINTENANCE)),
    lifecycle: MaterialLifecycle = Depends(get_lifecycle)
):
    """Engineer verification of a ledger entry."""
    return _respond(lifecycle.verify_fault(
        fault_id,
        data.engineer_remarks,
        root_cause=data.root_cause,
        preventive_action=data.preventive_action,
        engineer_gps_location=data.engineer_gps_location,
        engineer_photo_ref=data.engineer_photo_ref,
        verified_by=caller.user_id,
    ))


@router.put("/faults/{fault_id}/close", response_model=LifecycleResponse, responses=ERROR_RESPONSES)
def close_fault(
    fault_id: int,
    caller: Caller = Depends(require_role("close faults", Role.MAINTENANCE)),
    lifecycle: MaterialLifecycle = Depends(get_lifecycle)
):
    return _respond(lifecycle.close_fault(fault_id, resolved_by=caller.user_id))


@router.post("/reconcile/sweep", response_model=SweepResponse)
def sweep(
    caller: Caller = Depends(require_role("run the reconciliation sweep", Role.MAINTENANCE)),
    lifecycle: MaterialLifecycle = Depends(get_lifecycle)
):
    """Fold ledger entries whose rollup write never completed."""
    return SweepResponse(reconciled=lifecycle.sweep())


# Photos
@router.post("/photos", response_model=PhotoResponse, status_code=status.HTTP_201_CREATED,
             responses={422: {"model": ErrorResponse}, 502: {"model": ErrorResponse}})
def upload_photo(
    data: PhotoUpload,
    caller: Caller = Depends(get_caller),
    lifecycle: MaterialLifecycle = Depends(get_lifecycle)
):
    """Accepts a base64 image or a data URL ("data:image/jpeg;base64,...")."""
    encoded = data.image_base64.split(",", 1)[1] if "," in data.image_base64 else data.image_base64
    try:
        image = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("imageBase64", "is not valid base64")
    return PhotoResponse(ref=lifecycle.upload_photo(image, data.content_type))
