"""
Fault Normalizer - pure transforms from raw detection payloads and manual
reports into the canonical inputs of the Fault Ledger and Reconciler.

Nothing here touches the database.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

from railtrace.models.enums import CONDITION_SEVERITY, Condition, FaultSource, Severity
from railtrace.services.errors import ValidationError


@dataclass(frozen=True)
class GpsPoint:
    lat: float
    lng: float

    def as_dict(self) -> dict:
        return {"lat": self.lat, "lng": self.lng}


@dataclass(frozen=True)
class FaultObservation:
    """A normalized detection from the hardware gateway or the AI pipeline."""
    material_id: str
    component_type: str
    condition: Condition
    confidence: Optional[float]
    source: FaultSource
    gps: Optional[GpsPoint]
    detected_at: datetime
    description: Optional[str] = None

    @property
    def clears(self) -> bool:
        """An "ok" reading clears state instead of raising severity."""
        return self.condition == Condition.OK

    @property
    def severity(self) -> Optional[Severity]:
        return CONDITION_SEVERITY.get(self.condition)

    @property
    def failure_label(self) -> str:
        return f"{self.component_type.upper()} {self.condition.value}"

    @property
    def status_line(self) -> str:
        return render_status_line(self.component_type, self.condition, self.confidence, self.gps)


@dataclass(frozen=True)
class ManualFaultReport:
    """A fault reported by maintenance staff, severity chosen by the reporter."""
    material_id: str
    component_type: str
    failure_type: str
    severity: Severity
    description: str
    gps: Optional[GpsPoint]
    images: List[str] = field(default_factory=list)
    reported_at: Optional[datetime] = None
    source: FaultSource = FaultSource.MANUAL_MAINTENANCE


def render_status_line(
    component_type: str,
    condition: Condition,
    confidence: Optional[float],
    gps: Optional[GpsPoint],
) -> str:
    """
    Human-readable status line, e.g.
    "ERC missing detected (conf: 0.91) at GPS: 12.97160, 77.59460".
    A missing confidence renders as "n/a", never as 0.
    """
    conf_text = f"{confidence:.2f}" if confidence is not None else "n/a"
    gps_text = f"{gps.lat:.5f}, {gps.lng:.5f}" if gps is not None else "not provided"
    component = component_type.upper()
    if condition == Condition.OK:
        base = f"{component} appears OK (conf: {conf_text})"
    else:
        base = f"{component} {condition.value} detected (conf: {conf_text})"
    return f"{base} at GPS: {gps_text}"


def normalize_detection(
    raw: Mapping[str, Any],
    source: FaultSource = FaultSource.HARDWARE_AUTO,
    now: Optional[datetime] = None,
) -> FaultObservation:
    """
    Convert a raw detection payload into a FaultObservation.

    Accepts the hardware gateway shape (materialId, componentType, condition,
    confidence, gps, detectedAt) and the Inference Service shape, which names
    the component "component".
    """
    material_id = _required_text(_first(raw, "materialId", "material_id"), "materialId")
    component_type = _required_text(
        _first(raw, "componentType", "component_type", "component"), "componentType"
    ).lower()
    condition = _condition(_first(raw, "condition"))

    return FaultObservation(
        material_id=material_id,
        component_type=component_type,
        condition=condition,
        confidence=_confidence(_first(raw, "confidence")),
        source=source,
        gps=_gps(_first(raw, "gps")),
        detected_at=_timestamp(_first(raw, "detectedAt", "detected_at"), now),
        description=_optional_text(_first(raw, "description")),
    )


def normalize_manual_report(
    material_id: Any,
    component_type: Any,
    failure_type: Any,
    severity: Any,
    description: Any,
    gps: Any = None,
    images: Optional[List[str]] = None,
    reported_at: Any = None,
) -> ManualFaultReport:
    """Validate a maintenance report. Description is mandatory for the engineer."""
    try:
        parsed_severity = Severity(severity)
    except ValueError:
        raise ValidationError("severity", f"must be one of {[s.value for s in Severity]}")

    return ManualFaultReport(
        material_id=_required_text(material_id, "materialId"),
        component_type=_required_text(component_type, "componentType").lower(),
        failure_type=_required_text(failure_type, "failureType"),
        severity=parsed_severity,
        description=_required_text(description, "description"),
        gps=_gps(gps),
        images=[ref for ref in (images or []) if ref],
        reported_at=_timestamp(reported_at, None, "timeOfOccurrence"),
    )


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def _required_text(value: Any, field_name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(field_name, "is required")
    return str(value).strip()


def _optional_text(value: Any) -> Optional[str]:
    if value is None or not str(value).strip():
        return None
    return str(value).strip()


def _condition(value: Any) -> Condition:
    if value is None or not str(value).strip():
        raise ValidationError("condition", "is required")
    try:
        return Condition(str(value).strip().lower())
    except ValueError:
        raise ValidationError("condition", f"must be one of {[c.value for c in Condition]}")


def _confidence(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError("confidence", "must be a number")
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        raise ValidationError("confidence", "must be a number")
    if confidence != confidence:  # NaN
        raise ValidationError("confidence", "must be a number")
    return min(max(confidence, 0.0), 1.0)


def _gps(value: Any) -> Optional[GpsPoint]:
    if value is None:
        return None
    if isinstance(value, GpsPoint):
        return value
    if not isinstance(value, Mapping):
        raise ValidationError("gps", "must be an object with lat and lng")
    lat, lng = value.get("lat"), value.get("lng")
    if lat is None and lng is None:
        return None
    if lat is None or lng is None:
        raise ValidationError("gps", "lat and lng must both be given")
    try:
        return GpsPoint(lat=float(lat), lng=float(lng))
    except (TypeError, ValueError):
        raise ValidationError("gps", "lat and lng must be numbers")


def _timestamp(value: Any, now: Optional[datetime], field_name: str = "detectedAt") -> datetime:
    """Unix seconds, ISO-8601 text or datetime; stored as naive UTC."""
    if value is None:
        return now or datetime.utcnow()
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            parsed = datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise ValidationError(field_name, "must be unix seconds or an ISO-8601 timestamp")
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(field_name, "must be unix seconds or an ISO-8601 timestamp")
    else:
        raise ValidationError(field_name, "must be unix seconds or an ISO-8601 timestamp")

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
