"""Tests for the Fault Normalizer."""
from datetime import datetime

import pytest
from railtrace.models.enums import Condition, FaultSource, Severity
from railtrace.services.errors import ValidationError
from railtrace.services.normalizer import (
    GpsPoint,
    normalize_detection,
    normalize_manual_report,
    render_status_line,
)


class TestDetectionNormalization:

    @pytest.mark.parametrize("missing", ["materialId", "componentType", "condition"])
    def test_required_fields(self, missing):
        """A detection without materialId, componentType or condition is rejected, naming the field."""
        raw = {"materialId": "EC1", "componentType": "erc", "condition": "rust"}
        del raw[missing]

        with pytest.raises(ValidationError) as exc_info:
            normalize_detection(raw)

        assert exc_info.value.field == missing

    def test_unknown_condition_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            normalize_detection({"materialId": "EC1", "componentType": "erc", "condition": "bent"})
        assert exc_info.value.field == "condition"

    def test_confidence_clamped(self):
        high = normalize_detection(
            {"materialId": "EC1", "componentType": "erc", "condition": "rust", "confidence": 1.7}
        )
        low = normalize_detection(
            {"materialId": "EC1", "componentType": "erc", "condition": "rust", "confidence": -0.2}
        )
        assert high.confidence == 1.0
        assert low.confidence == 0.0

    def test_missing_confidence_is_none_and_renders_na(self):
        """A missing confidence stays None and renders as n/a, never as 0."""
        obs = normalize_detection({"materialId": "EC1", "componentType": "liner", "condition": "missing"})

        assert obs.confidence is None
        assert "(conf: n/a)" in obs.status_line

    def test_inference_shape_accepted(self):
        obs = normalize_detection(
            {"materialId": "EC1", "component": "Liner", "condition": "FAULTY", "confidence": 0.8},
            source=FaultSource.AI_AUTO,
        )
        assert obs.component_type == "liner"
        assert obs.condition == Condition.FAULTY
        assert obs.severity == Severity.HIGH
        assert obs.source == FaultSource.AI_AUTO

    def test_unix_detected_at(self):
        obs = normalize_detection(
            {"materialId": "EC1", "componentType": "erc", "condition": "rust", "detectedAt": 1700000000}
        )
        assert obs.detected_at == datetime(2023, 11, 14, 22, 13, 20)
        assert obs.detected_at.tzinfo is None

    @pytest.mark.parametrize("detected_at", [1717228800000, 1717228800000000, 1e300])
    def test_out_of_range_detected_at_rejected(self, detected_at):
        """Millisecond timestamps from JS gateways are refused, not crashed on."""
        with pytest.raises(ValidationError) as exc_info:
            normalize_detection({
                "materialId": "EC1", "componentType": "erc", "condition": "rust", "detectedAt": detected_at,
            })
        assert exc_info.value.field == "detectedAt"

    def test_iso_detected_at_converted_to_utc(self):
        obs = normalize_detection({
            "materialId": "EC1", "componentType": "erc", "condition": "rust",
            "detectedAt": "2024-03-01T10:30:00+05:30",
        })
        assert obs.detected_at == datetime(2024, 3, 1, 5, 0, 0)

    def test_default_detected_at_is_now(self):
        now = datetime(2024, 5, 5, 12, 0, 0)
        obs = normalize_detection({"materialId": "EC1", "componentType": "erc", "condition": "ok"}, now=now)
        assert obs.detected_at == now

    def test_ok_observation_clears(self):
        obs = normalize_detection({"materialId": "EC1", "componentType": "erc", "condition": "ok"})
        assert obs.clears
        assert obs.severity is None

    def test_condition_severity_mapping(self):
        expected = {"missing": Severity.CRITICAL, "faulty": Severity.HIGH, "rust": Severity.MEDIUM}
        for condition, severity in expected.items():
            obs = normalize_detection({"materialId": "EC1", "componentType": "erc", "condition": condition})
            assert obs.severity == severity
            assert obs.failure_label == f"ERC {condition}"

    def test_empty_gps_is_not_provided(self):
        obs = normalize_detection({
            "materialId": "EC1", "componentType": "erc", "condition": "rust", "gps": {},
        })
        assert obs.gps is None
        assert obs.status_line.endswith("at GPS: not provided")

    @pytest.mark.parametrize("gps", [{"lat": 12.9}, {"lng": 77.5}, {"lat": 12.9, "lng": None}])
    def test_half_filled_gps_rejected(self, gps):
        with pytest.raises(ValidationError) as exc_info:
            normalize_detection({"materialId": "EC1", "componentType": "erc", "condition": "rust", "gps": gps})
        assert exc_info.value.field == "gps"


class TestStatusLine:

    def test_fault_line(self):
        line = render_status_line("erc", Condition.MISSING, 0.91, GpsPoint(12.9716, 77.5946))
        assert line == "ERC missing detected (conf: 0.91) at GPS: 12.97160, 77.59460"

    def test_ok_line(self):
        line = render_status_line("liner", Condition.OK, 0.5, None)
        assert line == "LINER appears OK (conf: 0.50) at GPS: not provided"


class TestManualReportNormalization:

    def test_description_required(self):
        with pytest.raises(ValidationError) as exc_info:
            normalize_manual_report("EC1", "Clip", "Crack", "medium", "   ")
        assert exc_info.value.field == "description"

    def test_severity_must_be_known(self):
        with pytest.raises(ValidationError) as exc_info:
            normalize_manual_report("EC1", "Clip", "Crack", "urgent", "Hairline crack")
        assert exc_info.value.field == "severity"

    def test_report_normalized(self):
        report = normalize_manual_report(
            " EC1 ", "Clip", "Crack", "high", "Hairline crack near toe",
            gps={"lat": 1.5, "lng": 2.5}, images=["blob-1", ""],
        )
        assert report.material_id == "EC1"
        assert report.component_type == "clip"
        assert report.severity == Severity.HIGH
        assert report.gps == GpsPoint(1.5, 2.5)
        assert report.images == ["blob-1"]
        assert report.source == FaultSource.MANUAL_MAINTENANCE
