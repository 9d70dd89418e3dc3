"""
Tests for audit logging and manufacturing-record immutability.

These tests prove:
- Audit events are created for all mandatory actions
- Ignored approval decisions are logged, not silently dropped
- Manufacturing attributes never change after registration
"""
import pytest
from railtrace.models.audit import AuditEvent, AuditEventType
from railtrace.models.enums import InstallationStatus
from railtrace.services.errors import ConcurrentUpdateError, RefusalError


def audit_events(db_session, event_type, entity_id):
    return db_session.query(AuditEvent).filter(
        AuditEvent.event_type == event_type,
        AuditEvent.entity_id == str(entity_id)
    ).order_by(AuditEvent.id).all()


class TestAuditLogging:
    """Test that audit events are created for all mandatory actions."""

    def test_material_created_audit(self, db_session, sample_material):
        events = audit_events(db_session, AuditEventType.MATERIAL_CREATED, "EC12345")

        assert len(events) == 1
        assert events[0].entity_type == "Material"
        assert events[0].user_id == "mfr_001"
        assert events[0].payload_json["batch_number"] == "B-2024-07"

    def test_fault_appended_audit(self, db_session, detect, sample_material):
        fault = detect("erc", "missing").fault

        events = audit_events(db_session, AuditEventType.FAULT_APPENDED, fault.id)

        assert len(events) == 1
        assert events[0].entity_type == "Fault"
        assert events[0].payload_json["material_id"] == "EC12345"
        assert events[0].payload_json["severity"] == "critical"
        assert events[0].payload_json["source"] == "hardware_auto"

    def test_fault_verified_audit(self, db_session, lifecycle, detect, sample_material):
        fault = detect("erc", "missing").fault
        lifecycle.verify_fault(fault.id, "Confirmed", verified_by="eng_1")

        events = audit_events(db_session, AuditEventType.FAULT_VERIFIED, fault.id)

        assert len(events) == 1
        assert events[0].user_id == "eng_1"

    def test_ok_reading_close_audit(self, db_session, detect, sample_material):
        fault = detect("erc", "rust").fault
        detect("erc", "ok")

        events = audit_events(db_session, AuditEventType.FAULT_CLOSED, fault.id)

        assert len(events) == 1
        assert events[0].payload_json["reason"] == "ok_reading"
        assert events[0].payload_json["previous_status"] == "open"

    def test_repeated_close_audited_once(self, db_session, lifecycle, detect, sample_material):
        fault = detect("erc", "rust").fault
        lifecycle.close_fault(fault.id, resolved_by="eng_1")
        lifecycle.close_fault(fault.id, resolved_by="eng_1")

        assert len(audit_events(db_session, AuditEventType.FAULT_CLOSED, fault.id)) == 1

    def test_approval_decided_audit(self, db_session, lifecycle, sample_material):
        lifecycle.decide_approval("EC12345", "approve", decided_by="depot_1")

        events = audit_events(db_session, AuditEventType.APPROVAL_DECIDED, "EC12345")

        assert len(events) == 1
        assert events[0].user_id == "depot_1"
        assert events[0].payload_json["request_status"] == "approved"

    def test_ignored_decision_is_logged(self, db_session, lifecycle, sample_material):
        """A decision on a decided material is recorded, not silently dropped."""
        lifecycle.decide_approval("EC12345", "reject", decided_by="depot_1")
        lifecycle.decide_approval("EC12345", "approve", decided_by="depot_2")

        ignored = audit_events(db_session, AuditEventType.APPROVAL_IGNORED_TERMINAL, "EC12345")

        assert len(ignored) == 1
        assert ignored[0].user_id == "depot_2"
        assert ignored[0].payload_json["decision"] == "approve"
        assert ignored[0].payload_json["request_status"] == "rejected"

    def test_sweep_audit(self, db_session, lifecycle, detect, sample_material, monkeypatch):
        def lost_race(material_id, compute):
            raise ConcurrentUpdateError(material_id, 3)

        monkeypatch.setattr(lifecycle.coordinator, "apply", lost_race)
        with pytest.raises(ConcurrentUpdateError):
            detect("erc", "rust")
        monkeypatch.undo()

        lifecycle.sweep()

        assert len(audit_events(db_session, AuditEventType.ROLLUP_RECONCILED, "EC12345")) == 1


class TestManufacturingImmutability:
    """Manufacturing attributes are written once, at registration."""

    def test_lifecycle_leaves_manufacturing_fields_alone(self, lifecycle, detect, sample_material):
        before = {
            field: getattr(sample_material, field)
            for field in ("fitting_type", "drawing_number", "material_spec",
                          "batch_number", "manufacturer_id", "created_by")
        }

        lifecycle.update_installation("EC12345", {"installation_status": InstallationStatus.INSTALLED})
        outcome = detect("erc", "missing")
        lifecycle.verify_fault(outcome.fault.id, "Confirmed")
        lifecycle.decide_approval("EC12345", "approve")
        material = lifecycle.get_material("EC12345")

        for field, value in before.items():
            assert getattr(material, field) == value

    def test_installation_crew_cannot_touch_manufacturing(self, lifecycle, sample_material):
        with pytest.raises(RefusalError):
            lifecycle.update_installation("EC12345", {"batch_number": "FORGED"})

        assert lifecycle.get_material("EC12345").batch_number == "B-2024-07"

    def test_duplicate_registration_refused(self, lifecycle, sample_material):
        with pytest.raises(RefusalError):
            lifecycle.create_material("EC12345", "Liner")

        assert lifecycle.get_material("EC12345").fitting_type == "ERC"
