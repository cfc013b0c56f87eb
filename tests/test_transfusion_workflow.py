"""
Tests for the transfusion state machine.

The engine is pure, so these tests build records directly and assert on
the returned copies.
"""

from datetime import date, datetime, time, timezone
import random

import pytest

from conftest import FIXED_NOW, checked, make_bag, make_record
from hemotrack.errors import (
    IncompatibleBloodTypeError,
    InvalidStateError,
    NotFoundError,
    PreconditionFailedError,
    ValidationFailedError,
)
from hemotrack.models import (
    BloodType,
    Complication,
    ComplicationSeverity,
    ComplicationType,
    TransfusionStatus,
    VitalsPhase,
    VitalsSnapshot,
)
from hemotrack.workflow.engine import TransfusionWorkflow, minutes_between


@pytest.fixture
def workflow():
    return TransfusionWorkflow(clock=lambda: FIXED_NOW)


def vitals_for(record, phase=VitalsPhase.PRE, **overrides):
    data = {
        "transfusion_id": record.id,
        "patient_id": record.patient_id,
        "phase": phase,
        "temperature": 36.8,
        "pulse": 82,
        "systolic": 118,
        "diastolic": 76,
        "respiratory_rate": 16,
        "spo2": 98,
        "recorded_by": "nurse.okafor",
    }
    data.update(overrides)
    return VitalsSnapshot(**data)


def complication_for(record, **overrides):
    data = {
        "transfusion_id": record.id,
        "patient_id": record.patient_id,
        "type": ComplicationType.FEBRILE_REACTION,
        "severity": ComplicationSeverity.MILD,
        "symptoms": ("fever", "chills"),
        "management": "Paracetamol, slowed rate",
    }
    data.update(overrides)
    return Complication(**data)


def ready_record(workflow):
    """Planned record with every check done and one bag."""
    record = make_record(**checked())
    return workflow.add_bag(record, make_bag(), "nurse.okafor")


class TestChecklist:
    """Pre-transfusion checklist updates."""

    def test_sets_flags(self, workflow):
        record = workflow.update_checklist(make_record(), "nurse.okafor", consent_obtained=True)
        assert record.consent_obtained is True
        assert record.updated_by == "nurse.okafor"
        assert record.updated_at == FIXED_NOW

    def test_unknown_flag_rejected(self, workflow):
        with pytest.raises(ValidationFailedError) as exc:
            workflow.update_checklist(make_record(), "nurse.okafor", witnessed=True)
        assert exc.value.reasons == ["witnessed is not a checklist flag"]

    def test_input_record_untouched(self, workflow):
        record = make_record()
        workflow.update_checklist(record, "nurse.okafor", consent_obtained=True)
        assert record.consent_obtained is False


class TestBags:
    """Adding and removing blood bags."""

    def test_total_units_tracks_bag_count(self, workflow):
        rng = random.Random(7)
        record = make_record()
        serial = 0
        for _ in range(60):
            if record.blood_bags and rng.random() < 0.4:
                record = workflow.remove_bag(record, rng.randrange(len(record.blood_bags)), "nurse.okafor")
            else:
                serial += 1
                record = workflow.add_bag(record, make_bag(f"BB-{serial}"), "nurse.okafor")
            assert record.total_units == len(record.blood_bags)

    def test_remove_bad_index(self, workflow):
        with pytest.raises(NotFoundError):
            workflow.remove_bag(make_record(), 0, "nurse.okafor")

    def test_expiry_before_donation_rejected(self, workflow):
        bag = make_bag(donation_date=date(2025, 3, 5), expiry_date=date(2025, 3, 1))
        with pytest.raises(ValidationFailedError) as exc:
            workflow.add_bag(make_record(), bag, "nurse.okafor")
        assert "expiry_date 2025-03-01 is before donation_date 2025-03-05" in exc.value.reasons

    def test_non_positive_volume_and_empty_number_both_reported(self, workflow):
        bag = make_bag(bag_number="  ", volume_ml=0)
        with pytest.raises(ValidationFailedError) as exc:
            workflow.add_bag(make_record(), bag, "nurse.okafor")
        assert len(exc.value.reasons) == 2

    def test_duplicate_bag_number_rejected(self, workflow):
        record = workflow.add_bag(make_record(), make_bag("BB-1"), "nurse.okafor")
        with pytest.raises(ValidationFailedError):
            workflow.add_bag(record, make_bag("BB-1"), "nurse.okafor")

    def test_incompatible_bag_requires_override(self, workflow):
        with pytest.raises(IncompatibleBloodTypeError) as exc:
            workflow.add_bag(
                make_record(), make_bag(blood_type=BloodType.B_POS), "nurse.okafor",
                patient_blood_type=BloodType.A_POS,
            )
        assert exc.value.code == "PRECONDITION_FAILED"
        assert "INCOMPATIBLE: B+ blood cannot be given to A+ patient" in exc.value.reasons

    def test_override_stamps_acting_user(self, workflow):
        record = workflow.add_bag(
            make_record(), make_bag(blood_type=BloodType.B_POS), "dr.mensah",
            patient_blood_type=BloodType.A_POS, override=True,
        )
        assert record.blood_bags[0].override_by == "dr.mensah"

    def test_compatible_bag_is_not_stamped(self, workflow):
        record = workflow.add_bag(
            make_record(), make_bag(override_by="someone"), "nurse.okafor",
            patient_blood_type=BloodType.A_POS,
        )
        assert record.blood_bags[0].override_by is None

    def test_unknown_patient_blood_type_skips_check(self, workflow):
        record = workflow.add_bag(make_record(), make_bag(blood_type=BloodType.AB_POS), "nurse.okafor")
        assert record.total_units == 1


class TestStart:
    """start succeeds iff all four checks are done and a bag is present."""

    @pytest.mark.parametrize("flag", [
        "consent_obtained",
        "patient_identification_verified",
        "blood_group_verified",
        "crossmatch_checked",
    ])
    def test_each_missing_flag_blocks_start(self, workflow, flag):
        record = workflow.add_bag(make_record(**checked(**{flag: False})), make_bag(), "nurse.okafor")
        with pytest.raises(PreconditionFailedError) as exc:
            workflow.start(record, time(8, 0), "nurse.okafor")
        assert exc.value.reasons == [f"{flag} is false"]

    def test_no_bags_blocks_start(self, workflow):
        with pytest.raises(PreconditionFailedError) as exc:
            workflow.start(make_record(**checked()), time(8, 0), "nurse.okafor")
        assert exc.value.reasons == ["no blood bags recorded"]

    def test_all_failures_reported_together(self, workflow):
        with pytest.raises(PreconditionFailedError) as exc:
            workflow.start(make_record(), time(8, 0), "nurse.okafor")
        assert len(exc.value.reasons) == 5

    def test_start_moves_to_in_progress(self, workflow):
        record = workflow.start(ready_record(workflow), time(8, 0), "nurse.okafor")
        assert record.status == TransfusionStatus.IN_PROGRESS
        assert record.start_time == time(8, 0)

    def test_start_twice_is_invalid_state(self, workflow):
        record = workflow.start(ready_record(workflow), time(8, 0), "nurse.okafor")
        with pytest.raises(InvalidStateError):
            workflow.start(record, time(8, 5), "nurse.okafor")


class TestComplete:
    """Completion derives duration and haemoglobin increment."""

    def test_duration_and_increment(self, workflow):
        record = workflow.start(ready_record(workflow), time(8, 0), "nurse.okafor")
        record = workflow.complete(record, time(8, 45), "nurse.okafor", post_hb=9.5)
        assert record.status == TransfusionStatus.COMPLETED
        assert record.duration_minutes == 45
        assert record.hb_increment == 2.5
        assert record.post_transfusion_hb == 9.5

    def test_without_post_hb(self, workflow):
        record = workflow.start(ready_record(workflow), time(8, 0), "nurse.okafor")
        record = workflow.complete(record, time(10, 0), "nurse.okafor")
        assert record.duration_minutes == 120
        assert record.hb_increment is None

    def test_end_before_start_rejected(self, workflow):
        record = workflow.start(ready_record(workflow), time(23, 30), "nurse.okafor")
        with pytest.raises(ValidationFailedError):
            workflow.complete(record, time(0, 15), "nurse.okafor")

    def test_complete_from_planned_is_invalid_state(self, workflow):
        with pytest.raises(InvalidStateError):
            workflow.complete(ready_record(workflow), time(9, 0), "nurse.okafor")

    def test_minutes_between(self):
        assert minutes_between(time(8, 0), time(8, 45)) == 45
        assert minutes_between(time(9, 0), time(8, 0)) == -60


class TestStopAndCancel:

    def test_stop_records_reason_and_end(self, workflow):
        record = workflow.start(ready_record(workflow), time(0, 0), "nurse.okafor")
        at = datetime(2025, 3, 10, 23, 59, tzinfo=timezone.utc)
        record = workflow.stop(record, "  suspected TRALI ", "dr.mensah", at=at)
        assert record.status == TransfusionStatus.STOPPED
        assert record.stop_reason == "suspected TRALI"
        assert record.end_time is not None

    def test_stop_requires_reason(self, workflow):
        record = workflow.start(ready_record(workflow), time(8, 0), "nurse.okafor")
        with pytest.raises(ValidationFailedError):
            workflow.stop(record, " ", "dr.mensah")

    def test_cancel_planned(self, workflow):
        record = workflow.cancel(make_record(), "Patient declined", "dr.mensah")
        assert record.status == TransfusionStatus.CANCELLED
        assert record.cancel_reason == "Patient declined"

    def test_cancel_in_progress_is_invalid_state(self, workflow):
        record = workflow.start(ready_record(workflow), time(8, 0), "nurse.okafor")
        with pytest.raises(InvalidStateError):
            workflow.cancel(record, "changed mind", "dr.mensah")


class TestObservations:
    """Vitals and complications."""

    def test_pre_and_post_overwrite_during_accumulates(self, workflow):
        record = make_record()
        record = workflow.record_vitals(record, vitals_for(record, pulse=80), "nurse.okafor")
        record = workflow.record_vitals(record, vitals_for(record, pulse=90), "nurse.okafor")
        record = workflow.record_vitals(record, vitals_for(record, VitalsPhase.DURING), "nurse.okafor")
        record = workflow.record_vitals(record, vitals_for(record, VitalsPhase.DURING), "nurse.okafor")
        assert record.pre_vitals.pulse == 90
        assert len(record.during_vitals) == 2
        assert record.post_vitals is None

    def test_invalid_vitals(self, workflow):
        record = make_record()
        with pytest.raises(ValidationFailedError) as exc:
            workflow.record_vitals(record, vitals_for(record, systolic=70, diastolic=80, spo2=120), "nurse.okafor")
        assert len(exc.value.reasons) == 2

    def test_complication_requires_symptom(self, workflow):
        record = make_record()
        with pytest.raises(ValidationFailedError):
            workflow.record_complication(record, complication_for(record, symptoms=(" ",)), "nurse.okafor")

    def test_adverse_events_sticky_after_resolution(self, workflow):
        record = make_record()
        assert record.adverse_events is False
        entry = complication_for(record)
        record = workflow.record_complication(record, entry, "nurse.okafor")
        assert record.adverse_events is True

        record = workflow.resolve_complication(record, entry.id, "dr.mensah", notes="Settled")
        assert record.complications[0].resolved is True
        assert record.complications[0].resolved_at == FIXED_NOW
        assert record.complications[0].notes == "Settled"
        assert record.adverse_events is True

    def test_resolve_twice_is_invalid_state(self, workflow):
        record = make_record()
        entry = complication_for(record)
        record = workflow.record_complication(record, entry, "nurse.okafor")
        record = workflow.resolve_complication(record, entry.id, "dr.mensah")
        with pytest.raises(InvalidStateError):
            workflow.resolve_complication(record, entry.id, "dr.mensah")

    def test_resolve_unknown_complication(self, workflow):
        with pytest.raises(NotFoundError):
            workflow.resolve_complication(make_record(), "missing", "dr.mensah")

    def test_resolve_allowed_after_stop(self, workflow):
        record = workflow.start(ready_record(workflow), time(8, 0), "nurse.okafor")
        entry = complication_for(record, severity=ComplicationSeverity.SEVERE)
        record = workflow.record_complication(record, entry, "nurse.okafor")
        record = workflow.stop(record, "reaction", "dr.mensah")
        record = workflow.resolve_complication(record, entry.id, "dr.mensah")
        assert record.status == TransfusionStatus.STOPPED
        assert record.complications[0].resolved is True


class TestTerminalStatuses:
    """Completed, stopped and cancelled records reject every workflow operation."""

    OPERATIONS = {
        "update_checklist": lambda wf, r: wf.update_checklist(r, "u", consent_obtained=True),
        "add_bag": lambda wf, r: wf.add_bag(r, make_bag("BB-NEW"), "u"),
        "remove_bag": lambda wf, r: wf.remove_bag(r, 0, "u"),
        "record_vitals": lambda wf, r: wf.record_vitals(r, vitals_for(r), "u"),
        "record_complication": lambda wf, r: wf.record_complication(r, complication_for(r), "u"),
        "start": lambda wf, r: wf.start(r, time(8, 0), "u"),
        "complete": lambda wf, r: wf.complete(r, time(9, 0), "u"),
        "stop": lambda wf, r: wf.stop(r, "reason", "u"),
        "cancel": lambda wf, r: wf.cancel(r, "reason", "u"),
    }

    @pytest.mark.parametrize("status", [
        TransfusionStatus.COMPLETED,
        TransfusionStatus.STOPPED,
        TransfusionStatus.CANCELLED,
    ])
    @pytest.mark.parametrize("operation", sorted(OPERATIONS))
    def test_rejected_with_invalid_state(self, workflow, status, operation):
        record = make_record(status=status, blood_bags=(make_bag(),), **checked())
        with pytest.raises(InvalidStateError) as exc:
            self.OPERATIONS[operation](workflow, record)
        assert exc.value.reasons == [f"status {status.value} is terminal"]
