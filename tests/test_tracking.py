"""
Tests for AdmissionTrackingService: patient status aggregation, dashboard
summary and plan progress updates.
"""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from hemotrack.db.store import ADMISSIONS, PATIENTS, TREATMENT_PLANS, InMemoryRecordStore
from hemotrack.errors import NotFoundError, ValidationFailedError
from hemotrack.models import AdmissionRecord, AdmissionStatus, Patient, PlanStatus, TreatmentPlanExecution
from hemotrack.notifications.activity import ActivityEmitter, ActivityType
from hemotrack.progress.engine import AlertSeverity, AlertThresholds, AlertType
from hemotrack.progress.tracking import AdmissionTrackingService
from hemotrack.security.audit import AuditEventType, AuditLogger

NOW = datetime(2025, 2, 1, 12, 0, tzinfo=timezone.utc)


class FailingStore(InMemoryRecordStore):
    """Store whose lookups on one collection always fail."""

    def __init__(self, broken: str):
        super().__init__()
        self.broken = broken

    async def find(self, collection, field, value):
        if collection == self.broken:
            raise RuntimeError(f"{collection} backend unavailable")
        return await super().find(collection, field, value)

    async def get(self, collection, record_id):
        if collection == self.broken:
            raise RuntimeError(f"{collection} backend unavailable")
        return await super().get(collection, record_id)


async def seed(store, *entities):
    collections = {
        Patient: PATIENTS,
        AdmissionRecord: ADMISSIONS,
        TreatmentPlanExecution: TREATMENT_PLANS,
    }
    for entity in entities:
        await store.put(collections[type(entity)], entity.id, entity.model_dump(mode="json"))


def make_admission(patient_id="patient-1", days=3, **overrides):
    data = {
        "patient_id": patient_id,
        "admission_date": NOW - timedelta(days=days),
        "ward_location": "Ward 4B",
        "diagnosis": "Sickle cell crisis",
    }
    data.update(overrides)
    return AdmissionRecord(**data)


def make_plan(patient_id="patient-1", **overrides):
    data = {
        "patient_id": patient_id,
        "plan_id": "plan-1",
        "title": "Exchange transfusion programme",
        "total_steps": 10,
        "completed_steps": 5,
        "start_date": NOW - timedelta(days=5),
        "planned_end_date": NOW + timedelta(days=5),
    }
    data.update(overrides)
    return TreatmentPlanExecution(**data)


def make_service(store, **kwargs):
    return AdmissionTrackingService(
        store, thresholds=AlertThresholds(), clock=lambda: NOW, **kwargs
    )


PATIENT = Patient(id="patient-1", name="Ama Owusu", hospital_number="HN-0042")


class TestPatientStatus:

    @pytest.mark.asyncio
    async def test_admitted_patient(self):
        store = InMemoryRecordStore()
        await seed(store, PATIENT, make_admission(days=3), make_plan())
        status = await make_service(store).get_patient_status("patient-1")

        assert status.patient_name == "Ama Owusu"
        assert status.hospital_number == "HN-0042"
        assert status.current_status == "admitted"
        assert status.admission.length_of_stay.days == 3
        assert status.treatment_plans[0].variance.is_on_schedule is True
        assert status.overall_progress == 50
        assert status.alerts == []

    @pytest.mark.asyncio
    async def test_latest_admission_used(self):
        store = InMemoryRecordStore()
        old = make_admission(days=60, status=AdmissionStatus.DISCHARGED,
                             actual_discharge_date=NOW - timedelta(days=40))
        current = make_admission(days=2)
        await seed(store, PATIENT, old, current)
        status = await make_service(store).get_patient_status("patient-1")
        assert status.admission.admission.id == current.id

    @pytest.mark.asyncio
    async def test_pending_discharge_is_not_admitted(self):
        store = InMemoryRecordStore()
        await seed(store, PATIENT, make_admission(days=20, status=AdmissionStatus.PENDING_DISCHARGE))
        status = await make_service(store).get_patient_status("patient-1")

        assert status.current_status == "not_admitted"
        assert [(a.type, a.severity) for a in status.alerts] == [
            (AlertType.LONG_STAY, AlertSeverity.HIGH),
            (AlertType.PENDING_DISCHARGE, AlertSeverity.LOW),
        ]

    @pytest.mark.asyncio
    async def test_unknown_patient_without_admission(self):
        status = await make_service(InMemoryRecordStore()).get_patient_status("nobody")
        assert status.patient_name == "Unknown"
        assert status.hospital_number == ""
        assert status.admission is None
        assert status.current_status == "not_admitted"
        assert status.overall_progress == 0

    @pytest.mark.asyncio
    async def test_failing_admission_lookup_degrades(self):
        store = FailingStore(broken=ADMISSIONS)
        await seed(store, PATIENT, make_plan(overdue_steps=2))
        status = await make_service(store).get_patient_status("patient-1")

        assert status.admission is None
        assert status.patient_name == "Ama Owusu"
        assert len(status.treatment_plans) == 1
        assert [a.type for a in status.alerts] == [AlertType.OVERDUE_STEP]

    @pytest.mark.asyncio
    async def test_failing_patient_lookup_degrades(self):
        store = FailingStore(broken=PATIENTS)
        await seed(store, make_admission())
        status = await make_service(store).get_patient_status("patient-1")
        assert status.patient_name == "Unknown"
        assert status.current_status == "admitted"


class TestDashboard:

    @pytest.mark.asyncio
    async def test_empty(self):
        summary = await make_service(InMemoryRecordStore()).dashboard_summary()
        assert summary.total_active_admissions == 0
        assert summary.average_los_days == 0

    @pytest.mark.asyncio
    async def test_summary(self):
        store = InMemoryRecordStore()
        await seed(
            store,
            make_admission("p1", days=2),
            make_admission("p2", days=20, status=AdmissionStatus.PENDING_DISCHARGE),
            make_admission("p3", days=50, status=AdmissionStatus.DISCHARGED,
                           actual_discharge_date=NOW - timedelta(days=45)),
            make_plan("p1", completed_steps=8),
            make_plan("p2", plan_id="plan-2", completed_steps=1),
            make_plan("p3", plan_id="plan-3", completed_steps=0),
        )
        summary = await make_service(store).dashboard_summary()

        assert summary.total_active_admissions == 2
        assert summary.average_los_days == 11.0
        assert summary.long_stay_patients == 1
        assert summary.pending_discharges == 1
        assert summary.treatment_plans_on_track == 1
        assert summary.treatment_plans_delayed == 1
        assert summary.overall_completion_rate == 45

    @pytest.mark.asyncio
    async def test_active_admissions_oldest_first(self):
        store = InMemoryRecordStore()
        recent = make_admission("p1", days=1)
        older = make_admission("p2", days=9)
        await seed(store, recent, older)
        active = await make_service(store).list_active_admissions()
        assert [a.id for a in active] == [older.id, recent.id]


class TestPlanProgress:

    @pytest_asyncio.fixture
    async def store(self):
        store = InMemoryRecordStore()
        await seed(store, make_plan(id="tp-1", completed_steps=0))
        return store

    @pytest.mark.asyncio
    async def test_in_progress(self, store):
        audit = AuditLogger()
        service = make_service(store, audit=audit)
        updated = await service.update_plan_progress("tp-1", 4, "dr.mensah")

        assert updated.completed_steps == 4
        assert updated.status == PlanStatus.IN_PROGRESS
        assert updated.updated_by == "dr.mensah"
        [event] = audit.get_events(resource_id="tp-1")
        assert event.event_type == AuditEventType.PLAN_PROGRESS_UPDATED

    @pytest.mark.asyncio
    async def test_completed_sets_end_date(self, store):
        activity = ActivityEmitter()
        seen = []

        async def sink(event):
            seen.append(event.activity_type)

        activity.subscribe(sink)
        service = make_service(store, activity=activity)
        updated = await service.update_plan_progress("tp-1", 10, "dr.mensah")
        await activity.drain()

        assert updated.status == PlanStatus.COMPLETED
        assert updated.actual_end_date == NOW
        assert updated.pending_steps == 0
        assert seen == [ActivityType.PLAN_PROGRESS_UPDATED]

    @pytest.mark.asyncio
    async def test_out_of_range(self, store):
        with pytest.raises(ValidationFailedError) as exc:
            await make_service(store).update_plan_progress("tp-1", 11, "dr.mensah")
        assert exc.value.reasons == ["completed_steps (11) exceeds total_steps (10)"]

    @pytest.mark.asyncio
    async def test_unknown_plan(self, store):
        with pytest.raises(NotFoundError):
            await make_service(store).update_plan_progress("missing", 1, "dr.mensah")

    @pytest.mark.asyncio
    async def test_reset_to_zero_reopens_completed_plan(self, store):
        service = make_service(store)
        await service.update_plan_progress("tp-1", 10, "dr.mensah")
        updated = await service.update_plan_progress("tp-1", 0, "dr.mensah")

        assert updated.status == PlanStatus.NOT_STARTED
        assert updated.actual_end_date is None
        assert updated.completed_steps == 0

    @pytest.mark.asyncio
    async def test_locks_released_after_updates(self, store):
        service = make_service(store)
        await service.update_plan_progress("tp-1", 3, "dr.mensah")
        with pytest.raises(ValidationFailedError):
            await service.update_plan_progress("tp-1", 11, "dr.mensah")
        for i in range(50):
            with pytest.raises(NotFoundError):
                await service.update_plan_progress(f"missing-{i}", 1, "dr.mensah")
        assert len(service._locks) == 0
