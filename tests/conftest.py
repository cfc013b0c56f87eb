"""
Shared fixtures: an in-memory store seeded with patients, services wired
to a fixed clock, and record builders.
"""

from datetime import date, datetime, timezone

import pytest
import pytest_asyncio

from hemotrack.db.store import PATIENTS, InMemoryRecordStore
from hemotrack.models import BloodBag, BloodType, Patient
from hemotrack.models.transfusion import BloodSource, ComponentType, TransfusionRecord
from hemotrack.notifications.activity import ActivityEmitter
from hemotrack.security.audit import AuditLogger
from hemotrack.workflow.service import TransfusionService

FIXED_NOW = datetime(2025, 3, 10, 9, 30, tzinfo=timezone.utc)


def make_bag(bag_number: str = "BB-1001", blood_type: BloodType = BloodType.O_NEG, **overrides) -> BloodBag:
    data = {
        "bag_number": bag_number,
        "blood_type": blood_type,
        "component_type": ComponentType.PACKED_RBC,
        "volume_ml": 300,
        "donation_date": date(2025, 3, 1),
        "expiry_date": date(2025, 4, 5),
        "source": BloodSource.BLOOD_BANK,
        "screening_done": True,
        "crossmatch_compatible": True,
    }
    data.update(overrides)
    return BloodBag(**data)


def make_record(**overrides) -> TransfusionRecord:
    data = {
        "patient_id": "patient-1",
        "hospital_number": "HN-0042",
        "indication": "Symptomatic anaemia",
        "baseline_hb": 7.0,
        "created_by": "dr.mensah",
        "updated_by": "dr.mensah",
    }
    data.update(overrides)
    return TransfusionRecord(**data)


def checked(**overrides) -> dict:
    """All four checklist flags set."""
    flags = {
        "consent_obtained": True,
        "patient_identification_verified": True,
        "blood_group_verified": True,
        "crossmatch_checked": True,
    }
    flags.update(overrides)
    return flags


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest_asyncio.fixture
async def patient(store):
    patient = Patient(id="patient-1", name="Ama Owusu", hospital_number="HN-0042", blood_type=BloodType.A_POS)
    await store.put(PATIENTS, patient.id, patient.model_dump(mode="json"))
    return patient


@pytest.fixture
def audit():
    return AuditLogger()


@pytest.fixture
def activity():
    return ActivityEmitter()


@pytest.fixture
def service(store, audit, activity, clock):
    return TransfusionService(store, audit=audit, activity=activity, clock=clock)
