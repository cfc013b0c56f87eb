"""
HemoTrack Database Module

Record store contract, in-memory implementation and typed repositories.
"""

from hemotrack.db.store import (
    ADMISSIONS,
    PATIENTS,
    TRANSFUSIONS,
    TREATMENT_PLANS,
    InMemoryRecordStore,
    RecordStore,
)
from hemotrack.db.repositories import (
    AdmissionRepository,
    BaseRepository,
    PatientRepository,
    TransfusionRepository,
    TreatmentPlanRepository,
)

__all__ = [
    "ADMISSIONS",
    "PATIENTS",
    "TRANSFUSIONS",
    "TREATMENT_PLANS",
    "InMemoryRecordStore",
    "RecordStore",
    "AdmissionRepository",
    "BaseRepository",
    "PatientRepository",
    "TransfusionRepository",
    "TreatmentPlanRepository",
]
