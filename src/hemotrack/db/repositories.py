"""
Repository classes for record access.

Each repository maps one store collection to its pydantic model, giving
the services typed reads and writes over any RecordStore.
"""

from typing import Any, Generic, TypeVar

import structlog
from pydantic import BaseModel

from hemotrack.db.store import ADMISSIONS, PATIENTS, TRANSFUSIONS, TREATMENT_PLANS, RecordStore
from hemotrack.errors import NotFoundError
from hemotrack.models import AdmissionRecord, AdmissionStatus, Patient, TransfusionRecord, TreatmentPlanExecution

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


class BaseRepository(Generic[T]):
    """
    Base repository pattern for data access.

    Abstracts the underlying storage behind the RecordStore contract.
    """

    collection: str = ""
    model: type[T]
    label: str = "record"

    def __init__(self, store: RecordStore):
        self._store = store

    def _to_dict(self, entity: T) -> dict:
        """Convert entity to a JSON-compatible dict for storage."""
        return entity.model_dump(mode="json")

    def _from_dict(self, data: dict) -> T:
        return self.model.model_validate(data)

    async def get(self, record_id: str) -> T | None:
        """Get entity by ID."""
        data = await self._store.get(self.collection, record_id)
        return self._from_dict(data) if data is not None else None

    async def require(self, record_id: str) -> T:
        """Get entity by ID or raise NotFoundError."""
        entity = await self.get(record_id)
        if entity is None:
            raise NotFoundError(f"{self.label} {record_id} not found")
        return entity

    async def save(self, entity: T) -> T:
        """Insert or replace an entity."""
        await self._store.put(self.collection, entity.id, self._to_dict(entity))
        return entity

    async def find_by(
        self,
        field: str,
        value: Any,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[T]:
        """Find entities by a secondary-index field, optionally ordered."""
        rows = await self._store.find(self.collection, field, value)
        entities = [self._from_dict(row) for row in rows]
        if order_by:
            entities.sort(key=lambda e: getattr(e, order_by), reverse=descending)
        return entities

    async def list_all(self) -> list[T]:
        rows = await self._store.all(self.collection)
        return [self._from_dict(row) for row in rows]


class PatientRepository(BaseRepository[Patient]):
    """Read access to patients supplied by registration."""

    collection = PATIENTS
    model = Patient
    label = "patient"


class TransfusionRepository(BaseRepository[TransfusionRecord]):
    """Repository for transfusion records."""

    collection = TRANSFUSIONS
    model = TransfusionRecord
    label = "transfusion"

    async def list_for_patient(self, patient_id: str) -> list[TransfusionRecord]:
        """Patient's transfusion history, most recent first."""
        records = await self.find_by("patient_id", patient_id)
        records.sort(key=lambda r: (r.transfusion_date, r.created_at), reverse=True)
        return records


class AdmissionRepository(BaseRepository[AdmissionRecord]):
    """Repository for admission records."""

    collection = ADMISSIONS
    model = AdmissionRecord
    label = "admission"

    async def latest_for_patient(self, patient_id: str) -> AdmissionRecord | None:
        """Most recent admission for a patient."""
        admissions = await self.find_by(
            "patient_id", patient_id, order_by="admission_date", descending=True
        )
        return admissions[0] if admissions else None

    async def list_active(self) -> list[AdmissionRecord]:
        """Admissions that are active or pending discharge."""
        return [
            a for a in await self.list_all()
            if a.status != AdmissionStatus.DISCHARGED and a.actual_discharge_date is None
        ]


class TreatmentPlanRepository(BaseRepository[TreatmentPlanExecution]):
    """Repository for treatment-plan execution records."""

    collection = TREATMENT_PLANS
    model = TreatmentPlanExecution
    label = "treatment plan"

    async def list_for_patient(self, patient_id: str) -> list[TreatmentPlanExecution]:
        return await self.find_by("patient_id", patient_id, order_by="start_date")
