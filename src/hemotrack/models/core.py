"""
Core Domain Models

Shared base entity, identifiers and the consumed Patient shape.
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def generate_id() -> str:
    """Generate a unique identifier."""
    return str(uuid4())


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


class BloodType(str, Enum):
    """ABO/Rh blood group."""
    A_POS = "A+"
    A_NEG = "A-"
    B_POS = "B+"
    B_NEG = "B-"
    AB_POS = "AB+"
    AB_NEG = "AB-"
    O_POS = "O+"
    O_NEG = "O-"


class BaseEntity(BaseModel):
    """Base class for all stored entities."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str = Field(default_factory=generate_id, description="Record ID")


class Patient(BaseEntity):
    """
    Patient entity.

    Supplied by the registration system; read-only here.
    """

    name: str = Field(..., description="Display name")
    hospital_number: str = Field(..., description="Hospital number / MRN")
    blood_type: BloodType | None = Field(default=None, description="Known blood group")
