"""
Transfusion Domain Models

Pydantic models for the transfusion record and its parts: blood bags,
vitals snapshots and complications. All models are frozen; changes go
through the workflow engine, which returns new instances.
"""

from datetime import date, datetime, time
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field

from hemotrack.models.core import BaseEntity, BloodType, generate_id, utcnow


# =============================================================================
# Enums
# =============================================================================

class TransfusionStatus(str, Enum):
    """Workflow status of a transfusion."""
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    STOPPED = "stopped"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    TransfusionStatus.COMPLETED,
    TransfusionStatus.STOPPED,
    TransfusionStatus.CANCELLED,
})


class ComponentType(str, Enum):
    """Blood component carried by a bag."""
    WHOLE_BLOOD = "whole_blood"
    PACKED_RBC = "packed_rbc"
    PLATELETS = "platelets"
    FFP = "ffp"
    CRYOPRECIPITATE = "cryoprecipitate"


class BloodSource(str, Enum):
    """Where a bag came from."""
    BLOOD_BANK = "blood_bank"
    NBTC = "nbtc"
    DONOR_DIRECTED = "donor_directed"
    OTHER = "other"


class VitalsPhase(str, Enum):
    """When a vitals snapshot was taken."""
    PRE = "pre"
    DURING = "during"
    POST = "post"


class ComplicationType(str, Enum):
    """Recognised transfusion reactions."""
    FEBRILE_REACTION = "febrile_reaction"
    ALLERGIC_REACTION = "allergic_reaction"
    ANAPHYLAXIS = "anaphylaxis"
    HEMOLYTIC_REACTION = "hemolytic_reaction"
    TRALI = "trali"
    TACO = "taco"
    SEPSIS = "sepsis"
    OTHER = "other"


class ComplicationSeverity(str, Enum):
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"
    LIFE_THREATENING = "life_threatening"


CHECKLIST_FLAGS = (
    "consent_obtained",
    "patient_identification_verified",
    "blood_group_verified",
    "crossmatch_checked",
)


# =============================================================================
# Parts
# =============================================================================

class BloodBag(BaseModel):
    """A single unit of blood or blood component."""

    model_config = ConfigDict(frozen=True)

    bag_number: str
    blood_type: BloodType
    component_type: ComponentType
    volume_ml: float
    donation_date: date
    expiry_date: date
    source: BloodSource = BloodSource.BLOOD_BANK
    source_details: str | None = None
    screening_done: bool = False
    crossmatch_compatible: bool = False
    transfused: bool = False

    # Set when a clinician confirmed an incompatible bag
    override_by: str | None = None


class VitalsSnapshot(BaseModel):
    """Vital signs taken before, during or after a transfusion."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_id)
    transfusion_id: str
    patient_id: str
    phase: VitalsPhase
    temperature: float = Field(..., description="Celsius")
    pulse: int = Field(..., description="Beats per minute")
    systolic: int
    diastolic: int
    respiratory_rate: int
    spo2: float = Field(..., description="Percent")
    recorded_at: datetime = Field(default_factory=utcnow)
    recorded_by: str


class Complication(BaseModel):
    """An adverse reaction observed during or after a transfusion."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_id)
    transfusion_id: str
    patient_id: str
    type: ComplicationType
    severity: ComplicationSeverity
    symptoms: tuple[str, ...]
    management: str = ""
    detected_at: datetime = Field(default_factory=utcnow)
    resolved: bool = False
    resolved_at: datetime | None = None
    notes: str | None = None


class PreviousTransfusion(BaseModel):
    """Informational history entry; does not affect the workflow."""

    model_config = ConfigDict(frozen=True)

    transfused_on: date
    indication: str
    blood_group: str
    component: str
    units: int
    complications: str | None = None


# =============================================================================
# Aggregate root
# =============================================================================

class TransfusionRecord(BaseEntity):
    """
    A permanent clinical record of one transfusion episode.

    Never deleted: cancellation is a terminal status. ``total_units`` and
    ``adverse_events`` are derived from the bag and complication lists.
    """

    # Patient
    patient_id: str
    hospital_number: str = ""

    # Indication and clinical details
    indication: str
    clinical_status: str | None = None
    baseline_hb: float = Field(..., description="g/dL")
    target_hb: float | None = None
    urgent: bool = False

    # Blood bags
    blood_bags: tuple[BloodBag, ...] = ()

    # History
    previous_transfusions: tuple[PreviousTransfusion, ...] = ()
    history_of_reactions: bool = False
    reaction_details: str | None = None

    # Pre-transfusion checks
    consent_obtained: bool = False
    patient_identification_verified: bool = False
    blood_group_verified: bool = False
    crossmatch_checked: bool = False

    # Vitals
    pre_vitals: VitalsSnapshot | None = None
    during_vitals: tuple[VitalsSnapshot, ...] = ()
    post_vitals: VitalsSnapshot | None = None

    # Complications
    complications: tuple[Complication, ...] = ()

    # Timing and outcome
    status: TransfusionStatus = TransfusionStatus.PLANNED
    transfusion_date: date = Field(default_factory=lambda: utcnow().date())
    start_time: time | None = None
    end_time: time | None = None
    duration_minutes: int | None = None
    post_transfusion_hb: float | None = None
    hb_increment: float | None = None
    stop_reason: str | None = None
    cancel_reason: str | None = None

    # Administration
    administered_by: str = ""
    supervised_by: str | None = None
    notes: str | None = None

    # Metadata
    created_at: datetime = Field(default_factory=utcnow)
    created_by: str = ""
    updated_at: datetime = Field(default_factory=utcnow)
    updated_by: str = ""

    @computed_field
    @property
    def total_units(self) -> int:
        return len(self.blood_bags)

    @computed_field
    @property
    def adverse_events(self) -> bool:
        return len(self.complications) > 0

    @property
    def missing_checks(self) -> list[str]:
        """Checklist flags that are still false."""
        return [flag for flag in CHECKLIST_FLAGS if not getattr(self, flag)]
