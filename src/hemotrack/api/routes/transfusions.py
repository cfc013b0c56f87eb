"""
Transfusion Routes

Endpoints for the transfusion record lifecycle:
- Create and read records, per-patient history and statistics
- Checklist, bags, vitals and complications
- Start, complete, stop and cancel
"""

from datetime import date, datetime, time
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from hemotrack.api.deps import get_acting_user, get_transfusion_service
from hemotrack.models.transfusion import (
    BloodBag,
    ComplicationSeverity,
    ComplicationType,
    PreviousTransfusion,
    TransfusionRecord,
    VitalsPhase,
)
from hemotrack.workflow.service import TransfusionService

router = APIRouter(tags=["Transfusions"])


# =============================================================================
# Request Models
# =============================================================================

class CreateTransfusionRequest(BaseModel):
    """New planned transfusion."""
    indication: str
    baseline_hb: float
    target_hb: Optional[float] = None
    transfusion_date: Optional[date] = None
    clinical_status: Optional[str] = None
    urgent: bool = False
    consent_obtained: bool = False
    patient_identification_verified: bool = False
    blood_group_verified: bool = False
    crossmatch_checked: bool = False
    previous_transfusions: list[PreviousTransfusion] = Field(default_factory=list)
    history_of_reactions: bool = False
    reaction_details: Optional[str] = None
    supervised_by: Optional[str] = None
    notes: Optional[str] = None


class ChecklistUpdate(BaseModel):
    consent_obtained: Optional[bool] = None
    patient_identification_verified: Optional[bool] = None
    blood_group_verified: Optional[bool] = None
    crossmatch_checked: Optional[bool] = None


class VitalsRequest(BaseModel):
    phase: VitalsPhase
    temperature: float
    pulse: int
    systolic: int
    diastolic: int
    respiratory_rate: int
    spo2: float
    recorded_at: Optional[datetime] = None


class ComplicationRequest(BaseModel):
    type: ComplicationType
    severity: ComplicationSeverity
    symptoms: list[str]
    management: str = ""
    detected_at: Optional[datetime] = None
    notes: Optional[str] = None


class ResolveRequest(BaseModel):
    notes: Optional[str] = None


class StartRequest(BaseModel):
    start_time: time


class CompleteRequest(BaseModel):
    end_time: time
    post_hb: Optional[float] = None


class ReasonRequest(BaseModel):
    reason: str


# =============================================================================
# Records
# =============================================================================

@router.post(
    "/patients/{patient_id}/transfusions",
    response_model=TransfusionRecord,
    status_code=status.HTTP_201_CREATED,
)
async def create_transfusion(
    patient_id: str,
    body: CreateTransfusionRequest,
    acting_user: str = Depends(get_acting_user),
    service: TransfusionService = Depends(get_transfusion_service),
):
    """Plan a transfusion for a registered patient."""
    fields = body.model_dump(exclude_none=True, exclude={"indication", "baseline_hb"})
    return await service.create_transfusion(
        patient_id, body.indication, body.baseline_hb, acting_user, **fields
    )


@router.get("/patients/{patient_id}/transfusions", response_model=list[TransfusionRecord])
async def list_patient_transfusions(
    patient_id: str,
    service: TransfusionService = Depends(get_transfusion_service),
):
    """Transfusion history, most recent first."""
    return await service.list_patient_transfusions(patient_id)


@router.get("/patients/{patient_id}/transfusion-stats")
async def get_patient_transfusion_stats(
    patient_id: str,
    service: TransfusionService = Depends(get_transfusion_service),
):
    return await service.get_patient_transfusion_stats(patient_id)


@router.get("/transfusions/{transfusion_id}", response_model=TransfusionRecord)
async def get_transfusion(
    transfusion_id: str,
    service: TransfusionService = Depends(get_transfusion_service),
):
    return await service.get_transfusion(transfusion_id)


# =============================================================================
# Planning and observations
# =============================================================================

@router.patch("/transfusions/{transfusion_id}/checklist", response_model=TransfusionRecord)
async def update_checklist(
    transfusion_id: str,
    body: ChecklistUpdate,
    acting_user: str = Depends(get_acting_user),
    service: TransfusionService = Depends(get_transfusion_service),
):
    return await service.update_checklist(
        transfusion_id, acting_user, **body.model_dump(exclude_none=True)
    )


@router.post("/transfusions/{transfusion_id}/bags", response_model=TransfusionRecord)
async def add_bag(
    transfusion_id: str,
    bag: BloodBag,
    override: bool = Query(False, description="Accept an incompatible blood type"),
    acting_user: str = Depends(get_acting_user),
    service: TransfusionService = Depends(get_transfusion_service),
):
    """
    Add a blood bag.

    An incompatible bag is rejected with 409 unless ``override=true``; the
    override is recorded against the acting user and audited.
    """
    return await service.add_bag(transfusion_id, bag, acting_user, override=override)


@router.delete("/transfusions/{transfusion_id}/bags/{index}", response_model=TransfusionRecord)
async def remove_bag(
    transfusion_id: str,
    index: int,
    acting_user: str = Depends(get_acting_user),
    service: TransfusionService = Depends(get_transfusion_service),
):
    return await service.remove_bag(transfusion_id, index, acting_user)


@router.post("/transfusions/{transfusion_id}/vitals", response_model=TransfusionRecord)
async def record_vitals(
    transfusion_id: str,
    body: VitalsRequest,
    acting_user: str = Depends(get_acting_user),
    service: TransfusionService = Depends(get_transfusion_service),
):
    return await service.record_vitals(
        transfusion_id, body.model_dump(exclude_none=True), acting_user
    )


@router.post("/transfusions/{transfusion_id}/complications", response_model=TransfusionRecord)
async def record_complication(
    transfusion_id: str,
    body: ComplicationRequest,
    acting_user: str = Depends(get_acting_user),
    service: TransfusionService = Depends(get_transfusion_service),
):
    return await service.record_complication(
        transfusion_id, body.model_dump(exclude_none=True), acting_user
    )


@router.post(
    "/transfusions/{transfusion_id}/complications/{complication_id}/resolve",
    response_model=TransfusionRecord,
)
async def resolve_complication(
    transfusion_id: str,
    complication_id: str,
    body: ResolveRequest,
    acting_user: str = Depends(get_acting_user),
    service: TransfusionService = Depends(get_transfusion_service),
):
    return await service.resolve_complication(
        transfusion_id, complication_id, acting_user, notes=body.notes
    )


# =============================================================================
# Transitions
# =============================================================================

@router.post("/transfusions/{transfusion_id}/start", response_model=TransfusionRecord)
async def start_transfusion(
    transfusion_id: str,
    body: StartRequest,
    acting_user: str = Depends(get_acting_user),
    service: TransfusionService = Depends(get_transfusion_service),
):
    """Start a planned transfusion; 409 lists every unmet checklist item."""
    return await service.start(transfusion_id, body.start_time, acting_user)


@router.post("/transfusions/{transfusion_id}/complete", response_model=TransfusionRecord)
async def complete_transfusion(
    transfusion_id: str,
    body: CompleteRequest,
    acting_user: str = Depends(get_acting_user),
    service: TransfusionService = Depends(get_transfusion_service),
):
    return await service.complete(
        transfusion_id, body.end_time, acting_user, post_hb=body.post_hb
    )


@router.post("/transfusions/{transfusion_id}/stop", response_model=TransfusionRecord)
async def stop_transfusion(
    transfusion_id: str,
    body: ReasonRequest,
    acting_user: str = Depends(get_acting_user),
    service: TransfusionService = Depends(get_transfusion_service),
):
    return await service.stop(transfusion_id, body.reason, acting_user)


@router.post("/transfusions/{transfusion_id}/cancel", response_model=TransfusionRecord)
async def cancel_transfusion(
    transfusion_id: str,
    body: ReasonRequest,
    acting_user: str = Depends(get_acting_user),
    service: TransfusionService = Depends(get_transfusion_service),
):
    return await service.cancel(transfusion_id, body.reason, acting_user)
