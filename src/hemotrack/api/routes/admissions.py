"""
Admission Routes

Endpoints for admission progress tracking.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from hemotrack.api.deps import get_acting_user, get_tracking_service
from hemotrack.models.admission import AdmissionRecord, TreatmentPlanExecution
from hemotrack.progress.tracking import (
    AdmissionTrackingService,
    DashboardSummary,
    PatientAdmissionStatus,
)

router = APIRouter(tags=["Admissions"])


class PlanProgressUpdate(BaseModel):
    completed_steps: int = Field(..., ge=0)


@router.get("/patients/{patient_id}/status", response_model=PatientAdmissionStatus)
async def get_patient_status(
    patient_id: str,
    service: AdmissionTrackingService = Depends(get_tracking_service),
):
    """
    Admission status for a patient.

    Always answers 200; missing admission, plans or patient details are
    returned empty rather than failing the request.
    """
    return await service.get_patient_status(patient_id)


@router.get("/admissions/active", response_model=list[AdmissionRecord])
async def list_active_admissions(
    service: AdmissionTrackingService = Depends(get_tracking_service),
):
    return await service.list_active_admissions()


@router.get("/admissions/dashboard-summary", response_model=DashboardSummary)
async def dashboard_summary(
    service: AdmissionTrackingService = Depends(get_tracking_service),
):
    return await service.dashboard_summary()


@router.put("/treatment-plans/{plan_id}/progress", response_model=TreatmentPlanExecution)
async def update_plan_progress(
    plan_id: str,
    body: PlanProgressUpdate,
    acting_user: str = Depends(get_acting_user),
    service: AdmissionTrackingService = Depends(get_tracking_service),
):
    return await service.update_plan_progress(plan_id, body.completed_steps, acting_user)
