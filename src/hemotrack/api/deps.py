"""
Request dependencies: services from application state and the acting user.
"""

from fastapi import Header, HTTPException, Request, status

from hemotrack.progress.tracking import AdmissionTrackingService
from hemotrack.workflow.service import TransfusionService


def get_transfusion_service(request: Request) -> TransfusionService:
    return request.app.state.transfusions


def get_tracking_service(request: Request) -> AdmissionTrackingService:
    return request.app.state.tracking


async def get_acting_user(x_acting_user: str | None = Header(default=None)) -> str:
    """Clinician performing the request, from the X-Acting-User header."""
    if not x_acting_user or not x_acting_user.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Acting-User header is required",
        )
    return x_acting_user.strip()
