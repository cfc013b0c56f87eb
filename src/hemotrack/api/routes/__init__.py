"""API route modules."""

from hemotrack.api.routes.admissions import router as admissions_router
from hemotrack.api.routes.transfusions import router as transfusions_router

__all__ = ["admissions_router", "transfusions_router"]
