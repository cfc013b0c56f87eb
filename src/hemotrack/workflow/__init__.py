"""
Transfusion workflow: the pure state machine and the service that persists it.
"""

from hemotrack.workflow.engine import TransfusionWorkflow, minutes_between
from hemotrack.workflow.service import TransfusionService, build_model

__all__ = [
    "TransfusionWorkflow",
    "TransfusionService",
    "build_model",
    "minutes_between",
]
