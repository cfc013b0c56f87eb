"""
HemoTrack Observability Module

Structured logging setup shared by the services and the API.
"""

from hemotrack.observability.logging import configure_logging, redact_identifiers

__all__ = [
    "configure_logging",
    "redact_identifiers",
]
