"""
Structured Logging

Configures structlog for the whole package:
- JSON or console rendering
- Log level filtering
- Redaction of patient identifiers
"""

import logging
import sys
from typing import Any

import structlog

from hemotrack.config import get_settings

# Keys whose values never reach a log sink in clear text.
REDACTED_KEYS = frozenset({"hospital_number", "patient_name", "name"})


def redact_identifiers(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Mask patient identifiers in a log event."""
    for key in REDACTED_KEYS.intersection(event_dict):
        if event_dict[key]:
            event_dict[key] = "***"
    return event_dict


def configure_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Log level name; defaults to settings.app.log_level
        json_output: Render JSON lines; defaults to settings.app.log_json
    """
    settings = get_settings()
    level = (level or settings.app.log_level).upper()
    if json_output is None:
        json_output = settings.app.log_json

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level, logging.INFO),
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            redact_identifiers,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
