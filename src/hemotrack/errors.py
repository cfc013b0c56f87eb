"""
HemoTrack Errors

Typed failures returned by every rejected operation. Each error carries a
stable code and the list of conditions that failed, so callers can show an
actionable message.
"""

from typing import Iterable


class HemotrackError(Exception):
    """Base class for all domain errors."""

    code: str = "ERROR"

    def __init__(self, message: str, reasons: Iterable[str] | None = None):
        self.message = message
        self.reasons: list[str] = list(reasons) if reasons else [message]
        super().__init__(message)

    def to_dict(self) -> dict:
        """Serialize for API responses and log lines."""
        return {
            "error": self.code,
            "message": self.message,
            "reasons": self.reasons,
        }


class NotFoundError(HemotrackError):
    """Referenced record or patient does not exist."""
    code = "NOT_FOUND"


class ValidationFailedError(HemotrackError):
    """Malformed input: empty required field, bad volume, bad dates, no symptoms."""
    code = "VALIDATION_FAILED"


class PreconditionFailedError(HemotrackError):
    """A workflow guard was not met (checklist item, bag count, override)."""
    code = "PRECONDITION_FAILED"


class IncompatibleBloodTypeError(PreconditionFailedError):
    """Donor bag is incompatible with the recipient and no override was given."""

    def __init__(self, message: str, recipient: str, donor: str):
        self.recipient = recipient
        self.donor = donor
        super().__init__(
            message,
            reasons=[message, "explicit override is required to add this bag"],
        )


class InvalidStateError(HemotrackError):
    """Operation attempted from a terminal or incompatible status."""
    code = "INVALID_STATE"


class ConfigurationError(HemotrackError):
    """Configuration that cannot produce a meaningful result."""
    code = "CONFIGURATION_ERROR"
