"""
Clinical rules shared across workflows.
"""

from hemotrack.clinical.compatibility import (
    COMPATIBILITY_TABLE,
    CompatibilityResult,
    check_compatibility,
    compatible_donors,
    is_compatible,
)

__all__ = [
    "COMPATIBILITY_TABLE",
    "CompatibilityResult",
    "check_compatibility",
    "compatible_donors",
    "is_compatible",
]
