"""
Blood Compatibility Rules

Fixed ABO/Rh table mapping a recipient blood type to the donor types it
may receive. The table is module-level and read-only, so it is shared by
all callers without locking.
"""

from dataclasses import dataclass
from types import MappingProxyType

from hemotrack.models.core import BloodType

_A_POS, _A_NEG = BloodType.A_POS, BloodType.A_NEG
_B_POS, _B_NEG = BloodType.B_POS, BloodType.B_NEG
_AB_POS, _AB_NEG = BloodType.AB_POS, BloodType.AB_NEG
_O_POS, _O_NEG = BloodType.O_POS, BloodType.O_NEG

COMPATIBILITY_TABLE: MappingProxyType = MappingProxyType({
    _A_POS: frozenset({_A_POS, _A_NEG, _O_POS, _O_NEG}),
    _A_NEG: frozenset({_A_NEG, _O_NEG}),
    _B_POS: frozenset({_B_POS, _B_NEG, _O_POS, _O_NEG}),
    _B_NEG: frozenset({_B_NEG, _O_NEG}),
    _AB_POS: frozenset(BloodType),  # universal recipient
    _AB_NEG: frozenset({_A_NEG, _B_NEG, _AB_NEG, _O_NEG}),
    _O_POS: frozenset({_O_POS, _O_NEG}),
    _O_NEG: frozenset({_O_NEG}),
})


@dataclass(frozen=True)
class CompatibilityResult:
    """Outcome of an advisory compatibility check."""
    recipient: BloodType
    donor: BloodType
    compatible: bool
    message: str


def compatible_donors(recipient: BloodType | str) -> frozenset[BloodType]:
    """Donor types a recipient may receive."""
    return COMPATIBILITY_TABLE[BloodType(recipient)]


def is_compatible(recipient: BloodType | str, donor: BloodType | str) -> bool:
    """True if ``donor`` blood may be given to a ``recipient`` patient."""
    return BloodType(donor) in COMPATIBILITY_TABLE[BloodType(recipient)]


def check_compatibility(recipient: BloodType | str, donor: BloodType | str) -> CompatibilityResult:
    """Compatibility verdict with a message suitable for display."""
    recipient, donor = BloodType(recipient), BloodType(donor)
    compatible = is_compatible(recipient, donor)
    if compatible:
        message = "Blood bag is compatible"
    else:
        message = (
            f"INCOMPATIBLE: {donor.value} blood cannot be given to "
            f"{recipient.value} patient"
        )
    return CompatibilityResult(
        recipient=recipient,
        donor=donor,
        compatible=compatible,
        message=message,
    )
