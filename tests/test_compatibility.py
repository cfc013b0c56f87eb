"""
Tests for the ABO/Rh compatibility table.
"""

import pytest

from hemotrack.clinical.compatibility import (
    COMPATIBILITY_TABLE,
    check_compatibility,
    compatible_donors,
    is_compatible,
)
from hemotrack.models.core import BloodType

EXPECTED = {
    "A+": {"A+", "A-", "O+", "O-"},
    "A-": {"A-", "O-"},
    "B+": {"B+", "B-", "O+", "O-"},
    "B-": {"B-", "O-"},
    "AB+": {"A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-"},
    "AB-": {"A-", "B-", "AB-", "O-"},
    "O+": {"O+", "O-"},
    "O-": {"O-"},
}


class TestCompatibilityTable:
    """The fixed recipient -> donor table."""

    def test_table_covers_every_blood_type(self):
        assert set(COMPATIBILITY_TABLE) == set(BloodType)

    @pytest.mark.parametrize("recipient,donors", sorted(EXPECTED.items()))
    def test_compatible_donors(self, recipient, donors):
        assert {d.value for d in compatible_donors(recipient)} == donors

    def test_every_pair_matches_table(self):
        for recipient in BloodType:
            for donor in BloodType:
                assert is_compatible(recipient, donor) == (donor.value in EXPECTED[recipient.value])

    def test_o_negative_is_universal_donor(self):
        assert all(is_compatible(recipient, BloodType.O_NEG) for recipient in BloodType)

    def test_ab_positive_is_universal_recipient(self):
        assert all(is_compatible(BloodType.AB_POS, donor) for donor in BloodType)

    def test_table_is_read_only(self):
        with pytest.raises(TypeError):
            COMPATIBILITY_TABLE[BloodType.O_NEG] = frozenset(BloodType)


class TestCheckCompatibility:
    """Advisory verdict and display message."""

    def test_compatible_message(self):
        result = check_compatibility("A+", "O-")
        assert result.compatible is True
        assert result.message == "Blood bag is compatible"

    def test_incompatible_message_names_both_types(self):
        result = check_compatibility(BloodType.O_POS, BloodType.A_POS)
        assert result.compatible is False
        assert result.message == "INCOMPATIBLE: A+ blood cannot be given to O+ patient"

    def test_unknown_blood_type_rejected(self):
        with pytest.raises(ValueError):
            check_compatibility("C+", "O-")
