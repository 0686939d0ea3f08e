"""
Tests for boundary validation of input records.
"""

import pytest
from pydantic import ValidationError

from carrierfit.pipeline.models import Carrier, ClientProfile


class TestModelValidation:
    """Tests for boundary validation of input records."""

    def test_bmi(self, standard_profile):
        """Test BMI from imperial height and weight."""
        assert standard_profile.bmi == pytest.approx(25.83, abs=0.01)

    def test_profile_requires_coverage(self):
        """Test that a profile without coverage is rejected."""
        with pytest.raises(ValidationError):
            ClientProfile(age=40, height_inches=70, weight_pounds=180)

    def test_profile_rejects_unknown_tobacco_status(self):
        """Test that statuses are restricted to known values."""
        with pytest.raises(ValidationError):
            ClientProfile(
                age=40, height_inches=70, weight_pounds=180,
                tobacco={"status": "sometimes"}, coverage={"amount": 100_000},
            )

    def test_profile_is_immutable(self, standard_profile):
        """Test that a profile cannot be changed after construction."""
        with pytest.raises(ValidationError):
            standard_profile.age = 50

    def test_carrier_availability(self):
        """Test jurisdiction checks, with an empty list meaning everywhere."""
        regional = Carrier(id="r", name="Regional", available_states=["tx", " ok "])
        national = Carrier(id="n", name="National")

        assert regional.available_states == ["TX", "OK"]
        assert regional.is_available_in("tx")
        assert not regional.is_available_in("NY")
        assert regional.is_available_in(None)
        assert national.is_available_in("NY")
