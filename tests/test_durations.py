"""
Tests for typed duration helpers.
"""
from datetime import timedelta

import pytest

from keygate.core.durations import DurationUnit, to_duration, whole_units


class TestToDuration:
    """Test conversion of administrative inputs to timedeltas."""

    def test_days(self):
        assert to_duration(30) == timedelta(days=30)

    def test_hours(self):
        assert to_duration(24, DurationUnit.HOURS) == timedelta(hours=24)

    @pytest.mark.parametrize("amount", [0, -1])
    def test_non_positive_rejected(self, amount):
        with pytest.raises(ValueError):
            to_duration(amount)

    def test_non_integer_rejected(self):
        """Fractions and booleans are not durations."""
        with pytest.raises(ValueError):
            to_duration(1.5)
        with pytest.raises(ValueError):
            to_duration(True)


class TestWholeUnits:
    """Test rounding of remaining lifetimes up to whole units."""

    def test_exact_days(self):
        assert whole_units(timedelta(days=3)) == 3

    def test_partial_day_rounds_up(self):
        assert whole_units(timedelta(days=2, hours=1)) == 3

    def test_minimum_one_unit(self):
        assert whole_units(timedelta(minutes=5)) == 1

    def test_elapsed_lifetime_is_one_unit(self):
        assert whole_units(timedelta(days=-4)) == 1

    def test_hours_unit(self):
        assert whole_units(timedelta(minutes=90), DurationUnit.HOURS) == 2
