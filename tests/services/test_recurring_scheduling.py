"""
Unit tests for next-occurrence scheduling.
"""
from datetime import date

import pytest

from models.recurring_transaction import RecurrenceFrequency
from services.recurring_transactions.scheduling import add_months, calculate_next_expected_date


class TestAddMonths:

    def test_clamps_to_month_end(self):
        """Test that Jan 31 plus one month lands on the last day of February."""
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)

    def test_crosses_year_boundaries(self):
        assert add_months(date(2023, 11, 15), 3) == date(2024, 2, 15)
        assert add_months(date(2024, 2, 15), -3) == date(2023, 11, 15)

    def test_uses_anchor_day(self):
        assert add_months(date(2024, 2, 29), 1, day=31) == date(2024, 3, 31)


class TestCalculateNextExpectedDate:
    """Test cases for advancing by one cadence step."""

    def test_monthly_with_month_end_anchor(self):
        """Test that a day-31 anchor follows month ends through February."""
        assert calculate_next_expected_date(
            date(2024, 1, 31), RecurrenceFrequency.MONTHLY, day_of_month=31
        ) == date(2024, 2, 29)
        assert calculate_next_expected_date(
            date(2024, 2, 29), RecurrenceFrequency.MONTHLY, day_of_month=31
        ) == date(2024, 3, 31)

    def test_monthly_without_anchor_keeps_day(self):
        assert calculate_next_expected_date(
            date(2024, 6, 10), RecurrenceFrequency.MONTHLY
        ) == date(2024, 7, 10)

    def test_monthly_anchor_pulls_late_payment_back(self):
        """Test that a late occurrence does not shift the anchored schedule."""
        assert calculate_next_expected_date(
            date(2024, 6, 17), RecurrenceFrequency.MONTHLY, day_of_month=15
        ) == date(2024, 7, 15)

    @pytest.mark.parametrize("frequency,expected", [
        (RecurrenceFrequency.BIMONTHLY, date(2024, 3, 15)),
        (RecurrenceFrequency.QUARTERLY, date(2024, 4, 15)),
        (RecurrenceFrequency.YEARLY, date(2025, 1, 15)),
    ])
    def test_calendar_frequencies(self, frequency, expected):
        assert calculate_next_expected_date(date(2024, 1, 15), frequency, day_of_month=15) == expected

    def test_yearly_leap_day(self):
        assert calculate_next_expected_date(
            date(2024, 2, 29), RecurrenceFrequency.YEARLY, day_of_month=31
        ) == date(2025, 2, 28)

    def test_daily(self):
        assert calculate_next_expected_date(date(2024, 2, 28), RecurrenceFrequency.DAILY) == date(2024, 2, 29)

    def test_weekly_snaps_to_anchor_weekday(self):
        """Test that a Tuesday occurrence of a Monday cadence returns to Monday."""
        # 2024-06-04 is a Tuesday; the next Monday-anchored date is 2024-06-10
        assert calculate_next_expected_date(
            date(2024, 6, 4), RecurrenceFrequency.WEEKLY, day_of_week=0
        ) == date(2024, 6, 10)

    def test_biweekly(self):
        assert calculate_next_expected_date(
            date(2024, 6, 7), RecurrenceFrequency.BIWEEKLY, day_of_week=4
        ) == date(2024, 6, 21)

    def test_custom_interval_in_days(self):
        assert calculate_next_expected_date(
            date(2024, 6, 1), RecurrenceFrequency.CUSTOM, interval=45
        ) == date(2024, 7, 16)

    def test_interval_multiplies_step(self):
        assert calculate_next_expected_date(
            date(2024, 1, 15), RecurrenceFrequency.MONTHLY, interval=6, day_of_month=15
        ) == date(2024, 7, 15)

    def test_rejects_invalid_interval(self):
        with pytest.raises(ValueError):
            calculate_next_expected_date(date(2024, 1, 15), RecurrenceFrequency.MONTHLY, interval=0)

    def test_early_payment_belongs_to_next_month_anchor(self):
        """Test that a day-1 bill paid on May 31 is next expected on Jul 1, not Jun 1."""
        assert calculate_next_expected_date(
            date(2024, 5, 31), RecurrenceFrequency.MONTHLY, day_of_month=1
        ) == date(2024, 7, 1)

    def test_late_payment_belongs_to_previous_month_anchor(self):
        """Test that a month-end bill paid on Jul 1 is next expected on Jul 31, not Aug 31."""
        assert calculate_next_expected_date(
            date(2024, 7, 1), RecurrenceFrequency.MONTHLY, day_of_month=31
        ) == date(2024, 7, 31)

    def test_early_payment_across_year_end(self):
        assert calculate_next_expected_date(
            date(2023, 12, 30), RecurrenceFrequency.QUARTERLY, day_of_month=2
        ) == date(2024, 4, 2)
