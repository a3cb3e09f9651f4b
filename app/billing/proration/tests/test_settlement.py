"""
Tests for settlement breakdowns of date-range pauses.

Tests cover:
- Splitting a range into fully skipped months and partial months
- Description variants
- Rounding of partial-month credits
"""

from datetime import date
from decimal import Decimal

import pytest

from billing.exceptions import ProrationError
from billing.proration import calculate_settlement_breakdown


class TestCalculateSettlementBreakdown:
    """Tests for calculate_settlement_breakdown."""

    def test_partial_and_full_months(self):
        """Should skip whole months and credit only the partial ones."""
        settlement = calculate_settlement_breakdown(
            date(2026, 4, 15), date(2026, 7, 16), Decimal("100")
        )

        assert settlement.total_days == 93
        assert settlement.full_months_skipped == ["May 2026", "Jun 2026"]

        april, july = settlement.partial_months
        assert (april.label, april.paused_days, april.days_in_month) == ("April 2026", 16, 30)
        assert april.credit == Decimal("53.33")
        assert (july.label, july.paused_days, july.days_in_month) == ("July 2026", 16, 31)
        assert july.credit == Decimal("51.61")

        assert settlement.total_settlement == Decimal("104.94")
        assert settlement.total_settlement_pence == 10494
        assert settlement.description == (
            "2 month(s) skipped, £104.94 settlement for partial months"
        )

    def test_total_is_sum_of_rounded_partials(self):
        """Should total the already-rounded partial month credits."""
        settlement = calculate_settlement_breakdown(
            date(2026, 1, 25), date(2026, 2, 5), Decimal("50")
        )

        assert settlement.total_settlement == sum(p.credit for p in settlement.partial_months)

    def test_only_full_months(self):
        """Should need no settlement when every month is skipped whole."""
        settlement = calculate_settlement_breakdown(
            date(2026, 5, 1), date(2026, 6, 30), Decimal("100")
        )

        assert settlement.full_months_skipped == ["May 2026", "Jun 2026"]
        assert settlement.partial_months == []
        assert settlement.total_settlement == Decimal("0.00")
        assert settlement.description == "2 month(s) billing skipped - no settlement needed"

    def test_only_partial_month(self):
        """Should describe a settlement inside one month."""
        settlement = calculate_settlement_breakdown(
            date(2026, 4, 15), date(2026, 4, 20), Decimal("90")
        )

        assert settlement.full_months_skipped == []
        assert settlement.total_days == 6
        assert settlement.total_settlement == Decimal("18.00")
        assert settlement.description == "Settlement credit: £18.00 for 6 days"

    def test_leap_february_is_partial_without_the_29th(self):
        """Should treat Feb 1-28 of a leap year as a partial month."""
        settlement = calculate_settlement_breakdown(
            date(2028, 2, 1), date(2028, 2, 28), Decimal("100")
        )

        assert settlement.full_months_skipped == []
        assert settlement.partial_months[0].days_in_month == 29
        assert settlement.total_settlement == Decimal("96.55")

    def test_leap_february_whole_month_is_skipped(self):
        settlement = calculate_settlement_breakdown(
            date(2028, 2, 1), date(2028, 2, 29), Decimal("100")
        )

        assert settlement.full_months_skipped == ["Feb 2028"]

    def test_inverted_range_raises(self):
        """Should reject an inverted range."""
        with pytest.raises(ProrationError):
            calculate_settlement_breakdown(date(2026, 7, 16), date(2026, 4, 15), Decimal("100"))
