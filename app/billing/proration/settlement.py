"""
Settlement breakdown for pause ranges.

A month paused end to end is simply not billed (Stripe skips the
collection), so it contributes nothing to the settlement. Only months that
are partially paused are credited, each at its own daily rate.

Usage:
    from billing.proration.settlement import calculate_settlement_breakdown

    settlement = calculate_settlement_breakdown(
        date(2026, 4, 15), date(2026, 7, 16), Decimal("100")
    )
    settlement.full_months_skipped  # ["May 2026", "Jun 2026"]
    settlement.total_settlement     # Decimal("104.94")
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from billing.proration.calculator import (
    days_between_inclusive,
    iter_month_overlaps,
    validate_range,
)
from billing.proration.types import PartialMonth, Settlement, round_money, to_decimal


def calculate_settlement_breakdown(
    start: date | datetime,
    end: date | datetime,
    monthly_price: Decimal | int | str,
) -> Settlement:
    """
    Split a pause range into fully skipped months and partial months.

    Args:
        start: First paused day
        end: Last paused day
        monthly_price: Price of one month, in pounds

    Returns:
        Settlement whose total is the sum of the rounded partial-month
        credits.

    Raises:
        ProrationError: If end is before start
    """
    start, end = validate_range(start, end)
    price = to_decimal(monthly_price)

    full_months_skipped: list[str] = []
    partial_months: list[PartialMonth] = []
    total_days = 0
    total_settlement = Decimal("0")

    for month, overlap_start, overlap_end in iter_month_overlaps(start, end):
        paused = days_between_inclusive(overlap_start, overlap_end)
        total_days += paused

        if paused == month.days_in_month:
            full_months_skipped.append(month.label)
            continue

        credit = round_money(price / month.days_in_month * paused)
        partial_months.append(
            PartialMonth(
                label=month.long_label,
                year=month.year,
                month=month.month,
                paused_days=paused,
                days_in_month=month.days_in_month,
                credit=credit,
            )
        )
        total_settlement += credit

    total_settlement = round_money(total_settlement)

    if full_months_skipped and partial_months:
        description = (
            f"{len(full_months_skipped)} month(s) skipped, "
            f"£{total_settlement:.2f} settlement for partial months"
        )
    elif full_months_skipped:
        description = (
            f"{len(full_months_skipped)} month(s) billing skipped - no settlement needed"
        )
    else:
        description = f"Settlement credit: £{total_settlement:.2f} for {total_days} days"

    return Settlement(
        total_days=total_days,
        full_months_skipped=full_months_skipped,
        partial_months=partial_months,
        total_settlement=total_settlement,
        description=description,
    )
