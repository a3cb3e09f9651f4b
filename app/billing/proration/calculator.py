"""
Day-based pause credit calculation.

Every month is priced on its own length: the daily rate for a day in
February is monthly_price / 28 (or 29), for a day in March
monthly_price / 31. Equal-length pauses in different months therefore
produce different credits.

Functions:
    calculate_pause_credit: Per-month breakdown of a pause range
    calculate_prorated_credit: Same, aware of a prorated first period
    days_between_inclusive / days_in_month: Calendar helpers
    is_date_paused / paused_days_in_month: Coverage helpers over windows

Example:
    # Pause Jan 25 - Feb 5 on £50/month
    credit = calculate_pause_credit(date(2026, 1, 25), date(2026, 2, 5), Decimal("50"))
    # January: 7 days at 50/31 = 11.29
    # February: 5 days at 50/28 = 8.93
    credit.credit_amount  # Decimal("20.22")
"""

from __future__ import annotations

import calendar
from collections.abc import Iterable
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Protocol

from billing.exceptions import ProrationError
from billing.proration.types import (
    CreditBreakdownItem,
    MonthKey,
    PauseCredit,
    ProratedCredit,
    ProratedPeriod,
    as_date,
    round_money,
    to_decimal,
)


class DateRangeWindow(Protocol):
    start_date: date | None
    end_date: date | None
    status: str


def days_in_month(value: date | datetime) -> int:
    return calendar.monthrange(value.year, value.month)[1]


def days_between_inclusive(start: date | datetime, end: date | datetime) -> int:
    return (as_date(end) - as_date(start)).days + 1


def format_short_date(value: date) -> str:
    """"Jan 15" style label."""
    return f"{value.strftime('%b')} {value.day}"


def validate_range(start: date | datetime, end: date | datetime) -> tuple[date, date]:
    start, end = as_date(start), as_date(end)
    if end < start:
        raise ProrationError(
            "End date must be after or equal to start date",
            details={"start_date": start.isoformat(), "end_date": end.isoformat()},
        )
    return start, end


def iter_month_overlaps(start: date, end: date):
    """
    Yield (month, overlap_start, overlap_end) for each calendar month the
    inclusive range touches.
    """
    month = MonthKey.from_date(start)
    while month.first_day <= end:
        yield month, max(start, month.first_day), min(end, month.last_day)
        month = month.next()


def calculate_pause_credit(
    start: date | datetime,
    end: date | datetime,
    monthly_price: Decimal | int | str,
) -> PauseCredit:
    """
    Credit for every paused day between start and end (inclusive).

    Args:
        start: First paused day
        end: Last paused day (may equal start)
        monthly_price: Price of one month, in pounds

    Returns:
        PauseCredit with one breakdown row per calendar month. Each row's
        credit is rounded to 0.01; the total is the rounded sum of the
        unrounded month credits.

    Raises:
        ProrationError: If end is before start
    """
    start, end = validate_range(start, end)
    price = to_decimal(monthly_price)

    breakdown: list[CreditBreakdownItem] = []
    total_days = 0
    total_credit = Decimal("0")

    for month, overlap_start, overlap_end in iter_month_overlaps(start, end):
        paused = days_between_inclusive(overlap_start, overlap_end)
        daily_rate = price / month.days_in_month
        credit = daily_rate * paused

        total_days += paused
        total_credit += credit
        breakdown.append(
            CreditBreakdownItem(
                label=month.long_label,
                year=month.year,
                month=month.month,
                days_in_month=month.days_in_month,
                paused_days=paused,
                daily_rate=round_money(daily_rate),
                credit=round_money(credit),
            )
        )

    span = f"{format_short_date(start)} - {format_short_date(end)}"
    if len(breakdown) == 1:
        description = f"Pause credit: {span} ({total_days} days)"
    else:
        description = (
            f"Pause credit: {span} ({total_days} days across {len(breakdown)} months)"
        )

    return PauseCredit(
        paused_days=total_days,
        credit_amount=round_money(total_credit),
        description=description,
        breakdown=breakdown,
    )


def calculate_prorated_credit(
    pause_start: date | datetime,
    pause_end: date | datetime,
    subscription_start: date | datetime,
    first_billing_date: date | datetime,
    prorated_amount: Decimal | int | str | None,
    monthly_price: Decimal | int | str,
) -> ProratedCredit:
    """
    Pause credit that honours a prorated first billing period.

    The first period runs from subscription_start to the day before
    first_billing_date and is priced at what the member actually paid for
    it (prorated_amount). Without a prorated payment the first period is
    priced proportionally to the monthly price. Every later period is a
    calendar month priced at monthly_price.
    """
    p_start, p_end = validate_range(pause_start, pause_end)
    sub_start = as_date(subscription_start)
    first_bill = as_date(first_billing_date)
    price = to_decimal(monthly_price)

    breakdown: list[ProratedPeriod] = []
    total_days = 0
    total_credit = Decimal("0")

    first_period_end = first_bill - timedelta(days=1)
    overlap_start = max(p_start, sub_start)
    overlap_end = min(p_end, first_period_end)
    if sub_start <= first_period_end and overlap_start <= overlap_end:
        period_days = days_between_inclusive(sub_start, first_period_end)
        paused = days_between_inclusive(overlap_start, overlap_end)
        if prorated_amount is not None:
            amount = to_decimal(prorated_amount)
        else:
            amount = price * period_days / days_in_month(sub_start)
        daily_rate = amount / period_days
        credit = daily_rate * paused

        breakdown.append(
            ProratedPeriod(
                label=(
                    f"First period: {format_short_date(sub_start)} - "
                    f"{format_short_date(first_period_end)}"
                ),
                days_in_period=period_days,
                paused_days=paused,
                amount_for_period=round_money(amount),
                daily_rate=round_money(daily_rate),
                credit=round_money(credit),
            )
        )
        total_days += paused
        total_credit += credit

    regular_start = max(p_start, first_bill)
    if regular_start <= p_end:
        for month, overlap_start, overlap_end in iter_month_overlaps(regular_start, p_end):
            paused = days_between_inclusive(overlap_start, overlap_end)
            daily_rate = price / month.days_in_month
            credit = daily_rate * paused

            breakdown.append(
                ProratedPeriod(
                    label=month.long_label,
                    days_in_period=month.days_in_month,
                    paused_days=paused,
                    amount_for_period=price,
                    daily_rate=round_money(daily_rate),
                    credit=round_money(credit),
                )
            )
            total_days += paused
            total_credit += credit

    total_credit = round_money(total_credit)
    description = (
        f"Pause credit: {total_days} days, £{total_credit:.2f}"
        if breakdown
        else "No credit applicable"
    )
    return ProratedCredit(
        total_days=total_days,
        total_credit=total_credit,
        description=description,
        breakdown=breakdown,
    )


# =============================================================================
# Coverage helpers
# =============================================================================


def is_date_paused(day: date | datetime, windows: Iterable[DateRangeWindow]) -> bool:
    """True if a non-cancelled date-range window covers day."""
    day = as_date(day)
    for window in windows:
        if window.status == "CANCELLED" or not window.start_date or not window.end_date:
            continue
        if as_date(window.start_date) <= day <= as_date(window.end_date):
            return True
    return False


def paused_days_in_month(
    year: int,
    month: int,
    windows: Iterable[DateRangeWindow],
) -> list[int]:
    """Day numbers (1-31) of the month covered by a non-cancelled window."""
    windows = list(windows)
    key = MonthKey(year, month)
    return [
        day
        for day in range(1, key.days_in_month + 1)
        if is_date_paused(date(year, month, day), windows)
    ]
