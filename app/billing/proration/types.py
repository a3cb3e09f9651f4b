"""
Data types for proration and settlement calculations.

Types:
    MonthKey: A calendar month (year, month), parsed from "YYYY-MM"
    CreditBreakdownItem / PauseCredit: Day-based pause credit
    PartialMonth / Settlement: Full-month skip vs partial-month settlement
    ProratedPeriod / ProratedCredit: Credit aware of a prorated first period

All amounts are Decimal in major units (pounds), rounded half-up to 0.01.
Use to_minor_units() when handing an amount to Stripe.

Usage:
    from billing.proration.types import MonthKey

    month = MonthKey.parse("2026-02")
    month.days_in_month  # 28
    month.next()         # MonthKey(year=2026, month=3)
"""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal

from billing.exceptions import ProrationError

CENT = Decimal("0.01")
MONTH_KEY_RE = re.compile(r"^(\d{4})-(\d{2})$")
SHORT_MONTH_NAMES = [
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
]


def round_money(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_minor_units(amount: Decimal) -> int:
    """Pounds to pence, rounding half-up."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(cents: int) -> Decimal:
    return round_money(Decimal(cents) / 100)


def as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


@dataclass(frozen=True, order=True)
class MonthKey:
    """
    A calendar month.

    Attributes:
        year: Four digit year
        month: 1-12
    """

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ProrationError(
                f"Month must be between 1 and 12, got {self.month}",
                details={"year": self.year, "month": self.month},
            )

    @classmethod
    def parse(cls, value: str) -> MonthKey:
        """Parse a "YYYY-MM" key."""
        match = MONTH_KEY_RE.match(value or "")
        if not match:
            raise ProrationError(
                f"Invalid month key {value!r}, expected YYYY-MM",
                error_code="INVALID_MONTH_KEY",
                details={"value": value},
            )
        return cls(int(match.group(1)), int(match.group(2)))

    @classmethod
    def from_date(cls, value: date | datetime) -> MonthKey:
        return cls(value.year, value.month)

    @property
    def days_in_month(self) -> int:
        return calendar.monthrange(self.year, self.month)[1]

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def last_day(self) -> date:
        return date(self.year, self.month, self.days_in_month)

    @property
    def label(self) -> str:
        """Short label, e.g. "May 2026"."""
        return f"{SHORT_MONTH_NAMES[self.month - 1]} {self.year}"

    @property
    def long_label(self) -> str:
        """Long label, e.g. "January 2026"."""
        return f"{calendar.month_name[self.month]} {self.year}"

    def next(self) -> MonthKey:
        if self.month == 12:
            return MonthKey(self.year + 1, 1)
        return MonthKey(self.year, self.month + 1)

    def previous(self) -> MonthKey:
        if self.month == 1:
            return MonthKey(self.year - 1, 12)
        return MonthKey(self.year, self.month - 1)

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


# =============================================================================
# Pause credit
# =============================================================================


@dataclass(frozen=True)
class CreditBreakdownItem:
    """
    Credit for the paused days of one calendar month.

    daily_rate is rounded for display only; credit is computed from the
    unrounded rate.
    """

    label: str
    year: int
    month: int
    days_in_month: int
    paused_days: int
    daily_rate: Decimal
    credit: Decimal


@dataclass(frozen=True)
class PauseCredit:
    paused_days: int
    credit_amount: Decimal
    description: str
    breakdown: list[CreditBreakdownItem] = field(default_factory=list)

    @property
    def credit_pence(self) -> int:
        return to_minor_units(self.credit_amount)


# =============================================================================
# Settlement
# =============================================================================


@dataclass(frozen=True)
class PartialMonth:
    label: str
    year: int
    month: int
    paused_days: int
    days_in_month: int
    credit: Decimal


@dataclass(frozen=True)
class Settlement:
    """
    Settlement for a pause range.

    Attributes:
        total_days: Every paused day in the range
        full_months_skipped: Labels of months paused end to end (billing
            suppressed, contributes nothing to total_settlement)
        partial_months: Months paused for only part of their days
        total_settlement: Sum of partial month credits
        description: Human-readable summary
    """

    total_days: int
    full_months_skipped: list[str]
    partial_months: list[PartialMonth]
    total_settlement: Decimal
    description: str

    @property
    def total_settlement_pence(self) -> int:
        return to_minor_units(self.total_settlement)


# =============================================================================
# Prorated first period
# =============================================================================


@dataclass(frozen=True)
class ProratedPeriod:
    label: str
    days_in_period: int
    paused_days: int
    amount_for_period: Decimal
    daily_rate: Decimal
    credit: Decimal


@dataclass(frozen=True)
class ProratedCredit:
    total_days: int
    total_credit: Decimal
    description: str
    breakdown: list[ProratedPeriod] = field(default_factory=list)

    @property
    def total_credit_pence(self) -> int:
        return to_minor_units(self.total_credit)
