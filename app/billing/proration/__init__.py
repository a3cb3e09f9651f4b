"""
Pure proration and settlement math. No database, no Stripe.
"""

from billing.proration.calculator import (
    calculate_pause_credit,
    calculate_prorated_credit,
    days_between_inclusive,
    days_in_month,
    format_short_date,
    is_date_paused,
    paused_days_in_month,
)
from billing.proration.settlement import calculate_settlement_breakdown
from billing.proration.types import (
    CreditBreakdownItem,
    MonthKey,
    PartialMonth,
    PauseCredit,
    ProratedCredit,
    ProratedPeriod,
    Settlement,
    from_minor_units,
    round_money,
    to_minor_units,
)

__all__ = [
    "CreditBreakdownItem",
    "MonthKey",
    "PartialMonth",
    "PauseCredit",
    "ProratedCredit",
    "ProratedPeriod",
    "Settlement",
    "calculate_pause_credit",
    "calculate_prorated_credit",
    "calculate_settlement_breakdown",
    "days_between_inclusive",
    "days_in_month",
    "format_short_date",
    "from_minor_units",
    "is_date_paused",
    "paused_days_in_month",
    "round_money",
    "to_minor_units",
]
