"""
Shared pieces of the billing services.

BillingService adds Stripe adapter injection and the clock to BaseService.
BatchResult/UnitResult are what every scheduled pass returns: one entry per
subscription or window, so one failure never hides the others.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from core.services import BaseService

from billing.adapters import StripeAdapter
from billing.clock import Clock, default_clock
from billing.exceptions import StripeError

if TYPE_CHECKING:
    from typing import Any

    from billing.models import Subscription


class Outcome:
    """Per-unit outcome tags used in batch results."""

    APPLIED = "APPLIED"
    RESUMED = "RESUMED"
    CONTINUED = "CONTINUED"
    FIXED = "FIXED"
    CORRECT = "CORRECT"
    ERROR = "ERROR"
    SKIPPED = "SKIPPED"


@dataclass
class UnitResult:
    subscription_id: str
    outcome: str
    window_id: str | None = None
    message: str = ""
    error_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "subscription_id": self.subscription_id,
            "window_id": self.window_id,
            "outcome": self.outcome,
            "message": self.message,
            "error_code": self.error_code,
        }


@dataclass
class BatchResult:
    """
    Summary of a scheduled pass.

    Attributes:
        operation: Name of the pass (apply, resume, verify, ...)
        month: "YYYY-MM" the pass ran for, if month based
        results: One UnitResult per processed unit
    """

    operation: str
    month: str | None = None
    results: list[UnitResult] = field(default_factory=list)

    def add(self, result: UnitResult) -> UnitResult:
        self.results.append(result)
        return result

    def extend(self, other: BatchResult) -> None:
        self.results.extend(other.results)

    def count(self, outcome: str) -> int:
        return sum(1 for result in self.results if result.outcome == outcome)

    @property
    def counts(self) -> dict[str, int]:
        return dict(Counter(result.outcome for result in self.results))

    @property
    def errors(self) -> list[UnitResult]:
        return [result for result in self.results if result.outcome == Outcome.ERROR]

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "month": self.month,
            "counts": self.counts,
            "results": [result.to_dict() for result in self.results],
        }


def error_result(
    subscription: Subscription,
    exc: Exception,
    window_id: str | None = None,
) -> UnitResult:
    return UnitResult(
        subscription_id=str(subscription.id),
        outcome=Outcome.ERROR,
        window_id=window_id,
        message=getattr(exc, "message", None) or str(exc),
        error_code=getattr(exc, "error_code", None) or exc.__class__.__name__.upper(),
    )


class BillingService(BaseService):
    """
    Base class for services that talk to Stripe.

    The adapter is looked up per call so tests can swap it:

        PauseScheduler.set_stripe_adapter(mock_adapter)
        ...
        PauseScheduler.set_stripe_adapter(None)
    """

    # Stripe adapter - can be injected for testing
    _stripe_adapter: type | None = None

    @classmethod
    def get_stripe_adapter(cls) -> type:
        """Get the Stripe adapter class."""
        return cls._stripe_adapter or StripeAdapter

    @classmethod
    def set_stripe_adapter(cls, adapter: type | None) -> None:
        """Set the Stripe adapter class (for testing)."""
        cls._stripe_adapter = adapter

    @staticmethod
    def clock(clock: Clock | None) -> Clock:
        return default_clock(clock)

    @classmethod
    def void_open_invoices(cls, subscription: Subscription, limit: int = 5) -> list[str]:
        """
        Void the customer's open invoices. Returns the voided invoice ids.

        A failure on one invoice is logged and the rest are still tried.
        """
        if not subscription.stripe_customer_id:
            return []

        adapter = cls.get_stripe_adapter()
        voided: list[str] = []
        invoices = adapter.list_open_invoices(
            subscription.stripe_customer_id,
            account_key=subscription.stripe_account_key,
            limit=limit,
        )
        for invoice in invoices:
            try:
                adapter.void_invoice(invoice.id, account_key=subscription.stripe_account_key)
            except StripeError as e:
                cls.get_logger().warning(
                    "Failed to void open invoice",
                    extra={
                        "subscription_id": str(subscription.id),
                        "invoice_id": invoice.id,
                        "error": str(e),
                    },
                )
                continue
            voided.append(invoice.id)
        return voided
