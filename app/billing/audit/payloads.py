"""
Typed payloads for audit log entries.

Each AuditAction has exactly one payload dataclass. The action is a class
attribute of the payload, so an entry can never be written with a
payload of the wrong shape.

Usage:
    from billing.audit.payloads import PauseAutoApplied

    payload = PauseAutoApplied(window_id=str(window.id), month="2026-05", behavior="void")
    payload.action      # AuditAction.PAUSE_AUTO_APPLY
    payload.as_json()   # {"window_id": "...", "month": "2026-05", ...}
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, ClassVar

from billing.state_machines import AuditAction


def _jsonable(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


@dataclass(frozen=True)
class AuditPayload:
    action: ClassVar[AuditAction]

    def as_json(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


# =============================================================================
# Pause scheduling
# =============================================================================


@dataclass(frozen=True)
class PauseScheduleCreated(AuditPayload):
    action: ClassVar[AuditAction] = AuditAction.PAUSE_SCHEDULE_CREATE

    window_ids: list[str]
    behavior: str
    months: list[str] = field(default_factory=list)
    start_date: date | None = None
    end_date: date | None = None
    open_ended: bool = False
    paused_days: int = 0
    credit_cents: int = 0


@dataclass(frozen=True)
class PauseAutoApplied(AuditPayload):
    action: ClassVar[AuditAction] = AuditAction.PAUSE_AUTO_APPLY

    window_id: str
    month: str
    behavior: str
    voided_invoice_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ResumeAutoApplied(AuditPayload):
    action: ClassVar[AuditAction] = AuditAction.RESUME_AUTO_APPLY

    window_id: str
    month: str
    paid_invoice_id: str | None = None


@dataclass(frozen=True)
class PauseWindowCancelled(AuditPayload):
    action: ClassVar[AuditAction] = AuditAction.PAUSE_WINDOW_CANCELLED

    window_id: str
    window: str


@dataclass(frozen=True)
class PauseResumedEarly(AuditPayload):
    action: ClassVar[AuditAction] = AuditAction.PAUSE_RESUMED_EARLY

    window_id: str
    window: str
    elapsed_days: int
    credit_cents: int


# =============================================================================
# Daily date-range windows
# =============================================================================


@dataclass(frozen=True)
class PauseStarted(AuditPayload):
    action: ClassVar[AuditAction] = AuditAction.PAUSE_STARTED

    window_id: str
    start_date: date
    end_date: date
    resumes_at: datetime
    behavior: str


@dataclass(frozen=True)
class PauseEnded(AuditPayload):
    action: ClassVar[AuditAction] = AuditAction.PAUSE_ENDED

    window_id: str
    start_date: date
    end_date: date
    paused_days: int
    credit_cents: int
    invoice_item_id: str
    full_months_skipped: list[str] = field(default_factory=list)
    description: str = ""


@dataclass(frozen=True)
class PauseCompleted(AuditPayload):
    action: ClassVar[AuditAction] = AuditAction.PAUSE_COMPLETED

    window_id: str
    start_date: date
    end_date: date
    paused_days: int
    full_months_skipped: list[str] = field(default_factory=list)
    description: str = ""


# =============================================================================
# Drift correction
# =============================================================================


@dataclass(frozen=True)
class PauseVerifyFix(AuditPayload):
    action: ClassVar[AuditAction] = AuditAction.PAUSE_VERIFY_FIX

    month: str
    fix: str
    stripe_status: str = ""


@dataclass(frozen=True)
class PauseBackstopFix(AuditPayload):
    action: ClassVar[AuditAction] = AuditAction.PAUSE_BACKSTOP_FIX

    month: str
    fix: str
    voided_invoice_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ReconcileStatus(AuditPayload):
    action: ClassVar[AuditAction] = AuditAction.RECONCILE_STATUS

    previous_status: str
    new_status: str
    stripe_status: str
    previous_membership_status: str | None = None
    membership_status: str | None = None


@dataclass(frozen=True)
class PaymentPhantomFailed(AuditPayload):
    action: ClassVar[AuditAction] = AuditAction.PAYMENT_PHANTOM_FAILED

    payment_id: str
    stripe_invoice_id: str | None
    amount_cents: int
    reason: str


PAYLOAD_TYPES: dict[str, type[AuditPayload]] = {
    payload_type.action: payload_type
    for payload_type in (
        PauseScheduleCreated,
        PauseAutoApplied,
        ResumeAutoApplied,
        PauseWindowCancelled,
        PauseResumedEarly,
        PauseStarted,
        PauseEnded,
        PauseCompleted,
        PauseVerifyFix,
        PauseBackstopFix,
        ReconcileStatus,
        PaymentPhantomFailed,
    )
}
