"""
Audit trail for subscription changes.

Usage:
    from billing.audit import AuditLogService, PauseAutoApplied

    AuditLogService.record(
        subscription,
        PauseAutoApplied(window_id=str(window.id), month="2026-05", behavior="void"),
        reason="Scheduled pause window",
    )
"""

from billing.audit.payloads import (
    PAYLOAD_TYPES,
    AuditPayload,
    PauseAutoApplied,
    PauseBackstopFix,
    PauseCompleted,
    PauseEnded,
    PauseResumedEarly,
    PauseScheduleCreated,
    PauseStarted,
    PauseVerifyFix,
    PauseWindowCancelled,
    PaymentPhantomFailed,
    ReconcileStatus,
    ResumeAutoApplied,
)
from billing.audit.service import SYSTEM_ACTOR, AuditLogService, make_operation_id

__all__ = [
    "PAYLOAD_TYPES",
    "SYSTEM_ACTOR",
    "AuditLogService",
    "AuditPayload",
    "PauseAutoApplied",
    "PauseBackstopFix",
    "PauseCompleted",
    "PauseEnded",
    "PauseResumedEarly",
    "PauseScheduleCreated",
    "PauseStarted",
    "PauseVerifyFix",
    "PauseWindowCancelled",
    "PaymentPhantomFailed",
    "ReconcileStatus",
    "ResumeAutoApplied",
    "make_operation_id",
]
