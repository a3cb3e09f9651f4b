"""
Writer for the append-only subscription audit log.

Audit writes never break the operation they describe: a failure is logged
and swallowed inside a savepoint, so the enclosing transaction stays
usable.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from django.db import DatabaseError, transaction

from core.services import BaseService

from billing.models import AuditLogEntry

if TYPE_CHECKING:
    from billing.audit.payloads import AuditPayload
    from billing.models import Subscription

SYSTEM_ACTOR = "SYSTEM"


def make_operation_id(prefix: str, subscription_id, *parts) -> str:
    """
    Operation id of the form "<prefix>_<subscription>_<parts...>".

    Without parts a random suffix is used, so repeated calls never collide.
    """
    suffix = "_".join(str(part) for part in parts) if parts else uuid.uuid4().hex[:12]
    return f"{prefix}_{subscription_id}_{suffix}"


class AuditLogService(BaseService):
    """Records AuditLogEntry rows from typed payloads."""

    @classmethod
    def record(
        cls,
        subscription: Subscription,
        payload: AuditPayload,
        *,
        performed_by: str = SYSTEM_ACTOR,
        reason: str = "",
        operation_id: str | None = None,
    ) -> AuditLogEntry | None:
        """
        Append an audit entry.

        Args:
            subscription: Subscription the action touched
            payload: Typed payload; its class fixes the action
            performed_by: "SYSTEM" or a staff identifier
            reason: Free-text reason
            operation_id: Unique key; an existing key makes this a no-op

        Returns:
            The new entry, the existing entry for a repeated operation_id,
            or None when the write failed
        """
        operation_id = operation_id or make_operation_id(
            payload.action.lower(), subscription.id
        )
        logger = cls.get_logger()

        existing = AuditLogEntry.objects.filter(operation_id=operation_id).first()
        if existing is not None:
            return existing

        try:
            with transaction.atomic():
                return AuditLogEntry.objects.create(
                    subscription=subscription,
                    action=payload.action,
                    operation_id=operation_id,
                    performed_by=performed_by or SYSTEM_ACTOR,
                    reason=reason[:500],
                    payload=payload.as_json(),
                )
        except DatabaseError:
            logger.warning(
                "Failed to write audit entry",
                extra={
                    "subscription_id": str(subscription.id),
                    "action": payload.action,
                    "operation_id": operation_id,
                },
                exc_info=True,
            )
            return None
