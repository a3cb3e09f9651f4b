"""
Model mixins shared by billing models.

Available Mixins:
    UUIDPrimaryKeyMixin: UUID primary key
    AppendOnlyMixin: Rows can be inserted but never updated or deleted

Usage:
    from core.models import BaseModel
    from core.model_mixins import AppendOnlyMixin, UUIDPrimaryKeyMixin

    class AuditLogEntry(UUIDPrimaryKeyMixin, AppendOnlyMixin, BaseModel):
        action = models.CharField(max_length=50)

Note:
    - Always list mixins before BaseModel in inheritance
    - Mixins are abstract and don't create database tables
"""

from __future__ import annotations

import uuid

from django.db import models

from core.exceptions import ConflictError


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use a UUID as primary key instead of an auto-increment integer.

    Ids are generated before insert, so operation ids and audit payloads
    can reference a row in the same transaction that creates it.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class AppendOnlyMixin(models.Model):
    """
    Refuse updates and deletes on an already-persisted row.

    Bulk queryset operations bypass these checks; callers that need an
    append-only table must go through save()/delete() on instances.

    Raises:
        ConflictError: On save() of an existing row or on delete()
    """

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ConflictError(
                f"{self.__class__.__name__} rows are append-only",
                error_code="APPEND_ONLY",
                details={"id": str(self.pk)},
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ConflictError(
            f"{self.__class__.__name__} rows are append-only",
            error_code="APPEND_ONLY",
            details={"id": str(self.pk)},
        )
