"""
Model mixins providing reusable functionality for Django models.

This module contains abstract mixin classes that can be combined with
BaseModel to add specific functionality. These are generic infrastructure
classes with no domain-specific logic.

Available Mixins:
    UUIDPrimaryKeyMixin: Use UUID as primary key
    SoftDeleteMixin: Soft delete support (deleted_at timestamp)

Usage:
    from core.models import BaseModel
    from core.model_mixins import SoftDeleteMixin, UUIDPrimaryKeyMixin

    class Invoice(UUIDPrimaryKeyMixin, SoftDeleteMixin, BaseModel):
        invoice_number = models.CharField(max_length=32)

Note:
    - Always list mixins before BaseModel in inheritance
    - Mixins are abstract and don't create database tables
    - SoftDeleteMixin requires SoftDeleteManager (see core.managers)
"""

from __future__ import annotations

import uuid

from django.db import models
from django.utils import timezone

from core.exceptions import ConflictError


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use UUID as primary key instead of auto-increment integer.

    IDs can be generated before the database insert, which lets services
    reference a record (audit events, log context) before it is saved.

    Fields:
        id: UUIDField as primary key (auto-generated)
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class SoftDeleteMixin(models.Model):
    """
    Soft delete support for models.

    Instead of permanently deleting records, stamps them with a deletion
    timestamp. Deleted records stay addressable by primary key through
    ``all_objects`` and can be restored explicitly.

    Fields:
        deleted_at: Timestamp when the record was soft deleted (null if live)

    Usage:
        from core.managers import SoftDeleteManager, SoftDeleteQuerySet

        class Invoice(SoftDeleteMixin, BaseModel):
            objects = SoftDeleteManager()  # Excludes deleted by default
            all_objects = SoftDeleteQuerySet.as_manager()  # For audit/admin access

        invoice.soft_delete()
        Invoice.objects.filter(pk=invoice.pk).exists()  # False
        Invoice.all_objects.get(pk=invoice.pk)  # Still there

        invoice.restore()
    """

    deleted_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Timestamp when this record was soft deleted",
    )

    class Meta:
        abstract = True

    @property
    def is_deleted(self) -> bool:
        """Whether this record has been soft deleted."""
        return self.deleted_at is not None

    def soft_delete(self, save: bool = True) -> None:
        """
        Mark this record as deleted.

        Sets deleted_at to the current time. Calling it on an already
        deleted record keeps the original timestamp.

        Args:
            save: Persist the change immediately (default True)
        """
        if self.deleted_at is not None:
            return
        self.deleted_at = timezone.now()
        if save:
            self.save(update_fields=["deleted_at", "updated_at"])

    def restore(self, save: bool = True) -> None:
        """
        Restore a soft-deleted record.

        Args:
            save: Persist the change immediately (default True)
        """
        if self.deleted_at is None:
            return
        self.deleted_at = None
        if save:
            self.save(update_fields=["deleted_at", "updated_at"])

    def delete(self, *args, **kwargs):
        """
        Refuse permanent deletion.

        Soft-deletable records stay addressable by primary key for good.
        Use soft_delete() to hide a record.

        Raises:
            ConflictError: Always
        """
        raise ConflictError(
            f"{self._meta.verbose_name} records cannot be hard deleted",
            error_code="HARD_DELETE_NOT_ALLOWED",
            details={
                "id": str(self.pk),
                "current_state": "deleted" if self.is_deleted else "active",
            },
        )
