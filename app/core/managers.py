"""
Custom QuerySet and Manager classes for common patterns.

This module provides reusable manager patterns:
- SoftDeleteManager/QuerySet: Filter soft-deleted records
- BaseQuerySet: Common utility methods for querysets

Usage:
    from core.managers import SoftDeleteManager

    class Invoice(SoftDeleteMixin, BaseModel):
        objects = SoftDeleteManager()  # Default: excludes deleted
        all_objects = SoftDeleteQuerySet.as_manager()  # Includes deleted

    Invoice.objects.all()       # Only live invoices
    Invoice.objects.deleted()   # Only deleted invoices
    Invoice.all_objects.all()   # Everything

Related:
    - core.model_mixins.SoftDeleteMixin: Model mixin for the deleted_at field
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import models

from core.exceptions import ConflictError

if TYPE_CHECKING:
    from datetime import date, datetime


class BaseQuerySet(models.QuerySet):
    """
    Enhanced QuerySet with common utility methods.

    Methods:
        created_between(start, end): Filter by creation date range
        updated_since(date): Filter records updated after date
        oldest(): Order oldest first
        newest(): Order newest first

    Note:
        All methods assume the model has created_at and updated_at fields
        (provided by BaseModel).
    """

    def created_between(
        self,
        start: datetime | date | None,
        end: datetime | date | None,
    ) -> BaseQuerySet:
        """
        Filter records created within an inclusive range.

        Either bound may be None to leave that side open.
        """
        queryset = self
        if start is not None:
            queryset = queryset.filter(created_at__gte=start)
        if end is not None:
            queryset = queryset.filter(created_at__lte=end)
        return queryset

    def updated_since(self, since: datetime | date) -> BaseQuerySet:
        """Filter records updated after a given date."""
        return self.filter(updated_at__gt=since)

    def oldest(self) -> BaseQuerySet:
        """Order by creation date ascending (oldest first)."""
        return self.order_by("created_at")

    def newest(self) -> BaseQuerySet:
        """Order by creation date descending (newest first)."""
        return self.order_by("-created_at")


class SoftDeleteQuerySet(BaseQuerySet):
    """
    QuerySet that provides soft delete filters.

    Methods:
        deleted(): Filter to only deleted records
        active(): Filter to only active records

    Bulk deletion is refused. Records are soft deleted one at a time through
    SoftDeleteMixin.soft_delete() so each change can be recorded.

    Note:
        The default filtering of deleted records happens in SoftDeleteManager,
        not in this QuerySet. This allows all_objects to use the same QuerySet
        without filtering.
    """

    def delete(self):
        """
        Refuse bulk deletion.

        Raises:
            ConflictError: Always
        """
        raise ConflictError(
            f"{self.model._meta.verbose_name} records cannot be hard deleted",
            error_code="HARD_DELETE_NOT_ALLOWED",
        )

    delete.queryset_only = True

    def deleted(self) -> SoftDeleteQuerySet:
        """Filter to only soft-deleted records."""
        return self.filter(deleted_at__isnull=False)

    def active(self) -> SoftDeleteQuerySet:
        """Filter to only active (non-deleted) records."""
        return self.filter(deleted_at__isnull=True)


class SoftDeleteManager(models.Manager.from_queryset(SoftDeleteQuerySet)):
    """
    Manager that filters out soft-deleted records by default.

    Use as the default manager on models with SoftDeleteMixin.
    Always pair with a standard Manager for accessing deleted records.
    """

    def get_queryset(self) -> SoftDeleteQuerySet:
        """Return queryset excluding soft-deleted records."""
        return super().get_queryset().filter(deleted_at__isnull=True)

    def deleted(self) -> SoftDeleteQuerySet:
        """Shortcut to get only deleted records."""
        return SoftDeleteQuerySet(self.model, using=self._db).deleted()

    def with_deleted(self) -> SoftDeleteQuerySet:
        """Get queryset including deleted records."""
        return SoftDeleteQuerySet(self.model, using=self._db)


class BaseManager(models.Manager.from_queryset(BaseQuerySet)):
    """
    Manager that uses BaseQuerySet.

    Usage:
        class Refund(BaseModel):
            objects = BaseManager()

        Refund.objects.created_between(start, end)
    """
