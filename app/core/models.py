"""
Core base model providing common functionality for all domain models.

Base Classes:
    BaseModel: Abstract model with timestamps (created_at, updated_at)

For mixins (UUIDPrimaryKeyMixin, SoftDeleteMixin), see core.model_mixins.

Usage:
    from core.models import BaseModel
    from core.model_mixins import SoftDeleteMixin, UUIDPrimaryKeyMixin

    class Invoice(UUIDPrimaryKeyMixin, SoftDeleteMixin, BaseModel):
        invoice_number = models.CharField(max_length=32)
"""

from __future__ import annotations

from django.db import models


class BaseModel(models.Model):
    """
    Abstract base model providing common fields for all models.

    Fields:
        created_at: Automatically set when the object is first created
        updated_at: Automatically updated whenever the object is saved
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this record was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="Timestamp when this record was last modified",
    )

    class Meta:
        abstract = True
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(id={self.pk})"

    def snapshot(self) -> dict:
        """
        Return a plain dict of the concrete field values.

        Foreign keys are reported by their ``<name>_id`` column. Values are
        left as Python objects (Decimal, UUID, datetime); serialize with
        DjangoJSONEncoder when needed.
        """
        return {
            field.attname: getattr(self, field.attname)
            for field in self._meta.concrete_fields
        }
