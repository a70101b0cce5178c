"""
Serializer mixins providing reusable functionality for DRF serializers.

Available Mixins:
    TimestampMixin: Auto-include bookkeeping timestamps in serializer output

Usage:
    from core.serializer_mixins import TimestampMixin

    class InvoiceSerializer(TimestampMixin, serializers.ModelSerializer):
        class Meta:
            model = Invoice
            fields = ["invoice_number"]  # created_at, updated_at, deleted_at added
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any

TIMESTAMP_FIELDS = ("created_at", "updated_at", "deleted_at")


class TimestampMixin:
    """
    Add the model's bookkeeping timestamps to serializer output.

    Appends whichever of created_at, updated_at and deleted_at the model
    defines (BaseModel and SoftDeleteMixin) and the serializer does not
    already list. The fields are read-only on the model side.
    """

    def get_field_names(self, declared_fields: Any, info: Any) -> list[str]:
        fields = list(super().get_field_names(declared_fields, info))  # type: ignore[misc]
        for name in TIMESTAMP_FIELDS:
            if name in info.fields and name not in fields:
                fields.append(name)
        return fields
