"""
Billing admin configuration.

Ledger records are read-only in the admin. Every change to an invoice,
payment, refund or installment plan goes through the billing services so
the balance invariant and the audit trail hold.
"""

from django.contrib import admin

from billing.models import InstallmentPlan, Invoice, Payment, Refund


class ReadOnlyLedgerAdmin(admin.ModelAdmin):
    """Base admin that allows browsing but no edits."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Invoice)
class InvoiceAdmin(ReadOnlyLedgerAdmin):
    """
    Admin configuration for Invoice.

    Uses all_objects so soft-deleted invoices remain visible.
    """

    list_display = [
        "invoice_number",
        "student_id",
        "total_amount",
        "paid_amount",
        "balance",
        "status",
        "discount_approval_status",
        "due_date",
        "deleted_at",
    ]
    list_filter = ["status", "discount_approval_status", "due_date"]
    search_fields = ["id", "invoice_number", "student_id"]
    date_hierarchy = "generated_at"
    ordering = ["-generated_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "invoice_number", "student_id", "status"),
            },
        ),
        (
            "Amounts",
            {
                "fields": (
                    "subtotal",
                    "discount",
                    "discount_reason",
                    "total_amount",
                    "paid_amount",
                    "balance",
                ),
            },
        ),
        (
            "Discount Review",
            {
                "fields": (
                    "discount_approval_status",
                    "discount_reviewed_by",
                    "discount_reviewed_at",
                ),
            },
        ),
        (
            "References",
            {
                "fields": ("fee_structure_id", "academic_year_id"),
                "classes": ("collapse",),
            },
        ),
        (
            "Dates",
            {
                "fields": (
                    "due_date",
                    "generated_at",
                    "cancelled_at",
                    "deleted_at",
                    "created_at",
                    "updated_at",
                ),
            },
        ),
    )

    def get_queryset(self, request):
        return Invoice.all_objects.all()


@admin.register(Payment)
class PaymentAdmin(ReadOnlyLedgerAdmin):
    list_display = [
        "receipt_number",
        "invoice",
        "student_id",
        "amount",
        "method",
        "status",
        "payment_date",
    ]
    list_filter = ["status", "method", "payment_date"]
    search_fields = ["id", "receipt_number", "external_ref", "invoice__invoice_number"]
    date_hierarchy = "payment_date"
    ordering = ["-created_at"]


@admin.register(InstallmentPlan)
class InstallmentPlanAdmin(ReadOnlyLedgerAdmin):
    list_display = [
        "id",
        "invoice",
        "student_id",
        "total_amount",
        "number_of_installments",
        "installment_amount",
        "frequency",
        "status",
        "start_date",
    ]
    list_filter = ["status", "frequency"]
    search_fields = ["id", "invoice__invoice_number", "student_id"]
    ordering = ["-created_at"]


@admin.register(Refund)
class RefundAdmin(ReadOnlyLedgerAdmin):
    """
    Admin configuration for Refund.

    Provides visibility into refund status and review history.
    """

    list_display = [
        "id",
        "payment",
        "student_id",
        "amount",
        "status",
        "requested_by",
        "requested_at",
        "completed_at",
    ]
    list_filter = ["status", "requested_at"]
    search_fields = ["id", "payment__receipt_number", "invoice__invoice_number", "reason"]
    date_hierarchy = "requested_at"
    ordering = ["-requested_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "payment", "invoice", "student_id", "status"),
            },
        ),
        (
            "Request",
            {
                "fields": ("amount", "reason", "remarks", "requested_by", "requested_at"),
            },
        ),
        (
            "Review",
            {
                "fields": (
                    "approved_by",
                    "approved_at",
                    "rejected_by",
                    "rejected_at",
                    "rejection_reason",
                ),
            },
        ),
        (
            "Settlement",
            {
                "fields": ("processed_by", "completed_at"),
            },
        ),
    )
