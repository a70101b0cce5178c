"""
Invoice model for what a student owes for a billing period.

An Invoice carries a running balance. paid_amount, balance and status are
only ever written through billing.balance.apply_payment_delta (or the
overdue sweep, which re-derives status with the same rules).

Usage:
    from billing.models import Invoice

    Invoice.objects.filter(student_id=42)        # live invoices
    Invoice.all_objects.get(pk=invoice_id)       # includes soft-deleted
"""

from __future__ import annotations

from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from core.managers import SoftDeleteManager, SoftDeleteQuerySet
from core.model_mixins import SoftDeleteMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel

from billing.state_machines import DiscountApprovalStatus, InvoiceStatus
from billing.types import MONEY_DIGITS, MONEY_PLACES


class Invoice(UUIDPrimaryKeyMixin, SoftDeleteMixin, BaseModel):
    """
    What a student owes, with a running balance.

    Fields:
        invoice_number: Human-facing number (INV-{year}-{seq})
        student_id: Opaque id of the student billed
        fee_structure_id / academic_year_id: Opaque ids of the fee setup
        subtotal: Gross amount before discount
        discount / discount_reason: Discount granted at creation
        total_amount: subtotal - discount, fixed at creation
        paid_amount: Money currently applied against the invoice
        balance: total_amount - paid_amount
        status: Derived payment status (see billing.balance.derive_status)
        discount_approval_status: Review state of the discount
        due_date: Date after which an unpaid balance is overdue

    Note:
        Invoices are never hard-deleted. Soft-deleted invoices remain
        reachable through all_objects for audit and history.
    """

    # ==========================================================================
    # Identity & Ownership
    # ==========================================================================

    invoice_number = models.CharField(
        max_length=32,
        unique=True,
        help_text="Human-facing invoice number (INV-YYYY-NNNNN)",
    )

    student_id = models.PositiveBigIntegerField(
        db_index=True,
        help_text="Student this invoice is billed to",
    )

    fee_structure_id = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Fee structure the subtotal was computed from",
    )

    academic_year_id = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Academic year this invoice belongs to",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    subtotal = models.DecimalField(
        max_digits=MONEY_DIGITS,
        decimal_places=MONEY_PLACES,
        help_text="Amount before discount",
    )

    discount = models.DecimalField(
        max_digits=MONEY_DIGITS,
        decimal_places=MONEY_PLACES,
        default=0,
        help_text="Discount granted at creation",
    )

    discount_reason = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Why the discount was granted",
    )

    total_amount = models.DecimalField(
        max_digits=MONEY_DIGITS,
        decimal_places=MONEY_PLACES,
        help_text="subtotal - discount",
    )

    paid_amount = models.DecimalField(
        max_digits=MONEY_DIGITS,
        decimal_places=MONEY_PLACES,
        default=0,
        help_text="Money applied against this invoice",
    )

    balance = models.DecimalField(
        max_digits=MONEY_DIGITS,
        decimal_places=MONEY_PLACES,
        help_text="total_amount - paid_amount",
    )

    # ==========================================================================
    # Status
    # ==========================================================================

    status = models.CharField(
        max_length=16,
        choices=InvoiceStatus.choices,
        default=InvoiceStatus.PENDING,
        db_index=True,
        help_text="Derived payment status",
    )

    discount_approval_status = models.CharField(
        max_length=16,
        choices=DiscountApprovalStatus.choices,
        default=DiscountApprovalStatus.NONE,
        help_text="Review state of the discount",
    )

    discount_reviewed_by = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Who approved or rejected the discount",
    )

    discount_reviewed_at = models.DateTimeField(
        null=True,
        blank=True,
    )

    # ==========================================================================
    # Dates
    # ==========================================================================

    due_date = models.DateField(
        db_index=True,
        help_text="Balance left after this date makes the invoice overdue",
    )

    generated_at = models.DateTimeField(
        default=timezone.now,
        help_text="When the invoice was issued",
    )

    cancelled_at = models.DateTimeField(
        null=True,
        blank=True,
    )

    # ==========================================================================
    # Managers
    # ==========================================================================

    objects = SoftDeleteManager()
    all_objects = SoftDeleteQuerySet.as_manager()

    class Meta:
        ordering = ["-generated_at"]
        verbose_name = "Invoice"
        verbose_name_plural = "Invoices"
        indexes = [
            models.Index(fields=["student_id", "status"], name="billing_inv_student_7c1e2a_idx"),
            models.Index(fields=["status", "due_date"], name="billing_inv_status_4b9d10_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(paid_amount__gte=0) & Q(paid_amount__lte=F("total_amount")),
                name="invoice_paid_within_total",
            ),
            models.CheckConstraint(
                condition=Q(balance=F("total_amount") - F("paid_amount")),
                name="invoice_balance_matches_amounts",
            ),
            models.CheckConstraint(
                condition=Q(discount__gte=0) & Q(discount__lte=F("subtotal")),
                name="invoice_discount_within_subtotal",
            ),
        ]

    def __str__(self) -> str:
        return f"Invoice({self.invoice_number}, {self.status}, balance={self.balance})"

    @property
    def is_cancelled(self) -> bool:
        return self.status == InvoiceStatus.CANCELLED
