"""
Payment model for money received against an invoice.

A Payment is created once per gateway confirmation or cash receipt. Its
amount never changes; later corrections go through a Refund.

Usage:
    from billing.models import Payment

    payment = Payment(invoice_id=invoice.id, amount=Decimal("600.00"), ...)
    payment.complete()   # pending -> completed
    payment.save()
"""

from __future__ import annotations

from django.db import models
from django.db.models import Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.managers import BaseManager
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from billing.state_machines import PaymentMethod, PaymentStatus
from billing.types import MONEY_DIGITS, MONEY_PLACES


def append_remark(existing: str, line: str) -> str:
    """Append a line to a free-text remarks field."""
    return f"{existing}\n{line}" if existing else line


class Payment(UUIDPrimaryKeyMixin, BaseModel):
    """
    Money received against an Invoice.

    State Flow:
        PENDING -> COMPLETED -> REFUNDED
        PENDING -> FAILED

    Fields:
        invoice: Invoice the money is applied to
        student_id: Copied from the invoice for per-student queries
        receipt_number: Human-facing receipt number (RCP-{year}-{seq})
        amount: Amount received (positive, immutable)
        method: Cash, bank transfer or wallet
        external_ref: Gateway transaction reference (unique when present)
        installment_plan / installment_number: Set when paying an installment
        status: FSM-managed state
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    invoice = models.ForeignKey(
        "billing.Invoice",
        on_delete=models.PROTECT,
        related_name="payments",
        help_text="Invoice this payment is applied to",
    )

    student_id = models.PositiveBigIntegerField(
        db_index=True,
        help_text="Student who paid (copied from the invoice)",
    )

    # ==========================================================================
    # Payment Details
    # ==========================================================================

    receipt_number = models.CharField(
        max_length=32,
        unique=True,
        help_text="Human-facing receipt number (RCP-YYYY-NNNNN)",
    )

    amount = models.DecimalField(
        max_digits=MONEY_DIGITS,
        decimal_places=MONEY_PLACES,
        help_text="Amount received",
    )

    method = models.CharField(
        max_length=16,
        choices=PaymentMethod.choices,
    )

    external_ref = models.CharField(
        max_length=128,
        null=True,
        blank=True,
        unique=True,
        help_text="Gateway transaction reference",
    )

    payment_date = models.DateField(
        default=timezone.localdate,
    )

    received_by = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Staff member who recorded the payment",
    )

    remarks = models.TextField(
        blank=True,
        default="",
    )

    installment_plan = models.ForeignKey(
        "billing.InstallmentPlan",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="payments",
        help_text="Installment plan this payment belongs to, if any",
    )

    installment_number = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        help_text="1-based installment covered by this payment",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PaymentStatus.PENDING,
        choices=PaymentStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the payment (managed by FSM)",
    )

    completed_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    failure_reason = models.TextField(
        null=True,
        blank=True,
    )

    objects = BaseManager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        indexes = [
            models.Index(fields=["invoice", "status"], name="billing_pay_invoice_5e8f3c_idx"),
            models.Index(fields=["student_id", "payment_date"], name="billing_pay_student_a2d6b7_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="payment_amount_positive",
            ),
            models.UniqueConstraint(
                fields=["installment_plan", "installment_number"],
                condition=Q(status=PaymentStatus.COMPLETED),
                name="payment_one_completed_per_installment",
            ),
        ]

    def __str__(self) -> str:
        return f"Payment({self.receipt_number}, {self.status}, {self.amount})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PaymentStatus.PENDING,
        target=PaymentStatus.COMPLETED,
    )
    def complete(self):
        """
        Confirm the money arrived.

        Transition: PENDING -> COMPLETED
        """
        self.completed_at = timezone.now()

    @transition(
        field=status,
        source=PaymentStatus.PENDING,
        target=PaymentStatus.FAILED,
    )
    def fail(self, reason: str | None = None):
        """
        Record a failed attempt. The invoice is never touched.

        Transition: PENDING -> FAILED
        """
        self.failed_at = timezone.now()
        if reason:
            self.failure_reason = reason

    @transition(
        field=status,
        source=PaymentStatus.COMPLETED,
        target=PaymentStatus.REFUNDED,
    )
    def mark_refunded(self, reason: str | None = None):
        """
        Reverse this payment as part of a refund settlement.

        Transition: COMPLETED -> REFUNDED
        """
        self.refunded_at = timezone.now()
        if reason:
            self.remarks = append_remark(self.remarks, f"Refunded: {reason}")

    @property
    def is_refundable(self) -> bool:
        return self.status == PaymentStatus.COMPLETED
