"""
Refund model for reversing a completed payment.

A Refund must be approved before it reverses anything. Settlement marks the
payment refunded and lowers the invoice's paid amount in the same unit of
work. Refunds always cover the whole payment.

Usage:
    from billing.models import Refund

    refund.approve(approved_by=7, remarks="Verified with accounts")
    refund.save()
"""

from __future__ import annotations

from django.db import models
from django.db.models import Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.managers import BaseQuerySet
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from billing.models.payment import append_remark
from billing.state_machines import ACTIVE_REFUND_STATUSES, RefundStatus
from billing.types import MONEY_DIGITS, MONEY_PLACES


class RefundQuerySet(BaseQuerySet):
    def active(self) -> RefundQuerySet:
        """Refunds that still block a new request on their payment."""
        return self.filter(status__in=ACTIVE_REFUND_STATUSES)

    def requested_between(self, start, end) -> RefundQuerySet:
        """Inclusive requested_at range; either bound may be None."""
        queryset = self
        if start is not None:
            queryset = queryset.filter(requested_at__gte=start)
        if end is not None:
            queryset = queryset.filter(requested_at__lte=end)
        return queryset


class Refund(UUIDPrimaryKeyMixin, BaseModel):
    """
    A request to reverse a completed Payment.

    State Flow:
        PENDING -> APPROVED -> COMPLETED
        PENDING -> REJECTED
        PENDING -> removed (cancelled by the requester)

    Fields:
        payment: Payment being reversed
        invoice: Invoice of that payment (denormalized for queries)
        student_id: Student of that invoice
        amount: Copied from the payment when requested
        reason: Why the refund was requested
        remarks: Free-text trail of approval notes
        status: FSM-managed state

    Note:
        At most one PENDING or APPROVED refund may exist per payment. The
        services check this under a row lock on the payment and the partial
        unique constraint below backs it up.
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    payment = models.ForeignKey(
        "billing.Payment",
        on_delete=models.PROTECT,
        related_name="refunds",
        help_text="Payment being refunded",
    )

    invoice = models.ForeignKey(
        "billing.Invoice",
        on_delete=models.PROTECT,
        related_name="refunds",
        help_text="Invoice of the refunded payment",
    )

    student_id = models.PositiveBigIntegerField(
        db_index=True,
    )

    # ==========================================================================
    # Request
    # ==========================================================================

    amount = models.DecimalField(
        max_digits=MONEY_DIGITS,
        decimal_places=MONEY_PLACES,
        help_text="Refund amount (the full payment amount)",
    )

    reason = models.TextField(
        help_text="Why the refund was requested",
    )

    remarks = models.TextField(
        blank=True,
        default="",
    )

    requested_by = models.PositiveBigIntegerField(
        help_text="Who requested the refund",
    )

    requested_at = models.DateTimeField(
        default=timezone.now,
        db_index=True,
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=RefundStatus.PENDING,
        choices=RefundStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the refund (managed by FSM)",
    )

    # ==========================================================================
    # Review & Settlement
    # ==========================================================================

    approved_by = models.PositiveBigIntegerField(null=True, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)

    rejected_by = models.PositiveBigIntegerField(null=True, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.TextField(null=True, blank=True)

    processed_by = models.PositiveBigIntegerField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    objects = RefundQuerySet.as_manager()

    class Meta:
        ordering = ["-requested_at"]
        verbose_name = "Refund"
        verbose_name_plural = "Refunds"
        indexes = [
            models.Index(fields=["payment", "status"], name="billing_ref_payment_9f2e41_idx"),
            models.Index(fields=["status", "requested_at"], name="billing_ref_status_c3a871_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="refund_amount_positive",
            ),
            models.UniqueConstraint(
                fields=["payment"],
                condition=Q(status__in=ACTIVE_REFUND_STATUSES),
                name="refund_one_active_per_payment",
            ),
        ]

    def __str__(self) -> str:
        return f"Refund({self.id}, {self.status}, {self.amount})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=RefundStatus.PENDING,
        target=RefundStatus.APPROVED,
    )
    def approve(self, approved_by: int, remarks: str | None = None):
        """
        Approve the refund for settlement.

        Transition: PENDING -> APPROVED
        """
        self.approved_by = approved_by
        self.approved_at = timezone.now()
        if remarks:
            self.remarks = append_remark(self.remarks, f"Approval remarks: {remarks}")

    @transition(
        field=status,
        source=RefundStatus.PENDING,
        target=RefundStatus.REJECTED,
    )
    def reject(self, rejected_by: int, rejection_reason: str):
        """
        Reject the refund. Terminal.

        Transition: PENDING -> REJECTED
        """
        self.rejected_by = rejected_by
        self.rejected_at = timezone.now()
        self.rejection_reason = rejection_reason

    @transition(
        field=status,
        source=RefundStatus.APPROVED,
        target=RefundStatus.COMPLETED,
    )
    def complete(self, processed_by: int | None = None):
        """
        Mark the refund settled.

        Transition: APPROVED -> COMPLETED
        """
        self.processed_by = processed_by
        self.completed_at = timezone.now()

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_REFUND_STATUSES
