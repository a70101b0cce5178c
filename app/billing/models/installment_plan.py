"""
Installment plan model for paying an invoice balance in equal parts.

A plan splits the invoice's outstanding balance into a fixed number of
installments. Each installment is paid through the normal payment path, so
the invoice balance and status move exactly as for any other payment.

Usage:
    from billing.models import InstallmentPlan

    plan.amount_for(3)   # amount due for the third installment
    plan.complete()      # active -> completed
    plan.save()
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal

from django.db import models
from django.db.models import Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.managers import BaseManager
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from billing.state_machines import InstallmentFrequency, InstallmentPlanStatus
from billing.types import CENT, MONEY_DIGITS, MONEY_PLACES


def split_installments(total: Decimal, count: int) -> Decimal:
    """Regular installment amount; the last installment takes the remainder."""
    return (total / count).quantize(CENT, rounding=ROUND_DOWN)


class InstallmentPlan(UUIDPrimaryKeyMixin, BaseModel):
    """
    Schedule for paying an invoice balance in installments.

    State Flow:
        ACTIVE -> COMPLETED (last installment paid)
        ACTIVE -> CANCELLED

    Fields:
        invoice: Invoice being paid off
        student_id: Copied from the invoice
        total_amount: Invoice balance when the plan was created
        number_of_installments: How many parts the balance is split into
        installment_amount: Amount of every installment except the last
        frequency: Monthly, quarterly or custom
        start_date: When the first installment falls due
        status: FSM-managed state

    Note:
        At most one ACTIVE plan may exist per invoice, enforced by a
        partial unique constraint.
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    invoice = models.ForeignKey(
        "billing.Invoice",
        on_delete=models.PROTECT,
        related_name="installment_plans",
        help_text="Invoice this plan pays off",
    )

    student_id = models.PositiveBigIntegerField(
        db_index=True,
        help_text="Student of the invoice",
    )

    # ==========================================================================
    # Schedule
    # ==========================================================================

    total_amount = models.DecimalField(
        max_digits=MONEY_DIGITS,
        decimal_places=MONEY_PLACES,
        help_text="Invoice balance covered by the plan",
    )

    number_of_installments = models.PositiveSmallIntegerField(
        help_text="Number of installments",
    )

    installment_amount = models.DecimalField(
        max_digits=MONEY_DIGITS,
        decimal_places=MONEY_PLACES,
        help_text="Amount per installment (the last one absorbs rounding)",
    )

    frequency = models.CharField(
        max_length=16,
        choices=InstallmentFrequency.choices,
        default=InstallmentFrequency.MONTHLY,
    )

    start_date = models.DateField()

    created_by = models.PositiveBigIntegerField(null=True, blank=True)

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=InstallmentPlanStatus.ACTIVE,
        choices=InstallmentPlanStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the plan (managed by FSM)",
    )

    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.PositiveBigIntegerField(null=True, blank=True)

    objects = BaseManager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Installment Plan"
        verbose_name_plural = "Installment Plans"
        constraints = [
            models.CheckConstraint(
                condition=Q(total_amount__gt=0),
                name="installment_plan_total_positive",
            ),
            models.CheckConstraint(
                condition=Q(number_of_installments__gte=1),
                name="installment_plan_count_positive",
            ),
            models.UniqueConstraint(
                fields=["invoice"],
                condition=Q(status=InstallmentPlanStatus.ACTIVE),
                name="installment_plan_one_active_per_invoice",
            ),
        ]

    def __str__(self) -> str:
        return f"InstallmentPlan({self.id}, {self.status}, {self.number_of_installments}x)"

    def amount_for(self, installment_number: int) -> Decimal:
        """Amount due for a 1-based installment number."""
        if installment_number == self.number_of_installments:
            paid_before = self.installment_amount * (self.number_of_installments - 1)
            return self.total_amount - paid_before
        return self.installment_amount

    @property
    def is_active(self) -> bool:
        return self.status == InstallmentPlanStatus.ACTIVE

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=InstallmentPlanStatus.ACTIVE,
        target=InstallmentPlanStatus.COMPLETED,
    )
    def complete(self):
        """
        Every installment has been paid.

        Transition: ACTIVE -> COMPLETED
        """
        self.completed_at = timezone.now()

    @transition(
        field=status,
        source=InstallmentPlanStatus.ACTIVE,
        target=InstallmentPlanStatus.CANCELLED,
    )
    def cancel(self, cancelled_by: int | None = None):
        """
        Stop the plan. Installments already paid stay on the invoice.

        Transition: ACTIVE -> CANCELLED
        """
        self.cancelled_at = timezone.now()
        self.cancelled_by = cancelled_by
