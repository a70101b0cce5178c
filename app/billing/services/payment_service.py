"""
Payment service for recording money received against invoices.

This module provides the PaymentService class which handles:
1. Turning a gateway confirmation (or a cash receipt) into a Payment record
   and applying it to the invoice balance
2. Installment plans that split an invoice balance into equal parts
3. Payment statistics per payment method

Usage:
    from billing.services import PaymentService

    payment = PaymentService().record_payment(
        invoice_id=invoice.id,
        amount=Decimal("600.00"),
        method=PaymentMethod.ESEWA,
        external_ref="ESW-000123",
    )

Failed attempts are recorded too (succeeded=False) but never touch the
invoice. Installment payments go through the same recording path, so the
invoice balance moves exactly as for any other payment.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from core.exceptions import ValidationError

from billing.audit import AuditAction
from billing.balance import apply_payment_delta
from billing.exceptions import (
    DuplicateInstallmentPlan,
    DuplicatePaymentReference,
    InstallmentAlreadyPaid,
    InstallmentPlanNotActive,
    InvalidInstallmentNumber,
    InvoiceCancelled,
    InvoiceHasNoBalance,
    PaymentNotFound,
)
from billing.models import InstallmentPlan, Payment
from billing.models.installment_plan import split_installments
from billing.numbering import document_prefix, next_document_number
from billing.services.base import LedgerService
from billing.state_machines import InstallmentFrequency, PaymentMethod, PaymentStatus
from billing.types import (
    CENT,
    InstallmentPayment,
    PaymentStatistics,
    parse_amount,
)

if TYPE_CHECKING:
    from datetime import date
    from uuid import UUID

    from billing.models import Invoice
    from billing.store import UnitOfWork


class PaymentService(LedgerService):
    """
    Service for recording payments and running installment plans.

    Only the invoice row is locked while a payment is recorded. Refund
    settlement locks refund, payment, then invoice, so the two paths never
    wait on each other in a cycle. Installment payments lock the plan
    before the invoice.
    """

    def record_payment(
        self,
        invoice_id: UUID,
        amount: Decimal | int | str,
        method: str,
        external_ref: str | None = None,
        *,
        received_by: int | None = None,
        remarks: str = "",
        succeeded: bool = True,
        failure_reason: str | None = None,
        payment_date: date | None = None,
    ) -> Payment:
        """
        Record a payment attempt against an invoice.

        Args:
            invoice_id: Invoice the money is for
            amount: Amount received (must be > 0)
            method: One of PaymentMethod
            external_ref: Gateway transaction reference, unique when present
            received_by: Staff member recording the payment
            remarks: Free text stored on the payment
            succeeded: False records a failed attempt
            failure_reason: Stored on failed attempts
            payment_date: Defaults to today

        Returns:
            The saved Payment, COMPLETED or FAILED

        Raises:
            InvalidAmount: amount is not a positive two-decimal value
            ValidationError: Unknown payment method
            InvoiceNotFound: No live invoice with that id
            InvoiceCancelled: Invoice is cancelled
            DuplicatePaymentReference: external_ref was already recorded
            InvalidLedgerState: Payment would exceed the invoice total
            DocumentNumberConflict: Concurrent writers kept taking the
                receipt number
        """
        amount = parse_amount(amount)
        self._check_method(method)

        with self.store.unit_of_work() as uow:
            payment, _ = self._record(
                uow,
                invoice_id,
                amount,
                method,
                external_ref or None,
                received_by=received_by,
                remarks=remarks,
                succeeded=succeeded,
                failure_reason=failure_reason,
                payment_date=payment_date,
            )

        self._log_recorded(payment)
        return payment

    def _check_method(self, method: str) -> None:
        if method not in PaymentMethod.values:
            raise ValidationError(
                f"Unknown payment method: {method}",
                error_code="INVALID_PAYMENT_METHOD",
                details={"method": [f"Must be one of {', '.join(PaymentMethod.values)}"]},
            )

    def _record(
        self,
        uow: UnitOfWork,
        invoice_id: UUID,
        amount: Decimal,
        method: str,
        external_ref: str | None,
        *,
        received_by: int | None,
        remarks: str,
        succeeded: bool,
        failure_reason: str | None,
        payment_date: date | None,
        installment_plan_id: UUID | None = None,
        installment_number: int | None = None,
    ) -> tuple[Payment, Invoice]:
        """Record a payment inside an open unit of work; amount is already parsed."""
        invoice = self._require_invoice(invoice_id, uow=uow, for_update=True)
        if invoice.is_cancelled:
            raise InvoiceCancelled(
                f"Invoice {invoice.invoice_number} is cancelled",
                details={
                    "invoice_id": str(invoice.id),
                    "current_state": invoice.status,
                },
            )
        if external_ref and self.store.payment_reference_exists(uow, external_ref):
            raise DuplicatePaymentReference(
                f"Payment reference {external_ref} was already recorded",
                details={"external_ref": external_ref, "current_state": "recorded"},
            )

        payment = Payment(
            invoice_id=invoice.id,
            student_id=invoice.student_id,
            amount=amount,
            method=method,
            external_ref=external_ref,
            payment_date=payment_date or timezone.localdate(),
            received_by=received_by,
            remarks=remarks or "",
            installment_plan_id=installment_plan_id,
            installment_number=installment_number,
        )

        if succeeded:
            payment.complete()
        else:
            payment.fail(reason=failure_reason)
        self._insert_numbered(
            lambda: setattr(payment, "receipt_number", self._next_receipt_number()),
            lambda: self.store.add_payment(uow, payment),
        )
        self.audit.record(uow, payment, AuditAction.CREATED, actor_id=received_by)

        if succeeded:
            before = invoice.snapshot()
            invoice = apply_payment_delta(invoice, amount)
            self.store.save_invoice(uow, invoice)
            self.audit.record(
                uow, invoice, AuditAction.UPDATED, old_value=before, actor_id=received_by
            )
        return payment, invoice

    def _log_recorded(self, payment: Payment) -> None:
        self.get_logger().info(
            "Payment recorded",
            extra={
                "payment_id": str(payment.id),
                "invoice_id": str(payment.invoice_id),
                "receipt_number": payment.receipt_number,
                "amount": str(payment.amount),
                "status": payment.status,
            },
        )

    def _next_receipt_number(self) -> str:
        kind = settings.BILLING_RECEIPT_NUMBER_PREFIX
        year = timezone.localdate().year + settings.BILLING_RECEIPT_YEAR_OFFSET
        last = self.store.last_receipt_number(document_prefix(kind, year))
        return next_document_number(kind, year, last)

    # =========================================================================
    # Installment Plans
    # =========================================================================

    def create_installment_plan(
        self,
        invoice_id: UUID,
        number_of_installments: int,
        start_date: date,
        *,
        frequency: str = InstallmentFrequency.MONTHLY,
        created_by: int | None = None,
    ) -> InstallmentPlan:
        """
        Split the invoice's current balance into equal installments.

        Every installment but the last is the balance divided by the count,
        rounded down to the paisa. The last one takes the remainder so the
        installments add up to the balance exactly.

        Raises:
            InvoiceNotFound: No live invoice with that id
            InvoiceCancelled: Invoice is cancelled
            InvoiceHasNoBalance: Nothing left to pay
            DuplicateInstallmentPlan: Invoice already has an active plan
            InvalidInstallmentNumber: Count below 1, or so large that an
                installment would be under 0.01
            ValidationError: Unknown frequency
        """
        if frequency not in InstallmentFrequency.values:
            raise ValidationError(
                f"Unknown installment frequency: {frequency}",
                error_code="INVALID_INSTALLMENT_FREQUENCY",
                details={
                    "frequency": [f"Must be one of {', '.join(InstallmentFrequency.values)}"]
                },
            )
        if number_of_installments < 1:
            raise InvalidInstallmentNumber(
                "A plan needs at least one installment",
                details={"number_of_installments": number_of_installments},
            )

        with self.store.unit_of_work() as uow:
            invoice = self._require_invoice(invoice_id, uow=uow, for_update=True)
            if invoice.is_cancelled:
                raise InvoiceCancelled(
                    f"Invoice {invoice.invoice_number} is cancelled",
                    details={"invoice_id": str(invoice.id), "current_state": invoice.status},
                )
            if invoice.balance <= 0:
                raise InvoiceHasNoBalance(
                    f"Invoice {invoice.invoice_number} has no balance to split",
                    details={"invoice_id": str(invoice.id), "current_state": invoice.status},
                )
            if self.store.has_active_installment_plan(uow, invoice.id):
                raise DuplicateInstallmentPlan(
                    "Invoice already has an active installment plan",
                    details={"invoice_id": str(invoice.id), "current_state": "active"},
                )

            installment_amount = split_installments(invoice.balance, number_of_installments)
            if installment_amount < CENT:
                raise InvalidInstallmentNumber(
                    f"{invoice.balance} cannot be split into {number_of_installments} installments",
                    details={
                        "number_of_installments": number_of_installments,
                        "balance": str(invoice.balance),
                    },
                )

            plan = InstallmentPlan(
                invoice_id=invoice.id,
                student_id=invoice.student_id,
                total_amount=invoice.balance,
                number_of_installments=number_of_installments,
                installment_amount=installment_amount,
                frequency=frequency,
                start_date=start_date,
                created_by=created_by,
            )
            self.store.add_installment_plan(uow, plan)
            self.audit.record(uow, plan, AuditAction.CREATED, actor_id=created_by)

        self.get_logger().info(
            "Installment plan created",
            extra={
                "installment_plan_id": str(plan.id),
                "invoice_id": str(invoice_id),
                "total_amount": str(plan.total_amount),
                "number_of_installments": number_of_installments,
            },
        )
        return plan

    def process_installment_payment(
        self,
        plan_id: UUID,
        installment_number: int,
        method: str,
        external_ref: str | None = None,
        *,
        received_by: int | None = None,
        remarks: str = "",
        payment_date: date | None = None,
    ) -> InstallmentPayment:
        """
        Pay one installment of an active plan.

        The payment is recorded exactly like record_payment, for the
        installment's amount, and tagged with the plan and installment
        number. Paying the last unpaid installment completes the plan.

        Raises:
            InstallmentPlanNotFound: No plan with that id
            InstallmentPlanNotActive: Plan is completed or cancelled
            InvalidInstallmentNumber: Number outside 1..number_of_installments
            InstallmentAlreadyPaid: A completed payment covers this installment
            (plus everything record_payment raises)
        """
        self._check_method(method)

        with self.store.unit_of_work() as uow:
            plan = self._require_installment_plan(plan_id, uow=uow, for_update=True)
            if not plan.is_active:
                raise InstallmentPlanNotActive(
                    "Installment plan is not active",
                    details={
                        "installment_plan_id": str(plan.id),
                        "current_state": plan.status,
                    },
                )
            if not 1 <= installment_number <= plan.number_of_installments:
                raise InvalidInstallmentNumber(
                    f"Installment number must be between 1 and {plan.number_of_installments}",
                    details={"installment_number": installment_number},
                )
            paid = self.store.paid_installments(uow, plan.id)
            if installment_number in paid:
                raise InstallmentAlreadyPaid(
                    f"Installment {installment_number} is already paid",
                    details={
                        "installment_plan_id": str(plan.id),
                        "installment_number": installment_number,
                        "current_state": "paid",
                    },
                )

            payment, invoice = self._record(
                uow,
                plan.invoice_id,
                plan.amount_for(installment_number),
                method,
                external_ref or None,
                received_by=received_by,
                remarks=remarks,
                succeeded=True,
                failure_reason=None,
                payment_date=payment_date,
                installment_plan_id=plan.id,
                installment_number=installment_number,
            )

            if len(paid) + 1 == plan.number_of_installments:
                before = plan.snapshot()
                plan.complete()
                self.store.save_installment_plan(uow, plan)
                self.audit.record(
                    uow, plan, AuditAction.UPDATED, old_value=before, actor_id=received_by
                )

        self._log_recorded(payment)
        self.get_logger().info(
            "Installment paid",
            extra={
                "installment_plan_id": str(plan.id),
                "installment_number": installment_number,
                "plan_status": plan.status,
            },
        )
        return InstallmentPayment(payment=payment, plan=plan, invoice=invoice)

    def cancel_installment_plan(
        self,
        plan_id: UUID,
        cancelled_by: int | None = None,
    ) -> InstallmentPlan:
        """
        Cancel an active plan. Installments already paid stay applied.

        Raises:
            InstallmentPlanNotFound: No plan with that id
            InstallmentPlanNotActive: Plan is completed or already cancelled
        """
        with self.store.unit_of_work() as uow:
            plan = self._require_installment_plan(plan_id, uow=uow, for_update=True)
            if not plan.is_active:
                raise InstallmentPlanNotActive(
                    "Only active installment plans can be cancelled",
                    details={
                        "installment_plan_id": str(plan.id),
                        "current_state": plan.status,
                    },
                )
            before = plan.snapshot()
            plan.cancel(cancelled_by=cancelled_by)
            self.store.save_installment_plan(uow, plan)
            self.audit.record(
                uow, plan, AuditAction.UPDATED, old_value=before, actor_id=cancelled_by
            )

        self.get_logger().info(
            "Installment plan cancelled",
            extra={"installment_plan_id": str(plan.id), "cancelled_by": cancelled_by},
        )
        return plan

    def get_installment_plan_by_id(self, plan_id: UUID) -> InstallmentPlan:
        return self._require_installment_plan(plan_id)

    def get_installment_plan_by_invoice_id(self, invoice_id: UUID) -> InstallmentPlan | None:
        """Most recent plan for the invoice, whatever its status, or None."""
        return self.store.latest_installment_plan(invoice_id)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_payment_by_id(self, payment_id: UUID) -> Payment:
        return self._require_payment(payment_id)

    def get_payment_by_receipt_number(self, receipt_number: str) -> Payment:
        payment = self.store.get_payment_by_receipt_number(receipt_number)
        if payment is None:
            raise PaymentNotFound(
                f"Payment {receipt_number} not found",
                details={"receipt_number": receipt_number},
            )
        return payment

    def get_payments_by_invoice_id(self, invoice_id: UUID) -> list[Payment]:
        return self.store.list_payments(invoice_id=invoice_id)

    def get_payments_by_student_id(self, student_id: int) -> list[Payment]:
        return self.store.list_payments(student_id=student_id)

    def get_payment_statistics(
        self,
        start: date | None = None,
        end: date | None = None,
    ) -> PaymentStatistics:
        """
        Count and sum completed payments dated in [start, end], per method.

        Either bound may be omitted for an open-ended range. Failed and
        refunded payments are left out.
        """
        stats = PaymentStatistics()
        for payment in self.store.list_payments(
            status=PaymentStatus.COMPLETED, paid_from=start, paid_to=end
        ):
            stats.add(payment.method, payment.amount)
        return stats
