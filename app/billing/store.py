"""
Ledger record store and unit of work.

Services never touch the ORM directly for writes. They open a unit of work,
lock the rows they are about to change, and pass the unit-of-work handle to
every write. When the ``with`` block exits normally everything commits
together; any exception rolls everything back.

Components:
    UnitOfWork: Handle for one transaction (after-commit hooks)
    LedgerStore: Protocol the services depend on
    DjangoLedgerStore: transaction.atomic + select_for_update implementation

Usage:
    store = DjangoLedgerStore()

    with store.unit_of_work() as uow:
        invoice = store.get_invoice(invoice_id, uow=uow, for_update=True)
        ...
        store.save_invoice(uow, invoice)
        uow.on_commit(lambda: logger.info("committed"))

Locking:
    for_update=True issues SELECT ... FOR UPDATE inside the unit of work.
    Settlement locks refund, then payment, then invoice. Payment recording
    locks only the invoice, so the two never wait on each other in a cycle.
    Installment payments lock the plan, then the invoice.

Inserts run in a savepoint. A unique-constraint failure is reported as a
billing error and leaves the surrounding unit of work usable, so the caller
may allocate a new document number and insert again.
"""

from __future__ import annotations

import logging
from contextlib import AbstractContextManager, contextmanager
from typing import TYPE_CHECKING, Protocol

from django.db import IntegrityError, transaction

from billing.exceptions import (
    DocumentNumberConflict,
    DuplicateInstallmentPlan,
    DuplicatePaymentReference,
    DuplicateRefundRequest,
    InstallmentAlreadyPaid,
)
from billing.models import InstallmentPlan, Invoice, Payment, Refund
from billing.state_machines import InstallmentPlanStatus, InvoiceStatus, PaymentStatus

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from datetime import date, datetime
    from uuid import UUID

logger = logging.getLogger(__name__)


def document_number_taken(field: str, number: str) -> DocumentNumberConflict:
    """Error for an invoice or receipt number another writer inserted first."""
    return DocumentNumberConflict(
        f"{field.replace('_', ' ').capitalize()} {number} is already taken",
        details={field: number, "current_state": "taken"},
    )


# =============================================================================
# Protocols
# =============================================================================


class UnitOfWork(Protocol):
    """Handle for a single ledger transaction."""

    def on_commit(self, callback: Callable[[], None]) -> None:
        """Run callback once the transaction commits; dropped on rollback."""
        ...


class LedgerStore(Protocol):
    """
    Persistence boundary for Invoice, Payment, Refund and InstallmentPlan
    records.

    Reads that pass ``uow`` and ``for_update=True`` lock the returned row
    until the unit of work ends. Writes always take the unit of work as
    their first argument.
    """

    def unit_of_work(self) -> AbstractContextManager[UnitOfWork]: ...

    # Invoices
    def get_invoice(
        self,
        invoice_id: UUID,
        *,
        uow: UnitOfWork | None = None,
        for_update: bool = False,
        include_deleted: bool = False,
    ) -> Invoice | None: ...

    def get_invoice_by_number(self, invoice_number: str) -> Invoice | None: ...

    def list_invoices(
        self,
        *,
        student_id: int | None = None,
        statuses: list[str] | None = None,
        discount_approval_status: str | None = None,
    ) -> list[Invoice]: ...

    def lock_overdue_candidates(self, uow: UnitOfWork, today: date) -> list[Invoice]: ...

    def last_invoice_number(self, prefix: str) -> str | None: ...

    def add_invoice(self, uow: UnitOfWork, invoice: Invoice) -> Invoice: ...

    def save_invoice(self, uow: UnitOfWork, invoice: Invoice) -> Invoice: ...

    # Payments
    def get_payment(
        self,
        payment_id: UUID,
        *,
        uow: UnitOfWork | None = None,
        for_update: bool = False,
    ) -> Payment | None: ...

    def get_payment_by_receipt_number(self, receipt_number: str) -> Payment | None: ...

    def payment_reference_exists(self, uow: UnitOfWork, external_ref: str) -> bool: ...

    def list_payments(
        self,
        *,
        invoice_id: UUID | None = None,
        student_id: int | None = None,
        status: str | None = None,
        paid_from: date | None = None,
        paid_to: date | None = None,
    ) -> list[Payment]: ...

    def last_receipt_number(self, prefix: str) -> str | None: ...

    def add_payment(self, uow: UnitOfWork, payment: Payment) -> Payment: ...

    def save_payment(self, uow: UnitOfWork, payment: Payment) -> Payment: ...

    # Installment plans
    def get_installment_plan(
        self,
        plan_id: UUID,
        *,
        uow: UnitOfWork | None = None,
        for_update: bool = False,
    ) -> InstallmentPlan | None: ...

    def latest_installment_plan(self, invoice_id: UUID) -> InstallmentPlan | None: ...

    def has_active_installment_plan(self, uow: UnitOfWork, invoice_id: UUID) -> bool: ...

    def paid_installments(self, uow: UnitOfWork, plan_id: UUID) -> set[int]: ...

    def add_installment_plan(self, uow: UnitOfWork, plan: InstallmentPlan) -> InstallmentPlan: ...

    def save_installment_plan(self, uow: UnitOfWork, plan: InstallmentPlan) -> InstallmentPlan: ...

    # Refunds
    def get_refund(
        self,
        refund_id: UUID,
        *,
        uow: UnitOfWork | None = None,
        for_update: bool = False,
    ) -> Refund | None: ...

    def has_active_refund(self, uow: UnitOfWork, payment_id: UUID) -> bool: ...

    def list_refunds(
        self,
        *,
        status: str | None = None,
        student_id: int | None = None,
        invoice_id: UUID | None = None,
        payment_id: UUID | None = None,
        requested_from: datetime | None = None,
        requested_to: datetime | None = None,
    ) -> list[Refund]: ...

    def add_refund(self, uow: UnitOfWork, refund: Refund) -> Refund: ...

    def save_refund(self, uow: UnitOfWork, refund: Refund) -> Refund: ...

    def delete_refund(self, uow: UnitOfWork, refund: Refund) -> None: ...


# =============================================================================
# Django Implementation
# =============================================================================


class DjangoUnitOfWork:
    """Unit of work backed by the current transaction.atomic block."""

    def __init__(self, using: str):
        self.using = using

    def on_commit(self, callback: Callable[[], None]) -> None:
        transaction.on_commit(callback, using=self.using)


class DjangoLedgerStore:
    """
    LedgerStore on the Django ORM.

    Row locks use select_for_update(). On SQLite the lock is a no-op and
    writers are serialized by the database-level write lock instead.
    """

    def __init__(self, using: str = "default"):
        self.using = using

    @contextmanager
    def unit_of_work(self) -> Iterator[DjangoUnitOfWork]:
        with transaction.atomic(using=self.using):
            yield DjangoUnitOfWork(self.using)

    def _lockable(self, queryset, uow: UnitOfWork | None, for_update: bool):
        queryset = queryset.using(self.using)
        if for_update:
            if uow is None:
                raise RuntimeError("Row locks need an open unit of work")
            queryset = queryset.select_for_update()
        return queryset

    # =========================================================================
    # Invoices
    # =========================================================================

    def get_invoice(
        self,
        invoice_id: UUID,
        *,
        uow: UnitOfWork | None = None,
        for_update: bool = False,
        include_deleted: bool = False,
    ) -> Invoice | None:
        manager = Invoice.all_objects if include_deleted else Invoice.objects
        return (
            self._lockable(manager.all(), uow, for_update)
            .filter(pk=invoice_id)
            .first()
        )

    def get_invoice_by_number(self, invoice_number: str) -> Invoice | None:
        return (
            Invoice.objects.using(self.using)
            .filter(invoice_number=invoice_number)
            .first()
        )

    def list_invoices(
        self,
        *,
        student_id: int | None = None,
        statuses: list[str] | None = None,
        discount_approval_status: str | None = None,
    ) -> list[Invoice]:
        queryset = Invoice.objects.using(self.using).all()
        if student_id is not None:
            queryset = queryset.filter(student_id=student_id)
        if statuses:
            queryset = queryset.filter(status__in=statuses)
        if discount_approval_status is not None:
            queryset = queryset.filter(discount_approval_status=discount_approval_status)
        return list(queryset.newest())

    def lock_overdue_candidates(self, uow: UnitOfWork, today: date) -> list[Invoice]:
        queryset = self._lockable(Invoice.objects.all(), uow, for_update=True)
        return list(
            queryset.filter(
                due_date__lt=today,
                balance__gt=0,
                status__in=[InvoiceStatus.PENDING, InvoiceStatus.PARTIAL],
            ).order_by("pk")
        )

    def last_invoice_number(self, prefix: str) -> str | None:
        return (
            Invoice.all_objects.using(self.using)
            .filter(invoice_number__startswith=prefix)
            .order_by("-invoice_number")
            .values_list("invoice_number", flat=True)
            .first()
        )

    def add_invoice(self, uow: UnitOfWork, invoice: Invoice) -> Invoice:
        try:
            with transaction.atomic(using=self.using):
                invoice.save(using=self.using, force_insert=True)
        except IntegrityError as exc:
            if "invoice_number" in str(exc):
                raise document_number_taken(
                    "invoice_number", invoice.invoice_number
                ) from exc
            raise
        return invoice

    def save_invoice(self, uow: UnitOfWork, invoice: Invoice) -> Invoice:
        invoice.save(using=self.using)
        return invoice

    # =========================================================================
    # Payments
    # =========================================================================

    def get_payment(
        self,
        payment_id: UUID,
        *,
        uow: UnitOfWork | None = None,
        for_update: bool = False,
    ) -> Payment | None:
        return (
            self._lockable(Payment.objects.all(), uow, for_update)
            .filter(pk=payment_id)
            .first()
        )

    def get_payment_by_receipt_number(self, receipt_number: str) -> Payment | None:
        return (
            Payment.objects.using(self.using)
            .filter(receipt_number=receipt_number)
            .first()
        )

    def payment_reference_exists(self, uow: UnitOfWork, external_ref: str) -> bool:
        return (
            Payment.objects.using(self.using)
            .filter(external_ref=external_ref)
            .exists()
        )

    def list_payments(
        self,
        *,
        invoice_id: UUID | None = None,
        student_id: int | None = None,
        status: str | None = None,
        paid_from: date | None = None,
        paid_to: date | None = None,
    ) -> list[Payment]:
        queryset = Payment.objects.using(self.using).all()
        if invoice_id is not None:
            queryset = queryset.filter(invoice_id=invoice_id)
        if student_id is not None:
            queryset = queryset.filter(student_id=student_id)
        if status is not None:
            queryset = queryset.filter(status=status)
        if paid_from is not None:
            queryset = queryset.filter(payment_date__gte=paid_from)
        if paid_to is not None:
            queryset = queryset.filter(payment_date__lte=paid_to)
        return list(queryset.newest())

    def last_receipt_number(self, prefix: str) -> str | None:
        return (
            Payment.objects.using(self.using)
            .filter(receipt_number__startswith=prefix)
            .order_by("-receipt_number")
            .values_list("receipt_number", flat=True)
            .first()
        )

    def add_payment(self, uow: UnitOfWork, payment: Payment) -> Payment:
        try:
            with transaction.atomic(using=self.using):
                payment.save(using=self.using, force_insert=True)
        except IntegrityError as exc:
            message = str(exc)
            if payment.external_ref and "external_ref" in message:
                raise DuplicatePaymentReference(
                    f"Payment reference {payment.external_ref} was already recorded",
                    details={
                        "external_ref": payment.external_ref,
                        "current_state": "recorded",
                    },
                ) from exc
            if "receipt_number" in message:
                raise document_number_taken(
                    "receipt_number", payment.receipt_number
                ) from exc
            if "payment_one_completed_per_installment" in message or (
                "installment_plan_id" in message and "installment_number" in message
            ):
                raise InstallmentAlreadyPaid(
                    f"Installment {payment.installment_number} is already paid",
                    details={
                        "installment_plan_id": str(payment.installment_plan_id),
                        "installment_number": payment.installment_number,
                        "current_state": "paid",
                    },
                ) from exc
            raise
        return payment

    def save_payment(self, uow: UnitOfWork, payment: Payment) -> Payment:
        payment.save(using=self.using)
        return payment

    # =========================================================================
    # Installment Plans
    # =========================================================================

    def get_installment_plan(
        self,
        plan_id: UUID,
        *,
        uow: UnitOfWork | None = None,
        for_update: bool = False,
    ) -> InstallmentPlan | None:
        return (
            self._lockable(InstallmentPlan.objects.all(), uow, for_update)
            .filter(pk=plan_id)
            .first()
        )

    def latest_installment_plan(self, invoice_id: UUID) -> InstallmentPlan | None:
        return (
            InstallmentPlan.objects.using(self.using)
            .filter(invoice_id=invoice_id)
            .newest()
            .first()
        )

    def has_active_installment_plan(self, uow: UnitOfWork, invoice_id: UUID) -> bool:
        return (
            InstallmentPlan.objects.using(self.using)
            .filter(invoice_id=invoice_id, status=InstallmentPlanStatus.ACTIVE)
            .exists()
        )

    def paid_installments(self, uow: UnitOfWork, plan_id: UUID) -> set[int]:
        return set(
            Payment.objects.using(self.using)
            .filter(installment_plan_id=plan_id, status=PaymentStatus.COMPLETED)
            .values_list("installment_number", flat=True)
        )

    def add_installment_plan(self, uow: UnitOfWork, plan: InstallmentPlan) -> InstallmentPlan:
        try:
            with transaction.atomic(using=self.using):
                plan.save(using=self.using, force_insert=True)
        except IntegrityError as exc:
            message = str(exc)
            if (
                "installment_plan_one_active_per_invoice" in message
                or "billing_installmentplan.invoice_id" in message
            ):
                raise DuplicateInstallmentPlan(
                    "Invoice already has an active installment plan",
                    details={
                        "invoice_id": str(plan.invoice_id),
                        "current_state": InstallmentPlanStatus.ACTIVE,
                    },
                ) from exc
            raise
        return plan

    def save_installment_plan(self, uow: UnitOfWork, plan: InstallmentPlan) -> InstallmentPlan:
        plan.save(using=self.using)
        return plan

    # =========================================================================
    # Refunds
    # =========================================================================

    def get_refund(
        self,
        refund_id: UUID,
        *,
        uow: UnitOfWork | None = None,
        for_update: bool = False,
    ) -> Refund | None:
        return (
            self._lockable(Refund.objects.all(), uow, for_update)
            .filter(pk=refund_id)
            .first()
        )

    def has_active_refund(self, uow: UnitOfWork, payment_id: UUID) -> bool:
        return (
            Refund.objects.using(self.using)
            .filter(payment_id=payment_id)
            .active()
            .exists()
        )

    def list_refunds(
        self,
        *,
        status: str | None = None,
        student_id: int | None = None,
        invoice_id: UUID | None = None,
        payment_id: UUID | None = None,
        requested_from: datetime | None = None,
        requested_to: datetime | None = None,
    ) -> list[Refund]:
        queryset = Refund.objects.using(self.using).requested_between(
            requested_from, requested_to
        )
        if status is not None:
            queryset = queryset.filter(status=status)
        if student_id is not None:
            queryset = queryset.filter(student_id=student_id)
        if invoice_id is not None:
            queryset = queryset.filter(invoice_id=invoice_id)
        if payment_id is not None:
            queryset = queryset.filter(payment_id=payment_id)
        return list(queryset.order_by("-requested_at"))

    def add_refund(self, uow: UnitOfWork, refund: Refund) -> Refund:
        try:
            with transaction.atomic(using=self.using):
                refund.save(using=self.using, force_insert=True)
        except IntegrityError as exc:
            message = str(exc)
            if (
                "refund_one_active_per_payment" in message
                or "billing_refund.payment_id" in message
            ):
                logger.warning(
                    "Active refund constraint rejected a duplicate request",
                    extra={"payment_id": str(refund.payment_id)},
                )
                raise DuplicateRefundRequest(
                    "Payment already has an active refund request",
                    details={
                        "payment_id": str(refund.payment_id),
                        "current_state": "active",
                    },
                ) from exc
            raise
        return refund

    def save_refund(self, uow: UnitOfWork, refund: Refund) -> Refund:
        refund.save(using=self.using)
        return refund

    def delete_refund(self, uow: UnitOfWork, refund: Refund) -> None:
        refund.delete(using=self.using)
