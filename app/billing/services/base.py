"""
Shared plumbing for the billing services.

LedgerService wires a LedgerStore and an AuditTrail into a service instance
and provides the "load or raise NotFound" helpers every operation starts
with.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

from django.conf import settings

from core.services import BaseService

from billing.audit import AuditTrail
from billing.exceptions import (
    DocumentNumberConflict,
    InstallmentPlanNotFound,
    InvoiceNotFound,
    PaymentNotFound,
    RefundNotFound,
)
from billing.store import DjangoLedgerStore

if TYPE_CHECKING:
    from collections.abc import Callable
    from uuid import UUID

    from billing.models import InstallmentPlan, Invoice, Payment, Refund
    from billing.store import LedgerStore, UnitOfWork

T = TypeVar("T")


class LedgerService(BaseService):
    """
    Base class for services that read and write ledger records.

    Args:
        store: Persistence boundary (default: DjangoLedgerStore)
        audit: Audit trail emitter (default: AuditTrail with the configured sink)
    """

    def __init__(
        self,
        store: LedgerStore | None = None,
        audit: AuditTrail | None = None,
    ):
        self.store = store if store is not None else DjangoLedgerStore()
        self.audit = audit if audit is not None else AuditTrail()

    def _require_invoice(
        self,
        invoice_id: UUID,
        *,
        uow: UnitOfWork | None = None,
        for_update: bool = False,
        include_deleted: bool = False,
    ) -> Invoice:
        invoice = self.store.get_invoice(
            invoice_id,
            uow=uow,
            for_update=for_update,
            include_deleted=include_deleted,
        )
        if invoice is None:
            raise InvoiceNotFound(
                f"Invoice {invoice_id} not found",
                details={"invoice_id": str(invoice_id)},
            )
        return invoice

    def _require_payment(
        self,
        payment_id: UUID,
        *,
        uow: UnitOfWork | None = None,
        for_update: bool = False,
    ) -> Payment:
        payment = self.store.get_payment(payment_id, uow=uow, for_update=for_update)
        if payment is None:
            raise PaymentNotFound(
                f"Payment {payment_id} not found",
                details={"payment_id": str(payment_id)},
            )
        return payment

    def _require_refund(
        self,
        refund_id: UUID,
        *,
        uow: UnitOfWork | None = None,
        for_update: bool = False,
    ) -> Refund:
        refund = self.store.get_refund(refund_id, uow=uow, for_update=for_update)
        if refund is None:
            raise RefundNotFound(
                f"Refund {refund_id} not found",
                details={"refund_id": str(refund_id)},
            )
        return refund

    def _require_installment_plan(
        self,
        plan_id: UUID,
        *,
        uow: UnitOfWork | None = None,
        for_update: bool = False,
    ) -> InstallmentPlan:
        plan = self.store.get_installment_plan(plan_id, uow=uow, for_update=for_update)
        if plan is None:
            raise InstallmentPlanNotFound(
                f"Installment plan {plan_id} not found",
                details={"installment_plan_id": str(plan_id)},
            )
        return plan

    def _insert_numbered(self, allocate: Callable[[], None], insert: Callable[[], T]) -> T:
        """
        Allocate a document number and insert, trying again while another
        writer takes the allocated number first.

        Args:
            allocate: Puts a freshly allocated number on the record
            insert: Adds the record to the store

        Raises:
            DocumentNumberConflict: Still taken after
                BILLING_DOCUMENT_NUMBER_ATTEMPTS allocations
        """
        attempts = settings.BILLING_DOCUMENT_NUMBER_ATTEMPTS
        for attempt in range(1, attempts + 1):
            allocate()
            try:
                return insert()
            except DocumentNumberConflict as exc:
                if attempt >= attempts:
                    self.get_logger().error(
                        "Document number allocation gave up",
                        extra={"attempts": attempts, **exc.details},
                    )
                    raise
                self.get_logger().warning(
                    "Document number taken, allocating again",
                    extra={"attempt": attempt, **exc.details},
                )
        raise AssertionError("BILLING_DOCUMENT_NUMBER_ATTEMPTS must be at least 1")
