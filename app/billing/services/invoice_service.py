"""
Invoice service for the invoice lifecycle around the running balance.

This module provides the InvoiceService class which handles:
1. Issuing invoices with an already-computed subtotal and discount
2. Lookups by id, number and student
3. Cancellation of unpaid invoices
4. Discount approval review
5. Soft delete and restore
6. The overdue sweep run by Celery beat

Balance changes themselves happen in PaymentService and RefundService
through billing.balance.

Usage:
    from billing.services import InvoiceService

    invoice = InvoiceService().create_invoice(
        student_id=42,
        subtotal=Decimal("12000.00"),
        discount=Decimal("1000.00"),
        discount_reason="Sibling discount",
        due_date=date(2025, 5, 15),
    )
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from billing.audit import AuditAction
from billing.balance import derive_status
from billing.exceptions import (
    DiscountNotPending,
    InvalidAmount,
    InvoiceCancelled,
    InvoiceNotCancellable,
    InvoiceNotFound,
)
from billing.models import Invoice
from billing.numbering import document_prefix, next_document_number
from billing.services.base import LedgerService
from billing.state_machines import DiscountApprovalStatus, InvoiceStatus
from billing.types import ZERO, parse_amount

if TYPE_CHECKING:
    from datetime import date
    from uuid import UUID


class InvoiceService(LedgerService):
    """
    Service for issuing and managing invoices.

    total_amount is fixed when the invoice is issued. Discount review only
    records a decision; it never changes money already on the ledger.
    """

    # =========================================================================
    # Creation
    # =========================================================================

    def create_invoice(
        self,
        student_id: int,
        subtotal: Decimal | int | str,
        due_date: date,
        *,
        discount: Decimal | int | str = ZERO,
        discount_reason: str = "",
        fee_structure_id: int | None = None,
        academic_year_id: int | None = None,
        created_by: int | None = None,
    ) -> Invoice:
        """
        Issue a new invoice.

        Args:
            student_id: Student being billed
            subtotal: Amount before discount
            due_date: Date after which a remaining balance is overdue
            discount: Discount granted (0 for none)
            discount_reason: Why the discount was granted
            fee_structure_id / academic_year_id: Opaque references
            created_by: Actor id for the audit trail

        Returns:
            The saved Invoice (status pending, or paid when the total is 0)

        Raises:
            InvalidAmount: Negative amounts or discount above subtotal
            DocumentNumberConflict: Concurrent issuers kept taking the number
        """
        subtotal = parse_amount(subtotal, field="subtotal", allow_zero=True)
        discount = parse_amount(discount, field="discount", allow_zero=True)
        if discount > subtotal:
            raise InvalidAmount(
                "Discount cannot exceed the subtotal",
                details={"subtotal": str(subtotal), "discount": str(discount)},
            )

        total = subtotal - discount
        with self.store.unit_of_work() as uow:
            invoice = Invoice(
                student_id=student_id,
                fee_structure_id=fee_structure_id,
                academic_year_id=academic_year_id,
                subtotal=subtotal,
                discount=discount,
                discount_reason=discount_reason or "",
                total_amount=total,
                paid_amount=ZERO,
                balance=total,
                status=InvoiceStatus.PAID if total == 0 else InvoiceStatus.PENDING,
                discount_approval_status=(
                    DiscountApprovalStatus.PENDING
                    if discount > 0
                    else DiscountApprovalStatus.NONE
                ),
                due_date=due_date,
            )
            self._insert_numbered(
                lambda: setattr(invoice, "invoice_number", self._next_invoice_number()),
                lambda: self.store.add_invoice(uow, invoice),
            )
            self.audit.record(uow, invoice, AuditAction.CREATED, actor_id=created_by)

        self.get_logger().info(
            "Invoice created",
            extra={
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "student_id": student_id,
                "total_amount": str(total),
            },
        )
        return invoice

    def _next_invoice_number(self) -> str:
        kind = settings.BILLING_INVOICE_NUMBER_PREFIX
        year = timezone.localdate().year
        last = self.store.last_invoice_number(document_prefix(kind, year))
        return next_document_number(kind, year, last)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_invoice_by_id(self, invoice_id: UUID, include_deleted: bool = False) -> Invoice:
        """
        Raises:
            InvoiceNotFound: No invoice with that id (or it is soft-deleted
                and include_deleted is False)
        """
        return self._require_invoice(invoice_id, include_deleted=include_deleted)

    def get_invoice_by_number(self, invoice_number: str) -> Invoice:
        invoice = self.store.get_invoice_by_number(invoice_number)
        if invoice is None:
            raise InvoiceNotFound(
                f"Invoice {invoice_number} not found",
                details={"invoice_number": invoice_number},
            )
        return invoice

    def get_student_invoices(
        self,
        student_id: int,
        statuses: list[str] | None = None,
    ) -> list[Invoice]:
        return self.store.list_invoices(student_id=student_id, statuses=statuses)

    def get_student_outstanding_balance(self, student_id: int) -> Decimal:
        """Sum of balances over the student's live, non-cancelled invoices."""
        invoices = self.store.list_invoices(
            student_id=student_id,
            statuses=[
                InvoiceStatus.PENDING,
                InvoiceStatus.PARTIAL,
                InvoiceStatus.OVERDUE,
            ],
        )
        return sum((invoice.balance for invoice in invoices), ZERO)

    def get_overdue_invoices(self) -> list[Invoice]:
        return self.store.list_invoices(statuses=[InvoiceStatus.OVERDUE])

    def get_pending_discount_approvals(self) -> list[Invoice]:
        return self.store.list_invoices(
            discount_approval_status=DiscountApprovalStatus.PENDING,
        )

    # =========================================================================
    # Cancellation
    # =========================================================================

    def cancel_invoice(self, invoice_id: UUID, cancelled_by: int | None = None) -> Invoice:
        """
        Cancel an invoice nothing has been paid against.

        Raises:
            InvoiceNotFound: No live invoice with that id
            InvoiceCancelled: Already cancelled
            InvoiceNotCancellable: Some amount has been paid
        """
        with self.store.unit_of_work() as uow:
            invoice = self._require_invoice(invoice_id, uow=uow, for_update=True)
            if invoice.is_cancelled:
                raise InvoiceCancelled(
                    f"Invoice {invoice.invoice_number} is already cancelled",
                    details={
                        "invoice_id": str(invoice.id),
                        "current_state": invoice.status,
                    },
                )
            if invoice.paid_amount > 0:
                raise InvoiceNotCancellable(
                    "Cannot cancel an invoice with payments applied",
                    details={
                        "invoice_id": str(invoice.id),
                        "paid_amount": str(invoice.paid_amount),
                        "current_state": invoice.status,
                    },
                )

            before = invoice.snapshot()
            invoice.status = InvoiceStatus.CANCELLED
            invoice.cancelled_at = timezone.now()
            self.store.save_invoice(uow, invoice)
            self.audit.record(
                uow, invoice, AuditAction.UPDATED, old_value=before, actor_id=cancelled_by
            )

        self.get_logger().info(
            "Invoice cancelled",
            extra={"invoice_id": str(invoice.id), "cancelled_by": cancelled_by},
        )
        return invoice

    # =========================================================================
    # Discount Review
    # =========================================================================

    def approve_discount(self, invoice_id: UUID, approved_by: int) -> Invoice:
        """Mark a pending discount approved."""
        return self._review_discount(invoice_id, approved_by, DiscountApprovalStatus.APPROVED)

    def reject_discount(self, invoice_id: UUID, reviewed_by: int) -> Invoice:
        """
        Mark a pending discount rejected.

        The invoice total stays as issued. Re-issuing the invoice without
        the discount is a separate administrative step.
        """
        return self._review_discount(invoice_id, reviewed_by, DiscountApprovalStatus.REJECTED)

    def _review_discount(
        self,
        invoice_id: UUID,
        reviewer_id: int,
        decision: DiscountApprovalStatus,
    ) -> Invoice:
        self.validate_required(reviewed_by=reviewer_id)

        with self.store.unit_of_work() as uow:
            invoice = self._require_invoice(invoice_id, uow=uow, for_update=True)
            if invoice.discount_approval_status != DiscountApprovalStatus.PENDING:
                raise DiscountNotPending(
                    "Discount is not awaiting approval",
                    details={
                        "invoice_id": str(invoice.id),
                        "current_state": invoice.discount_approval_status,
                    },
                )

            before = invoice.snapshot()
            invoice.discount_approval_status = decision
            invoice.discount_reviewed_by = reviewer_id
            invoice.discount_reviewed_at = timezone.now()
            self.store.save_invoice(uow, invoice)
            self.audit.record(
                uow, invoice, AuditAction.UPDATED, old_value=before, actor_id=reviewer_id
            )

        self.get_logger().info(
            "Invoice discount reviewed",
            extra={
                "invoice_id": str(invoice.id),
                "decision": decision,
                "reviewed_by": reviewer_id,
            },
        )
        return invoice

    # =========================================================================
    # Soft Delete
    # =========================================================================

    def soft_delete_invoice(self, invoice_id: UUID, deleted_by: int | None = None) -> Invoice:
        """Hide an invoice from normal queries. Its payments stay untouched."""
        with self.store.unit_of_work() as uow:
            invoice = self._require_invoice(invoice_id, uow=uow, for_update=True)
            before = invoice.snapshot()
            invoice.soft_delete(save=False)
            self.store.save_invoice(uow, invoice)
            self.audit.record(
                uow, invoice, AuditAction.UPDATED, old_value=before, actor_id=deleted_by
            )
        return invoice

    def restore_invoice(self, invoice_id: UUID, restored_by: int | None = None) -> Invoice:
        with self.store.unit_of_work() as uow:
            invoice = self._require_invoice(
                invoice_id, uow=uow, for_update=True, include_deleted=True
            )
            before = invoice.snapshot()
            invoice.restore(save=False)
            self.store.save_invoice(uow, invoice)
            self.audit.record(
                uow, invoice, AuditAction.UPDATED, old_value=before, actor_id=restored_by
            )
        return invoice

    # =========================================================================
    # Overdue Sweep
    # =========================================================================

    def mark_overdue_invoices(self, today: date | None = None) -> int:
        """
        Re-derive status for live invoices that went past due with a balance.

        Returns:
            Number of invoices moved to overdue
        """
        today = today or timezone.localdate()
        updated = 0

        with self.store.unit_of_work() as uow:
            for invoice in self.store.lock_overdue_candidates(uow, today):
                status = derive_status(
                    invoice.paid_amount,
                    invoice.total_amount,
                    invoice.due_date,
                    today=today,
                )
                if status == invoice.status:
                    continue
                before = invoice.snapshot()
                invoice.status = status
                self.store.save_invoice(uow, invoice)
                self.audit.record(uow, invoice, AuditAction.UPDATED, old_value=before)
                updated += 1

        self.get_logger().info(
            "Overdue sweep finished",
            extra={"as_of": today.isoformat(), "updated_count": updated},
        )
        return updated
