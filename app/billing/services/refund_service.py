"""
Refund service for the request, review and settlement workflow.

This module provides the RefundService class which handles:
1. Refund requests against completed payments
2. Approval and rejection by a reviewer
3. Settlement, which reverses the payment on the invoice
4. Cancellation of pending requests
5. Lookups and statistics

State Flow:
    PENDING -> APPROVED -> COMPLETED
    PENDING -> REJECTED
    PENDING -> (deleted by cancel_refund_request)

Settlement is the only step with effects outside the refund itself. It
marks the payment refunded, lowers the invoice's paid amount and completes
the refund in one unit of work. A retried settlement finds the refund
COMPLETED and fails with InvalidRefundState, so it can never refund twice.

Usage:
    from billing.services import RefundService

    service = RefundService()
    refund = service.create_refund_request(payment.id, "Duplicate charge", requested_by=7)
    service.approve_refund(refund.id, approved_by=3)
    settlement = service.process_refund(refund.id, processed_by=3)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from billing.audit import AuditAction
from billing.balance import apply_payment_delta
from billing.exceptions import (
    DuplicateRefundRequest,
    InconsistentPaymentState,
    InvalidLedgerState,
    InvalidRefundState,
    PaymentNotRefundable,
    RefundNotFound,
)
from billing.models import Refund
from billing.services.base import LedgerService
from billing.state_machines import ACTIVE_REFUND_STATUSES, PaymentStatus, RefundStatus
from billing.types import RefundSettlement, RefundStatistics

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID


class RefundService(LedgerService):
    """
    Service for the refund workflow.

    Every refund covers its payment in full. The amount is copied from the
    payment when the request is made.
    """

    # =========================================================================
    # Request
    # =========================================================================

    def create_refund_request(
        self,
        payment_id: UUID,
        reason: str,
        requested_by: int,
        remarks: str | None = None,
    ) -> Refund:
        """
        Open a refund request for a completed payment.

        The payment row is locked before the active-refund check, so two
        concurrent requests for one payment are serialized and the second
        sees the first. The partial unique constraint on active refunds
        backs this up where row locks are unavailable.

        Raises:
            ValidationError: reason or requested_by missing
            PaymentNotFound: No payment with that id
            PaymentNotRefundable: Payment is not COMPLETED
            DuplicateRefundRequest: Payment already has a pending or
                approved refund
        """
        self.validate_required(reason=reason, requested_by=requested_by)

        with self.store.unit_of_work() as uow:
            payment = self._require_payment(payment_id, uow=uow, for_update=True)
            if not payment.is_refundable:
                raise PaymentNotRefundable(
                    "Only completed payments can be refunded",
                    details={
                        "payment_id": str(payment.id),
                        "current_state": payment.status,
                    },
                )
            if self.store.has_active_refund(uow, payment.id):
                raise DuplicateRefundRequest(
                    "Payment already has an active refund request",
                    details={
                        "payment_id": str(payment.id),
                        "current_state": "active",
                    },
                )

            refund = Refund(
                payment_id=payment.id,
                invoice_id=payment.invoice_id,
                student_id=payment.student_id,
                amount=payment.amount,
                reason=reason,
                remarks=remarks or "",
                requested_by=requested_by,
            )
            self.store.add_refund(uow, refund)
            self.audit.record(uow, refund, AuditAction.CREATED, actor_id=requested_by)

        self.get_logger().info(
            "Refund requested",
            extra={
                "refund_id": str(refund.id),
                "payment_id": str(payment_id),
                "amount": str(refund.amount),
                "requested_by": requested_by,
            },
        )
        return refund

    # =========================================================================
    # Review
    # =========================================================================

    def approve_refund(
        self,
        refund_id: UUID,
        approved_by: int,
        remarks: str | None = None,
    ) -> Refund:
        """
        Approve a pending refund. Payment and invoice are not touched.

        Raises:
            RefundNotFound: No refund with that id
            InvalidRefundState: Refund is not PENDING
        """
        self.validate_required(approved_by=approved_by)

        with self.store.unit_of_work() as uow:
            refund = self._require_refund(refund_id, uow=uow, for_update=True)
            self._check_state(refund, RefundStatus.PENDING, "approved")

            before = refund.snapshot()
            refund.approve(approved_by=approved_by, remarks=remarks)
            self.store.save_refund(uow, refund)
            self.audit.record(
                uow, refund, AuditAction.UPDATED, old_value=before, actor_id=approved_by
            )

        self.get_logger().info(
            "Refund approved",
            extra={"refund_id": str(refund_id), "approved_by": approved_by},
        )
        return refund

    def reject_refund(
        self,
        refund_id: UUID,
        rejected_by: int,
        rejection_reason: str,
    ) -> Refund:
        """
        Reject a pending refund. Terminal.

        Raises:
            RefundNotFound: No refund with that id
            InvalidRefundState: Refund is not PENDING
        """
        self.validate_required(rejected_by=rejected_by, rejection_reason=rejection_reason)

        with self.store.unit_of_work() as uow:
            refund = self._require_refund(refund_id, uow=uow, for_update=True)
            self._check_state(refund, RefundStatus.PENDING, "rejected")

            before = refund.snapshot()
            refund.reject(rejected_by=rejected_by, rejection_reason=rejection_reason)
            self.store.save_refund(uow, refund)
            self.audit.record(
                uow, refund, AuditAction.UPDATED, old_value=before, actor_id=rejected_by
            )

        self.get_logger().info(
            "Refund rejected",
            extra={"refund_id": str(refund_id), "rejected_by": rejected_by},
        )
        return refund

    # =========================================================================
    # Settlement
    # =========================================================================

    def process_refund(
        self,
        refund_id: UUID,
        processed_by: int | None = None,
    ) -> RefundSettlement:
        """
        Settle an approved refund.

        In one unit of work:
            1. Mark the payment REFUNDED
            2. Apply -amount to the invoice through the balance maintainer
            3. Mark the refund COMPLETED

        Rows are locked refund, payment, invoice. If any step raises, all
        three records stay exactly as they were.

        Raises:
            RefundNotFound: No refund with that id
            InvalidRefundState: Refund is not APPROVED (including a retry of
                an already-settled refund)
            InconsistentPaymentState: Payment is no longer COMPLETED
            InvoiceCancelled: Invoice was cancelled after the payment
            InvalidLedgerState: Reversal would push paid_amount below zero
        """
        with self.store.unit_of_work() as uow:
            refund = self._require_refund(refund_id, uow=uow, for_update=True)
            self._check_state(refund, RefundStatus.APPROVED, "processed")

            payment = self._require_payment(refund.payment_id, uow=uow, for_update=True)
            if payment.status != PaymentStatus.COMPLETED:
                raise InconsistentPaymentState(
                    "Payment is no longer completed and cannot be refunded",
                    details={
                        "refund_id": str(refund.id),
                        "payment_id": str(payment.id),
                        "current_state": payment.status,
                    },
                )

            if refund.amount > payment.amount:
                raise InvalidLedgerState(
                    "Refund amount exceeds the payment amount",
                    details={
                        "refund_id": str(refund.id),
                        "refund_amount": str(refund.amount),
                        "payment_amount": str(payment.amount),
                    },
                )

            invoice = self._require_invoice(
                refund.invoice_id, uow=uow, for_update=True, include_deleted=True
            )

            payment_before = payment.snapshot()
            payment.mark_refunded(reason=refund.reason)
            self.store.save_payment(uow, payment)

            invoice_before = invoice.snapshot()
            invoice = apply_payment_delta(invoice, -refund.amount)
            self.store.save_invoice(uow, invoice)

            refund_before = refund.snapshot()
            refund.complete(processed_by=processed_by)
            self.store.save_refund(uow, refund)

            self.audit.record(
                uow, payment, AuditAction.UPDATED, old_value=payment_before, actor_id=processed_by
            )
            self.audit.record(
                uow, invoice, AuditAction.UPDATED, old_value=invoice_before, actor_id=processed_by
            )
            self.audit.record(
                uow, refund, AuditAction.UPDATED, old_value=refund_before, actor_id=processed_by
            )

        self.get_logger().info(
            "Refund processed",
            extra={
                "refund_id": str(refund.id),
                "payment_id": str(payment.id),
                "invoice_id": str(invoice.id),
                "amount": str(refund.amount),
                "invoice_balance": str(invoice.balance),
            },
        )
        return RefundSettlement(refund=refund, payment=payment, invoice=invoice)

    # =========================================================================
    # Cancellation
    # =========================================================================

    def cancel_refund_request(self, refund_id: UUID, cancelled_by: int | None = None) -> None:
        """
        Remove a pending refund request. Nothing downstream has changed yet,
        so the row is deleted outright.

        Raises:
            RefundNotFound: No refund with that id
            InvalidRefundState: Refund is not PENDING
        """
        with self.store.unit_of_work() as uow:
            refund = self._require_refund(refund_id, uow=uow, for_update=True)
            self._check_state(refund, RefundStatus.PENDING, "cancelled")

            self.audit.record(
                uow,
                refund,
                AuditAction.DELETED,
                old_value=refund.snapshot(),
                actor_id=cancelled_by,
            )
            self.store.delete_refund(uow, refund)

        self.get_logger().info(
            "Refund request cancelled",
            extra={"refund_id": str(refund_id), "cancelled_by": cancelled_by},
        )

    def _check_state(self, refund: Refund, expected: RefundStatus, verb: str) -> None:
        if refund.status != expected:
            raise InvalidRefundState(
                f"Only {expected.label.lower()} refunds can be {verb}",
                details={
                    "refund_id": str(refund.id),
                    "current_state": refund.status,
                    "expected_state": expected.value,
                },
            )

    # =========================================================================
    # Queries
    # =========================================================================

    def get_refund_by_id(self, refund_id: UUID) -> Refund:
        return self._require_refund(refund_id)

    def get_refund_by_payment_id(self, payment_id: UUID) -> Refund | None:
        """Most recent refund for a payment, preferring an active one."""
        refunds = self.store.list_refunds(payment_id=payment_id)
        for refund in refunds:
            if refund.status in ACTIVE_REFUND_STATUSES:
                return refund
        return refunds[0] if refunds else None

    def get_pending_refunds(self) -> list[Refund]:
        return self.store.list_refunds(status=RefundStatus.PENDING)

    def get_refunds_by_student_id(self, student_id: int) -> list[Refund]:
        return self.store.list_refunds(student_id=student_id)

    def get_refunds_by_invoice_id(self, invoice_id: UUID) -> list[Refund]:
        return self.store.list_refunds(invoice_id=invoice_id)

    def get_refunds(
        self,
        status: str | None = None,
        student_id: int | None = None,
        invoice_id: UUID | None = None,
    ) -> list[Refund]:
        """Refunds matching every filter given, newest request first."""
        return self.store.list_refunds(
            status=status,
            student_id=student_id,
            invoice_id=invoice_id,
        )

    def get_refund_statistics(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> RefundStatistics:
        """
        Count and sum refunds requested in [start, end].

        Either bound may be omitted for an open-ended range.
        """
        stats = RefundStatistics()
        for refund in self.store.list_refunds(requested_from=start, requested_to=end):
            stats.total += 1
            stats.total_amount += refund.amount
            if refund.status == RefundStatus.PENDING:
                stats.pending += 1
            elif refund.status == RefundStatus.APPROVED:
                stats.approved += 1
                stats.approved_amount += refund.amount
            elif refund.status == RefundStatus.REJECTED:
                stats.rejected += 1
            elif refund.status == RefundStatus.COMPLETED:
                stats.completed += 1
                stats.completed_amount += refund.amount
        return stats
