"""
Tests for RefundService.

These tests cover:
1. Refund requests and their eligibility rules
2. Approval and rejection
3. Settlement, including the ledger reversal on the invoice
4. All-or-nothing settlement when a step fails
5. Cancellation of pending requests
6. Lookups and statistics
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from django.utils import timezone
from freezegun import freeze_time

from core.exceptions import ValidationError

from billing.exceptions import (
    DuplicateRefundRequest,
    InconsistentPaymentState,
    InvalidLedgerState,
    InvalidRefundState,
    InvoiceCancelled,
    PaymentNotFound,
    PaymentNotRefundable,
    RefundNotFound,
)
from billing.models import Invoice, Payment, Refund
from billing.state_machines import InvoiceStatus, PaymentMethod, PaymentStatus, RefundStatus
from billing.tests.conftest import STUDENT_ID
from billing.tests.factories import InvoiceFactory, PaymentFactory, RefundFactory


# =============================================================================
# Request
# =============================================================================


class TestCreateRefundRequest:
    def test_creates_pending_refund_for_whole_payment(self, refund_service, completed_payment, user):
        refund = refund_service.create_refund_request(
            completed_payment.id,
            reason="Duplicate charge",
            requested_by=user.pk,
            remarks="Parent called the office",
        )

        saved = Refund.objects.get(pk=refund.pk)
        assert saved.status == RefundStatus.PENDING
        assert saved.amount == completed_payment.amount
        assert saved.invoice_id == completed_payment.invoice_id
        assert saved.student_id == STUDENT_ID
        assert saved.requested_by == user.pk
        assert saved.remarks == "Parent called the office"

    def test_request_does_not_touch_payment_or_invoice(self, refund_service, pending_refund):
        assert Payment.objects.get(pk=pending_refund.payment_id).status == PaymentStatus.COMPLETED
        assert Invoice.objects.get(pk=pending_refund.invoice_id).paid_amount == Decimal("600.00")

    @pytest.mark.parametrize(
        "status",
        [PaymentStatus.PENDING, PaymentStatus.FAILED, PaymentStatus.REFUNDED],
    )
    def test_only_completed_payments_are_refundable(self, refund_service, user, status):
        payment = PaymentFactory(status=status)

        with pytest.raises(PaymentNotRefundable) as exc_info:
            refund_service.create_refund_request(payment.id, "Wrong student", user.pk)

        assert exc_info.value.details["current_state"] == status
        assert not Refund.objects.exists()

    def test_second_active_request_is_rejected(self, refund_service, pending_refund, user):
        with pytest.raises(DuplicateRefundRequest):
            refund_service.create_refund_request(pending_refund.payment_id, "Again", user.pk)

    def test_approved_refund_also_blocks_a_new_request(self, refund_service, approved_refund, user):
        with pytest.raises(DuplicateRefundRequest):
            refund_service.create_refund_request(approved_refund.payment_id, "Again", user.pk)

    def test_rejected_refund_allows_a_new_request(
        self, refund_service, pending_refund, reviewer, user
    ):
        refund_service.reject_refund(pending_refund.id, reviewer.pk, "Not eligible")

        again = refund_service.create_refund_request(pending_refund.payment_id, "Retry", user.pk)

        assert again.status == RefundStatus.PENDING

    def test_unknown_payment(self, refund_service, user):
        with pytest.raises(PaymentNotFound):
            refund_service.create_refund_request(uuid4(), "Duplicate charge", user.pk)

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_reason_is_required(self, refund_service, completed_payment, user, reason):
        with pytest.raises(ValidationError):
            refund_service.create_refund_request(completed_payment.id, reason, user.pk)


# =============================================================================
# Review
# =============================================================================


class TestApproveRefund:
    def test_approve_pending_refund(self, refund_service, pending_refund, reviewer):
        refund = refund_service.approve_refund(
            pending_refund.id, approved_by=reviewer.pk, remarks="Verified"
        )

        saved = Refund.objects.get(pk=refund.pk)
        assert saved.status == RefundStatus.APPROVED
        assert saved.approved_by == reviewer.pk
        assert saved.approved_at is not None
        assert "Approval remarks: Verified" in saved.remarks

    def test_approval_moves_no_money(self, refund_service, approved_refund):
        assert Payment.objects.get(pk=approved_refund.payment_id).status == PaymentStatus.COMPLETED
        assert Invoice.objects.get(pk=approved_refund.invoice_id).balance == Decimal("400.00")

    def test_cannot_approve_twice(self, refund_service, approved_refund, reviewer):
        with pytest.raises(InvalidRefundState) as exc_info:
            refund_service.approve_refund(approved_refund.id, approved_by=reviewer.pk)

        error = exc_info.value
        assert error.message == "Only pending refunds can be approved"
        assert error.details["current_state"] == RefundStatus.APPROVED
        assert error.details["expected_state"] == RefundStatus.PENDING
        assert error.status_code == 409

    def test_unknown_refund(self, refund_service, reviewer):
        with pytest.raises(RefundNotFound):
            refund_service.approve_refund(uuid4(), approved_by=reviewer.pk)


class TestRejectRefund:
    def test_reject_pending_refund(self, refund_service, pending_refund, reviewer):
        refund = refund_service.reject_refund(pending_refund.id, reviewer.pk, "Outside window")

        saved = Refund.objects.get(pk=refund.pk)
        assert saved.status == RefundStatus.REJECTED
        assert saved.rejected_by == reviewer.pk
        assert saved.rejection_reason == "Outside window"

    def test_rejection_reason_is_required(self, refund_service, pending_refund, reviewer):
        with pytest.raises(ValidationError):
            refund_service.reject_refund(pending_refund.id, reviewer.pk, "")

        assert Refund.objects.get(pk=pending_refund.pk).status == RefundStatus.PENDING

    def test_cannot_reject_approved_refund(self, refund_service, approved_refund, reviewer):
        with pytest.raises(InvalidRefundState):
            refund_service.reject_refund(approved_refund.id, reviewer.pk, "Changed mind")

    def test_rejected_refund_cannot_be_processed(self, refund_service, pending_refund, reviewer):
        refund_service.reject_refund(pending_refund.id, reviewer.pk, "No")

        with pytest.raises(InvalidRefundState):
            refund_service.process_refund(pending_refund.id)


# =============================================================================
# Settlement
# =============================================================================


class TestProcessRefund:
    def test_settlement_reverses_payment_on_invoice(self, refund_service, approved_refund, reviewer):
        settlement = refund_service.process_refund(approved_refund.id, processed_by=reviewer.pk)

        refund = Refund.objects.get(pk=approved_refund.pk)
        payment = Payment.objects.get(pk=approved_refund.payment_id)
        invoice = Invoice.objects.get(pk=approved_refund.invoice_id)

        assert refund.status == RefundStatus.COMPLETED
        assert refund.processed_by == reviewer.pk
        assert refund.completed_at is not None
        assert payment.status == PaymentStatus.REFUNDED
        assert payment.refunded_at is not None
        assert "Refunded: Duplicate charge" in payment.remarks
        assert invoice.paid_amount == Decimal("0.00")
        assert invoice.balance == Decimal("1000.00")
        assert invoice.status == InvoiceStatus.PENDING

        assert settlement.refund.pk == refund.pk
        assert settlement.payment.status == PaymentStatus.REFUNDED
        assert settlement.invoice.balance == Decimal("1000.00")

    def test_full_payment_refund_past_due_date_lands_on_overdue(
        self, refund_service, invoice_service, payment_service, user, reviewer
    ):
        invoice = invoice_service.create_invoice(
            student_id=STUDENT_ID,
            subtotal=Decimal("1000.00"),
            due_date=timezone.localdate() - timedelta(days=5),
        )
        assert invoice.status == InvoiceStatus.PENDING

        payment = payment_service.record_payment(invoice.id, Decimal("1000.00"), PaymentMethod.CASH)
        paid = Invoice.objects.get(pk=invoice.pk)
        assert paid.paid_amount == Decimal("1000.00")
        assert paid.balance == Decimal("0.00")
        assert paid.status == InvoiceStatus.PAID

        refund = refund_service.create_refund_request(payment.id, "Withdrawn", user.pk)
        assert refund.status == RefundStatus.PENDING
        assert refund.amount == Decimal("1000.00")

        refund = refund_service.approve_refund(refund.id, approved_by=reviewer.pk)
        assert refund.status == RefundStatus.APPROVED

        settlement = refund_service.process_refund(refund.id, processed_by=reviewer.pk)

        assert settlement.payment.status == PaymentStatus.REFUNDED
        assert settlement.invoice.paid_amount == Decimal("0.00")
        assert settlement.invoice.balance == Decimal("1000.00")
        assert settlement.invoice.status == InvoiceStatus.OVERDUE
        assert settlement.refund.status == RefundStatus.COMPLETED

        with pytest.raises(InvalidRefundState):
            refund_service.process_refund(refund.id, processed_by=reviewer.pk)

    def test_second_settlement_changes_nothing(self, refund_service, approved_refund):
        refund_service.process_refund(approved_refund.id)

        with pytest.raises(InvalidRefundState) as exc_info:
            refund_service.process_refund(approved_refund.id)

        assert exc_info.value.details["current_state"] == RefundStatus.COMPLETED
        invoice = Invoice.objects.get(pk=approved_refund.invoice_id)
        assert invoice.paid_amount == Decimal("0.00")
        assert invoice.balance == Decimal("1000.00")

    def test_pending_refund_cannot_be_processed(self, refund_service, pending_refund):
        with pytest.raises(InvalidRefundState) as exc_info:
            refund_service.process_refund(pending_refund.id)

        assert exc_info.value.message == "Only approved refunds can be processed"

    def test_reversal_below_zero_rolls_back(self, refund_service, db):
        invoice = InvoiceFactory(
            total_amount=Decimal("500.00"),
            paid_amount=Decimal("300.00"),
            status=InvoiceStatus.PARTIAL,
        )
        payment = PaymentFactory(invoice=invoice, amount=Decimal("400.00"))
        refund = RefundFactory(payment=payment, status=RefundStatus.APPROVED)

        with pytest.raises(InvalidLedgerState):
            refund_service.process_refund(refund.id)

        assert Refund.objects.get(pk=refund.pk).status == RefundStatus.APPROVED
        assert Payment.objects.get(pk=payment.pk).status == PaymentStatus.COMPLETED
        saved = Invoice.objects.get(pk=invoice.pk)
        assert saved.paid_amount == Decimal("300.00")
        assert saved.balance == Decimal("200.00")

    def test_payment_changed_after_approval(self, refund_service, db):
        payment = PaymentFactory(status=PaymentStatus.FAILED)
        refund = RefundFactory(payment=payment, status=RefundStatus.APPROVED)

        with pytest.raises(InconsistentPaymentState) as exc_info:
            refund_service.process_refund(refund.id)

        assert exc_info.value.details["current_state"] == PaymentStatus.FAILED
        assert Refund.objects.get(pk=refund.pk).status == RefundStatus.APPROVED

    def test_cancelled_invoice_blocks_settlement(self, refund_service, db):
        invoice = InvoiceFactory(
            paid_amount=Decimal("600.00"),
            status=InvoiceStatus.CANCELLED,
        )
        payment = PaymentFactory(invoice=invoice)
        refund = RefundFactory(payment=payment, status=RefundStatus.APPROVED)

        with pytest.raises(InvoiceCancelled):
            refund_service.process_refund(refund.id)

        assert Payment.objects.get(pk=payment.pk).status == PaymentStatus.COMPLETED

    def test_soft_deleted_invoice_is_still_settled(
        self, refund_service, invoice_service, approved_refund
    ):
        invoice_service.soft_delete_invoice(approved_refund.invoice_id)

        settlement = refund_service.process_refund(approved_refund.id)

        assert settlement.invoice.balance == Decimal("1000.00")
        assert Invoice.all_objects.get(pk=approved_refund.invoice_id).paid_amount == Decimal("0.00")

    def test_failure_on_last_write_leaves_all_records_unchanged(
        self, refund_service, approved_refund, audit_sink, mocker, django_capture_on_commit_callbacks
    ):
        mocker.patch.object(
            refund_service.store, "save_refund", side_effect=RuntimeError("connection lost")
        )

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            with pytest.raises(RuntimeError):
                refund_service.process_refund(approved_refund.id)

        assert callbacks == []
        assert audit_sink.events == []
        assert Refund.objects.get(pk=approved_refund.pk).status == RefundStatus.APPROVED
        assert Payment.objects.get(pk=approved_refund.payment_id).status == PaymentStatus.COMPLETED
        invoice = Invoice.objects.get(pk=approved_refund.invoice_id)
        assert invoice.paid_amount == Decimal("600.00")
        assert invoice.balance == Decimal("400.00")


class TestProcessRefundInMemory:
    """Settlement against the in-memory store, with failures injected."""

    def test_settles(self, memory_refund_service, memory_store, memory_approved_refund):
        invoice, payment, refund = memory_approved_refund

        memory_refund_service.process_refund(refund.id)

        assert memory_store.refunds[refund.id].status == RefundStatus.COMPLETED
        assert memory_store.payments[payment.id].status == PaymentStatus.REFUNDED
        assert memory_store.invoices[invoice.id].balance == Decimal("1000.00")

    def test_refund_larger_than_payment_is_rejected(
        self, memory_refund_service, memory_store, memory_approved_refund
    ):
        invoice, payment, refund = memory_approved_refund
        memory_store.refunds[refund.id].amount = Decimal("700.00")

        with pytest.raises(InvalidLedgerState):
            memory_refund_service.process_refund(refund.id)

        assert memory_store.refunds[refund.id].status == RefundStatus.APPROVED
        assert memory_store.payments[payment.id].status == PaymentStatus.COMPLETED
        assert memory_store.invoices[invoice.id].paid_amount == Decimal("600.00")

    @pytest.mark.parametrize("failing_write", ["save_payment", "save_invoice", "save_refund"])
    def test_any_failing_write_rolls_back_everything(
        self, memory_refund_service, memory_store, memory_approved_refund, mocker, failing_write
    ):
        invoice, payment, refund = memory_approved_refund
        mocker.patch.object(memory_store, failing_write, side_effect=RuntimeError("disk full"))

        with pytest.raises(RuntimeError):
            memory_refund_service.process_refund(refund.id)

        assert memory_store.refunds[refund.id].status == RefundStatus.APPROVED
        assert memory_store.payments[payment.id].status == PaymentStatus.COMPLETED
        assert memory_store.invoices[invoice.id].paid_amount == Decimal("600.00")
        assert memory_store.invoices[invoice.id].balance == Decimal("400.00")

    def test_audit_events_only_after_success(
        self, memory_refund_service, memory_store, memory_approved_refund, audit_sink, mocker
    ):
        _, _, refund = memory_approved_refund
        before = len(audit_sink.events)
        mocker.patch.object(memory_store, "save_refund", side_effect=RuntimeError("disk full"))

        with pytest.raises(RuntimeError):
            memory_refund_service.process_refund(refund.id)

        assert len(audit_sink.events) == before


# =============================================================================
# Cancellation
# =============================================================================


class TestCancelRefundRequest:
    def test_deletes_pending_refund(self, refund_service, pending_refund, user):
        refund_service.cancel_refund_request(pending_refund.id, cancelled_by=user.pk)

        assert not Refund.objects.filter(pk=pending_refund.pk).exists()

    def test_cancelled_request_frees_the_payment(self, refund_service, pending_refund, user):
        refund_service.cancel_refund_request(pending_refund.id)

        again = refund_service.create_refund_request(pending_refund.payment_id, "Retry", user.pk)

        assert again.status == RefundStatus.PENDING

    def test_approved_refund_cannot_be_cancelled(self, refund_service, approved_refund):
        with pytest.raises(InvalidRefundState) as exc_info:
            refund_service.cancel_refund_request(approved_refund.id)

        assert exc_info.value.message == "Only pending refunds can be cancelled"
        assert Refund.objects.filter(pk=approved_refund.pk).exists()

    def test_unknown_refund(self, refund_service):
        with pytest.raises(RefundNotFound):
            refund_service.cancel_refund_request(uuid4())


# =============================================================================
# Queries
# =============================================================================


class TestRefundQueries:
    def test_get_refund_by_id(self, refund_service, pending_refund):
        assert refund_service.get_refund_by_id(pending_refund.id).pk == pending_refund.pk

    def test_get_refund_by_payment_prefers_active(self, refund_service, db):
        payment = PaymentFactory()
        RefundFactory(payment=payment, status=RefundStatus.REJECTED)
        active = RefundFactory(
            payment=payment,
            requested_at=timezone.now() - timedelta(days=1),
        )

        assert refund_service.get_refund_by_payment_id(payment.id).pk == active.pk

    def test_get_refund_by_payment_falls_back_to_newest(self, refund_service, db):
        payment = PaymentFactory()
        RefundFactory(
            payment=payment,
            status=RefundStatus.REJECTED,
            requested_at=timezone.now() - timedelta(days=2),
        )
        newest = RefundFactory(payment=payment, status=RefundStatus.REJECTED)

        assert refund_service.get_refund_by_payment_id(payment.id).pk == newest.pk

    def test_get_refund_by_payment_without_refunds(self, refund_service, completed_payment):
        assert refund_service.get_refund_by_payment_id(completed_payment.id) is None

    def test_filtered_lists(self, refund_service, db):
        pending = RefundFactory(student_id=7)
        approved = RefundFactory(student_id=7, status=RefundStatus.APPROVED)
        other = RefundFactory(student_id=8)

        assert {r.pk for r in refund_service.get_pending_refunds()} == {pending.pk, other.pk}
        assert {r.pk for r in refund_service.get_refunds_by_student_id(7)} == {
            pending.pk,
            approved.pk,
        }
        assert [r.pk for r in refund_service.get_refunds_by_invoice_id(other.invoice_id)] == [
            other.pk
        ]
        assert [r.pk for r in refund_service.get_refunds(status=RefundStatus.APPROVED, student_id=7)] == [
            approved.pk
        ]

    def test_lists_newest_first(self, refund_service, db):
        older = RefundFactory(requested_at=timezone.now() - timedelta(hours=1))
        newer = RefundFactory()

        assert [r.pk for r in refund_service.get_pending_refunds()] == [newer.pk, older.pk]


class TestRefundStatistics:
    @freeze_time("2025-05-10 12:00:00")
    def test_counts_and_sums_by_status(self, refund_service, db):
        for status, amount in [
            (RefundStatus.PENDING, "100.00"),
            (RefundStatus.APPROVED, "200.00"),
            (RefundStatus.APPROVED, "50.00"),
            (RefundStatus.REJECTED, "300.00"),
            (RefundStatus.COMPLETED, "400.00"),
        ]:
            RefundFactory(status=status, payment__amount=Decimal(amount))

        stats = refund_service.get_refund_statistics()

        assert stats.total == 5
        assert stats.pending == 1
        assert stats.approved == 2
        assert stats.rejected == 1
        assert stats.completed == 1
        assert stats.total_amount == Decimal("1050.00")
        assert stats.approved_amount == Decimal("250.00")
        assert stats.completed_amount == Decimal("400.00")

    def test_date_range(self, refund_service, db):
        now = timezone.now()
        RefundFactory(requested_at=now - timedelta(days=40))
        in_range = RefundFactory(requested_at=now - timedelta(days=10))

        stats = refund_service.get_refund_statistics(start=now - timedelta(days=30), end=now)

        assert stats.total == 1
        assert stats.total_amount == in_range.amount

    def test_empty(self, refund_service, db):
        stats = refund_service.get_refund_statistics()

        assert stats.total == 0
        assert stats.total_amount == Decimal("0.00")
