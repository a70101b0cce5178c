"""
Tests for the billing API endpoints.

Each test goes through the full stack: JWT authentication, request parsing,
the service call and the JSON rendering of results and service errors.
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from django.utils import timezone

from billing.models import InstallmentPlan, Invoice, Payment, Refund
from billing.state_machines import (
    InstallmentPlanStatus,
    InvoiceStatus,
    PaymentStatus,
    RefundStatus,
)
from billing.tests.conftest import STUDENT_ID
from billing.tests.factories import (
    InstallmentPlanFactory,
    InvoiceFactory,
    PaymentFactory,
    RefundFactory,
)

BASE_URL = "/api/v1/billing"


# =============================================================================
# Authentication
# =============================================================================


@pytest.mark.django_db
class TestAuthentication:
    @pytest.mark.parametrize(
        "method,url",
        [
            ("get", f"{BASE_URL}/invoices/?student_id=1"),
            ("post", f"{BASE_URL}/payments/"),
            ("get", f"{BASE_URL}/refunds/"),
            ("get", f"{BASE_URL}/refunds/statistics/"),
            ("get", f"{BASE_URL}/payments/statistics/"),
            ("post", f"{BASE_URL}/installment-plans/"),
        ],
    )
    def test_requires_authentication(self, api_client, method, url):
        response = getattr(api_client, method)(url)

        assert response.status_code == 401

    def test_obtain_token_and_call_api(self, api_client, user):
        token = api_client.post(
            "/api/v1/auth/token/",
            {"username": user.username, "password": "testpass123"},
            format="json",
        )
        assert token.status_code == 200

        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {token.data['access']}")
        response = api_client.get(f"{BASE_URL}/refunds/")

        assert response.status_code == 200


# =============================================================================
# Invoices
# =============================================================================


class TestInvoiceEndpoints:
    def test_create_invoice(self, authenticated_client):
        response = authenticated_client.post(
            f"{BASE_URL}/invoices/",
            {
                "student_id": STUDENT_ID,
                "subtotal": "12000.00",
                "discount": "1000.00",
                "discount_reason": "Sibling discount",
                "due_date": (timezone.localdate() + timedelta(days=30)).isoformat(),
            },
            format="json",
        )

        assert response.status_code == 201
        assert response.data["total_amount"] == "11000.00"
        assert response.data["balance"] == "11000.00"
        assert response.data["status"] == InvoiceStatus.PENDING
        assert response.data["discount_approval_status"] == "pending"
        assert "created_at" in response.data

    def test_create_invoice_with_discount_above_subtotal(self, authenticated_client):
        response = authenticated_client.post(
            f"{BASE_URL}/invoices/",
            {
                "student_id": STUDENT_ID,
                "subtotal": "100.00",
                "discount": "200.00",
                "due_date": timezone.localdate().isoformat(),
            },
            format="json",
        )

        assert response.status_code == 400
        assert response.data["error_code"] == "INVALID_AMOUNT"

    def test_create_invoice_missing_fields(self, authenticated_client):
        response = authenticated_client.post(f"{BASE_URL}/invoices/", {}, format="json")

        assert response.status_code == 400
        assert "subtotal" in response.data
        assert "due_date" in response.data

    def test_list_student_invoices(self, authenticated_client, invoice):
        InvoiceFactory(student_id=STUDENT_ID + 1)

        response = authenticated_client.get(f"{BASE_URL}/invoices/", {"student_id": STUDENT_ID})

        assert response.status_code == 200
        assert [item["id"] for item in response.data] == [str(invoice.id)]

    def test_list_requires_student_id(self, authenticated_client):
        response = authenticated_client.get(f"{BASE_URL}/invoices/")

        assert response.status_code == 400
        assert "student_id" in response.data

    def test_retrieve_invoice(self, authenticated_client, completed_payment):
        response = authenticated_client.get(f"{BASE_URL}/invoices/{completed_payment.invoice_id}/")

        assert response.status_code == 200
        assert response.data["paid_amount"] == "600.00"
        assert response.data["balance"] == "400.00"
        assert response.data["status"] == InvoiceStatus.PARTIAL

    def test_retrieve_missing_invoice(self, authenticated_client):
        missing = uuid4()

        response = authenticated_client.get(f"{BASE_URL}/invoices/{missing}/")

        assert response.status_code == 404
        assert response.data == {
            "error": f"Invoice {missing} not found",
            "error_code": "INVOICE_NOT_FOUND",
            "details": {"invoice_id": str(missing)},
        }

    def test_cancel_invoice(self, authenticated_client, invoice, user):
        response = authenticated_client.post(f"{BASE_URL}/invoices/{invoice.id}/cancel/")

        assert response.status_code == 200
        assert response.data["status"] == InvoiceStatus.CANCELLED

    def test_cancel_paid_invoice_conflicts(self, authenticated_client, completed_payment):
        response = authenticated_client.post(
            f"{BASE_URL}/invoices/{completed_payment.invoice_id}/cancel/"
        )

        assert response.status_code == 409
        assert response.data["error_code"] == "INVOICE_NOT_CANCELLABLE"

    def test_discount_review(self, reviewer_client, reviewer, db):
        invoice = InvoiceFactory(
            discount=Decimal("100.00"),
            discount_approval_status="pending",
        )

        response = reviewer_client.post(f"{BASE_URL}/invoices/{invoice.id}/approve-discount/")

        assert response.status_code == 200
        assert response.data["discount_approval_status"] == "approved"
        assert response.data["discount_reviewed_by"] == reviewer.pk

        again = reviewer_client.post(f"{BASE_URL}/invoices/{invoice.id}/reject-discount/")
        assert again.status_code == 409
        assert again.data["error_code"] == "DISCOUNT_NOT_PENDING"
        assert again.data["details"]["current_state"] == "approved"


# =============================================================================
# Payments
# =============================================================================


class TestPaymentEndpoints:
    def test_record_payment(self, authenticated_client, invoice, user):
        response = authenticated_client.post(
            f"{BASE_URL}/payments/",
            {
                "invoice_id": str(invoice.id),
                "amount": "600.00",
                "method": "esewa",
                "external_ref": "ESW-000123",
            },
            format="json",
        )

        assert response.status_code == 201
        assert response.data["status"] == PaymentStatus.COMPLETED
        assert response.data["amount"] == "600.00"
        assert response.data["received_by"] == user.pk
        assert Invoice.objects.get(pk=invoice.pk).balance == Decimal("400.00")

    def test_record_failed_attempt(self, authenticated_client, invoice):
        response = authenticated_client.post(
            f"{BASE_URL}/payments/",
            {
                "invoice_id": str(invoice.id),
                "amount": "600.00",
                "method": "khalti",
                "succeeded": False,
                "failure_reason": "Declined",
            },
            format="json",
        )

        assert response.status_code == 201
        assert response.data["status"] == PaymentStatus.FAILED
        assert Invoice.objects.get(pk=invoice.pk).paid_amount == Decimal("0.00")

    def test_overpayment_conflicts(self, authenticated_client, invoice):
        response = authenticated_client.post(
            f"{BASE_URL}/payments/",
            {"invoice_id": str(invoice.id), "amount": "1000.01", "method": "cash"},
            format="json",
        )

        assert response.status_code == 409
        assert response.data["error_code"] == "INVALID_LEDGER_STATE"
        assert not Payment.objects.exists()

    def test_zero_amount_is_invalid(self, authenticated_client, invoice):
        response = authenticated_client.post(
            f"{BASE_URL}/payments/",
            {"invoice_id": str(invoice.id), "amount": "0.00", "method": "cash"},
            format="json",
        )

        assert response.status_code == 400
        assert response.data["error_code"] == "INVALID_AMOUNT"

    def test_duplicate_reference_conflicts(self, authenticated_client, completed_payment):
        response = authenticated_client.post(
            f"{BASE_URL}/payments/",
            {
                "invoice_id": str(completed_payment.invoice_id),
                "amount": "100.00",
                "method": "esewa",
                "external_ref": completed_payment.external_ref,
            },
            format="json",
        )

        assert response.status_code == 409
        assert response.data["error_code"] == "DUPLICATE_PAYMENT_REFERENCE"

    def test_retrieve_payment(self, authenticated_client, completed_payment):
        response = authenticated_client.get(f"{BASE_URL}/payments/{completed_payment.id}/")

        assert response.status_code == 200
        assert response.data["receipt_number"] == completed_payment.receipt_number
        assert response.data["invoice"] == completed_payment.invoice_id

    def test_statistics(self, authenticated_client, db):
        PaymentFactory(amount=Decimal("100.00"))
        PaymentFactory(amount=Decimal("250.50"))
        PaymentFactory(amount=Decimal("400.00"), method="esewa")
        PaymentFactory(amount=Decimal("999.00"), status=PaymentStatus.FAILED)

        response = authenticated_client.get(f"{BASE_URL}/payments/statistics/")

        assert response.status_code == 200
        assert response.data["total_count"] == 3
        assert response.data["total_amount"] == "750.50"
        assert response.data["by_method"]["cash"] == {"count": 2, "amount": "350.50"}
        assert response.data["by_method"]["esewa"] == {"count": 1, "amount": "400.00"}

    def test_statistics_date_range(self, authenticated_client, db):
        today = timezone.localdate()
        PaymentFactory(payment_date=today - timedelta(days=40))
        PaymentFactory(payment_date=today)

        response = authenticated_client.get(
            f"{BASE_URL}/payments/statistics/",
            {"start": (today - timedelta(days=7)).isoformat(), "end": today.isoformat()},
        )

        assert response.status_code == 200
        assert response.data["total_count"] == 1

    def test_statistics_rejects_inverted_range(self, authenticated_client):
        today = timezone.localdate()

        response = authenticated_client.get(
            f"{BASE_URL}/payments/statistics/",
            {"start": today.isoformat(), "end": (today - timedelta(days=1)).isoformat()},
        )

        assert response.status_code == 400
        assert "end" in response.data


# =============================================================================
# Refunds
# =============================================================================


class TestRefundEndpoints:
    def test_full_refund_workflow(
        self, authenticated_client, reviewer_client, completed_payment, user, reviewer
    ):
        created = authenticated_client.post(
            f"{BASE_URL}/refunds/",
            {"payment_id": str(completed_payment.id), "reason": "Duplicate charge"},
            format="json",
        )
        assert created.status_code == 201
        assert created.data["status"] == RefundStatus.PENDING
        assert created.data["amount"] == "600.00"
        assert created.data["requested_by"] == user.pk
        refund_id = created.data["id"]

        approved = reviewer_client.post(
            f"{BASE_URL}/refunds/{refund_id}/approve/",
            {"remarks": "Checked bank statement"},
            format="json",
        )
        assert approved.status_code == 200
        assert approved.data["status"] == RefundStatus.APPROVED
        assert approved.data["approved_by"] == reviewer.pk

        processed = reviewer_client.post(f"{BASE_URL}/refunds/{refund_id}/process/")
        assert processed.status_code == 200
        assert processed.data["refund"]["status"] == RefundStatus.COMPLETED
        assert processed.data["payment"]["status"] == PaymentStatus.REFUNDED
        assert processed.data["invoice"]["balance"] == "1000.00"
        assert processed.data["invoice"]["status"] == InvoiceStatus.PENDING

        retried = reviewer_client.post(f"{BASE_URL}/refunds/{refund_id}/process/")
        assert retried.status_code == 409
        assert retried.data["error_code"] == "INVALID_REFUND_STATE"
        assert retried.data["details"]["current_state"] == RefundStatus.COMPLETED

    def test_refund_for_unknown_payment(self, authenticated_client):
        response = authenticated_client.post(
            f"{BASE_URL}/refunds/",
            {"payment_id": str(uuid4()), "reason": "Duplicate charge"},
            format="json",
        )

        assert response.status_code == 404
        assert response.data["error_code"] == "PAYMENT_NOT_FOUND"

    def test_duplicate_request_conflicts(self, authenticated_client, pending_refund):
        response = authenticated_client.post(
            f"{BASE_URL}/refunds/",
            {"payment_id": str(pending_refund.payment_id), "reason": "Again"},
            format="json",
        )

        assert response.status_code == 409
        assert response.data["error_code"] == "DUPLICATE_REFUND_REQUEST"

    def test_reject_requires_reason(self, reviewer_client, pending_refund):
        response = reviewer_client.post(
            f"{BASE_URL}/refunds/{pending_refund.id}/reject/", {}, format="json"
        )

        assert response.status_code == 400
        assert "rejection_reason" in response.data

    def test_reject(self, reviewer_client, pending_refund, reviewer):
        response = reviewer_client.post(
            f"{BASE_URL}/refunds/{pending_refund.id}/reject/",
            {"rejection_reason": "Outside refund window"},
            format="json",
        )

        assert response.status_code == 200
        assert response.data["status"] == RefundStatus.REJECTED
        assert response.data["rejected_by"] == reviewer.pk

    def test_cancel_pending_request(self, authenticated_client, pending_refund):
        response = authenticated_client.delete(f"{BASE_URL}/refunds/{pending_refund.id}/")

        assert response.status_code == 204
        assert not Refund.objects.filter(pk=pending_refund.pk).exists()

    def test_cancel_approved_request_conflicts(self, authenticated_client, approved_refund):
        response = authenticated_client.delete(f"{BASE_URL}/refunds/{approved_refund.id}/")

        assert response.status_code == 409

    def test_retrieve(self, authenticated_client, pending_refund):
        response = authenticated_client.get(f"{BASE_URL}/refunds/{pending_refund.id}/")

        assert response.status_code == 200
        assert response.data["reason"] == "Duplicate charge"

    def test_list_defaults_to_pending(self, authenticated_client, pending_refund, db):
        RefundFactory(status=RefundStatus.REJECTED)

        response = authenticated_client.get(f"{BASE_URL}/refunds/")

        assert response.status_code == 200
        assert [item["id"] for item in response.data] == [str(pending_refund.id)]

    def test_list_filters(self, authenticated_client, db):
        rejected = RefundFactory(status=RefundStatus.REJECTED, student_id=77)
        RefundFactory(student_id=77)

        response = authenticated_client.get(
            f"{BASE_URL}/refunds/", {"status": "rejected", "student_id": 77}
        )

        assert [item["id"] for item in response.data] == [str(rejected.id)]

    def test_list_rejects_unknown_status(self, authenticated_client):
        response = authenticated_client.get(f"{BASE_URL}/refunds/", {"status": "lost"})

        assert response.status_code == 400

    def test_statistics(self, authenticated_client, db):
        RefundFactory()
        RefundFactory(status=RefundStatus.COMPLETED)

        response = authenticated_client.get(f"{BASE_URL}/refunds/statistics/")

        assert response.status_code == 200
        assert response.data["total"] == 2
        assert response.data["pending"] == 1
        assert response.data["completed"] == 1
        assert response.data["completed_amount"] == "600.00"
        assert response.data["total_amount"] == "1200.00"

    def test_statistics_rejects_inverted_range(self, authenticated_client):
        now = timezone.now()

        response = authenticated_client.get(
            f"{BASE_URL}/refunds/statistics/",
            {"start": now.isoformat(), "end": (now - timedelta(days=1)).isoformat()},
        )

        assert response.status_code == 400
        assert "end" in response.data


# =============================================================================
# Installment Plans
# =============================================================================


@pytest.mark.django_db
class TestInstallmentPlanEndpoints:
    def test_create_plan(self, authenticated_client, invoice, user):
        response = authenticated_client.post(
            f"{BASE_URL}/installment-plans/",
            {
                "invoice_id": str(invoice.id),
                "number_of_installments": 4,
                "start_date": "2025-06-01",
            },
            format="json",
        )

        assert response.status_code == 201
        assert response.data["installment_amount"] == "250.00"
        assert response.data["frequency"] == "monthly"
        assert response.data["status"] == InstallmentPlanStatus.ACTIVE
        assert response.data["created_by"] == user.pk

    def test_create_duplicate_plan_conflicts(self, authenticated_client, db):
        plan = InstallmentPlanFactory()

        response = authenticated_client.post(
            f"{BASE_URL}/installment-plans/",
            {
                "invoice_id": str(plan.invoice_id),
                "number_of_installments": 2,
                "start_date": "2025-06-01",
            },
            format="json",
        )

        assert response.status_code == 409
        assert response.data["error_code"] == "DUPLICATE_INSTALLMENT_PLAN"

    def test_create_requires_positive_count(self, authenticated_client, invoice):
        response = authenticated_client.post(
            f"{BASE_URL}/installment-plans/",
            {
                "invoice_id": str(invoice.id),
                "number_of_installments": 0,
                "start_date": "2025-06-01",
            },
            format="json",
        )

        assert response.status_code == 400
        assert not InstallmentPlan.objects.exists()

    def test_retrieve_plan(self, authenticated_client, db):
        plan = InstallmentPlanFactory()

        response = authenticated_client.get(f"{BASE_URL}/installment-plans/{plan.id}/")

        assert response.status_code == 200
        assert response.data["invoice"] == plan.invoice_id
        assert response.data["number_of_installments"] == 4

    def test_retrieve_missing_plan(self, authenticated_client):
        response = authenticated_client.get(f"{BASE_URL}/installment-plans/{uuid4()}/")

        assert response.status_code == 404
        assert response.data["error_code"] == "INSTALLMENT_PLAN_NOT_FOUND"

    def test_plan_by_invoice(self, authenticated_client, db):
        plan = InstallmentPlanFactory()

        response = authenticated_client.get(
            f"{BASE_URL}/installment-plans/by-invoice/",
            {"invoice_id": str(plan.invoice_id)},
        )

        assert response.status_code == 200
        assert response.data["id"] == str(plan.id)

    def test_plan_by_invoice_without_plan(self, authenticated_client, invoice):
        response = authenticated_client.get(
            f"{BASE_URL}/installment-plans/by-invoice/",
            {"invoice_id": str(invoice.id)},
        )

        assert response.status_code == 404
        assert response.data["details"] == {"invoice_id": str(invoice.id)}

    def test_pay_installment(self, authenticated_client, db, user):
        plan = InstallmentPlanFactory()

        response = authenticated_client.post(
            f"{BASE_URL}/installment-plans/{plan.id}/pay/",
            {"installment_number": 1, "method": "khalti", "external_ref": "KHT-77"},
            format="json",
        )

        assert response.status_code == 201
        assert response.data["payment"]["amount"] == "250.00"
        assert response.data["payment"]["installment_number"] == 1
        assert response.data["payment"]["received_by"] == user.pk
        assert response.data["invoice"]["balance"] == "750.00"
        assert response.data["plan"]["status"] == InstallmentPlanStatus.ACTIVE

    def test_pay_installment_twice_conflicts(self, authenticated_client, db):
        plan = InstallmentPlanFactory()
        url = f"{BASE_URL}/installment-plans/{plan.id}/pay/"
        authenticated_client.post(
            url, {"installment_number": 2, "method": "cash"}, format="json"
        )

        response = authenticated_client.post(
            url, {"installment_number": 2, "method": "cash"}, format="json"
        )

        assert response.status_code == 409
        assert response.data["error_code"] == "INSTALLMENT_ALREADY_PAID"
        assert Invoice.objects.get(pk=plan.invoice_id).balance == Decimal("750.00")

    def test_pay_installment_out_of_range(self, authenticated_client, db):
        plan = InstallmentPlanFactory()

        response = authenticated_client.post(
            f"{BASE_URL}/installment-plans/{plan.id}/pay/",
            {"installment_number": 5, "method": "cash"},
            format="json",
        )

        assert response.status_code == 400
        assert response.data["error_code"] == "INVALID_INSTALLMENT_NUMBER"

    def test_cancel_plan(self, authenticated_client, db, user):
        plan = InstallmentPlanFactory()

        response = authenticated_client.post(f"{BASE_URL}/installment-plans/{plan.id}/cancel/")

        assert response.status_code == 200
        assert response.data["status"] == InstallmentPlanStatus.CANCELLED
        assert response.data["cancelled_by"] == user.pk

    def test_cancel_closed_plan_conflicts(self, authenticated_client, db):
        plan = InstallmentPlanFactory(status=InstallmentPlanStatus.COMPLETED)

        response = authenticated_client.post(f"{BASE_URL}/installment-plans/{plan.id}/cancel/")

        assert response.status_code == 409
        assert response.data["details"]["current_state"] == InstallmentPlanStatus.COMPLETED


@pytest.mark.django_db
class TestHealthCheck:
    def test_healthy(self, client):
        response = client.get("/health/")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "database": "connected",
            "cache": "connected",
        }
