"""
Pytest fixtures for billing tests.

Two flavours of service fixtures are provided:
- invoice_service / payment_service / refund_service run on the database
  through DjangoLedgerStore
- memory_*_service share one InMemoryLedgerStore, for rollback and
  threaded tests that must not depend on the database backend

All services record audit events into ``audit_sink``. On the database,
events are delivered after commit, so wrap the call in
``django_capture_on_commit_callbacks(execute=True)`` to see them.

Usage:
    def test_settlement(refund_service, approved_refund):
        settlement = refund_service.process_refund(approved_refund.id)
        assert settlement.invoice.balance == Decimal("1000.00")
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from billing.audit import AuditTrail
from billing.services import InvoiceService, PaymentService, RefundService
from billing.state_machines import PaymentMethod
from billing.tests.factories import UserFactory
from billing.tests.memory_store import InMemoryLedgerStore

STUDENT_ID = 42


class RecordingAuditSink:
    """Audit sink that keeps every event in memory."""

    def __init__(self):
        self.events = []

    def emit(self, event):
        self.events.append(event)

    def for_entity(self, entity_type):
        return [event for event in self.events if event.entity_type == entity_type]


# =============================================================================
# User and Client Fixtures
# =============================================================================


@pytest.fixture
def user(db):
    """Staff user who requests refunds and records payments."""
    return UserFactory()


@pytest.fixture
def reviewer(db):
    """Staff user who reviews refunds and discounts."""
    return UserFactory()


@pytest.fixture
def api_client():
    """Unauthenticated API client."""
    return APIClient()


@pytest.fixture
def authenticated_client_factory():
    """Build an API client authenticated as the given user with a JWT."""

    def _make(user):
        client = APIClient()
        refresh = RefreshToken.for_user(user)
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh.access_token}")
        return client

    return _make


@pytest.fixture
def authenticated_client(authenticated_client_factory, user):
    return authenticated_client_factory(user)


@pytest.fixture
def reviewer_client(authenticated_client_factory, reviewer):
    return authenticated_client_factory(reviewer)


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def audit_sink():
    return RecordingAuditSink()


@pytest.fixture
def audit(audit_sink):
    return AuditTrail(sink=audit_sink)


@pytest.fixture
def invoice_service(db, audit):
    return InvoiceService(audit=audit)


@pytest.fixture
def payment_service(db, audit):
    return PaymentService(audit=audit)


@pytest.fixture
def refund_service(db, audit):
    return RefundService(audit=audit)


@pytest.fixture
def memory_store():
    return InMemoryLedgerStore()


@pytest.fixture
def memory_invoice_service(memory_store, audit):
    return InvoiceService(store=memory_store, audit=audit)


@pytest.fixture
def memory_payment_service(memory_store, audit):
    return PaymentService(store=memory_store, audit=audit)


@pytest.fixture
def memory_refund_service(memory_store, audit):
    return RefundService(store=memory_store, audit=audit)


# =============================================================================
# Ledger State Fixtures
# =============================================================================


@pytest.fixture
def due_date():
    return timezone.localdate() + timedelta(days=30)


@pytest.fixture
def invoice(invoice_service, due_date):
    """Unpaid 1000.00 invoice issued through the service."""
    return invoice_service.create_invoice(
        student_id=STUDENT_ID,
        subtotal=Decimal("1000.00"),
        due_date=due_date,
    )


@pytest.fixture
def completed_payment(payment_service, invoice, user):
    """600.00 eSewa payment applied to ``invoice`` (balance 400.00)."""
    return payment_service.record_payment(
        invoice.id,
        Decimal("600.00"),
        PaymentMethod.ESEWA,
        "ESW-000123",
        received_by=user.pk,
    )


@pytest.fixture
def pending_refund(refund_service, completed_payment, user):
    return refund_service.create_refund_request(
        completed_payment.id,
        reason="Duplicate charge",
        requested_by=user.pk,
    )


@pytest.fixture
def approved_refund(refund_service, pending_refund, reviewer):
    return refund_service.approve_refund(pending_refund.id, approved_by=reviewer.pk)


@pytest.fixture
def memory_approved_refund(memory_invoice_service, memory_payment_service, memory_refund_service, due_date):
    """
    Approved refund of a 600.00 payment on a 1000.00 invoice, in memory.

    Returns (invoice, payment, refund) as they were after approval.
    """
    invoice = memory_invoice_service.create_invoice(
        student_id=STUDENT_ID,
        subtotal=Decimal("1000.00"),
        due_date=due_date,
    )
    payment = memory_payment_service.record_payment(
        invoice.id, Decimal("600.00"), PaymentMethod.CASH
    )
    refund = memory_refund_service.create_refund_request(
        payment.id, reason="Duplicate charge", requested_by=1
    )
    refund = memory_refund_service.approve_refund(refund.id, approved_by=2)
    return invoice, payment, refund
