"""
Billing services.

Each service takes an optional LedgerStore and AuditTrail so tests can run
against an in-memory store.
"""

from billing.services.base import LedgerService
from billing.services.invoice_service import InvoiceService
from billing.services.payment_service import PaymentService
from billing.services.refund_service import RefundService

__all__ = [
    "InvoiceService",
    "LedgerService",
    "PaymentService",
    "RefundService",
]
