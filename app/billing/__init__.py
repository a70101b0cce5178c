"""
Billing app for the student fee ledger.

This app handles:
- Invoice issuance, cancellation and discount review
- Payment recording from gateway confirmations and cash receipts
- Refund requests, approval and settlement
- The daily overdue sweep

Fee computation and gateway protocols live elsewhere. This app receives an
already-computed invoice total and a "payment confirmed / failed" signal.

Usage:
    from billing.services import PaymentService, RefundService

    payment = PaymentService().record_payment(invoice_id, "600.00", "cash")
    refund = RefundService().create_refund_request(payment.id, "Duplicate", requested_by=7)
"""
