"""
Invoice balance maintenance.

The only code allowed to change an invoice's paid_amount, balance and
derived status. Everything here is pure: no database access, no clock
access beyond an injectable ``today``, no mutation of the input.

After any call the returned invoice satisfies:

    0 <= paid_amount <= total_amount
    balance == total_amount - paid_amount
    status == derive_status(...)

Usage:
    from billing.balance import apply_payment_delta

    updated = apply_payment_delta(invoice, Decimal("600.00"))
    store.save_invoice(uow, updated)
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING

from django.utils import timezone

from billing.exceptions import InvalidLedgerState, InvoiceCancelled
from billing.state_machines import InvoiceStatus

if TYPE_CHECKING:
    from datetime import date
    from decimal import Decimal

    from billing.models import Invoice


def derive_status(
    paid_amount: Decimal,
    total_amount: Decimal,
    due_date: date,
    cancelled: bool = False,
    today: date | None = None,
) -> InvoiceStatus:
    """
    Compute an invoice's status from its amounts and due date.

    Rules, first match wins:
        cancelled                         -> CANCELLED
        balance == 0                      -> PAID
        balance > 0 and due_date < today  -> OVERDUE
        balance == total_amount           -> PENDING
        otherwise                         -> PARTIAL

    A partially paid invoice past its due date is OVERDUE.
    """
    if cancelled:
        return InvoiceStatus.CANCELLED

    balance = total_amount - paid_amount
    if balance == 0:
        return InvoiceStatus.PAID

    today = today or timezone.localdate()
    if due_date < today:
        return InvoiceStatus.OVERDUE
    if balance == total_amount:
        return InvoiceStatus.PENDING
    return InvoiceStatus.PARTIAL


def apply_payment_delta(
    invoice: Invoice,
    amount_delta: Decimal,
    today: date | None = None,
) -> Invoice:
    """
    Apply a signed change to the amount paid against an invoice.

    Positive deltas record money received, negative deltas reverse it
    (refund settlement).

    Args:
        invoice: Current invoice state (left untouched)
        amount_delta: Signed amount to add to paid_amount
        today: Date used for overdue derivation (defaults to local today)

    Returns:
        A copy of the invoice with paid_amount, balance and status updated.
        The caller persists it.

    Raises:
        InvoiceCancelled: The invoice is cancelled.
        InvalidLedgerState: The new paid amount would be negative or exceed
            the invoice total. Never clamped.
    """
    if invoice.status == InvoiceStatus.CANCELLED:
        raise InvoiceCancelled(
            f"Invoice {invoice.invoice_number} is cancelled",
            details={
                "invoice_id": str(invoice.id),
                "current_state": invoice.status,
            },
        )

    new_paid = invoice.paid_amount + amount_delta
    if new_paid < 0 or new_paid > invoice.total_amount:
        raise InvalidLedgerState(
            "Paid amount would fall outside the invoice total",
            details={
                "invoice_id": str(invoice.id),
                "total_amount": str(invoice.total_amount),
                "paid_amount": str(invoice.paid_amount),
                "amount_delta": str(amount_delta),
                "current_state": invoice.status,
            },
        )

    updated = copy.copy(invoice)
    updated.paid_amount = new_paid
    updated.balance = invoice.total_amount - new_paid
    updated.status = derive_status(
        new_paid,
        invoice.total_amount,
        invoice.due_date,
        today=today,
    )
    return updated
