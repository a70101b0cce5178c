"""
Billing models.

Models:
    Invoice: What a student owes, with a running balance
    Payment: Money received against an invoice
    Refund: Request to reverse a completed payment
    InstallmentPlan: Invoice balance split into equal installments
"""

from billing.models.installment_plan import InstallmentPlan
from billing.models.invoice import Invoice
from billing.models.payment import Payment
from billing.models.refund import Refund

__all__ = [
    "InstallmentPlan",
    "Invoice",
    "Payment",
    "Refund",
]
