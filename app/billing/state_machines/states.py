"""
State enums for billing models.

These are Django TextChoices for database storage and admin integration.
Payment and Refund status are driven by django-fsm transitions on the
models; Invoice status is derived from amounts by billing.balance.

State Machines Overview:

Invoice Status (derived):
    pending → partial → paid
    pending/partial → overdue (due date passed with a balance left)
    paid → partial/pending/overdue (after a refund settles)
    pending → cancelled (only while nothing has been paid)

Payment Status:
    pending → completed → refunded
    pending → failed

Refund Status:
    pending → approved → completed
    pending → rejected
    pending → (removed on cancellation)

Installment Plan Status:
    active → completed (every installment paid)
    active → cancelled
"""

from django.db import models


class InvoiceStatus(models.TextChoices):
    """
    Payment status of an Invoice.

    Everything except CANCELLED is computed from paid_amount, total_amount
    and due_date. CANCELLED is sticky: a cancelled invoice accepts no
    further balance changes.
    """

    PENDING = "pending", "Pending"
    PARTIAL = "partial", "Partially Paid"
    PAID = "paid", "Paid"
    OVERDUE = "overdue", "Overdue"
    CANCELLED = "cancelled", "Cancelled"


class DiscountApprovalStatus(models.TextChoices):
    """
    Approval sub-state of an Invoice discount.

    Orthogonal to InvoiceStatus. NONE means no discount was granted.
    """

    NONE = "none", "No Discount"
    PENDING = "pending", "Pending Approval"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"


class PaymentStatus(models.TextChoices):
    """
    States for the Payment model lifecycle.

    Terminal states: FAILED, REFUNDED

    State Flow:
        PENDING → COMPLETED → REFUNDED
        PENDING → FAILED
    """

    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"


class PaymentMethod(models.TextChoices):
    """How the money arrived."""

    CASH = "cash", "Cash"
    BANK_TRANSFER = "bank_transfer", "Bank Transfer"
    ESEWA = "esewa", "eSewa"
    KHALTI = "khalti", "Khalti"
    IME_PAY = "ime_pay", "IME Pay"


class RefundStatus(models.TextChoices):
    """
    States for the Refund model lifecycle.

    Terminal states: REJECTED, COMPLETED

    State Flow:
        PENDING → APPROVED → COMPLETED
        PENDING → REJECTED
    """

    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    COMPLETED = "completed", "Completed"


# Refund states that block another refund request on the same payment
ACTIVE_REFUND_STATUSES = (RefundStatus.PENDING, RefundStatus.APPROVED)


class InstallmentPlanStatus(models.TextChoices):
    """
    States for the InstallmentPlan model lifecycle.

    Terminal states: COMPLETED, CANCELLED
    """

    ACTIVE = "active", "Active"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"


class InstallmentFrequency(models.TextChoices):
    """How far apart installments fall due."""

    MONTHLY = "monthly", "Monthly"
    QUARTERLY = "quarterly", "Quarterly"
    CUSTOM = "custom", "Custom"
