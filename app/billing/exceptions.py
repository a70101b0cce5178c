"""
Billing-specific exceptions for ledger operations.

Every failure the billing services raise is a BillingError, grouped by what
the caller can do about it:

Exception Hierarchy:
    BillingError (base for the billing domain)
    ├── not found (HTTP 404)
    │   ├── InvoiceNotFound
    │   ├── PaymentNotFound
    │   ├── RefundNotFound
    │   └── InstallmentPlanNotFound
    ├── state precondition (HTTP 409, details carry the current state)
    │   ├── InvalidRefundState
    │   ├── PaymentNotRefundable
    │   ├── DuplicateRefundRequest
    │   ├── InconsistentPaymentState
    │   ├── InvoiceCancelled
    │   ├── InvoiceNotCancellable
    │   ├── DiscountNotPending
    │   ├── DuplicatePaymentReference
    │   ├── DocumentNumberConflict
    │   ├── InvoiceHasNoBalance
    │   ├── DuplicateInstallmentPlan
    │   ├── InstallmentPlanNotActive
    │   └── InstallmentAlreadyPaid
    ├── validation (HTTP 400)
    │   ├── InvalidAmount
    │   └── InvalidInstallmentNumber
    └── invariant violation (HTTP 409)
        └── InvalidLedgerState

Usage:
    from billing.exceptions import InvalidRefundState

    raise InvalidRefundState(
        "Only pending refunds can be approved",
        details={"refund_id": str(refund.id), "current_state": refund.status},
    )

Any of these raised inside a unit of work rolls the whole unit back.
"""

from __future__ import annotations

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    InvariantViolationError,
    NotFoundError,
    ValidationError,
)


class BillingError(BaseApplicationError):
    """
    Base exception for all billing operations.

    Example:
        try:
            RefundService().process_refund(refund_id)
        except BillingError as e:
            return Response(e.to_dict(), status=e.status_code)
    """

    default_error_code: str = "BILLING_ERROR"


# =============================================================================
# Not Found
# =============================================================================


class BillingNotFoundError(BillingError, NotFoundError):
    """Base for lookups of billing records that do not exist (or are deleted)."""

    default_error_code: str = "BILLING_RECORD_NOT_FOUND"


class InvoiceNotFound(BillingNotFoundError):
    default_error_code: str = "INVOICE_NOT_FOUND"


class PaymentNotFound(BillingNotFoundError):
    default_error_code: str = "PAYMENT_NOT_FOUND"


class RefundNotFound(BillingNotFoundError):
    default_error_code: str = "REFUND_NOT_FOUND"


class InstallmentPlanNotFound(BillingNotFoundError):
    default_error_code: str = "INSTALLMENT_PLAN_NOT_FOUND"


# =============================================================================
# State Preconditions
# =============================================================================


class BillingStateError(BillingError, ConflictError):
    """
    Base for operations refused because of a record's current state.

    details always include "current_state" so the caller can show or
    act on it without another lookup.
    """

    default_error_code: str = "BILLING_STATE_CONFLICT"


class InvalidRefundState(BillingStateError):
    """Refund is not in the state the requested transition starts from."""

    default_error_code: str = "INVALID_REFUND_STATE"


class PaymentNotRefundable(BillingStateError):
    """A refund was requested for a payment that is not completed."""

    default_error_code: str = "PAYMENT_NOT_REFUNDABLE"


class DuplicateRefundRequest(BillingStateError):
    """The payment already has a pending or approved refund."""

    default_error_code: str = "DUPLICATE_REFUND_REQUEST"


class InconsistentPaymentState(BillingStateError):
    """
    An approved refund points at a payment that is no longer completed.

    Seen when the payment was changed outside the refund workflow after
    approval.
    """

    default_error_code: str = "INCONSISTENT_PAYMENT_STATE"


class InvoiceCancelled(BillingStateError):
    """The invoice is cancelled and accepts no further balance changes."""

    default_error_code: str = "INVOICE_CANCELLED"


class InvoiceNotCancellable(BillingStateError):
    """The invoice already has money applied against it."""

    default_error_code: str = "INVOICE_NOT_CANCELLABLE"


class DiscountNotPending(BillingStateError):
    """Discount approval was reviewed already, or there is no discount."""

    default_error_code: str = "DISCOUNT_NOT_PENDING"


class DuplicatePaymentReference(BillingStateError):
    """The gateway transaction reference was already recorded."""

    default_error_code: str = "DUPLICATE_PAYMENT_REFERENCE"


class DocumentNumberConflict(BillingStateError):
    """
    A concurrent writer took the invoice or receipt number being issued.

    Raised once the services give up re-allocating. Safe to retry.
    """

    default_error_code: str = "DOCUMENT_NUMBER_CONFLICT"


class InvoiceHasNoBalance(BillingStateError):
    """Nothing is left to pay on the invoice."""

    default_error_code: str = "INVOICE_HAS_NO_BALANCE"


class DuplicateInstallmentPlan(BillingStateError):
    """The invoice already has an active installment plan."""

    default_error_code: str = "DUPLICATE_INSTALLMENT_PLAN"


class InstallmentPlanNotActive(BillingStateError):
    """The plan is completed or cancelled."""

    default_error_code: str = "INSTALLMENT_PLAN_NOT_ACTIVE"


class InstallmentAlreadyPaid(BillingStateError):
    """A completed payment already covers this installment."""

    default_error_code: str = "INSTALLMENT_ALREADY_PAID"


# =============================================================================
# Validation
# =============================================================================


class InvalidAmount(BillingError, ValidationError):
    """
    Amount is not a positive, finite, two-decimal money value.

    Raised before any record is read.
    """

    default_error_code: str = "INVALID_AMOUNT"


class InvalidInstallmentNumber(BillingError, ValidationError):
    """Installment number or count outside the plan's range."""

    default_error_code: str = "INVALID_INSTALLMENT_NUMBER"


# =============================================================================
# Invariant Violations
# =============================================================================


class InvalidLedgerState(BillingError, InvariantViolationError):
    """
    Applying a change would push paid_amount outside [0, total_amount].

    The balance maintainer raises this instead of clamping.
    """

    default_error_code: str = "INVALID_LEDGER_STATE"
