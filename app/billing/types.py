"""
Data types for billing operations.

Types:
    parse_amount: Normalize caller input into a two-decimal money value
    RefundSettlement: Records touched by a refund settlement
    InstallmentPayment: Records touched by an installment payment
    RefundStatistics: Aggregate counts and sums over refunds
    PaymentStatistics: Completed payment counts and sums per method

Money is always decimal.Decimal with two places (NPR paisa precision).
Floats never enter the ledger.

Usage:
    from billing.types import parse_amount

    amount = parse_amount("1500.50")  # Decimal("1500.50")
    parse_amount(-1)  # raises InvalidAmount
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from billing.exceptions import InvalidAmount

if TYPE_CHECKING:
    from typing import Any

    from billing.models import InstallmentPlan, Invoice, Payment, Refund


# Column size for every money field (NUMERIC(12, 2))
MONEY_DIGITS = 12
MONEY_PLACES = 2

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
MAX_AMOUNT = Decimal(10) ** (MONEY_DIGITS - MONEY_PLACES) - CENT


def parse_amount(value: Any, field: str = "amount", allow_zero: bool = False) -> Decimal:
    """
    Convert a caller-supplied amount to a Decimal with two places.

    Accepts Decimal, int and numeric strings. Floats are converted through
    their repr so 10.1 stays 10.10 rather than 10.0999...

    Raises:
        InvalidAmount: Non-numeric, non-finite, more than two decimal
            places, negative, larger than a money column holds, or zero
            when allow_zero is False.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidAmount(
            f"{field} must be a number",
            details={field: value},
        )
    try:
        amount = Decimal(str(value)) if not isinstance(value, Decimal) else value
    except (InvalidOperation, ValueError):
        raise InvalidAmount(
            f"{field} must be a number",
            details={field: str(value)},
        ) from None

    if not amount.is_finite():
        raise InvalidAmount(f"{field} must be finite", details={field: str(value)})
    if abs(amount) > MAX_AMOUNT:
        raise InvalidAmount(
            f"{field} cannot exceed {MAX_AMOUNT}",
            details={field: str(value), "max_amount": str(MAX_AMOUNT)},
        )
    if amount != amount.quantize(CENT):
        raise InvalidAmount(
            f"{field} cannot have more than two decimal places",
            details={field: str(value)},
        )
    if amount < 0:
        raise InvalidAmount(f"{field} cannot be negative", details={field: str(value)})
    if amount == 0 and not allow_zero:
        raise InvalidAmount(
            f"{field} must be greater than zero",
            details={field: str(value)},
        )
    return amount.quantize(CENT)


@dataclass
class RefundSettlement:
    """
    Result of settling an approved refund.

    All three records were written in the same unit of work.
    """

    refund: Refund
    payment: Payment
    invoice: Invoice


@dataclass
class InstallmentPayment:
    """
    Result of paying one installment.

    plan is completed when this payment covered the last unpaid installment.
    """

    payment: Payment
    plan: InstallmentPlan
    invoice: Invoice


@dataclass
class RefundStatistics:
    """
    Counts and sums over refunds requested within a date range.

    Amount sums cover refunds currently in that status; total_amount
    covers every refund in range regardless of status.
    """

    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    completed: int = 0
    total_amount: Decimal = ZERO
    approved_amount: Decimal = ZERO
    completed_amount: Decimal = ZERO

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class MethodTotals:
    """Completed payments received through one payment method."""

    count: int = 0
    amount: Decimal = ZERO


@dataclass
class PaymentStatistics:
    """
    Counts and sums over completed payments dated within a range.

    by_method only lists methods that received at least one payment.
    """

    total_count: int = 0
    total_amount: Decimal = ZERO
    by_method: dict[str, MethodTotals] = field(default_factory=dict)

    def add(self, method: str, amount: Decimal) -> None:
        totals = self.by_method.setdefault(method, MethodTotals())
        totals.count += 1
        totals.amount += amount
        self.total_count += 1
        self.total_amount += amount

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
