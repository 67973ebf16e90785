"""
Settled payment matching with categorized mismatch reasons.

A settled payment settles an order only when:
  1. It is a payment at all (a result inquiry may have none)
  2. Its currency equals the order currency exactly
  3. Its amount equals the order total exactly, compared as Decimal

Amounts arrive from bunq as decimal strings ("49.95"); order totals are
Decimal. Float conversion is never used, so "10.00" vs 10.01 is a mismatch
and "49.950" vs 49.95 is a match.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

from bunq_gateway.models.enums import MismatchReason
from bunq_gateway.providers.base import SettledPayment


@dataclass
class MatchResult:
    """Result of matching one settled payment against an order."""

    matched: bool
    reason: Optional[MismatchReason] = None
    message: str = ""


def match_payment(
    payment: Optional[SettledPayment],
    order_total: Decimal,
    order_currency: str,
) -> MatchResult:
    """
    Check whether a settled payment pays an order in full.

    Args:
        payment: Settled payment from a result inquiry (may be None).
        order_total: The order's total.
        order_currency: ISO 4217 code of the order.

    Returns:
        MatchResult indicating match or the categorized mismatch.
    """
    if payment is None:
        return MatchResult(matched=False, reason=MismatchReason.NO_PAYMENT, message="Result inquiry without payment")

    if payment.amount.currency != order_currency:
        return MatchResult(
            matched=False,
            reason=MismatchReason.CURRENCY_MISMATCH,
            message=f"Currency {payment.amount.currency} does not match order currency {order_currency}",
        )

    try:
        paid = Decimal(str(payment.amount.value))
    except (InvalidOperation, ValueError):
        return MatchResult(
            matched=False,
            reason=MismatchReason.INVALID_AMOUNT,
            message=f"Unparsable amount: {payment.amount.value!r}",
        )

    if not paid.is_finite() or paid != Decimal(str(order_total)):
        return MatchResult(
            matched=False,
            reason=MismatchReason.AMOUNT_MISMATCH,
            message=f"Paid {payment.amount.value} {payment.amount.currency}, expected {order_total} {order_currency}",
        )

    return MatchResult(matched=True)
