"""
Payment request issuance.

Creates a bunq.me tab for an order total. No retries: a failed issuance
fails the checkout attempt and the shopper can try again.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from bunq_gateway.providers.base import PaymentProvider, PaymentRequestCreate, PaymentRequestCreated
from bunq_gateway.providers.errors import IssueError, ProviderError

logger = logging.getLogger("bunq_gateway.issuer")

# ISO 4217 currencies without minor units; everything else uses cents.
ZERO_DECIMAL_CURRENCIES = {"BIF", "CLP", "DJF", "GNF", "ISK", "JPY", "KMF", "KRW", "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF"}


def minor_unit_exponent(currency: str) -> int:
    return 0 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 2


def format_amount(amount: Union[Decimal, str, int], currency: str) -> str:
    """
    Render an amount at the currency's minor-unit precision.

    Raises:
        IssueError: If the amount is not a finite, non-negative number or
            carries more precision than the currency allows.
    """
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError) as e:
        raise IssueError(f"Invalid amount: {amount!r}", status_code=400) from e

    if not value.is_finite() or value < 0:
        raise IssueError(f"Invalid amount: {amount!r}", status_code=400)

    quantum = Decimal(1).scaleb(-minor_unit_exponent(currency))
    quantized = value.quantize(quantum)
    if quantized != value:
        raise IssueError(f"Amount {amount} exceeds {currency} precision", status_code=400)
    return str(quantized)


async def issue_payment_request(
    provider: PaymentProvider,
    amount: Union[Decimal, str, int],
    currency: str,
    reference: str,
    return_url: str,
    account_id: Optional[int] = None,
) -> PaymentRequestCreated:
    """
    Ask the provider for a redirectable payment request.

    Args:
        provider: Payment provider implementation.
        amount: The order's current total.
        currency: ISO 4217 code of the order.
        reference: Human readable reference shown to the payer, e.g. "#1023".
        return_url: Where the shopper lands after paying.
        account_id: Sub-account receiving funds; None for the provider default.

    Returns:
        The payment request id and the hosted page to redirect to.

    Raises:
        IssueError: If the input is invalid or the provider call fails.
    """
    request = PaymentRequestCreate(
        amount_value=format_amount(amount, currency),
        currency=currency,
        description=reference,
        redirect_url=return_url,
        account_id=account_id,
    )

    try:
        created = await provider.create_payment_request(request)
    except IssueError:
        raise
    except ProviderError as e:
        logger.warning("Payment request for %s rejected by %s: %s", reference, provider.name, e)
        raise IssueError(str(e), status_code=e.status_code, retriable=e.retriable) from e

    if not created.id or not created.redirect_url:
        raise IssueError(f"{provider.name} returned an incomplete payment request")

    logger.info(
        "Payment request %s created for %s (%s %s)",
        created.id,
        reference,
        request.currency,
        request.amount_value,
    )
    return created
