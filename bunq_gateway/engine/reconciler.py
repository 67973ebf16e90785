"""
Payment reconciliation: the notification to order state machine.

For a payment request id pushed by bunq:

  1. Correlation (exactly one order holds the id, otherwise NOT_FOUND)
  2. Replay guard (order already carries a bunq payment id -> IGNORED)
  3. Detail fetch (payment request + result inquiries, scoped to the sub-account)
  4. Matching (first settled payment with exact currency and amount)
  5. Completion (payment id, note, mark paid, empty cart) -> COMPLETED

No match leaves the order pending: AMOUNT_MISMATCH when something was paid,
IGNORED when nothing has settled yet.

Idempotency is best effort. The replay guard plus the platform's own
idempotent mark_paid keep a redelivered notification from completing an
order twice; a true compare-and-set would need the order platform's
transactions.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from bunq_gateway.audit.logger import log_event
from bunq_gateway.engine.correlation import (
    PAYMENT_ID_KEY,
    CorrelationAmbiguous,
    find_order_by_request_id,
)
from bunq_gateway.engine.matching import match_payment
from bunq_gateway.models.enums import ReconcileOutcome
from bunq_gateway.orders.cart import CartStore
from bunq_gateway.orders.repository import OrderRepository
from bunq_gateway.providers.base import PaymentProvider

logger = logging.getLogger("bunq_gateway.reconciler")


async def reconcile(
    session: AsyncSession,
    provider: PaymentProvider,
    request_id: str,
    account_id: Optional[int] = None,
    carts: Optional[CartStore] = None,
) -> ReconcileOutcome:
    """
    Reconcile a payment request against its order.

    Args:
        session: Database session. Not committed here.
        provider: Payment provider implementation.
        request_id: bunq.me tab id referenced by the notification.
        account_id: Configured sub-account, or None for the default account.
        carts: Cart handle used to empty the shopper's cart on completion.

    Returns:
        The reconciliation outcome.

    Raises:
        ProviderError: If the payment request detail cannot be fetched.
    """
    try:
        order = await find_order_by_request_id(session, request_id)
    except CorrelationAmbiguous as e:
        await log_event(session, "correlation_failed", details={
            "payment_request_id": request_id,
            "match_count": e.match_count,
        })
        return ReconcileOutcome.NOT_FOUND

    repo = OrderRepository(session)

    existing_payment_id = await repo.get_metadata(order, PAYMENT_ID_KEY)
    if existing_payment_id:
        logger.info(
            "Order %s already reconciled with payment %s, notification ignored",
            order.order_number,
            existing_payment_id,
        )
        await log_event(session, "notification_replayed", order_id=order.id, details={
            "payment_request_id": request_id,
            "payment_id": existing_payment_id,
        })
        return ReconcileOutcome.IGNORED

    detail = await provider.get_payment_request(request_id, account_id)

    mismatches = []
    for inquiry in detail.result_inquiries:
        payment = inquiry.payment
        if payment is None:
            continue

        result = match_payment(payment, order.total, order.currency)
        if not result.matched:
            mismatches.append({
                "payment_id": payment.id,
                "reason": result.reason.value if result.reason else "unknown",
                "message": result.message,
            })
            continue

        repo.add_note(order, f"bunq payment received {payment.id}")
        await repo.set_metadata(order, PAYMENT_ID_KEY, payment.id)
        await repo.save(order)

        completed = await repo.mark_paid(order, transaction_id=payment.id)

        emptied = 0
        if carts is not None and order.cart_session_id:
            emptied = await carts.empty(order.cart_session_id)

        await log_event(session, "order_completed", order_id=order.id, details={
            "payment_request_id": request_id,
            "payment_id": payment.id,
            "amount": payment.amount.value,
            "currency": payment.amount.currency,
            "status_changed": completed,
            "cart_lines_removed": emptied,
        })
        logger.info("Order %s paid by bunq payment %s", order.order_number, payment.id)
        return ReconcileOutcome.COMPLETED

    if mismatches:
        await log_event(session, "payment_mismatch", order_id=order.id, details={
            "payment_request_id": request_id,
            "expected": f"{order.total} {order.currency}",
            "mismatches": mismatches,
        })
        logger.warning(
            "Order %s: %d settled payment(s) on %s, none matching %s %s",
            order.order_number,
            len(mismatches),
            request_id,
            order.total,
            order.currency,
        )
        return ReconcileOutcome.AMOUNT_MISMATCH

    await log_event(session, "no_settled_payment", order_id=order.id, details={
        "payment_request_id": request_id,
        "status": detail.status,
    })
    return ReconcileOutcome.IGNORED
