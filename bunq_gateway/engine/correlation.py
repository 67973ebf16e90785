"""
Order correlation by bunq payment request id.

The payment request id is stored as order metadata at issuance time and is
the only key used to map a notification back to its order. Lookups are
exact string matches and must resolve to exactly one order.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from bunq_gateway.models.order import Order
from bunq_gateway.orders.repository import OrderRepository

logger = logging.getLogger("bunq_gateway.correlation")

PAYMENT_REQUEST_ID_KEY = "bunq_payment_request_id"
PAYMENT_ID_KEY = "bunq_payment_id"


class CorrelationAmbiguous(Exception):
    """Zero or several orders hold the same payment request id."""

    def __init__(self, request_id: str, match_count: int):
        super().__init__(f"{match_count} orders match payment request {request_id}")
        self.request_id = request_id
        self.match_count = match_count


async def record_request_id(session: AsyncSession, order: Order, request_id: str) -> None:
    """
    Attach a payment request id to an order.

    A new checkout attempt on the same order replaces the previous id.

    Raises:
        CorrelationAmbiguous: If another order already holds the id.
    """
    repo = OrderRepository(session)
    holders = await repo.find_by_metadata(PAYMENT_REQUEST_ID_KEY, str(request_id))
    if any(holder.id != order.id for holder in holders):
        raise CorrelationAmbiguous(str(request_id), len({holder.id for holder in holders}))

    await repo.set_metadata(order, PAYMENT_REQUEST_ID_KEY, str(request_id))


async def find_order_by_request_id(session: AsyncSession, request_id: str) -> Order:
    """
    Resolve the single order holding `request_id`.

    Raises:
        CorrelationAmbiguous: If no order or more than one order matches.
    """
    orders = await OrderRepository(session).find_by_metadata(PAYMENT_REQUEST_ID_KEY, str(request_id))
    if len(orders) != 1:
        logger.warning("Payment request %s matched %d orders, no action taken", request_id, len(orders))
        raise CorrelationAmbiguous(str(request_id), len(orders))
    return orders[0]
