"""
Order platform collaborator.

The gateway never touches order rows directly; it goes through this
repository, which offers the operations an e-commerce platform exposes to
payment gateways: fetch, note, metadata, save, and the canonical
"payment complete" transition.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bunq_gateway.audit.logger import append_note
from bunq_gateway.models.enums import OrderStatus
from bunq_gateway.models.order import Order, OrderMeta

logger = logging.getLogger("bunq_gateway.orders")


class OrderRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_order(self, order_id: str) -> Optional[Order]:
        return await self.session.get(Order, order_id)

    def add_note(self, order: Order, text: str) -> None:
        order.notes = append_note(order.notes, text)

    async def get_metadata(self, order: Order, key: str) -> Optional[str]:
        result = await self.session.execute(
            select(OrderMeta.meta_value).where(
                OrderMeta.order_id == order.id,
                OrderMeta.meta_key == key,
            )
        )
        return result.scalar_one_or_none()

    async def set_metadata(self, order: Order, key: str, value: str) -> None:
        """Set a metadata value, replacing any previous value for the key."""
        result = await self.session.execute(
            select(OrderMeta).where(
                OrderMeta.order_id == order.id,
                OrderMeta.meta_key == key,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            self.session.add(OrderMeta(order_id=order.id, meta_key=key, meta_value=value))
        else:
            row.meta_value = value

    async def find_by_metadata(self, key: str, value: str) -> list[Order]:
        """
        All orders whose metadata `key` equals `value` exactly.

        Not limited: callers rely on the full count to detect ambiguity.
        """
        result = await self.session.execute(
            select(Order)
            .join(OrderMeta, OrderMeta.order_id == Order.id)
            .where(OrderMeta.meta_key == key, OrderMeta.meta_value == value)
            .order_by(Order.created_at.desc())
        )
        return list(result.scalars().unique().all())

    async def save(self, order: Order) -> None:
        self.session.add(order)
        await self.session.flush()

    async def mark_paid(self, order: Order, transaction_id: Optional[str] = None) -> bool:
        """
        Complete payment for an order.

        Idempotent: an order that is already paid is left untouched and
        False is returned.
        """
        if order.status == OrderStatus.PAID.value:
            logger.info("Order %s already paid, completion skipped", order.order_number)
            return False

        order.status = OrderStatus.PAID.value
        order.paid_at = datetime.now(timezone.utc)
        if transaction_id:
            order.transaction_id = transaction_id
        await self.save(order)
        return True
