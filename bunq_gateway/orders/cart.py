"""Shopper cart handle passed explicitly into order completion."""

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bunq_gateway.models.order import CartItem


class CartStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def count(self, session_id: str) -> int:
        result = await self.session.execute(
            select(func.count(CartItem.id)).where(CartItem.session_id == session_id)
        )
        return result.scalar_one()

    async def empty(self, session_id: str) -> int:
        """Remove all lines of a shopper's cart. Returns the number removed."""
        result = await self.session.execute(
            delete(CartItem).where(CartItem.session_id == session_id)
        )
        return result.rowcount or 0
