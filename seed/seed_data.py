"""
Seed the database with demo orders.

Creates:
  - A handful of pending orders in EUR with shopper carts
  - A zero-decimal currency order (JPY) to exercise minor-unit formatting
  - Gateway configuration enabled in test mode

Run:
    python -m seed.seed_data
"""

import asyncio
from decimal import Decimal

from bunq_gateway.database import async_session, init_db
from bunq_gateway.models.order import CartItem, GatewayConfig, Order


ORDERS = [
    {"order_number": "1023", "total": Decimal("49.95"), "currency": "EUR", "customer_email": "anna@example.com", "cart_session_id": "sess-1023"},
    {"order_number": "1024", "total": Decimal("12.50"), "currency": "EUR", "customer_email": "bram@example.com", "cart_session_id": "sess-1024"},
    {"order_number": "1025", "total": Decimal("249.00"), "currency": "EUR", "customer_email": "chloe@example.com", "cart_session_id": "sess-1025"},
    {"order_number": "1026", "total": Decimal("0.01"), "currency": "EUR", "customer_email": "daan@example.com", "cart_session_id": None},
    {"order_number": "1027", "total": Decimal("3500"), "currency": "JPY", "customer_email": "eiji@example.com", "cart_session_id": "sess-1027"},
]

CARTS = {
    "sess-1023": [("TSHIRT-M", 1), ("SOCKS-42", 2)],
    "sess-1024": [("MUG-BLUE", 1)],
    "sess-1025": [("JACKET-L", 1)],
    "sess-1027": [("TEA-SENCHA", 3)],
}


async def seed():
    await init_db()

    async with async_session() as session:
        if await session.get(GatewayConfig, 1) is None:
            session.add(GatewayConfig(id=1, enabled=True, testmode=True))

        for data in ORDERS:
            session.add(Order(**data))

        for session_id, lines in CARTS.items():
            for sku, quantity in lines:
                session.add(CartItem(session_id=session_id, sku=sku, quantity=quantity))

        await session.commit()

    print(f"Seeded {len(ORDERS)} orders and {sum(len(v) for v in CARTS.values())} cart lines")


if __name__ == "__main__":
    asyncio.run(seed())
