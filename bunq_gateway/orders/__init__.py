from bunq_gateway.orders.cart import CartStore
from bunq_gateway.orders.repository import OrderRepository

__all__ = ["CartStore", "OrderRepository"]
