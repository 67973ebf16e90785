from bunq_gateway.models.enums import (
    MismatchReason,
    NotificationCategory,
    NotificationEvent,
    OrderStatus,
    ReconcileOutcome,
)
from bunq_gateway.models.order import AuditLog, Base, CartItem, GatewayConfig, Order, OrderMeta

__all__ = [
    "Base",
    "Order",
    "OrderMeta",
    "CartItem",
    "GatewayConfig",
    "AuditLog",
    "OrderStatus",
    "ReconcileOutcome",
    "MismatchReason",
    "NotificationCategory",
    "NotificationEvent",
]
