from bunq_gateway.gateway.service import BunqGateway, CheckoutResult, OrderNotFound

__all__ = ["BunqGateway", "CheckoutResult", "OrderNotFound"]
