"""
bunq checkout gateway.

Accepts shop payments through bunq.me payment requests: creates a payment
request per checkout, redirects the shopper to bunq's hosted page and
completes the order when bunq calls back with a matching payment.

Start the server:
    uvicorn bunq_gateway.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from bunq_gateway.api.checkout import router as checkout_router
from bunq_gateway.api.gateway import router as gateway_router
from bunq_gateway.api.health import router as health_router
from bunq_gateway.api.orders import router as orders_router
from bunq_gateway.api.webhook import router as webhook_router
from bunq_gateway.config import settings
from bunq_gateway.database import init_db
from bunq_gateway.gateway.service import BunqGateway
from bunq_gateway.providers import provider_factory

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database and the gateway service on startup."""
    await init_db()
    app.state.gateway = BunqGateway(settings, provider_factory(settings))
    yield


app = FastAPI(
    title="bunq Checkout Gateway",
    description=(
        "Payment gateway connecting a shop checkout to bunq. Creates bunq.me "
        "payment requests, redirects shoppers to the hosted payment page and "
        "reconciles bunq callbacks against orders exactly once."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(orders_router, prefix="/api")
app.include_router(checkout_router, prefix="/api")
app.include_router(webhook_router, prefix="/api")
app.include_router(gateway_router, prefix="/api")
