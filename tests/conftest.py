"""Shared test fixtures."""

from decimal import Decimal
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from bunq_gateway.config import Settings
from bunq_gateway.gateway.service import BunqGateway
from bunq_gateway.models.order import Base, CartItem, GatewayConfig, Order
from bunq_gateway.providers.base import (
    Amount,
    ApiContext,
    BankAccount,
    PaymentProvider,
    PaymentRequestCreate,
    PaymentRequestCreated,
    PaymentRequestDetail,
    ResultInquiry,
    SettledPayment,
)
from bunq_gateway.providers.mock_provider import MockPaymentProvider


class ScriptedProvider(PaymentProvider):
    """Provider returning canned responses and recording every call."""

    def __init__(self):
        self.next_request = PaymentRequestCreated(id="req-1", redirect_url="https://pay.example/req-1")
        self.details: dict[str, PaymentRequestDetail] = {}
        self.create_error: Optional[Exception] = None
        self.detail_error: Optional[Exception] = None
        self.context_error: Optional[Exception] = None
        self.created: list[PaymentRequestCreate] = []
        self.detail_calls: list[tuple[str, Optional[int]]] = []
        self.filters: list[tuple[str, Optional[int]]] = []
        self.contexts: list[tuple[str, bool]] = []

    @property
    def name(self) -> str:
        return "scripted"

    def settle(self, request_id: str, *payments: tuple[str, str, str]) -> None:
        """Attach settled payments given as (payment_id, value, currency)."""
        self.details[request_id] = PaymentRequestDetail(
            id=request_id,
            status="PAID",
            result_inquiries=[
                ResultInquiry(id=f"ri-{pid}", payment=SettledPayment(id=pid, amount=Amount(value=value, currency=currency)))
                for pid, value, currency in payments
            ],
        )

    async def create_payment_request(self, request: PaymentRequestCreate) -> PaymentRequestCreated:
        self.created.append(request)
        if self.create_error:
            raise self.create_error
        return self.next_request

    async def get_payment_request(self, request_id: str, account_id: Optional[int] = None) -> PaymentRequestDetail:
        self.detail_calls.append((request_id, account_id))
        if self.detail_error:
            raise self.detail_error
        return self.details.get(request_id, PaymentRequestDetail(id=request_id))

    async def list_bank_accounts(self) -> list[BankAccount]:
        return [BankAccount(id=7, description="Shop")]

    async def ensure_notification_filters(self, callback_url: str, account_id: Optional[int] = None) -> bool:
        if (callback_url, account_id) in self.filters:
            return False
        self.filters.append((callback_url, account_id))
        return True

    async def create_api_context(self, api_key: str, sandbox: bool) -> ApiContext:
        self.contexts.append((api_key, sandbox))
        if self.context_error:
            raise self.context_error
        return ApiContext(
            environment="SANDBOX" if sandbox else "PRODUCTION",
            api_key=api_key,
            session_token=f"session-{len(self.contexts)}",
            user_id=42,
        )


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        public_base_url="https://shop.example",
        provider="mock",
    )


@pytest.fixture
def scripted_provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def sandbox() -> MockPaymentProvider:
    return MockPaymentProvider(failure_rate=0.0, latency_ms=0)


@pytest.fixture
def gateway(test_settings, scripted_provider) -> BunqGateway:
    return BunqGateway(test_settings, lambda api_context: scripted_provider)


@pytest_asyncio.fixture
async def db_session():
    """Create a fresh in-memory database for each test."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def seeded_session(db_session: AsyncSession):
    """Database session with the gateway enabled, orders and a shopper cart."""
    db_session.add(GatewayConfig(id=1, enabled=True, testmode=True))
    orders = [
        Order(id="ord-1023", order_number="1023", total=Decimal("49.95"), currency="EUR", cart_session_id="sess-1023"),
        Order(id="ord-1024", order_number="1024", total=Decimal("10.01"), currency="EUR", cart_session_id="sess-1024"),
        Order(id="ord-1025", order_number="1025", total=Decimal("10.00"), currency="GBP"),
    ]
    for order in orders:
        db_session.add(order)

    db_session.add(CartItem(session_id="sess-1023", sku="TSHIRT-M", quantity=1))
    db_session.add(CartItem(session_id="sess-1023", sku="SOCKS-42", quantity=2))
    db_session.add(CartItem(session_id="sess-1024", sku="MUG-BLUE", quantity=1))
    await db_session.commit()

    yield db_session
