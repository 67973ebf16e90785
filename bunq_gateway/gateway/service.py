"""
The bunq payment gateway.

A plain service object built once at startup from process settings and a
provider factory. Every call receives its own database session and builds
its own provider client from the stored API context of the active mode, so
nothing request-scoped lives on the gateway itself.
"""

import ipaddress
import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bunq_gateway.audit.logger import log_event
from bunq_gateway.config import Settings
from bunq_gateway.engine.correlation import CorrelationAmbiguous, record_request_id
from bunq_gateway.engine.issuer import issue_payment_request
from bunq_gateway.engine.notifications import MalformedNotification, parse_notification
from bunq_gateway.engine.reconciler import reconcile
from bunq_gateway.models.enums import OrderStatus, ReconcileOutcome
from bunq_gateway.models.order import GatewayConfig
from bunq_gateway.orders.cart import CartStore
from bunq_gateway.orders.repository import OrderRepository
from bunq_gateway.providers import ProviderFactory
from bunq_gateway.providers.base import BankAccount, PaymentProvider
from bunq_gateway.providers.errors import IssueError, ProviderError
from bunq_gateway.providers.mock_provider import MockPaymentProvider

logger = logging.getLogger("bunq_gateway.gateway")

GATEWAY_ID = "bunq"
CALLBACK_PATH = "/api/bunq/callback"
CONFIG_FIELDS = {
    "enabled",
    "title",
    "description",
    "testmode",
    "test_api_key",
    "api_key",
    "monetary_account_bank_id",
}
# API key field -> the API context opened with it
CONTEXT_FIELDS = {
    "test_api_key": "test_api_context",
    "api_key": "api_context",
}


class OrderNotFound(Exception):
    def __init__(self, order_id: str):
        super().__init__(f"Order not found: {order_id}")
        self.order_id = order_id


@dataclass
class CheckoutResult:
    result: str  # "success" or "failure"
    redirect: Optional[str] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.result == "success"


def is_loopback(host: Optional[str]) -> bool:
    """True for 127.0.0.1, ::1 and the rest of the loopback ranges."""
    if not host:
        return False
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return host == "localhost"


class BunqGateway:
    def __init__(self, app_settings: Settings, factory: ProviderFactory):
        self.settings = app_settings
        self._factory = factory

    @property
    def callback_url(self) -> str:
        return f"{self.settings.public_base_url.rstrip('/')}{CALLBACK_PATH}"

    def return_url(self, order_id: str) -> str:
        return f"{self.settings.public_base_url.rstrip('/')}/checkout/order-received/{order_id}"

    @property
    def sandbox(self) -> Optional[MockPaymentProvider]:
        """The in-memory sandbox bank, when running against the mock provider."""
        if self.settings.provider != "mock":
            return None
        provider = self._factory(None)
        return provider if isinstance(provider, MockPaymentProvider) else None

    # -- configuration ---------------------------------------------------

    async def load_config(self, session: AsyncSession) -> GatewayConfig:
        config = await session.get(GatewayConfig, 1)
        if config is None:
            config = GatewayConfig(id=1)
            session.add(config)
            await session.flush()
        return config

    @staticmethod
    def account_id(config: GatewayConfig) -> Optional[int]:
        if config.monetary_account_bank_id and config.monetary_account_bank_id > 0:
            return int(config.monetary_account_bank_id)
        return None

    @staticmethod
    def active_api_key(config: GatewayConfig) -> Optional[str]:
        return config.test_api_key if config.testmode else config.api_key

    @staticmethod
    def active_api_context(config: GatewayConfig) -> Optional[str]:
        return config.test_api_context if config.testmode else config.api_context

    def provider_for(self, config: GatewayConfig) -> PaymentProvider:
        return self._factory(self.active_api_context(config))

    async def save_config(
        self,
        session: AsyncSession,
        fields: dict[str, Any],
        client_host: Optional[str] = None,
    ) -> GatewayConfig:
        """
        Save admin settings and refresh the bunq session for the active mode.

        The API context of the active mode is regenerated whenever an API key
        is present. Notification filters are registered unless the admin is
        working from a loopback address, which bunq could not call back.

        A changed API key drops the context opened with the old key in the
        same commit, so a failed regeneration leaves no context at all.

        Raises:
            ProviderError: If bunq rejects the credentials or filter setup.
                The plain settings are saved regardless.
        """
        config = await self.load_config(session)
        for key, value in fields.items():
            if key not in CONFIG_FIELDS:
                continue
            if key in CONTEXT_FIELDS and value != getattr(config, key):
                setattr(config, CONTEXT_FIELDS[key], None)
            setattr(config, key, value)
        await session.commit()

        api_key = self.active_api_key(config)
        if not api_key:
            return config

        async with self._factory(None) as provider:
            context = await provider.create_api_context(api_key, sandbox=config.testmode)
            if config.testmode:
                config.test_api_context = context.to_json()
            else:
                config.api_context = context.to_json()
            await log_event(session, "api_context_created", details={
                "environment": context.environment,
            })
            await session.commit()

            if is_loopback(client_host):
                logger.info("Admin on loopback address %s, notification filters skipped", client_host)
                return config

            added = await provider.ensure_notification_filters(self.callback_url, self.account_id(config))
            if added:
                await log_event(session, "notification_filter_added", details={
                    "callback_url": self.callback_url,
                    "account_id": self.account_id(config),
                })
                await session.commit()

        return config

    async def bank_accounts(self, session: AsyncSession) -> list[BankAccount]:
        config = await self.load_config(session)
        try:
            async with self.provider_for(config) as provider:
                return await provider.list_bank_accounts()
        except ProviderError as e:
            logger.warning("Could not list bunq accounts: %s", e)
            return []

    # -- checkout ----------------------------------------------------------

    async def process_payment(
        self,
        session: AsyncSession,
        order_id: str,
        return_url: Optional[str] = None,
    ) -> CheckoutResult:
        """
        Create a bunq payment request for an order and return the redirect.

        The payment request id is committed onto the order before the
        redirect is handed out; if that fails the checkout fails.

        Raises:
            OrderNotFound: If the order does not exist.
        """
        repo = OrderRepository(session)
        order = await repo.get_order(order_id)
        if order is None:
            raise OrderNotFound(order_id)

        config = await self.load_config(session)
        if not config.enabled:
            return CheckoutResult(result="failure", message="bunq payments are not enabled")
        if order.status != OrderStatus.PENDING.value:
            return CheckoutResult(result="failure", message=f"Order is {order.status}")

        reference = f"#{order.order_number}"
        try:
            async with self.provider_for(config) as provider:
                created = await issue_payment_request(
                    provider,
                    amount=order.total,
                    currency=order.currency,
                    reference=reference,
                    return_url=return_url or self.return_url(order.id),
                    account_id=self.account_id(config),
                )
        except IssueError as e:
            await log_event(session, "checkout_failed", order_id=order.id, details={
                "stage": "issue",
                "error": str(e),
            })
            await session.commit()
            return CheckoutResult(result="failure", message="Payment could not be started, please try again")

        try:
            await record_request_id(session, order, created.id)
            order.payment_method = GATEWAY_ID
            repo.add_note(order, f"bunq payment_request created {created.id}")
            await repo.save(order)
            await log_event(session, "payment_request_created", order_id=order.id, details={
                "payment_request_id": created.id,
                "amount": str(order.total),
                "currency": order.currency,
                "account_id": self.account_id(config),
            })
            await session.commit()
        except (CorrelationAmbiguous, SQLAlchemyError) as e:
            await session.rollback()
            logger.error("Could not link payment request %s to order %s: %s", created.id, order_id, e)
            await log_event(session, "checkout_failed", order_id=order_id, details={
                "stage": "correlate",
                "payment_request_id": created.id,
                "error": str(e),
            })
            await session.commit()
            return CheckoutResult(result="failure", message="Payment could not be started, please try again")

        return CheckoutResult(result="success", redirect=created.redirect_url)

    # -- callbacks ----------------------------------------------------------

    async def handle_callback(
        self,
        session: AsyncSession,
        body: bytes,
        params: Optional[dict[str, Any]] = None,
    ) -> Optional[ReconcileOutcome]:
        """
        Process one bunq notification.

        Malformed and unrelated notifications are discarded and return None.
        A delivery that loses the race to store the payment id against a
        parallel delivery of the same notification is a replay.

        Raises:
            ProviderError: Only when bunq could not be reached with a
                retriable error, so the caller can ask for redelivery.
        """
        try:
            notification = parse_notification(body, params)
        except MalformedNotification as e:
            logger.warning("Discarding malformed bunq notification: %s", e)
            return None

        if not notification.is_payment_request_result():
            logger.debug(
                "Discarding bunq notification %s/%s",
                notification.category,
                notification.event_type,
            )
            return None

        request_id = notification.referenced_payment_request_id
        config = await self.load_config(session)
        try:
            async with self.provider_for(config) as provider:
                outcome = await reconcile(
                    session,
                    provider,
                    request_id,
                    account_id=self.account_id(config),
                    carts=CartStore(session),
                )
            await session.commit()
        except IntegrityError as e:
            # Another delivery stored the payment id first
            await session.rollback()
            logger.info("Payment request %s reconciled concurrently, notification ignored: %s", request_id, e.orig)
            await log_event(session, "notification_replayed", details={
                "payment_request_id": request_id,
                "concurrent": True,
            })
            await session.commit()
            return ReconcileOutcome.IGNORED
        except ProviderError as e:
            await session.rollback()
            logger.warning("Payment request %s could not be fetched: %s", request_id, e)
            if e.retriable:
                raise
            await log_event(session, "reconcile_failed", details={
                "payment_request_id": request_id,
                "error": str(e),
            })
            await session.commit()
            return None

        return outcome
