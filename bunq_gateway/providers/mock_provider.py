"""
Mock payment provider for development and tests.

An in-memory sandbox bank that mimics the parts of the bunq API the gateway
uses:
  - Configurable latency (default 0ms)
  - Configurable failure rate for payment request creation
  - bunq.me tabs with result inquiries, settled through settle()
  - Idempotent notification filter registration

The instance holds the sandbox state, so one instance is shared for the
lifetime of the process, the way a remote bank would be.
"""

import asyncio
import random
import uuid
from dataclasses import dataclass, field
from typing import Optional

from bunq_gateway.config import settings
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
from bunq_gateway.providers.errors import PermanentError, ProviderError

DEFAULT_ACCOUNTS = [
    BankAccount(id=1001, description="Main account", currency="EUR", iban="NL00BUNQ0000001001"),
    BankAccount(id=1002, description="Shop revenue", currency="EUR", iban="NL00BUNQ0000001002"),
]


@dataclass
class _Tab:
    request: PaymentRequestCreate
    detail: PaymentRequestDetail
    account_id: int
    redirect_url: str = ""
    inquiries: list[ResultInquiry] = field(default_factory=list)


class MockPaymentProvider(PaymentProvider):
    """In-memory bunq sandbox."""

    def __init__(
        self,
        failure_rate: Optional[float] = None,
        latency_ms: Optional[int] = None,
        accounts: Optional[list[BankAccount]] = None,
        hosted_page_url: Optional[str] = None,
    ):
        self._failure_rate = failure_rate if failure_rate is not None else settings.mock_failure_rate
        self._latency_ms = latency_ms if latency_ms is not None else settings.mock_latency_ms
        self._hosted_page_url = (hosted_page_url or settings.mock_hosted_page_url).rstrip("/")
        self.accounts = list(accounts) if accounts is not None else list(DEFAULT_ACCOUNTS)
        self.tabs: dict[str, _Tab] = {}
        self.notification_filters: set[tuple[Optional[int], str]] = set()
        self.contexts_created = 0

    @property
    def name(self) -> str:
        return "mock_provider"

    async def _simulate_latency(self) -> None:
        if self._latency_ms > 0:
            jitter = random.uniform(0.5, 1.5)
            await asyncio.sleep(self._latency_ms * jitter / 1000)

    def _resolve_account(self, account_id: Optional[int]) -> int:
        if account_id is None:
            return self.accounts[0].id
        if not any(a.id == account_id for a in self.accounts):
            raise PermanentError(f"Monetary account not found: {account_id}", status_code=404)
        return account_id

    async def create_payment_request(self, request: PaymentRequestCreate) -> PaymentRequestCreated:
        await self._simulate_latency()

        if random.random() < self._failure_rate:
            raise ProviderError(
                message="Mock transient error: service temporarily unavailable",
                status_code=503,
            )

        account_id = self._resolve_account(request.account_id)
        tab_id = str(uuid.uuid4().int % 10**9)
        redirect_url = f"{self._hosted_page_url}/{tab_id}"
        self.tabs[tab_id] = _Tab(
            request=request,
            detail=PaymentRequestDetail(id=tab_id),
            account_id=account_id,
            redirect_url=redirect_url,
        )
        return PaymentRequestCreated(id=tab_id, redirect_url=redirect_url)

    async def get_payment_request(
        self, request_id: str, account_id: Optional[int] = None
    ) -> PaymentRequestDetail:
        await self._simulate_latency()

        tab = self.tabs.get(str(request_id))
        if tab is None or tab.account_id != self._resolve_account(account_id):
            raise PermanentError(f"Payment request not found: {request_id}", status_code=404)

        return PaymentRequestDetail(
            id=tab.detail.id,
            status=tab.detail.status,
            result_inquiries=list(tab.inquiries),
        )

    def settle(
        self,
        request_id: str,
        value: Optional[str] = None,
        currency: Optional[str] = None,
    ) -> SettledPayment:
        """
        Simulate a shopper paying a tab on the hosted page.

        Defaults to the tab's own amount and currency.
        """
        tab = self.tabs.get(str(request_id))
        if tab is None:
            raise PermanentError(f"Payment request not found: {request_id}", status_code=404)

        payment = SettledPayment(
            id=str(uuid.uuid4().int % 10**9),
            amount=Amount(
                value=value if value is not None else tab.request.amount_value,
                currency=currency if currency is not None else tab.request.currency,
            ),
        )
        tab.inquiries.append(ResultInquiry(id=str(uuid.uuid4().int % 10**9), payment=payment))
        tab.detail.status = "PAID"
        return payment

    async def list_bank_accounts(self) -> list[BankAccount]:
        await self._simulate_latency()
        return list(self.accounts)

    async def ensure_notification_filters(
        self, callback_url: str, account_id: Optional[int] = None
    ) -> bool:
        key = (account_id, callback_url)
        if key in self.notification_filters:
            return False
        self.notification_filters.add(key)
        return True

    async def create_api_context(self, api_key: str, sandbox: bool) -> ApiContext:
        if not api_key:
            raise PermanentError("API key is required", status_code=401)
        self.contexts_created += 1
        return ApiContext(
            environment="SANDBOX" if sandbox else "PRODUCTION",
            api_key=api_key,
            installation_token=uuid.uuid4().hex,
            session_token=uuid.uuid4().hex,
            user_id=1,
        )
