"""
Abstract payment provider interface.

The gateway talks to bunq exclusively through this interface. The real
implementation wraps the bunq public REST API (see bunq.py); the mock
provider is an in-memory sandbox bank used for development and tests.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Optional


@dataclass
class PaymentRequestCreate:
    """Request to create a bunq.me payment request (tab)."""

    amount_value: str  # Decimal string at the currency's precision, e.g. "49.95"
    currency: str  # ISO 4217
    description: str  # Human readable reference, e.g. "#1023"
    redirect_url: str  # Where bunq sends the shopper after paying
    account_id: Optional[int] = None  # Monetary account receiving funds (None = primary)


@dataclass
class PaymentRequestCreated:
    """Identifier and hosted page of a newly created payment request."""

    id: str
    redirect_url: str


@dataclass
class Amount:
    value: str
    currency: str


@dataclass
class SettledPayment:
    """A completed transfer of funds attached to a payment request."""

    id: str
    amount: Amount


@dataclass
class ResultInquiry:
    """One result inquiry on a payment request; may or may not carry a payment."""

    id: Optional[str] = None
    payment: Optional[SettledPayment] = None


@dataclass
class PaymentRequestDetail:
    id: str
    status: str = "WAITING_FOR_PAYMENT"
    result_inquiries: list[ResultInquiry] = field(default_factory=list)

    @property
    def settled_payments(self) -> list[SettledPayment]:
        return [ri.payment for ri in self.result_inquiries if ri.payment is not None]


@dataclass
class BankAccount:
    """A monetary account (sub-account) able to receive funds."""

    id: int
    description: str
    currency: str = "EUR"
    iban: Optional[str] = None


@dataclass
class ApiContext:
    """
    Opaque bunq API session context.

    Stored as a JSON blob per mode (test/live) and regenerated whenever the
    credentials are saved. Only the provider client looks inside it.
    """

    environment: str  # "SANDBOX" or "PRODUCTION"
    api_key: str
    installation_token: Optional[str] = None
    server_public_key: Optional[str] = None
    session_token: Optional[str] = None
    user_id: Optional[int] = None

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, blob: str) -> "ApiContext":
        return cls(**json.loads(blob))


class PaymentProvider(ABC):
    """Abstract base class for payment providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier (e.g. 'bunq', 'mock_provider')."""
        ...

    @abstractmethod
    async def create_payment_request(self, request: PaymentRequestCreate) -> PaymentRequestCreated:
        """
        Create a redirectable payment request.

        Raises:
            ProviderError: On network, authentication or validation failure.
        """
        ...

    @abstractmethod
    async def get_payment_request(
        self, request_id: str, account_id: Optional[int] = None
    ) -> PaymentRequestDetail:
        """Fetch a payment request including all of its result inquiries."""
        ...

    @abstractmethod
    async def list_bank_accounts(self) -> list[BankAccount]:
        """List the active monetary accounts of the API user."""
        ...

    @abstractmethod
    async def ensure_notification_filters(
        self, callback_url: str, account_id: Optional[int] = None
    ) -> bool:
        """
        Make sure bunq pushes BUNQME_TAB events to callback_url.

        Idempotent. Returns True when a filter was added, False when it
        already existed.
        """
        ...

    @abstractmethod
    async def create_api_context(self, api_key: str, sandbox: bool) -> ApiContext:
        """Open a new API session for the given credentials."""
        ...

    async def aclose(self) -> None:
        """Release client resources. No-op by default."""
        return None

    async def __aenter__(self) -> "PaymentProvider":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
