from typing import Callable, Optional

from bunq_gateway.config import Settings
from bunq_gateway.providers.base import ApiContext, PaymentProvider
from bunq_gateway.providers.bunq import BunqProvider
from bunq_gateway.providers.errors import IssueError, PermanentError, ProviderError
from bunq_gateway.providers.mock_provider import MockPaymentProvider

ProviderFactory = Callable[[Optional[str]], PaymentProvider]


def provider_factory(app_settings: Settings) -> ProviderFactory:
    """
    Build the per-request provider factory for the configured backend.

    The factory takes the stored API context blob of the active mode. The
    mock sandbox is a single shared instance; bunq clients are built fresh
    for each request and closed afterwards.
    """
    if app_settings.provider == "mock":
        sandbox = MockPaymentProvider()
        return lambda api_context: sandbox

    if app_settings.provider == "bunq":
        def build(api_context: Optional[str]) -> PaymentProvider:
            context = ApiContext.from_json(api_context) if api_context else None
            return BunqProvider(context=context)
        return build

    raise ValueError(f"Unknown payment provider: {app_settings.provider}")


__all__ = [
    "ApiContext",
    "BunqProvider",
    "IssueError",
    "MockPaymentProvider",
    "PaymentProvider",
    "PermanentError",
    "ProviderError",
    "ProviderFactory",
    "provider_factory",
]
