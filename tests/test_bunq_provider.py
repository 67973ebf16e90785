"""Tests for the bunq REST client against a mocked transport."""

import json

import httpx
import pytest

from bunq_gateway.providers.base import ApiContext, PaymentRequestCreate
from bunq_gateway.providers.bunq import BunqProvider
from bunq_gateway.providers.errors import PermanentError, ProviderError

SANDBOX = "https://sandbox.bunq.test/v1"
CONTEXT = ApiContext(environment="SANDBOX", api_key="key", session_token="sess-token", user_id=42)


class FakeBunq:
    """Records requests and answers from a route table."""

    def __init__(self, routes):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path.removeprefix("/v1"))
        handler = self.routes.get(key)
        if handler is None:
            return httpx.Response(404, json={"Error": [{"error_description": f"No route {key}"}]})
        if callable(handler):
            return handler(request)
        status, body = handler
        return httpx.Response(status, json=body)


def _provider(routes, context=CONTEXT, public_key="-----BEGIN PUBLIC KEY-----"):
    fake = FakeBunq(routes)
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake))
    provider = BunqProvider(
        context=context,
        client=client,
        sandbox_url=SANDBOX,
        production_url="https://api.bunq.test/v1",
        client_public_key=public_key,
    )
    return provider, fake


ACCOUNTS = {
    "Response": [
        {"MonetaryAccountBank": {"id": 11, "description": "Main", "currency": "EUR", "status": "ACTIVE",
                                 "alias": [{"type": "IBAN", "value": "NL01BUNQ0000000011"}]}},
        {"MonetaryAccountBank": {"id": 12, "description": "Closed", "currency": "EUR", "status": "CANCELLED", "alias": []}},
        {"MonetaryAccountBank": {"id": 13, "description": "Shop", "currency": "EUR", "status": "ACTIVE", "alias": []}},
    ]
}


@pytest.mark.asyncio
async def test_create_api_context_handshake():
    provider, fake = _provider({
        ("POST", "/installation"): (200, {"Response": [
            {"Id": {"id": 1}},
            {"Token": {"token": "install-token"}},
            {"ServerPublicKey": {"server_public_key": "server-key"}},
        ]}),
        ("POST", "/device-server"): (200, {"Response": [{"Id": {"id": 2}}]}),
        ("POST", "/session-server"): (200, {"Response": [
            {"Id": {"id": 3}},
            {"Token": {"token": "session-token"}},
            {"UserCompany": {"id": 77}},
        ]}),
    }, context=None)

    context = await provider.create_api_context("api-key", sandbox=True)

    assert context.environment == "SANDBOX"
    assert context.session_token == "session-token"
    assert context.user_id == 77
    assert ApiContext.from_json(context.to_json()) == context

    paths = [r.url.path for r in fake.requests]
    assert paths == ["/v1/installation", "/v1/device-server", "/v1/session-server"]
    assert fake.requests[1].headers["X-Bunq-Client-Authentication"] == "install-token"
    assert json.loads(fake.requests[2].content) == {"secret": "api-key"}


@pytest.mark.asyncio
async def test_create_api_context_requires_public_key():
    provider, fake = _provider({}, context=None, public_key="")
    with pytest.raises(PermanentError):
        await provider.create_api_context("api-key", sandbox=True)
    assert fake.requests == []


@pytest.mark.asyncio
async def test_calls_without_context_fail():
    provider, _ = _provider({}, context=None)
    with pytest.raises(PermanentError):
        await provider.list_bank_accounts()


@pytest.mark.asyncio
async def test_list_bank_accounts_only_active():
    provider, fake = _provider({("GET", "/user/42/monetary-account-bank"): (200, ACCOUNTS)})

    accounts = await provider.list_bank_accounts()

    assert [a.id for a in accounts] == [11, 13]
    assert accounts[0].iban == "NL01BUNQ0000000011"
    assert fake.requests[0].headers["X-Bunq-Client-Authentication"] == "sess-token"


@pytest.mark.asyncio
async def test_create_payment_request():
    provider, fake = _provider({
        ("POST", "/user/42/monetary-account/13/bunqme-tab"): (200, {"Response": [{"Id": {"id": 555}}]}),
        ("GET", "/user/42/monetary-account/13/bunqme-tab/555"): (200, {"Response": [
            {"BunqMeTab": {"id": 555, "status": "WAITING_FOR_PAYMENT",
                           "bunqme_tab_share_url": "https://bunq.me/t/555", "result_inquiries": []}},
        ]}),
    })

    created = await provider.create_payment_request(PaymentRequestCreate(
        amount_value="49.95",
        currency="EUR",
        description="#1023",
        redirect_url="https://shop.example/return",
        account_id=13,
    ))

    assert created.id == "555"
    assert created.redirect_url == "https://bunq.me/t/555"
    sent = json.loads(fake.requests[0].content)
    assert sent == {"bunqme_tab_entry": {
        "amount_inquired": {"value": "49.95", "currency": "EUR"},
        "description": "#1023",
        "redirect_url": "https://shop.example/return",
    }}


@pytest.mark.asyncio
async def test_create_payment_request_defaults_to_first_active_account():
    provider, fake = _provider({
        ("GET", "/user/42/monetary-account-bank"): (200, ACCOUNTS),
        ("POST", "/user/42/monetary-account/11/bunqme-tab"): (200, {"Response": [{"Id": {"id": 1}}]}),
        ("GET", "/user/42/monetary-account/11/bunqme-tab/1"): (200, {"Response": [
            {"BunqMeTab": {"id": 1, "bunqme_tab_share_url": "https://bunq.me/t/1"}},
        ]}),
    })

    created = await provider.create_payment_request(PaymentRequestCreate(
        amount_value="1.00", currency="EUR", description="#1", redirect_url="https://shop.example/r",
    ))

    assert created.id == "1"


@pytest.mark.asyncio
async def test_get_payment_request_parses_result_inquiries():
    provider, _ = _provider({
        ("GET", "/user/42/monetary-account/13/bunqme-tab/555"): (200, {"Response": [
            {"BunqMeTab": {"id": 555, "status": "PAID", "result_inquiries": [
                {"id": 1, "payment": {"Payment": {"id": 9001, "amount": {"value": "49.95", "currency": "EUR"}}}},
                {"id": 2, "payment": None},
            ]}},
        ]}),
    })

    detail = await provider.get_payment_request("555", account_id=13)

    assert detail.status == "PAID"
    assert len(detail.result_inquiries) == 2
    assert [p.id for p in detail.settled_payments] == ["9001"]
    assert detail.settled_payments[0].amount.value == "49.95"


@pytest.mark.asyncio
async def test_notification_filters_are_idempotent():
    registered = []

    def listing(request):
        return httpx.Response(200, json={"Response": [{"NotificationFilterUrl": f} for f in registered]})

    def create(request):
        registered[:] = json.loads(request.content)["notification_filters"]
        return httpx.Response(200, json={"Response": []})

    provider, fake = _provider({
        ("GET", "/user/42/monetary-account/13/notification-filter-url"): listing,
        ("POST", "/user/42/monetary-account/13/notification-filter-url"): create,
    })

    assert await provider.ensure_notification_filters("https://shop.example/cb", account_id=13) is True
    assert await provider.ensure_notification_filters("https://shop.example/cb", account_id=13) is False
    assert registered == [{"category": "BUNQME_TAB", "notification_target": "https://shop.example/cb"}]
    assert [r.method for r in fake.requests] == ["GET", "POST", "GET"]


@pytest.mark.asyncio
async def test_user_level_filters_without_account():
    provider, fake = _provider({
        ("GET", "/user/42/notification-filter-url"): (200, {"Response": []}),
        ("POST", "/user/42/notification-filter-url"): (200, {"Response": []}),
    })

    assert await provider.ensure_notification_filters("https://shop.example/cb") is True


@pytest.mark.asyncio
async def test_server_errors_are_retriable():
    provider, _ = _provider({
        ("GET", "/user/42/monetary-account-bank"): (503, {"Error": [{"error_description": "Maintenance"}]}),
    })

    with pytest.raises(ProviderError) as exc_info:
        await provider.list_bank_accounts()

    assert exc_info.value.retriable is True
    assert str(exc_info.value) == "Maintenance"


@pytest.mark.asyncio
async def test_client_errors_are_permanent():
    provider, _ = _provider({
        ("GET", "/user/42/monetary-account/13/bunqme-tab/1"): (400, {"Error": [{"error_description": "Bad tab"}]}),
    })

    with pytest.raises(PermanentError) as exc_info:
        await provider.get_payment_request("1", account_id=13)

    assert exc_info.value.retriable is False
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_transport_errors_are_retriable():
    def boom(request):
        raise httpx.ConnectError("connection refused", request=request)

    provider, _ = _provider({("GET", "/user/42/monetary-account-bank"): boom})

    with pytest.raises(ProviderError) as exc_info:
        await provider.list_bank_accounts()

    assert exc_info.value.retriable is True


@pytest.mark.asyncio
async def test_malformed_payment_detail_is_permanent():
    provider, _ = _provider({
        ("GET", "/user/42/monetary-account/13/bunqme-tab/555"): (200, {"Response": [
            {"BunqMeTab": {"id": 555, "status": "PAID", "result_inquiries": [
                {"id": 1, "payment": {"Payment": {"id": 9001}}},
            ]}},
        ]}),
    })

    with pytest.raises(ProviderError) as exc_info:
        await provider.get_payment_request("555", account_id=13)

    assert exc_info.value.retriable is False


@pytest.mark.asyncio
async def test_unexpected_envelope_is_permanent():
    provider, _ = _provider({("GET", "/user/42/monetary-account-bank"): (200, ["not", "an", "envelope"])})

    with pytest.raises(ProviderError) as exc_info:
        await provider.list_bank_accounts()

    assert exc_info.value.retriable is False
