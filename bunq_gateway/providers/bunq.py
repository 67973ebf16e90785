"""
bunq public API client.

Thin async REST adapter over httpx covering the calls the gateway needs:

  POST /installation, /device-server, /session-server   open an API context
  GET  /user/{u}/monetary-account-bank                   list sub-accounts
  POST /user/{u}/monetary-account/{a}/bunqme-tab         create payment request
  GET  /user/{u}/monetary-account/{a}/bunqme-tab/{id}    payment request detail
  GET/POST .../notification-filter-url                   callback registration

bunq wraps every response as {"Response": [{"<Type>": {...}}, ...]}.
Request signing is left to the transport passed in as `client`.
"""

import logging
import uuid
from typing import Any, Optional

import httpx

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

logger = logging.getLogger("bunq_gateway.providers.bunq")

RETRIABLE_STATUS_CODES = {429, 502, 503, 504}
NOTIFICATION_CATEGORY = "BUNQME_TAB"
USER_TYPES = ("UserPerson", "UserCompany", "UserApiKey", "UserPaymentServiceProvider")


def _items(payload: dict[str, Any], kind: str) -> list[dict[str, Any]]:
    """Extract all objects of one type from a bunq Response envelope."""
    if not isinstance(payload, dict) or not isinstance(payload.get("Response", []), list):
        raise ProviderError("Unexpected bunq response envelope", retriable=False)
    return [
        entry[kind]
        for entry in payload.get("Response", [])
        if isinstance(entry, dict) and isinstance(entry.get(kind), dict)
    ]


def _field(obj: Any, *path: str) -> Any:
    """
    Walk nested keys of a bunq object.

    A missing key or a non-object on the way is a malformed response that
    retrying will not fix.
    """
    value = obj
    for key in path:
        if not isinstance(value, dict) or value.get(key) is None:
            raise ProviderError(f"Unexpected bunq response, missing {'.'.join(path)}", retriable=False)
        value = value[key]
    return value


def _first(payload: dict[str, Any], kind: str) -> dict[str, Any]:
    found = _items(payload, kind)
    if not found:
        raise ProviderError(f"Unexpected bunq response, missing {kind}", retriable=False)
    return found[0]


def _error_message(response: httpx.Response) -> str:
    try:
        errors = response.json().get("Error", [])
        if errors:
            return errors[0].get("error_description", response.text)
    except (ValueError, AttributeError):
        pass
    return response.text or f"HTTP {response.status_code}"


class BunqProvider(PaymentProvider):
    """PaymentProvider backed by the bunq public API."""

    def __init__(
        self,
        context: Optional[ApiContext] = None,
        client: Optional[httpx.AsyncClient] = None,
        sandbox_url: Optional[str] = None,
        production_url: Optional[str] = None,
        client_public_key: Optional[str] = None,
    ):
        self._context = context
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=settings.bunq_http_timeout)
        self._sandbox_url = (sandbox_url or settings.bunq_sandbox_url).rstrip("/")
        self._production_url = (production_url or settings.bunq_production_url).rstrip("/")
        self._client_public_key = client_public_key if client_public_key is not None else settings.bunq_client_public_key

    @property
    def name(self) -> str:
        return "bunq"

    def _base_url(self, sandbox: bool) -> str:
        return self._sandbox_url if sandbox else self._production_url

    def _require_context(self) -> ApiContext:
        if self._context is None or not self._context.session_token or self._context.user_id is None:
            raise PermanentError("bunq API context not initialised; save the API key first", status_code=401)
        return self._context

    async def _request(
        self,
        method: str,
        path: str,
        token: Optional[str] = None,
        json: Optional[dict[str, Any]] = None,
        sandbox: Optional[bool] = None,
    ) -> dict[str, Any]:
        if sandbox is None:
            sandbox = self._require_context().environment == "SANDBOX"

        headers = {
            "Cache-Control": "no-cache",
            "User-Agent": settings.bunq_device_description,
            "X-Bunq-Client-Request-Id": uuid.uuid4().hex,
            "X-Bunq-Geolocation": "0 0 0 0 000",
            "X-Bunq-Language": "en_US",
            "X-Bunq-Region": "nl_NL",
        }
        if token:
            headers["X-Bunq-Client-Authentication"] = token

        url = f"{self._base_url(sandbox)}{path}"
        try:
            response = await self._client.request(method, url, headers=headers, json=json)
        except httpx.HTTPError as e:
            raise ProviderError(f"bunq unreachable: {e}", status_code=503) from e

        if response.status_code in RETRIABLE_STATUS_CODES or response.status_code >= 500:
            raise ProviderError(_error_message(response), status_code=response.status_code)
        if response.status_code >= 400:
            raise PermanentError(_error_message(response), status_code=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError("bunq returned a non-JSON body", retriable=False) from e

    async def _session_request(self, method: str, path: str, json: Optional[dict[str, Any]] = None):
        context = self._require_context()
        return await self._request(
            method, f"/user/{context.user_id}{path}", token=context.session_token, json=json
        )

    async def _default_account_id(self) -> int:
        accounts = await self.list_bank_accounts()
        if not accounts:
            raise PermanentError("No active monetary account available", status_code=404)
        return accounts[0].id

    async def create_api_context(self, api_key: str, sandbox: bool) -> ApiContext:
        if not api_key:
            raise PermanentError("API key is required", status_code=401)
        if not self._client_public_key:
            raise PermanentError("bunq_client_public_key is not configured", status_code=400)

        installation = await self._request(
            "POST", "/installation", json={"client_public_key": self._client_public_key}, sandbox=sandbox
        )
        installation_token = _field(_first(installation, "Token"), "token")
        server_public_key = _field(_first(installation, "ServerPublicKey"), "server_public_key")

        await self._request(
            "POST",
            "/device-server",
            token=installation_token,
            json={
                "description": settings.bunq_device_description,
                "secret": api_key,
                "permitted_ips": ["*"],
            },
            sandbox=sandbox,
        )

        session = await self._request(
            "POST", "/session-server", token=installation_token, json={"secret": api_key}, sandbox=sandbox
        )
        session_token = _field(_first(session, "Token"), "token")
        user_id = None
        for kind in USER_TYPES:
            users = _items(session, kind)
            if users:
                user_id = _field(users[0], "id")
                break
        if user_id is None:
            raise ProviderError("bunq session did not return a user", retriable=False)

        context = ApiContext(
            environment="SANDBOX" if sandbox else "PRODUCTION",
            api_key=api_key,
            installation_token=installation_token,
            server_public_key=server_public_key,
            session_token=session_token,
            user_id=user_id,
        )
        self._context = context
        logger.info("Opened bunq %s session for user %s", context.environment, user_id)
        return context

    async def list_bank_accounts(self) -> list[BankAccount]:
        payload = await self._session_request("GET", "/monetary-account-bank")
        accounts = []
        for item in _items(payload, "MonetaryAccountBank"):
            if item.get("status") != "ACTIVE":
                continue
            iban = next((a.get("value") for a in item.get("alias", []) if a.get("type") == "IBAN"), None)
            accounts.append(BankAccount(
                id=_field(item, "id"),
                description=item.get("description", ""),
                currency=item.get("currency", "EUR"),
                iban=iban,
            ))
        return accounts

    async def create_payment_request(self, request: PaymentRequestCreate) -> PaymentRequestCreated:
        account_id = request.account_id or await self._default_account_id()
        payload = await self._session_request(
            "POST",
            f"/monetary-account/{account_id}/bunqme-tab",
            json={
                "bunqme_tab_entry": {
                    "amount_inquired": {"value": request.amount_value, "currency": request.currency},
                    "description": request.description,
                    "redirect_url": request.redirect_url,
                },
            },
        )
        tab_id = str(_field(_first(payload, "Id"), "id"))

        # The share URL is only available on the created object.
        detail = await self._session_request("GET", f"/monetary-account/{account_id}/bunqme-tab/{tab_id}")
        share_url = _first(detail, "BunqMeTab").get("bunqme_tab_share_url")
        if not share_url:
            raise ProviderError(f"bunq.me tab {tab_id} has no share URL", retriable=False)

        return PaymentRequestCreated(id=tab_id, redirect_url=share_url)

    async def get_payment_request(
        self, request_id: str, account_id: Optional[int] = None
    ) -> PaymentRequestDetail:
        account_id = account_id or await self._default_account_id()
        payload = await self._session_request(
            "GET", f"/monetary-account/{account_id}/bunqme-tab/{request_id}"
        )
        tab = _first(payload, "BunqMeTab")

        inquiries = []
        for inquiry in tab.get("result_inquiries") or []:
            if not isinstance(inquiry, dict) or not isinstance(inquiry.get("payment") or {}, dict):
                raise ProviderError("Unexpected bunq result inquiry", retriable=False)
            raw = (inquiry.get("payment") or {}).get("Payment")
            payment = None
            if raw:
                payment = SettledPayment(
                    id=str(_field(raw, "id")),
                    amount=Amount(
                        value=str(_field(raw, "amount", "value")),
                        currency=str(_field(raw, "amount", "currency")),
                    ),
                )
            inquiries.append(ResultInquiry(
                id=str(inquiry["id"]) if inquiry.get("id") is not None else None,
                payment=payment,
            ))

        return PaymentRequestDetail(
            id=str(tab.get("id", request_id)),
            status=tab.get("status", ""),
            result_inquiries=inquiries,
        )

    async def ensure_notification_filters(
        self, callback_url: str, account_id: Optional[int] = None
    ) -> bool:
        path = "/notification-filter-url"
        if account_id:
            path = f"/monetary-account/{account_id}/notification-filter-url"

        existing = await self._session_request("GET", path)
        filters = []
        for item in _items(existing, "NotificationFilterUrl"):
            filters.append({
                "category": item.get("category"),
                "notification_target": item.get("notification_target"),
            })
        wanted = {"category": NOTIFICATION_CATEGORY, "notification_target": callback_url}
        if wanted in filters:
            return False

        await self._session_request("POST", path, json={"notification_filters": filters + [wanted]})
        logger.info("Registered bunq notification filter %s -> %s", NOTIFICATION_CATEGORY, callback_url)
        return True

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
