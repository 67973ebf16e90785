"""
Gateway administration endpoints.

GET  /gateway/settings       - Current bunq gateway configuration.
PUT  /gateway/settings       - Save configuration; refreshes the bunq session.
GET  /gateway/bank-accounts  - Sub-accounts available for receiving funds.
POST /sandbox/tabs/{id}/pay  - Sandbox only: simulate a shopper paying a tab.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from bunq_gateway.api.deps import get_gateway
from bunq_gateway.database import get_session
from bunq_gateway.gateway.service import BunqGateway
from bunq_gateway.models.order import GatewayConfig
from bunq_gateway.providers.errors import ProviderError

router = APIRouter(tags=["gateway"])


class GatewaySettingsUpdate(BaseModel):
    enabled: Optional[bool] = None
    title: Optional[str] = None
    description: Optional[str] = None
    testmode: Optional[bool] = None
    test_api_key: Optional[str] = None
    api_key: Optional[str] = None
    monetary_account_bank_id: Optional[int] = Field(None, ge=0)

    @field_validator("enabled", "title", "description", "testmode")
    @classmethod
    def not_null(cls, v):
        # Omit the field to keep the stored value; these columns cannot be cleared
        if v is None:
            raise ValueError("may be omitted but not null")
        return v


class GatewaySettingsResponse(BaseModel):
    enabled: bool
    title: str
    description: str
    testmode: bool
    test_api_key: Optional[str]
    api_key: Optional[str]
    monetary_account_bank_id: Optional[int]
    api_context: Optional[str]
    test_api_context: Optional[str]
    callback_url: str


class BankAccountOut(BaseModel):
    id: int
    description: str
    currency: str
    iban: Optional[str] = None


class SandboxPayment(BaseModel):
    value: Optional[str] = None
    currency: Optional[str] = None


def _mask(secret: Optional[str]) -> Optional[str]:
    if not secret:
        return secret
    return "*" * max(len(secret) - 4, 0) + secret[-4:]


def _config_to_response(config: GatewayConfig, gateway: BunqGateway) -> GatewaySettingsResponse:
    return GatewaySettingsResponse(
        enabled=config.enabled,
        title=config.title,
        description=config.description,
        testmode=config.testmode,
        test_api_key=_mask(config.test_api_key),
        api_key=_mask(config.api_key),
        monetary_account_bank_id=config.monetary_account_bank_id,
        api_context="(set)" if config.api_context else None,
        test_api_context="(set)" if config.test_api_context else None,
        callback_url=gateway.callback_url,
    )


@router.get("/gateway/settings", response_model=GatewaySettingsResponse)
async def get_settings(
    session: AsyncSession = Depends(get_session),
    gateway: BunqGateway = Depends(get_gateway),
):
    config = await gateway.load_config(session)
    await session.commit()
    return _config_to_response(config, gateway)


@router.put("/gateway/settings", response_model=GatewaySettingsResponse)
async def update_settings(
    body: GatewaySettingsUpdate,
    request: Request,
    session: AsyncSession = Depends(get_session),
    gateway: BunqGateway = Depends(get_gateway),
):
    """
    Save gateway settings.

    When an API key is set for the active mode the bunq API context is
    recreated and notification filters are registered (skipped when the
    request comes from a loopback address).
    """
    client_host = request.client.host if request.client else None
    try:
        config = await gateway.save_config(session, body.model_dump(exclude_unset=True), client_host)
    except ProviderError as e:
        raise HTTPException(status_code=502, detail=f"bunq rejected the settings: {e}")
    return _config_to_response(config, gateway)


@router.get("/gateway/bank-accounts", response_model=list[BankAccountOut])
async def list_bank_accounts(
    session: AsyncSession = Depends(get_session),
    gateway: BunqGateway = Depends(get_gateway),
):
    accounts = await gateway.bank_accounts(session)
    return [
        BankAccountOut(id=a.id, description=a.description, currency=a.currency, iban=a.iban)
        for a in accounts
    ]


@router.post("/sandbox/tabs/{request_id}/pay")
async def sandbox_pay(
    request_id: str,
    body: Optional[SandboxPayment] = None,
    gateway: BunqGateway = Depends(get_gateway),
):
    """Settle a sandbox payment request. Does not send a callback."""
    sandbox = gateway.sandbox
    if sandbox is None:
        raise HTTPException(status_code=404, detail="Sandbox is only available with the mock provider")
    try:
        payment = sandbox.settle(
            request_id,
            value=body.value if body else None,
            currency=body.currency if body else None,
        )
    except ProviderError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"payment_id": payment.id, "value": payment.amount.value, "currency": payment.amount.currency}
