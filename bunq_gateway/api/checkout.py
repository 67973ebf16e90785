"""
Checkout endpoint.

POST /checkout/{order_id} - Start a bunq payment for an order and return
the hosted payment page to redirect the shopper to.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from bunq_gateway.api.deps import get_gateway
from bunq_gateway.database import get_session
from bunq_gateway.gateway.service import BunqGateway, OrderNotFound

router = APIRouter(prefix="/checkout", tags=["checkout"])


class CheckoutRequest(BaseModel):
    return_url: Optional[str] = None


class CheckoutResponse(BaseModel):
    result: str
    redirect: Optional[str] = None
    message: Optional[str] = None


@router.post("/{order_id}", response_model=CheckoutResponse, response_model_exclude_none=True)
async def checkout(
    order_id: str,
    body: Optional[CheckoutRequest] = None,
    session: AsyncSession = Depends(get_session),
    gateway: BunqGateway = Depends(get_gateway),
):
    """
    Create a bunq payment request for the order.

    Returns {"result": "success", "redirect": url} or {"result": "failure"}
    with a shopper-facing message. Never redirects to a payment request that
    is not linked to the order.
    """
    try:
        result = await gateway.process_payment(
            session,
            order_id,
            return_url=body.return_url if body else None,
        )
    except OrderNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    return CheckoutResponse(
        result=result.result,
        redirect=result.redirect,
        message=result.message or None,
    )
