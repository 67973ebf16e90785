"""
bunq callback endpoint.

POST /bunq/callback - Receives bunq notification pushes.

Called server to server by bunq, so no session or authentication is
required. bunq does not sign these calls in a way we verify: any POST is
processed, which is why the handler only ever reads the referenced tab id
and re-fetches the payment request from bunq itself before acting.

The response body is always empty. Everything except a retriable failure
to reach bunq is acknowledged with 200 so bunq does not keep redelivering
payloads that can never be processed.
"""

import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from bunq_gateway.api.deps import get_gateway
from bunq_gateway.database import get_session
from bunq_gateway.gateway.service import BunqGateway
from bunq_gateway.providers.errors import ProviderError

logger = logging.getLogger("bunq_gateway.api.webhook")

router = APIRouter(prefix="/bunq", tags=["bunq"])


@router.post("/callback")
async def bunq_callback(
    request: Request,
    session: AsyncSession = Depends(get_session),
    gateway: BunqGateway = Depends(get_gateway),
):
    body = await request.body()
    params = dict(request.query_params)

    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
        form = await request.form()
        params.update({k: v for k, v in form.items() if isinstance(v, str)})
        body = b""

    try:
        outcome = await gateway.handle_callback(session, body, params)
    except ProviderError:
        return Response(status_code=503)

    if outcome is not None:
        logger.info("bunq callback processed: %s", outcome.value)
    return Response(status_code=200)
