"""Shared FastAPI dependencies."""

from fastapi import Request

from bunq_gateway.gateway.service import BunqGateway


def get_gateway(request: Request) -> BunqGateway:
    return request.app.state.gateway
