"""
Order endpoints.

POST /orders            - Create a pending order (with an optional cart).
GET  /orders            - List orders with filters (status, currency).
GET  /orders/{id}       - Get a single order with its bunq metadata.
GET  /orders/{id}/trace - Full audit trail for an order.
"""

import json
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bunq_gateway.audit.logger import log_event
from bunq_gateway.database import get_session
from bunq_gateway.engine.correlation import PAYMENT_ID_KEY, PAYMENT_REQUEST_ID_KEY
from bunq_gateway.models.order import AuditLog, CartItem, Order
from bunq_gateway.orders.repository import OrderRepository

router = APIRouter(prefix="/orders", tags=["orders"])


class CartLine(BaseModel):
    sku: str
    quantity: int = Field(1, ge=1)


class OrderCreate(BaseModel):
    order_number: str
    total: Decimal = Field(..., ge=0, decimal_places=2)
    currency: str = Field("EUR", min_length=3, max_length=3)
    customer_email: Optional[str] = None
    cart_session_id: Optional[str] = None
    cart: list[CartLine] = []


class OrderDetail(BaseModel):
    id: str
    order_number: str
    customer_email: Optional[str]
    cart_session_id: Optional[str]
    total: str
    currency: str
    status: str
    payment_method: Optional[str]
    transaction_id: Optional[str]
    payment_request_id: Optional[str] = None
    payment_id: Optional[str] = None
    notes: Optional[str]
    paid_at: Optional[str]
    created_at: Optional[str]
    updated_at: Optional[str]


class AuditEntry(BaseModel):
    id: int
    action: str
    details: Optional[dict] = None
    timestamp: Optional[str]


class OrderTrace(BaseModel):
    order: OrderDetail
    audit_trail: list[AuditEntry]


async def _order_to_detail(session: AsyncSession, o: Order) -> OrderDetail:
    repo = OrderRepository(session)
    return OrderDetail(
        id=o.id,
        order_number=o.order_number,
        customer_email=o.customer_email,
        cart_session_id=o.cart_session_id,
        total=str(o.total),
        currency=o.currency,
        status=o.status,
        payment_method=o.payment_method,
        transaction_id=o.transaction_id,
        payment_request_id=await repo.get_metadata(o, PAYMENT_REQUEST_ID_KEY),
        payment_id=await repo.get_metadata(o, PAYMENT_ID_KEY),
        notes=o.notes,
        paid_at=o.paid_at.isoformat() if o.paid_at else None,
        created_at=o.created_at.isoformat() if o.created_at else None,
        updated_at=o.updated_at.isoformat() if o.updated_at else None,
    )


@router.post("", response_model=OrderDetail, status_code=201)
async def create_order(body: OrderCreate, session: AsyncSession = Depends(get_session)):
    """Create a pending order. Cart lines are stored under cart_session_id."""
    order = Order(
        order_number=body.order_number,
        total=body.total,
        currency=body.currency.upper(),
        customer_email=body.customer_email,
        cart_session_id=body.cart_session_id,
    )
    session.add(order)
    if body.cart_session_id:
        for line in body.cart:
            session.add(CartItem(session_id=body.cart_session_id, sku=line.sku, quantity=line.quantity))

    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise HTTPException(status_code=409, detail=f"Order number already exists: {body.order_number}")

    await log_event(session, "order_created", order_id=order.id, details={
        "order_number": order.order_number,
        "total": str(order.total),
        "currency": order.currency,
    })
    await session.commit()
    return await _order_to_detail(session, order)


@router.get("", response_model=list[OrderDetail])
async def list_orders(
    status: Optional[str] = Query(None, description="Filter by status"),
    currency: Optional[str] = Query(None, description="Filter by currency"),
    session: AsyncSession = Depends(get_session),
):
    """List orders with optional filters."""
    stmt = select(Order)

    if status:
        stmt = stmt.where(Order.status == status)
    if currency:
        stmt = stmt.where(Order.currency == currency.upper())

    stmt = stmt.order_by(Order.created_at.desc())
    result = await session.execute(stmt)
    return [await _order_to_detail(session, o) for o in result.scalars().all()]


@router.get("/{order_id}", response_model=OrderDetail)
async def get_order(order_id: str, session: AsyncSession = Depends(get_session)):
    """Get a single order with its bunq metadata."""
    order = await session.get(Order, order_id)
    if not order:
        raise HTTPException(status_code=404, detail=f"Order not found: {order_id}")
    return await _order_to_detail(session, order)


@router.get("/{order_id}/trace", response_model=OrderTrace)
async def get_order_trace(order_id: str, session: AsyncSession = Depends(get_session)):
    """
    Full audit trail for an order.

    Returns the order plus every audit log entry, ordered chronologically.
    Useful for support questions like "I paid but my order is still pending".
    """
    order = await session.get(Order, order_id)
    if not order:
        raise HTTPException(status_code=404, detail=f"Order not found: {order_id}")

    result = await session.execute(
        select(AuditLog)
        .where(AuditLog.order_id == order_id)
        .order_by(AuditLog.timestamp.asc(), AuditLog.id.asc())
    )
    logs = result.scalars().all()

    audit_trail = []
    for log in logs:
        details = None
        if log.details:
            try:
                details = json.loads(log.details)
            except (json.JSONDecodeError, TypeError):
                details = {"raw": log.details}

        audit_trail.append(AuditEntry(
            id=log.id,
            action=log.action,
            details=details,
            timestamp=log.timestamp.isoformat() if log.timestamp else None,
        ))

    return OrderTrace(
        order=await _order_to_detail(session, order),
        audit_trail=audit_trail,
    )
