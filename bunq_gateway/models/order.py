"""SQLAlchemy models for the checkout gateway."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


class Order(Base):
    """
    A shop order as held by the order platform.

    The gateway only reads total/currency, writes correlation metadata and
    asks the platform to mark the order paid. Status changes go through
    OrderRepository.mark_paid, never through direct assignment elsewhere.
    """

    __tablename__ = "orders"

    id = Column(String(12), primary_key=True, default=_new_id)
    order_number = Column(String(32), nullable=False, unique=True, index=True)
    customer_email = Column(String(200), nullable=True)
    cart_session_id = Column(String(64), nullable=True, index=True)
    total = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")
    status = Column(String(20), nullable=False, default="pending")
    payment_method = Column(String(30), nullable=True)
    transaction_id = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    meta = relationship("OrderMeta", back_populates="order", lazy="raise")
    audit_logs = relationship("AuditLog", back_populates="order", lazy="raise")


class OrderMeta(Base):
    """
    Key/value metadata attached to an order.

    One value per (order, key). The bunq payment request id and payment id
    live here and are matched by exact string equality.
    """

    __tablename__ = "order_meta"
    __table_args__ = (
        UniqueConstraint("order_id", "meta_key", name="uq_order_meta_key"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(12), ForeignKey("orders.id"), nullable=False, index=True)
    meta_key = Column(String(100), nullable=False, index=True)
    meta_value = Column(String(255), nullable=True, index=True)

    order = relationship("Order", back_populates="meta")


class CartItem(Base):
    """A pending cart line for a shopper session."""

    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(64), nullable=False, index=True)
    sku = Column(String(64), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    added_at = Column(DateTime(timezone=True), default=_utcnow)


class GatewayConfig(Base):
    """
    Admin configuration of the bunq gateway (single row).

    api_context / test_api_context are opaque session blobs produced by the
    provider client whenever credentials are saved. Never parsed here.
    """

    __tablename__ = "gateway_config"

    id = Column(Integer, primary_key=True, default=1)
    enabled = Column(Boolean, nullable=False, default=False)
    title = Column(String(200), nullable=False, default="iDEAL, Credit Card or Sofort")
    description = Column(Text, nullable=False, default="Pay with iDEAL, Credit Card or Sofort")
    testmode = Column(Boolean, nullable=False, default=True)
    test_api_key = Column(String(255), nullable=True)
    api_key = Column(String(255), nullable=True)
    monetary_account_bank_id = Column(Integer, nullable=True)
    api_context = Column(Text, nullable=True)
    test_api_context = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class AuditLog(Base):
    """
    Immutable audit trail entry.

    Every checkout attempt, callback and reconciliation decision gets an
    entry. These are append-only and never modified.
    """

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(12), ForeignKey("orders.id"), nullable=True, index=True)
    action = Column(String(50), nullable=False)
    details = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=_utcnow)

    order = relationship("Order", back_populates="audit_logs")
