"""Enumerations for the checkout gateway domain model."""

from enum import Enum


class OrderStatus(str, Enum):
    """Lifecycle states for an order, owned by the order platform."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ReconcileOutcome(str, Enum):
    """Result of reconciling a payment notification against an order."""

    COMPLETED = "completed"
    IGNORED = "ignored"
    AMOUNT_MISMATCH = "amount_mismatch"
    NOT_FOUND = "not_found"


class MismatchReason(str, Enum):
    """Categorized reasons why a settled payment does not settle an order."""

    NO_PAYMENT = "no_payment"
    CURRENCY_MISMATCH = "currency_mismatch"
    AMOUNT_MISMATCH = "amount_mismatch"
    INVALID_AMOUNT = "invalid_amount"


class NotificationCategory(str, Enum):
    BUNQME_TAB = "BUNQME_TAB"


class NotificationEvent(str, Enum):
    BUNQME_TAB_RESULT_INQUIRY_CREATED = "BUNQME_TAB_RESULT_INQUIRY_CREATED"
