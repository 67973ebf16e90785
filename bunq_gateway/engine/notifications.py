"""
Parsing of bunq callback notifications.

bunq pushes a JSON document shaped as:

    {"NotificationUrl": {"category": "BUNQME_TAB",
                         "event_type": "BUNQME_TAB_RESULT_INQUIRY_CREATED",
                         "object": {"BunqMeTabResultInquiry": {"bunq_me_tab_id": 123, ...}}}}

When the request body is empty, the same document is accepted from a
`NotificationUrl` request parameter (query string or form field).

No signature is checked: any well-formed POST is trusted.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, ValidationError

from bunq_gateway.models.enums import NotificationCategory, NotificationEvent


class MalformedNotification(Exception):
    """The callback payload could not be parsed into a notification."""


class _NotificationUrl(BaseModel):
    category: str
    event_type: str
    object: Optional[dict[str, Any]] = None


class _Envelope(BaseModel):
    NotificationUrl: _NotificationUrl


@dataclass
class Notification:
    category: str
    event_type: str
    referenced_payment_request_id: Optional[str] = None

    def is_payment_request_result(self) -> bool:
        return (
            self.category == NotificationCategory.BUNQME_TAB.value
            and self.event_type == NotificationEvent.BUNQME_TAB_RESULT_INQUIRY_CREATED.value
        )


def _decode(body: bytes, params: Mapping[str, Any]) -> Any:
    raw = body.strip() if body else b""
    if raw:
        try:
            return json.loads(raw)
        except ValueError as e:
            raise MalformedNotification(f"Invalid JSON body: {e}") from e

    param = params.get("NotificationUrl")
    if not isinstance(param, str) or not param.strip():
        raise MalformedNotification("Empty body and no NotificationUrl parameter")
    try:
        decoded = json.loads(param)
    except ValueError as e:
        raise MalformedNotification(f"Invalid JSON in NotificationUrl parameter: {e}") from e

    # The parameter may carry either the whole envelope or its inner object.
    if isinstance(decoded, dict) and "NotificationUrl" not in decoded:
        decoded = {"NotificationUrl": decoded}
    return decoded


def parse_notification(body: bytes, params: Optional[Mapping[str, Any]] = None) -> Notification:
    """
    Parse a callback request into a Notification.

    The referenced payment request id is only required for
    BUNQME_TAB_RESULT_INQUIRY_CREATED events; other events parse without it.

    Raises:
        MalformedNotification: On unparsable or incomplete payloads.
    """
    data = _decode(body, params or {})

    try:
        envelope = _Envelope.model_validate(data)
    except ValidationError as e:
        raise MalformedNotification(f"Unexpected notification shape: {e.error_count()} error(s)") from e

    inner = envelope.NotificationUrl
    notification = Notification(category=inner.category, event_type=inner.event_type)
    if not notification.is_payment_request_result():
        return notification

    inquiry = (inner.object or {}).get("BunqMeTabResultInquiry")
    tab_id = inquiry.get("bunq_me_tab_id") if isinstance(inquiry, dict) else None
    if tab_id is None or isinstance(tab_id, (dict, list, bool)) or str(tab_id) == "":
        raise MalformedNotification("Notification does not reference a bunq.me tab")

    notification.referenced_payment_request_id = str(tab_id)
    return notification
