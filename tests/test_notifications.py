"""Tests for bunq notification parsing."""

import json

import pytest

from bunq_gateway.engine.notifications import MalformedNotification, parse_notification


def _payload(category="BUNQME_TAB", event_type="BUNQME_TAB_RESULT_INQUIRY_CREATED", tab_id=123):
    return {
        "NotificationUrl": {
            "target_url": "https://shop.example/api/bunq/callback",
            "category": category,
            "event_type": event_type,
            "object": {"BunqMeTabResultInquiry": {"id": 9, "bunq_me_tab_id": tab_id}},
        }
    }


class TestParse:
    def test_result_inquiry(self):
        notification = parse_notification(json.dumps(_payload()).encode())
        assert notification.is_payment_request_result()
        assert notification.referenced_payment_request_id == "123"

    def test_string_tab_id(self):
        notification = parse_notification(json.dumps(_payload(tab_id="req-1")).encode())
        assert notification.referenced_payment_request_id == "req-1"

    def test_other_category_parses_without_reference(self):
        payload = {"NotificationUrl": {"category": "PAYMENT", "event_type": "PAYMENT_CREATED", "object": {"Payment": {}}}}
        notification = parse_notification(json.dumps(payload).encode())
        assert not notification.is_payment_request_result()
        assert notification.referenced_payment_request_id is None

    def test_other_event_type_is_not_a_result(self):
        notification = parse_notification(json.dumps(_payload(event_type="BUNQME_TAB_CREATED")).encode())
        assert not notification.is_payment_request_result()

    def test_fallback_to_parameter(self):
        params = {"NotificationUrl": json.dumps(_payload())}
        notification = parse_notification(b"", params)
        assert notification.referenced_payment_request_id == "123"

    def test_parameter_with_inner_object_only(self):
        params = {"NotificationUrl": json.dumps(_payload()["NotificationUrl"])}
        notification = parse_notification(b"", params)
        assert notification.referenced_payment_request_id == "123"


class TestMalformed:
    def test_invalid_json(self):
        with pytest.raises(MalformedNotification):
            parse_notification(b"{not json")

    def test_empty_body_without_params(self):
        with pytest.raises(MalformedNotification):
            parse_notification(b"", {})

    def test_missing_envelope(self):
        with pytest.raises(MalformedNotification):
            parse_notification(json.dumps({"category": "BUNQME_TAB"}).encode())

    def test_missing_event_type(self):
        payload = {"NotificationUrl": {"category": "BUNQME_TAB"}}
        with pytest.raises(MalformedNotification):
            parse_notification(json.dumps(payload).encode())

    def test_json_array(self):
        with pytest.raises(MalformedNotification):
            parse_notification(b"[1, 2, 3]")

    def test_result_without_tab_id(self):
        payload = _payload()
        del payload["NotificationUrl"]["object"]["BunqMeTabResultInquiry"]["bunq_me_tab_id"]
        with pytest.raises(MalformedNotification):
            parse_notification(json.dumps(payload).encode())

    def test_result_without_object(self):
        payload = _payload()
        payload["NotificationUrl"]["object"] = None
        with pytest.raises(MalformedNotification):
            parse_notification(json.dumps(payload).encode())

    def test_invalid_parameter_json(self):
        with pytest.raises(MalformedNotification):
            parse_notification(b"", {"NotificationUrl": "{oops"})
