"""Tests for payload helpers and webhook envelope parsing."""

import pytest

from tts_vtex_bridge.models.webhook import MarketplaceEvent, TiktokWebhookEvent, is_ping
from tts_vtex_bridge.utils.payload import (
    create_payload_hash,
    dig,
    first_at,
    first_present,
    mask_hint,
    normalize_quantity,
    to_cents,
    to_number,
)


def test_dig():
    data = {"a": [{"b": 1}]}
    assert dig(data, "a", 0, "b") == 1
    assert dig(data, "a", 1, "b") is None
    assert dig(data, "x", "y") is None
    assert dig("text", "a") is None


def test_first_present_skips_blank_strings():
    assert first_present(None, "  ", "", 0, "x") == 0
    assert first_present(None, "") is None
    assert first_at({"b": {"c": "v"}}, [("a",), ("b", "c")]) == "v"


@pytest.mark.parametrize(
    "value, expected",
    [("12,5", 12.5), (" 7 ", 7.0), (3, 3.0), ("abc", None), ("", None), (True, None), (float("inf"), None)],
)
def test_to_number(value, expected):
    assert to_number(value) == expected


def test_to_cents():
    assert to_cents("10.00") == 1000
    assert to_cents("19.99") == 1999
    assert to_cents(None) == 0


def test_normalize_quantity():
    assert normalize_quantity("2.7") == 2
    assert normalize_quantity(0) == 1
    assert normalize_quantity(None) == 1


def test_payload_hash_is_key_order_independent():
    assert create_payload_hash({"a": 1, "b": 2}) == create_payload_hash({"b": 2, "a": 1})
    assert create_payload_hash({"a": 1}) != create_payload_hash({"a": 2})


def test_mask_hint():
    assert mask_hint("529.982.247-25") == {"length": 11, "suffix": "725"}
    assert mask_hint(None) is None


class TestTiktokWebhookEvent:
    def test_idempotency_key(self):
        event = TiktokWebhookEvent(type=1, shop_id=123, data={"order_id": 576, "order_status": "AWAITING_SHIPMENT"})

        assert event.get_order_id() == "576"
        assert event.get_shop_id() == "123"
        assert event.idempotency_key() == "tiktok-order:1:AWAITING_SHIPMENT:576"

    def test_status_fallbacks(self):
        assert TiktokWebhookEvent(data={"status": "CANCELLED"}).get_status_hint() == "CANCELLED"
        assert TiktokWebhookEvent(data={}).get_status_hint() == "unknown"

    def test_extra_fields_allowed(self):
        event = TiktokWebhookEvent(type=1, data={"order_id": "1"}, unexpected="x")
        assert event.get_order_id() == "1"


class TestMarketplaceEvent:
    def test_nested_fields(self):
        event = MarketplaceEvent.from_payload(
            {"data": {"orderId": "vtex-1", "marketplaceOrderId": "order-1", "status": "Invoiced"}}
        )
        assert (event.vtex_order_id, event.marketplace_order_id, event.status) == ("vtex-1", "order-1", "invoiced")

    def test_key_falls_back_to_payload_hash(self):
        payload = {"something": "else"}
        event = MarketplaceEvent.from_payload(payload)

        assert event.idempotency_key("shop-1", payload) == (
            f"vtex-marketplace:shop-1:unknown:{create_payload_hash(payload)}"
        )

    def test_ping(self):
        assert is_ping({"hookConfig": "ping"})
        assert not is_ping({"orderId": "vtex-1"})
