"""Tests for recipient address and postal code resolution."""

from tts_vtex_bridge.config.constants import FALLBACK_POSTAL_CODE
from tts_vtex_bridge.services.address import (
    build_shipping_address,
    find_postal_code,
    normalize_country,
    normalize_postal_code,
    resolve_recipient_address,
)


def test_normalize_postal_code_accepts_formatted_cep():
    assert normalize_postal_code("01001-000") == "01001000"


def test_normalize_postal_code_rejects_short_and_long():
    assert normalize_postal_code("123") is None
    assert normalize_postal_code("010010001") is None
    assert normalize_postal_code(None) is None


def test_normalize_postal_code_rejects_non_ascii_digits():
    assert normalize_postal_code("０１００１０００") is None
    assert normalize_postal_code("01001-00²") is None


def test_recipient_address_priority():
    order = {
        "shipping_address": {"postal_code": "22222222"},
        "recipient_address": {"postal_code": "11111111"},
    }
    resolved = resolve_recipient_address(order)
    assert resolved.source == "recipient_address"
    assert resolved.data["postal_code"] == "11111111"


def test_recipient_address_skips_non_address_objects():
    order = {"recipient_address": {"name": "No address"}, "recipient": {"address": {"city": "Campinas"}}}
    resolved = resolve_recipient_address(order)
    assert resolved.source == "recipient"
    assert resolved.data == {"city": "Campinas"}


def test_no_address_found():
    assert resolve_recipient_address({"id": "1"}) is None


def test_find_postal_code_falls_back_to_order_level():
    raw, normalized = find_postal_code({"zip_code": "04538-133"}, {})
    assert raw == "04538-133"
    assert normalized == "04538133"


def test_find_postal_code_reports_invalid_raw_value():
    raw, normalized = find_postal_code({}, {"postal_code": "123"})
    assert raw == "123"
    assert normalized is None


def test_normalize_country():
    assert normalize_country("BR") == "BRA"
    assert normalize_country("arg") == "ARG"
    assert normalize_country(None) == "BRA"


def test_build_shipping_address_uses_district_info():
    order = {
        "recipient_address": {
            "name": "Joao",
            "postal_code": "01001000",
            "address_line1": "Centro",
            "address_line2": "Rua A",
            "address_line3": "12",
            "region_code": "BR",
            "district_info": [
                {"address_level": "L1", "address_name": "Rio de Janeiro"},
                {"address_level": "L2", "address_name": "NiterÃ³i"},
            ],
        }
    }
    address = build_shipping_address(order, "order-1")
    assert address["postalCode"] == "01001000"
    assert address["state"] == "Rio de Janeiro"
    assert address["city"] == "NiterÃ³i"
    assert address["street"] == "Rua A"
    assert address["number"] == "12"
    assert address["neighborhood"] == "Centro"
    assert address["country"] == "BRA"


def test_build_shipping_address_placeholder_postal_code():
    address = build_shipping_address({"recipient_address": {"city": "Recife"}}, "order-1")
    assert address["postalCode"] == FALLBACK_POSTAL_CODE
    assert address["city"] == "Recife"
