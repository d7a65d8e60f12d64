"""Tests for price reconciliation."""

from tts_vtex_bridge.config.constants import PRICE_MODE_PRICE, PRICE_MODE_SELLING
from tts_vtex_bridge.services.pricing import (
    compute_final_price,
    resolve_simulation_pricing,
    sanitize_price_tags,
)

TAGS = [{"name": "promo", "value": 50}, {"name": "discount", "value": -20}]


def test_selling_mode_applies_tags():
    assert compute_final_price(1000, 1000, TAGS, PRICE_MODE_SELLING) == 1030


def test_price_mode_ignores_tags():
    assert compute_final_price(1000, 900, TAGS, PRICE_MODE_PRICE) == 1000


def test_selling_mode_without_tags_uses_selling_price():
    assert compute_final_price(1000, 900, [], PRICE_MODE_SELLING) == 900
    assert compute_final_price(1000, 0, [], PRICE_MODE_SELLING) == 1000


def test_sanitize_price_tags_drops_non_finite_values():
    tags = sanitize_price_tags(
        [{"name": "a", "value": 10}, {"name": "bad", "value": "abc"}, "junk", {"name": "b", "value": "1,5", "isPercentual": False}]
    )
    assert tags == [{"name": "a", "value": 10.0}, {"name": "b", "value": 1.5, "isPercentual": False}]


def test_sanitize_price_tags_drops_nameless_tags():
    tags = sanitize_price_tags([{"value": 10}, {"name": "", "value": 5}, {"name": "  ", "value": 3}, {"name": "promo", "value": 2}])
    assert tags == [{"name": "promo", "value": 2.0}]


def test_resolve_simulation_pricing_modes():
    simulation = {"items": [{"id": "sku-1", "price": 1000, "sellingPrice": 1000, "priceTags": TAGS}]}

    selling = resolve_simulation_pricing(simulation, PRICE_MODE_SELLING)["sku-1"]
    assert selling.base_price == 1000
    assert selling.final_price == 1030
    assert len(selling.price_tags) == 2

    price = resolve_simulation_pricing(simulation, PRICE_MODE_PRICE)["sku-1"]
    assert price.final_price == 1000
    assert price.price_tags == []


def test_items_without_base_price_are_left_out():
    simulation = {"items": [{"id": "sku-1", "price": 0}, {"id": "sku-2"}]}
    assert resolve_simulation_pricing(simulation, PRICE_MODE_SELLING) == {}
