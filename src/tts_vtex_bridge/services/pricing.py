"""Price reconciliation against VTEX simulation pricing."""

from typing import Any, Dict, List

from tts_vtex_bridge.config.constants import PRICE_MODE_SELLING
from tts_vtex_bridge.models.order import ItemPricing
from tts_vtex_bridge.utils.payload import as_dict, as_list, dig, first_present, to_number


def sanitize_price_tags(tags: List[Any]) -> List[Dict[str, Any]]:
    """Keep the fields VTEX accepts back; drop tags without a name or a finite value."""
    sanitized = []
    for raw in tags:
        tag = as_dict(raw)
        name = str(tag.get("name") or "").strip()
        value = to_number(tag.get("value"))
        if not name or value is None:
            continue
        clean: Dict[str, Any] = {"name": name, "value": value}
        if isinstance(tag.get("isPercentual"), bool):
            clean["isPercentual"] = tag["isPercentual"]
        if tag.get("identifier") is not None:
            clean["identifier"] = tag["identifier"]
        raw_value = to_number(tag.get("rawValue"))
        if raw_value is not None:
            clean["rawValue"] = raw_value
        sanitized.append(clean)
    return sanitized


def compute_final_price(
    base_price: float,
    selling_price: float,
    price_tags: List[Dict[str, Any]],
    price_mode: str,
) -> float:
    """
    Unit price for one item.

    selling mode: base + sum(tags) when tags exist, else selling price if
    positive, else base. price mode: base if positive, else selling price.
    """
    if price_mode == PRICE_MODE_SELLING:
        if price_tags:
            return base_price + sum(tag["value"] for tag in price_tags)
        if selling_price and selling_price > 0:
            return selling_price
        return base_price

    if base_price and base_price > 0:
        return base_price
    if selling_price and selling_price > 0:
        return selling_price
    return base_price


def resolve_simulation_pricing(simulation: Dict[str, Any], price_mode: str) -> Dict[str, ItemPricing]:
    """
    Pricing per SKU id from ``simulation["items"]``.

    Only items with a positive base price get an entry; the caller keeps the
    marketplace price for the rest.
    """
    pricing: Dict[str, ItemPricing] = {}
    for raw in as_list(simulation.get("items")):
        item = as_dict(raw)
        sku_id = first_present(item.get("id"), item.get("itemId"), item.get("skuId"))
        if sku_id is None:
            continue

        base_price = to_number(first_present(item.get("price"), item.get("listPrice")))
        selling_price = to_number(
            first_present(
                item.get("sellingPrice"),
                dig(item, "priceDefinition", "calculatedSellingPrice"),
                dig(item, "priceDefinition", "total"),
            )
        )
        if base_price is None or base_price <= 0:
            continue

        tags = sanitize_price_tags(as_list(item.get("priceTags"))) if price_mode == PRICE_MODE_SELLING else []
        final_price = compute_final_price(base_price, selling_price or 0, tags, price_mode)

        pricing[str(sku_id)] = ItemPricing(
            base_price=int(round(base_price)),
            final_price=int(round(final_price)),
            price_tags=tags,
        )
    return pricing
