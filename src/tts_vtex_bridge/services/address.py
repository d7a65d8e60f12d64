"""Recipient address and postal code resolution for TikTok orders."""

from typing import Any, Dict, List, Optional, Tuple

from tts_vtex_bridge.config.constants import (
    FALLBACK_BUYER_NAME,
    FALLBACK_CITY,
    FALLBACK_COUNTRY,
    FALLBACK_NEIGHBORHOOD,
    FALLBACK_NUMBER,
    FALLBACK_POSTAL_CODE,
    FALLBACK_STATE,
    FALLBACK_STREET,
)
from tts_vtex_bridge.core.logger import setup_logger
from tts_vtex_bridge.models.order import ResolvedAddress
from tts_vtex_bridge.utils.payload import (
    as_dict,
    as_list,
    dig,
    digits_only,
    first_present,
    is_present,
)

logger = setup_logger(__name__)

ADDRESS_HINT_FIELDS = ("postal_code", "zip_code", "postcode", "address_line1", "address_line2", "city", "state")

RECIPIENT_POSTAL_FIELDS = ("postal_code", "zip_code", "zipcode", "postcode", "post_code", "zip")

ORDER_POSTAL_PATHS = (
    ("postal_code",),
    ("zip_code",),
    ("postcode",),
    ("buyer_address", "postal_code"),
    ("shipping_address", "postal_code"),
)


def is_address_like(value: Any) -> bool:
    return isinstance(value, dict) and any(value.get(f) for f in ADDRESS_HINT_FIELDS)


def _address_candidates(order: Dict[str, Any]) -> List[Tuple[str, Any]]:
    recipient = order.get("recipient")
    shipping = order.get("shipping")
    return [
        ("recipient_address", order.get("recipient_address")),
        ("recipient_address_list", dig(order, "recipient_address_list", 0)),
        ("shipping_address", order.get("shipping_address")),
        ("shipping_address_list", dig(order, "shipping_address_list", 0)),
        ("buyer_address", order.get("buyer_address")),
        ("address", order.get("address")),
        ("recipient", first_present(dig(recipient, "address"), recipient)),
        ("shipping", first_present(dig(shipping, "address"), shipping)),
    ]


def resolve_recipient_address(order: Dict[str, Any]) -> Optional[ResolvedAddress]:
    """First address-like object across the known payload shapes, with its source."""
    for source, value in _address_candidates(order):
        if is_address_like(value):
            return ResolvedAddress(source=source, data=value)
    return None


def extract_postal_candidates(order: Dict[str, Any], recipient: Dict[str, Any]) -> List[Any]:
    values = [recipient.get(field) for field in RECIPIENT_POSTAL_FIELDS]
    values.extend(dig(order, *path) for path in ORDER_POSTAL_PATHS)
    return values


def normalize_postal_code(raw: Any) -> Optional[str]:
    """Digits of ``raw`` if exactly 8 remain (CEP), else None."""
    digits = digits_only(raw)
    return digits if len(digits) == 8 else None


def find_postal_code(order: Dict[str, Any], recipient: Dict[str, Any]) -> Tuple[Any, Optional[str]]:
    """
    Return (raw, normalized) for the first non-empty postal candidate.

    ``normalized`` is None when the raw value does not have 8 digits.
    """
    raw = first_present(*extract_postal_candidates(order, recipient))
    return raw, normalize_postal_code(raw)


def normalize_country(raw: Any) -> str:
    """3-letter country code; BR becomes BRA, anything else unknown becomes BRA."""
    code = str(raw).strip().upper() if is_present(raw) else ""
    if code == "BR":
        return "BRA"
    if len(code) == 3:
        return code
    return FALLBACK_COUNTRY


def _district_name(recipient: Dict[str, Any], level: str) -> Optional[str]:
    for district in as_list(recipient.get("district_info")):
        if as_dict(district).get("address_level") == level:
            return district.get("address_name") or None
    return None


def _first_truthy(*values: Any) -> Any:
    for value in values:
        if value:
            return value
    return None


def build_shipping_address(
    order: Dict[str, Any],
    order_id: str,
) -> Dict[str, Any]:
    """
    VTEX shipping address for the order.

    The postal code falls back to a placeholder only here, after the webhook
    pre-check already accepted the order. The fallback is logged.
    """
    resolved = resolve_recipient_address(order)
    recipient = resolved.data if resolved else {}

    raw_postal, postal_code = find_postal_code(order, recipient)
    if postal_code is None:
        logger.warning(
            f"Invalid or missing postal code for order {order_id}; using fallback {FALLBACK_POSTAL_CODE} "
            f"(source={resolved.source if resolved else 'unknown'}, "
            f"length={len(digits_only(raw_postal))})",
            extra={"order_id": order_id},
        )
        postal_code = FALLBACK_POSTAL_CODE

    country = normalize_country(
        first_present(
            recipient.get("region_code"),
            recipient.get("country"),
            recipient.get("country_code"),
            recipient.get("country_region"),
        )
    )

    return {
        "addressType": "residential",
        "receiverName": recipient.get("name") or FALLBACK_BUYER_NAME,
        "postalCode": postal_code,
        "city": _first_truthy(
            _district_name(recipient, "L2"), recipient.get("city"), recipient.get("town")
        ) or FALLBACK_CITY,
        "state": _first_truthy(
            _district_name(recipient, "L1"), recipient.get("state"), recipient.get("province")
        ) or FALLBACK_STATE,
        "country": country,
        "street": _first_truthy(
            recipient.get("address_line2"),
            recipient.get("address_line1"),
            recipient.get("address_detail"),
            recipient.get("detail_address"),
        ) or FALLBACK_STREET,
        "number": _first_truthy(
            recipient.get("address_line3"),
            recipient.get("street_number"),
            recipient.get("number"),
        ) or FALLBACK_NUMBER,
        "neighborhood": _first_truthy(
            recipient.get("address_line1"),
            recipient.get("district"),
            recipient.get("address_line2"),
        ) or FALLBACK_NEIGHBORHOOD,
        "complement": _first_truthy(
            recipient.get("address_line4"), recipient.get("address_extra")
        ) or "",
    }
