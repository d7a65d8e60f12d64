"""Buyer profile (name, email, phone, document) for the VTEX client profile."""

from typing import Any, Dict, Tuple

from tts_vtex_bridge.config.constants import FALLBACK_BUYER_EMAIL, FALLBACK_BUYER_NAME, FALLBACK_PHONE
from tts_vtex_bridge.models.order import BuyerProfile, ResolvedDocument
from tts_vtex_bridge.utils.payload import digits_only

RECIPIENT_PHONE_FIELDS = ("phone_number", "phone", "mobile_phone")
ORDER_PHONE_FIELDS = ("buyer_phone", "buyer_phone_number", "buyer_mobile", "buyer_mobile_phone")


def split_name(name: Any) -> Tuple[str, str]:
    """First token is the first name; the rest (or "Buyer") is the last name."""
    parts = str(name or "").split()
    if not parts:
        return "TikTok", "Buyer"
    if len(parts) == 1:
        return parts[0], "Buyer"
    return parts[0], " ".join(parts[1:])


def resolve_phone(order: Dict[str, Any], recipient: Dict[str, Any]) -> str:
    """First candidate with at least 10 digits (DDD + number)."""
    candidates = [recipient.get(f) for f in RECIPIENT_PHONE_FIELDS]
    candidates.extend(order.get(f) for f in ORDER_PHONE_FIELDS)
    for candidate in candidates:
        if not candidate:
            continue
        digits = digits_only(candidate)
        if len(digits) >= 10:
            return digits
    return FALLBACK_PHONE


def resolve_buyer_profile(
    order: Dict[str, Any],
    recipient: Dict[str, Any],
    document: ResolvedDocument,
) -> BuyerProfile:
    buyer_email = order.get("buyer_email")
    email = buyer_email if isinstance(buyer_email, str) and "@" in buyer_email else FALLBACK_BUYER_EMAIL

    full_name = " ".join(
        str(part) for part in (recipient.get("first_name"), recipient.get("last_name")) if part
    )
    name = (
        order.get("cpf_name")
        or recipient.get("name")
        or full_name
        or email.split("@")[0]
        or FALLBACK_BUYER_NAME
    )
    first_name, last_name = split_name(name)

    return BuyerProfile(
        email=email,
        first_name=first_name,
        last_name=last_name,
        phone=resolve_phone(order, recipient),
        document=document,
    )
