"""Delivery SLA selection from a VTEX checkout simulation."""

import math
import re
from typing import Any, Dict, List, Optional, Set

from tts_vtex_bridge.config.constants import (
    DEFAULT_LOCK_TTL,
    DEFAULT_SHIPPING_ESTIMATE,
    DELIVERY_CHANNEL,
)
from tts_vtex_bridge.core.errors import NoDeliverySlaError
from tts_vtex_bridge.core.logger import setup_logger
from tts_vtex_bridge.models.order import MappedItem, SlaChoice
from tts_vtex_bridge.utils.payload import as_dict, as_list, dig, to_number

logger = setup_logger(__name__)

ESTIMATE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(bd|d|h|m)\s*$", re.IGNORECASE)
UNIT_IN_DAYS = {"bd": 1.0, "d": 1.0, "h": 1.0 / 24, "m": 1.0 / 1440}


def parse_estimate_days(estimate: Any) -> float:
    """'3bd' -> 3, '5d' -> 5, '24h' -> 1. Unrecognised values sort last (inf)."""
    if not isinstance(estimate, str):
        return math.inf
    match = ESTIMATE_PATTERN.match(estimate)
    if not match:
        return math.inf
    return float(match.group(1)) * UNIT_IN_DAYS[match.group(2).lower()]


def is_delivery_sla(sla: Dict[str, Any]) -> bool:
    """Home delivery only; pickup points are excluded."""
    if dig(sla, "pickupStoreInfo", "isPickupStore") is True:
        return False
    channel = sla.get("deliveryChannel")
    return channel is None or str(channel).lower() == DELIVERY_CHANNEL


def _sla_labels(sla: Dict[str, Any]) -> List[str]:
    return [str(sla.get(k)).lower() for k in ("id", "name") if sla.get(k) is not None]


def _sla_price(sla: Dict[str, Any]) -> int:
    price = to_number(sla.get("price"))
    return int(round(price)) if price is not None else 0


def select_sla(slas: List[Dict[str, Any]], preferred: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Deterministic choice among delivery SLAs.

    Order of preference: the shop's preferred SLA (id or name), one called
    "normal", one containing "sedex", then cheapest with the fastest estimate
    as tie-break.
    """
    if not slas:
        return None

    if preferred:
        wanted = preferred.strip().lower()
        for sla in slas:
            if wanted in _sla_labels(sla):
                return sla

    for sla in slas:
        if "normal" in _sla_labels(sla):
            return sla

    for sla in slas:
        if any("sedex" in label for label in _sla_labels(sla)):
            return sla

    return min(
        slas,
        key=lambda sla: (_sla_price(sla), parse_estimate_days(sla.get("shippingEstimate"))),
    )


def purchasable_sla_ids(simulation: Dict[str, Any], item_id: str) -> Optional[Set[str]]:
    """
    SLA ids the seller chain accepts for an item.

    Returns None when the simulation carries no purchase conditions, meaning
    no cross-check applies.
    """
    conditions = as_list(dig(simulation, "purchaseConditions", "itemPurchaseConditions"))
    if not conditions:
        return None

    allowed: Set[str] = set()
    for condition in conditions:
        if str(as_dict(condition).get("id")) != item_id:
            continue
        for sla in as_list(condition.get("slas")):
            sla_id = as_dict(sla).get("id")
            if sla_id is not None:
                allowed.add(str(sla_id))
    return allowed


def _logistics_for_item(entries: List[Any], index: int) -> Dict[str, Any]:
    for entry in entries:
        if as_dict(entry).get("itemIndex") == index:
            return entry
    if index < len(entries):
        return as_dict(entries[index])
    return {}


def select_slas(
    simulation: Dict[str, Any],
    items: List[MappedItem],
    postal_code: str,
    preferred: Optional[str] = None,
) -> List[SlaChoice]:
    """
    Pick one delivery SLA per basket item.

    Raises:
        NoDeliverySlaError: any item lacks an acceptable delivery SLA
    """
    entries = as_list(simulation.get("logisticsInfo"))
    choices: List[SlaChoice] = []
    missing: List[str] = []

    for index, item in enumerate(items):
        entry = _logistics_for_item(entries, index)
        slas = [as_dict(s) for s in as_list(entry.get("slas")) if is_delivery_sla(as_dict(s))]

        allowed = purchasable_sla_ids(simulation, item.id)
        if allowed is not None:
            slas = [s for s in slas if str(s.get("id")) in allowed]

        sla = select_sla(slas, preferred)
        if sla is None:
            missing.append(item.id)
            continue

        choices.append(
            SlaChoice(
                item_index=index,
                sla_id=str(sla.get("id")),
                price=_sla_price(sla),
                shipping_estimate=sla.get("shippingEstimate") or DEFAULT_SHIPPING_ESTIMATE,
                lock_ttl=sla.get("lockTTL") or DEFAULT_LOCK_TTL,
            )
        )

    if missing:
        error = NoDeliverySlaError(missing, postal_code)
        logger.error(str(error))
        raise error

    return choices
