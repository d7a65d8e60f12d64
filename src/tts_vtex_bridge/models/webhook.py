"""Pydantic models and normalisers for inbound webhooks."""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field

from tts_vtex_bridge.config.constants import NOTIFICATION_KEY_PREFIX, WEBHOOK_KEY_PREFIX
from tts_vtex_bridge.utils.payload import as_dict, create_payload_hash, first_at, first_present


class TiktokWebhookEvent(BaseModel):
    """TikTok Shop webhook envelope."""

    type: Optional[Union[int, str]] = Field(None, description="Event type (1 = order status change)")
    shop_id: Optional[Union[int, str]] = Field(None, description="TikTok shop id")
    timestamp: Optional[int] = Field(None, description="Unix timestamp of the event")
    tts_notification_id: Optional[str] = Field(None, description="Notification id")
    data: Optional[Dict[str, Any]] = Field(None, description="Event-specific data")

    class Config:
        extra = "allow"

    def get_order_id(self) -> Optional[str]:
        value = as_dict(self.data).get("order_id")
        return str(value) if first_present(value) is not None else None

    def get_shop_id(self) -> Optional[str]:
        return str(self.shop_id) if first_present(self.shop_id) is not None else None

    def get_status_hint(self) -> str:
        data = as_dict(self.data)
        hint = data.get("order_status")
        if hint is None:
            hint = data.get("status")
        return str(hint) if hint is not None else "unknown"

    def idempotency_key(self) -> str:
        """``tiktok-order:{type}:{status}:{order_id}``"""
        return f"{WEBHOOK_KEY_PREFIX}:{self.type}:{self.get_status_hint()}:{self.get_order_id()}"


STATUS_PATHS = (
    ("status",),
    ("state",),
    ("currentState",),
    ("orderStatus",),
    ("workflowStatus",),
    ("data", "status"),
    ("data", "state"),
    ("data", "orderStatus"),
)

VTEX_ORDER_ID_PATHS = (
    ("orderId",),
    ("order_id",),
    ("vtexOrderId",),
    ("data", "orderId"),
    ("data", "order_id"),
    ("data", "vtexOrderId"),
    ("order", "orderId"),
    ("order", "id"),
    ("order", "order_id"),
)

MARKETPLACE_ORDER_ID_PATHS = (
    ("marketplaceOrderId",),
    ("marketplace_order_id",),
    ("data", "marketplaceOrderId"),
    ("data", "marketplace_order_id"),
    ("marketplace", "orderId"),
    ("marketplace", "order_id"),
    ("order", "marketplaceOrderId"),
    ("order", "marketplace_order_id"),
)


@dataclass
class MarketplaceEvent:
    """Normalised VTEX marketplace notification."""

    status: Optional[str]
    vtex_order_id: Optional[str]
    marketplace_order_id: Optional[str]

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "MarketplaceEvent":
        status = first_at(payload, STATUS_PATHS)
        vtex_order_id = first_at(payload, VTEX_ORDER_ID_PATHS)
        marketplace_order_id = first_at(payload, MARKETPLACE_ORDER_ID_PATHS)
        return cls(
            status=str(status).lower() if status is not None else None,
            vtex_order_id=str(vtex_order_id) if vtex_order_id is not None else None,
            marketplace_order_id=(
                str(marketplace_order_id) if marketplace_order_id is not None else None
            ),
        )

    def idempotency_key(self, shop_id: str, payload: Dict[str, Any]) -> str:
        """
        ``vtex-marketplace:{shop}:{status}:{correlation}``

        Correlation falls back from the VTEX order id to the marketplace order
        id, the payload id, and finally a hash of the whole payload.
        """
        correlation = first_present(
            self.vtex_order_id,
            self.marketplace_order_id,
            payload.get("id"),
        )
        if correlation is None:
            correlation = create_payload_hash(payload)
        return f"{NOTIFICATION_KEY_PREFIX}:{shop_id}:{self.status or 'unknown'}:{correlation}"


def is_ping(payload: Dict[str, Any]) -> bool:
    """VTEX sends ``{"hookConfig": "ping"}`` when a hook is registered."""
    return payload.get("hookConfig") == "ping"
