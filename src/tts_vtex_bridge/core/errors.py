"""Exception hierarchy for the order bridge."""

from typing import Any, List, Optional


class BridgeError(Exception):
    """Base class for all bridge errors."""


class OrderValidationError(BridgeError):
    """Order data is not usable yet (precondition failure, no error state)."""


class EmptyBasketError(OrderValidationError):
    """No marketplace line item could be mapped to a VTEX SKU."""

    def __init__(self, order_id: str):
        super().__init__(f"No line items could be mapped for order {order_id}")
        self.order_id = order_id


class NoDeliverySlaError(OrderValidationError):
    """At least one basket item has no purchasable delivery SLA."""

    def __init__(self, sku_ids: List[str], postal_code: str, detail: Optional[str] = None):
        message = (
            "No valid SLA found for order. Check logistics configuration for "
            f"SKU(s) {','.join(sku_ids)} and Postal Code {postal_code}"
        )
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.sku_ids = sku_ids
        self.postal_code = postal_code


class UnprocessableOrderError(BridgeError):
    """The commerce platform rejected the order and it will not be retried."""


class NotFoundError(BridgeError):
    """A required record does not exist."""


class ShopConfigError(BridgeError):
    """Shop credentials or settings are missing."""


class UpstreamApiError(BridgeError):
    """An external API call failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        body: Any = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.body = body


class VtexApiError(UpstreamApiError):
    """VTEX API call failed."""


class TiktokApiError(UpstreamApiError):
    """TikTok Shop API call failed."""
