"""VTEX OMS / fulfillment / checkout API client."""

from typing import Any, Dict, List, Optional

import httpx

from tts_vtex_bridge.config.constants import VTEX_NO_SLA_CODE, VTEX_PRICING_MISMATCH_CODE
from tts_vtex_bridge.core.errors import VtexApiError
from tts_vtex_bridge.core.logger import setup_logger
from tts_vtex_bridge.models.order import CreateOrderOutcome, CreateOrderResult, MappedItem
from tts_vtex_bridge.services.shop_config import ShopConfigService, VtexShopConfig
from tts_vtex_bridge.utils.payload import as_dict, dig, first_present

logger = setup_logger(__name__)


def build_base_url(config: VtexShopConfig) -> str:
    """``https://{account}.{environment}.com/api`` unless a domain override is set."""
    if config.domain:
        base = config.domain if config.domain.startswith("http") else f"https://{config.domain}"
        return base.rstrip("/") + "/api"
    suffix = config.environment if "." in config.environment else f"{config.environment}.com"
    return f"https://{config.account}.{suffix}/api"


def extract_error(body: Any) -> Dict[str, Optional[str]]:
    """Pull ``error.code`` / ``error.message`` out of a VTEX error body."""
    if isinstance(body, list) and body:
        body = body[0]
    error = as_dict(dig(body, "error"))
    return {
        "code": error.get("code"),
        "message": first_present(error.get("message"), dig(body, "message")),
    }


class VtexOrdersClient:
    """Async HTTP client for the VTEX APIs used by the order pipeline."""

    def __init__(
        self,
        shop_config: ShopConfigService,
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.shop_config = shop_config
        self.client = http_client or httpx.AsyncClient(timeout=timeout)

    async def close(self):
        await self.client.aclose()

    @staticmethod
    def _headers(config: VtexShopConfig) -> Dict[str, str]:
        return {
            "X-VTEX-API-AppKey": config.app_key,
            "X-VTEX-API-AppToken": config.app_token,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    @staticmethod
    def _channel_params(config: VtexShopConfig) -> Dict[str, str]:
        params = {"sc": config.sales_channel}
        if config.affiliate_id:
            params["affiliateId"] = config.affiliate_id
        return params

    async def _request(
        self,
        shop_id: str,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Perform an authenticated request and return the decoded JSON body.

        Raises:
            VtexApiError: on HTTP error status, timeout or transport failure
        """
        config = await self.shop_config.get_vtex_config(shop_id)
        url = f"{build_base_url(config)}{path}"

        try:
            response = await self.client.request(
                method,
                url,
                json=json,
                params=params,
                headers=self._headers(config),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            try:
                body = e.response.json()
            except ValueError:
                body = e.response.text
            error = extract_error(body)
            message = error["message"] or f"HTTP {e.response.status_code}"
            logger.error(
                f"VTEX {method} {path} failed: {e.response.status_code} "
                f"code={error['code']} message={message}"
            )
            raise VtexApiError(
                message,
                status_code=e.response.status_code,
                code=error["code"],
                body=body,
            ) from e
        except httpx.TimeoutException as e:
            logger.error(f"Timeout calling VTEX {method} {path}")
            raise VtexApiError(f"Timeout calling VTEX {path}") from e
        except httpx.RequestError as e:
            logger.error(f"Error calling VTEX {method} {path}: {e}")
            raise VtexApiError(f"Error calling VTEX {path}: {e}") from e

        if not response.content:
            return {}
        return response.json()

    async def simulate_order(
        self,
        shop_id: str,
        items: List[MappedItem],
        postal_code: str,
        country: str,
    ) -> Dict[str, Any]:
        """Checkout simulation for a basket shipped to a postal code."""
        config = await self.shop_config.get_vtex_config(shop_id)
        payload = {
            "items": [item.to_simulation_item() for item in items],
            "postalCode": postal_code,
            "country": country,
        }
        data = await self._request(
            shop_id,
            "POST",
            "/checkout/pub/orderForms/simulation",
            json=payload,
            params=self._channel_params(config),
        )
        return as_dict(data)

    async def create_order(self, shop_id: str, payload: List[Dict[str, Any]]) -> CreateOrderResult:
        """
        Place a marketplace order through the fulfillment API.

        HTTP rejections are returned as a CreateOrderResult instead of raised,
        classified by the VTEX error code.
        """
        config = await self.shop_config.get_vtex_config(shop_id)
        try:
            data = await self._request(
                shop_id,
                "POST",
                "/fulfillment/pvt/orders",
                json=payload,
                params=self._channel_params(config),
            )
        except VtexApiError as e:
            if e.code == VTEX_PRICING_MISMATCH_CODE:
                outcome = CreateOrderOutcome.PRICING_REJECTED
            elif e.code == VTEX_NO_SLA_CODE:
                outcome = CreateOrderOutcome.SLA_REJECTED
            else:
                outcome = CreateOrderOutcome.FAILED
            return CreateOrderResult(
                outcome=outcome,
                error_message=str(e),
                error_code=e.code,
                status_code=e.status_code,
                body=e.body,
            )

        first = data[0] if isinstance(data, list) and data else data
        order_id = first_present(dig(first, "orderId"), dig(first, "id"))
        return CreateOrderResult(
            outcome=CreateOrderOutcome.OK,
            order_id=str(order_id) if order_id is not None else None,
            body=data,
        )

    async def authorize_dispatch(self, shop_id: str, vtex_order_id: str) -> Any:
        return await self._request(shop_id, "POST", f"/fulfillment/pvt/orders/{vtex_order_id}/fulfill")

    async def get_order(self, shop_id: str, vtex_order_id: str) -> Dict[str, Any]:
        return as_dict(await self._request(shop_id, "GET", f"/oms/pvt/orders/{vtex_order_id}"))

    async def update_tracking(self, shop_id: str, vtex_order_id: str, invoice_data: Dict[str, Any]) -> Any:
        """Send invoice + tracking data (``POST /oms/pvt/orders/{id}/invoice``)."""
        return await self._request(
            shop_id,
            "POST",
            f"/oms/pvt/orders/{vtex_order_id}/invoice",
            json=invoice_data,
        )
