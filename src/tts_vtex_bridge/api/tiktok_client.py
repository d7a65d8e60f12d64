"""TikTok Shop Open API clients (orders and logistics)."""

import time
from typing import Any, Dict, Optional

import httpx

from tts_vtex_bridge.core.errors import TiktokApiError
from tts_vtex_bridge.core.logger import setup_logger
from tts_vtex_bridge.core.signature import encode_body, generate_api_sign
from tts_vtex_bridge.services.shop_config import ShopConfigService
from tts_vtex_bridge.utils.payload import as_dict, dig, first_present

logger = setup_logger(__name__)


def unwrap_order_detail(response: Any) -> Dict[str, Any]:
    """Order detail lives at ``data.orders[0]`` (or ``data`` on older versions)."""
    return as_dict(
        first_present(
            dig(response, "data", "orders", 0),
            dig(response, "data"),
            response,
        )
    )


class TiktokApiClient:
    """Signed async HTTP client for the TikTok Shop Open API."""

    def __init__(
        self,
        app_key: str,
        app_secret: str,
        shop_config: ShopConfigService,
        base_url: str = "https://open-api.tiktokglobalshop.com",
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.app_key = app_key
        self.app_secret = app_secret
        self.shop_config = shop_config
        self.base_url = base_url.rstrip("/")
        self.client = http_client or httpx.AsyncClient(timeout=timeout)

    async def close(self):
        await self.client.aclose()

    async def _request(
        self,
        shop_id: str,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Sign and send a request, returning the decoded body.

        Raises:
            TiktokApiError: on HTTP errors or a non-zero API ``code``
        """
        config = await self.shop_config.get_tiktok_config(shop_id)
        url = f"{self.base_url}{path}"

        query: Dict[str, Any] = {
            "app_key": self.app_key,
            "timestamp": int(time.time()),
            "shop_cipher": config.shop_cipher,
        }
        query.update(params or {})
        query["sign"] = generate_api_sign(url, query, self.app_secret, body=body)

        headers = {
            "x-tts-access-token": config.access_token,
            "Content-Type": "application/json",
        }

        try:
            response = await self.client.request(
                method,
                url,
                params=query,
                content=encode_body(body) if body else None,
                headers=headers,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"TikTok {method} {path} failed: {e.response.status_code} - {e.response.text}"
            )
            raise TiktokApiError(
                f"TikTok API HTTP {e.response.status_code}",
                status_code=e.response.status_code,
                body=e.response.text,
            ) from e
        except httpx.TimeoutException as e:
            logger.error(f"Timeout calling TikTok {method} {path}")
            raise TiktokApiError(f"Timeout calling TikTok {path}") from e
        except httpx.RequestError as e:
            logger.error(f"Error calling TikTok {method} {path}: {e}")
            raise TiktokApiError(f"Error calling TikTok {path}: {e}") from e

        # API-level errors come back with HTTP 200
        code = data.get("code") if isinstance(data, dict) else None
        if code not in (None, 0, "0"):
            message = data.get("message") or "Unknown error"
            logger.error(f"TikTok API error on {path}: code={code} message={message}")
            raise TiktokApiError(message, code=str(code), body=data)

        return as_dict(data)


class TiktokOrderClient(TiktokApiClient):
    """Order detail and acknowledgement."""

    async def get_order(self, shop_id: str, order_id: str) -> Dict[str, Any]:
        """Fetch one order and return the unwrapped order object."""
        response = await self._request(
            shop_id, "GET", "/order/202309/orders", params={"ids": order_id}
        )
        return unwrap_order_detail(response)

    async def ack_order(self, shop_id: str, order_id: str) -> Dict[str, Any]:
        return await self._request(
            shop_id, "POST", "/order/202309/orders/ack", body={"order_ids": [order_id]}
        )


class TiktokLogisticsClient(TiktokApiClient):
    """Shipping documents (labels)."""

    async def get_or_create_shipping_document(self, shop_id: str, order_id: str) -> Dict[str, Any]:
        return await self._request(
            shop_id, "POST", "/api/logistics/shipping_document", body={"order_id": order_id}
        )

    async def get_shipping_document(self, shop_id: str, order_id: str) -> Dict[str, Any]:
        return await self._request(
            shop_id, "GET", f"/api/logistics/shipping_document/{order_id}"
        )
