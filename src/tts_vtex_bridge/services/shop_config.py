"""Per-shop configuration resolver with TTL caching."""

from dataclasses import dataclass
from typing import Any, Optional

from tts_vtex_bridge.core.cache import TTLCache
from tts_vtex_bridge.core.errors import NotFoundError, ShopConfigError
from tts_vtex_bridge.core.logger import setup_logger
from tts_vtex_bridge.db.models import Shop
from tts_vtex_bridge.db.repository import ShopRepository

logger = setup_logger(__name__)


@dataclass(frozen=True)
class VtexShopConfig:
    account: str
    environment: str
    app_key: str
    app_token: str
    sales_channel: str = "1"
    affiliate_id: Optional[str] = None
    seller_id: Optional[str] = None
    webhook_token: Optional[str] = None
    domain: Optional[str] = None
    marketplace_services_endpoint: Optional[str] = None
    preferred_sla: Optional[str] = None
    payment_system_id: Optional[str] = None
    payment_system_name: Optional[str] = None
    payment_group: Optional[str] = None
    payment_merchant: Optional[str] = None


@dataclass(frozen=True)
class TiktokShopConfig:
    shop_cipher: str
    access_token: str


def normalize_optional(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


class ShopConfigService:
    """
    Resolves shop credentials from the ``shops`` table.

    Resolved configs are kept in injected TTL caches so a burst of webhooks
    for the same shop reads the table once.
    """

    def __init__(
        self,
        session_factory,
        vtex_cache: Optional[TTLCache] = None,
        tiktok_cache: Optional[TTLCache] = None,
    ):
        self.session_factory = session_factory
        self.vtex_cache = vtex_cache if vtex_cache is not None else TTLCache(60)
        self.tiktok_cache = tiktok_cache if tiktok_cache is not None else TTLCache(60)

    async def _get_shop(self, shop_id: str) -> Shop:
        normalized = normalize_optional(shop_id)
        if not normalized:
            raise ShopConfigError("Missing shop id")

        async with self.session_factory() as session:
            shop = await ShopRepository(session).get(normalized)

        if shop is None:
            raise NotFoundError(f"Shop {normalized} not found")
        return shop

    @staticmethod
    def _require(shop: Shop, attribute: str, label: str) -> str:
        value = normalize_optional(getattr(shop, attribute))
        if not value:
            raise ShopConfigError(f"Missing {label} for shop {shop.shop_id}")
        return value

    async def get_vtex_config(self, shop_id: str) -> VtexShopConfig:
        cached = self.vtex_cache.get(shop_id)
        if cached is not None:
            return cached

        shop = await self._get_shop(shop_id)
        config = VtexShopConfig(
            account=self._require(shop, "vtex_account", "VTEX_ACCOUNT"),
            environment=self._require(shop, "vtex_environment", "VTEX_ENVIRONMENT"),
            app_key=self._require(shop, "vtex_app_key", "VTEX_APP_KEY"),
            app_token=self._require(shop, "vtex_app_token", "VTEX_APP_TOKEN"),
            sales_channel=normalize_optional(shop.vtex_sales_channel) or "1",
            affiliate_id=normalize_optional(shop.vtex_affiliate_id),
            seller_id=normalize_optional(shop.vtex_seller_id),
            webhook_token=normalize_optional(shop.vtex_webhook_token),
            domain=normalize_optional(shop.vtex_domain),
            marketplace_services_endpoint=normalize_optional(
                shop.vtex_marketplace_services_endpoint
            ),
            preferred_sla=normalize_optional(shop.vtex_preferred_sla),
            payment_system_id=normalize_optional(shop.vtex_payment_system_id),
            payment_system_name=normalize_optional(shop.vtex_payment_system_name),
            payment_group=normalize_optional(shop.vtex_payment_group),
            payment_merchant=normalize_optional(shop.vtex_payment_merchant),
        )
        self.vtex_cache.set(shop_id, config)
        return config

    async def get_tiktok_config(self, shop_id: str) -> TiktokShopConfig:
        cached = self.tiktok_cache.get(shop_id)
        if cached is not None:
            return cached

        shop = await self._get_shop(shop_id)
        config = TiktokShopConfig(
            shop_cipher=self._require(shop, "tiktok_shop_cipher", "TIKTOK_SHOP_CIPHER"),
            access_token=self._require(shop, "tiktok_access_token", "TIKTOK_ACCESS_TOKEN"),
        )
        self.tiktok_cache.set(shop_id, config)
        return config

    async def resolve_shop_by_webhook_token(self, token: str) -> str:
        """
        Map a VTEX marketplace webhook token to its shop id.

        Raises:
            ShopConfigError: token missing
            NotFoundError: no shop uses this token
        """
        normalized = normalize_optional(token)
        if not normalized:
            raise ShopConfigError("Missing VTEX webhook token")

        async with self.session_factory() as session:
            shop = await ShopRepository(session).get_by_webhook_token(normalized)

        if shop is None:
            logger.warning("VTEX marketplace notification with unknown webhook token")
            raise NotFoundError("Invalid VTEX webhook token")
        return shop.shop_id

    def invalidate(self, shop_id: Optional[str] = None) -> None:
        self.vtex_cache.invalidate(shop_id)
        self.tiktok_cache.invalidate(shop_id)
