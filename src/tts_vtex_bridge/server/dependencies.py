"""Service graph wiring for the FastAPI app."""

from dataclasses import dataclass
from typing import Optional

import httpx

from tts_vtex_bridge.api.tiktok_client import TiktokLogisticsClient, TiktokOrderClient
from tts_vtex_bridge.api.vtex_client import VtexOrdersClient
from tts_vtex_bridge.config.settings import Settings
from tts_vtex_bridge.core.cache import TTLCache
from tts_vtex_bridge.core.logger import setup_logger
from tts_vtex_bridge.queue import NotificationDispatcher
from tts_vtex_bridge.services.idempotency import IdempotencyService
from tts_vtex_bridge.services.invoice_scheduler import InvoicePollScheduler
from tts_vtex_bridge.services.logistics_service import LabelService
from tts_vtex_bridge.services.order_payload_builder import OrderPayloadBuilder
from tts_vtex_bridge.services.order_service import OrderReconciliationService
from tts_vtex_bridge.services.shop_config import ShopConfigService

logger = setup_logger(__name__)


@dataclass
class BridgeServices:
    """Everything the routes and lifecycle hooks need."""
    settings: Settings
    session_factory: object
    shop_config: ShopConfigService
    order_service: OrderReconciliationService
    label_service: LabelService
    dispatcher: NotificationDispatcher
    scheduler: Optional[InvoicePollScheduler] = None
    http_client: Optional[httpx.AsyncClient] = None

    async def close(self) -> None:
        if self.scheduler is not None:
            await self.scheduler.stop()
        await self.dispatcher.stop()
        if self.http_client is not None:
            await self.http_client.aclose()


def get_services_stub() -> BridgeServices:
    """Placeholder dependency, overridden in ``create_app``."""
    raise NotImplementedError("Service dependency not configured")


def build_services(
    settings: Settings,
    session_factory,
    http_client: Optional[httpx.AsyncClient] = None,
) -> BridgeServices:
    """
    Build the service graph around one shared HTTP client.

    Args:
        settings: Application settings
        session_factory: async_sessionmaker bound to the engine
        http_client: Shared httpx client (created from settings if omitted)

    Returns:
        BridgeServices ready to be started
    """
    client = http_client or httpx.AsyncClient(timeout=settings.request_timeout_seconds)

    shop_config = ShopConfigService(
        session_factory,
        vtex_cache=TTLCache(settings.shop_config_cache_ttl_seconds),
        tiktok_cache=TTLCache(settings.shop_config_cache_ttl_seconds),
    )
    vtex_client = VtexOrdersClient(shop_config, http_client=client)
    tiktok_kwargs = dict(
        app_key=settings.tiktok_app_key or "",
        app_secret=settings.tiktok_app_secret or "",
        shop_config=shop_config,
        base_url=settings.tiktok_base_open,
        http_client=client,
    )
    order_client = TiktokOrderClient(**tiktok_kwargs)
    logistics_client = TiktokLogisticsClient(**tiktok_kwargs)

    label_service = LabelService(session_factory, logistics_client, vtex_client)
    payload_builder = OrderPayloadBuilder(
        session_factory,
        vtex_client,
        shop_config,
        public_base_url=settings.public_base_url,
        allow_synthetic_document=settings.allow_synthetic_document,
    )
    order_service = OrderReconciliationService(
        session_factory,
        IdempotencyService(session_factory),
        order_client,
        vtex_client,
        payload_builder,
        label_service,
        label_trigger=settings.tts_label_trigger,
        settle_delay_seconds=settings.dispatch_settle_delay_seconds,
    )

    scheduler = None
    if settings.vtex_invoice_poll_enabled:
        scheduler = InvoicePollScheduler(
            order_service,
            interval_minutes=settings.vtex_invoice_poll_interval_minutes,
            batch_size=settings.vtex_invoice_poll_batch,
            max_age_days=settings.vtex_invoice_poll_max_age_days,
            redis_url=settings.redis_url,
        )

    logger.info(
        f"Services built (label_trigger={settings.tts_label_trigger}, "
        f"invoice_poll={'on' if scheduler else 'off'})"
    )
    return BridgeServices(
        settings=settings,
        session_factory=session_factory,
        shop_config=shop_config,
        order_service=order_service,
        label_service=label_service,
        dispatcher=NotificationDispatcher(order_service),
        scheduler=scheduler,
        http_client=client,
    )
