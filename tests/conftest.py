"""Shared fixtures: in-memory database with one configured shop."""

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from tts_vtex_bridge.core.cache import TTLCache
from tts_vtex_bridge.db import ProductMapping, Shop, get_session_factory, init_db
from tts_vtex_bridge.services.shop_config import ShopConfigService

from tests.fakes import SHOP_ID, WEBHOOK_TOKEN


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return get_session_factory(engine)


@pytest.fixture
async def shop(session_factory):
    async with session_factory() as session:
        session.add(
            Shop(
                shop_id=SHOP_ID,
                tiktok_shop_cipher="cipher-1",
                tiktok_access_token="tts-token",
                vtex_account="acme",
                vtex_environment="vtexcommercestable",
                vtex_app_key="vtex-key",
                vtex_app_token="vtex-token",
                vtex_webhook_token=WEBHOOK_TOKEN,
                vtex_payment_system_id="201",
                vtex_payment_system_name="TikTok Shop",
            )
        )
        session.add(
            ProductMapping(
                vtex_sku_id="sku-001",
                shop_id=SHOP_ID,
                tts_product_id="prod-001",
                tts_sku_id="sku-001",
            )
        )
        await session.commit()
    return SHOP_ID


@pytest.fixture
def shop_config(session_factory):
    return ShopConfigService(session_factory, vtex_cache=TTLCache(0), tiktok_cache=TTLCache(0))
