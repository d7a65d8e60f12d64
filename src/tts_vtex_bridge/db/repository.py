"""Repositories for order bridge data access."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from .models import IdempotencyRecord, OrderMapping, ProductMapping, Shop, utcnow


class OrderMappingRepository:
    """Data access layer for OrderMapping."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, tts_order_id: str) -> Optional[OrderMapping]:
        return await self.session.get(OrderMapping, tts_order_id)

    async def get_by_vtex_order_id(
        self, vtex_order_id: str, shop_id: Optional[str] = None
    ) -> Optional[OrderMapping]:
        query = select(OrderMapping).where(OrderMapping.vtex_order_id == vtex_order_id)
        if shop_id:
            query = query.where(OrderMapping.shop_id == shop_id)
        result = await self.session.execute(query.limit(1))
        return result.scalars().first()

    async def upsert(
        self,
        tts_order_id: str,
        shop_id: str,
        status: str,
        **fields,
    ) -> OrderMapping:
        """
        Create or update the mapping for a TikTok order.

        Args:
            tts_order_id: TikTok order id (primary key)
            shop_id: Owning shop
            status: New mapping status
            **fields: Other columns to set (vtex_order_id, last_error, label_url)

        Returns:
            The persisted mapping
        """
        mapping = await self.get(tts_order_id)
        if mapping is None:
            mapping = OrderMapping(tts_order_id=tts_order_id, shop_id=shop_id, status=status)
            self.session.add(mapping)
        mapping.shop_id = shop_id
        mapping.status = status
        for name, value in fields.items():
            setattr(mapping, name, value)

        await self.session.commit()
        await self.session.refresh(mapping)
        return mapping

    async def update(self, tts_order_id: str, **fields) -> Optional[OrderMapping]:
        """Update columns on an existing mapping. Returns None if it does not exist."""
        mapping = await self.get(tts_order_id)
        if mapping is None:
            return None
        for name, value in fields.items():
            setattr(mapping, name, value)
        await self.session.commit()
        await self.session.refresh(mapping)
        return mapping

    async def list_pending_invoice(
        self, statuses: List[str], updated_since: datetime, limit: int
    ) -> List[OrderMapping]:
        """Mappings still waiting for an invoice and a label, oldest first."""
        query = (
            select(OrderMapping)
            .where(OrderMapping.status.in_(statuses))
            .where(OrderMapping.label_url.is_(None))
            .where(OrderMapping.vtex_order_id.is_not(None))
            .where(OrderMapping.updated_at >= updated_since)
            .order_by(OrderMapping.updated_at.asc())
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())


class ProductMappingRepository:
    """Data access layer for ProductMapping."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_tts_sku(self, shop_id: str, tts_sku_id: str) -> Optional[ProductMapping]:
        query = (
            select(ProductMapping)
            .where(ProductMapping.shop_id == shop_id)
            .where(ProductMapping.tts_sku_id == tts_sku_id)
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalars().first()

    async def find_by_tts_product(self, shop_id: str, tts_product_id: str) -> List[ProductMapping]:
        query = (
            select(ProductMapping)
            .where(ProductMapping.shop_id == shop_id)
            .where(ProductMapping.tts_product_id == tts_product_id)
            .order_by(ProductMapping.vtex_sku_id)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def upsert_auto_mapping(
        self,
        vtex_sku_id: str,
        shop_id: str,
        tts_product_id: Optional[str],
        tts_sku_id: Optional[str],
        status: str,
    ) -> ProductMapping:
        """
        Persist a mapping adopted from a seller SKU code.

        An existing row belongs to the catalog sync: only its missing TikTok
        ids are filled in, its shop, status and error are left alone.
        """
        mapping = await self.session.get(ProductMapping, vtex_sku_id)
        if mapping is None:
            mapping = ProductMapping(
                vtex_sku_id=vtex_sku_id,
                shop_id=shop_id,
                tts_product_id=tts_product_id,
                tts_sku_id=tts_sku_id,
                seller_sku=vtex_sku_id,
                status=status,
            )
            self.session.add(mapping)
        else:
            mapping.tts_product_id = mapping.tts_product_id or tts_product_id
            mapping.tts_sku_id = mapping.tts_sku_id or tts_sku_id
            mapping.seller_sku = mapping.seller_sku or vtex_sku_id

        await self.session.commit()
        await self.session.refresh(mapping)
        return mapping


class IdempotencyRepository:
    """Data access layer for the idempotency ledger."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def exists(self, key: str) -> bool:
        query = select(IdempotencyRecord.key).where(IdempotencyRecord.key == key)
        result = await self.session.execute(query)
        return result.first() is not None

    async def insert(self, key: str, payload_hash: str) -> None:
        """
        Insert a ledger row and commit.

        Raises:
            sqlalchemy.exc.IntegrityError: another registration already wrote the key
        """
        self.session.add(IdempotencyRecord(key=key, payload_hash=payload_hash, processed_at=utcnow()))
        await self.session.commit()


class ShopRepository:
    """Data access layer for Shop."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, shop_id: str) -> Optional[Shop]:
        return await self.session.get(Shop, shop_id)

    async def get_by_webhook_token(self, token: str) -> Optional[Shop]:
        query = select(Shop).where(Shop.vtex_webhook_token == token).limit(1)
        result = await self.session.execute(query)
        return result.scalars().first()


async def ping(session: AsyncSession) -> bool:
    """Cheap connectivity check for the health endpoint."""
    await session.execute(text("SELECT 1"))
    return True
