"""SQLAlchemy models for the order bridge."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


def utcnow() -> datetime:
    """Naive UTC timestamp (columns are stored without timezone)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class OrderMapping(Base):
    """
    Correlates a TikTok order with the VTEX order created for it.

    One row per TikTok order id; retries overwrite the same row.
    """

    __tablename__ = "order_mappings"

    tts_order_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    vtex_order_id: Mapped[Optional[str]] = mapped_column(String(64), index=True, nullable=True)
    shop_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    status: Mapped[str] = mapped_column(String(32), index=True, nullable=False)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    label_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False, index=True
    )


class IdempotencyRecord(Base):
    """Ledger of processed events. The key column is the concurrency guard."""

    __tablename__ = "idempotency_records"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    processed_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class ProductMapping(Base):
    """VTEX SKU to TikTok product/SKU correlation, owned by the catalog sync."""

    __tablename__ = "product_mappings"

    vtex_sku_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    shop_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    tts_product_id: Mapped[Optional[str]] = mapped_column(String(64), index=True, nullable=True)
    tts_sku_id: Mapped[Optional[str]] = mapped_column(String(64), index=True, nullable=True)
    seller_sku: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    status: Mapped[str] = mapped_column(String(32), default="synced", nullable=False)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )


class Shop(Base):
    """Per-shop credentials and defaults for both platforms."""

    __tablename__ = "shops"

    shop_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    # TikTok Shop
    tiktok_shop_cipher: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    tiktok_access_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # VTEX account
    vtex_account: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    vtex_environment: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    vtex_app_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    vtex_app_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    vtex_domain: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # VTEX order defaults
    vtex_sales_channel: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    vtex_affiliate_id: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    vtex_seller_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    vtex_webhook_token: Mapped[Optional[str]] = mapped_column(
        String(128), unique=True, index=True, nullable=True
    )
    vtex_marketplace_services_endpoint: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    vtex_preferred_sla: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    # VTEX payment
    vtex_payment_system_id: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    vtex_payment_system_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    vtex_payment_group: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    vtex_payment_merchant: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )
