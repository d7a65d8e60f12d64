"""Database module."""

from .base import Base, get_engine, get_session_factory, init_db
from .models import IdempotencyRecord, OrderMapping, ProductMapping, Shop
from .repository import (
    IdempotencyRepository,
    OrderMappingRepository,
    ProductMappingRepository,
    ShopRepository,
)

__all__ = [
    "Base",
    "get_engine",
    "get_session_factory",
    "init_db",
    "IdempotencyRecord",
    "OrderMapping",
    "ProductMapping",
    "Shop",
    "IdempotencyRepository",
    "OrderMappingRepository",
    "ProductMappingRepository",
    "ShopRepository",
]
