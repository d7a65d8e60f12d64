"""TikTok Shop and VTEX API clients."""

from .tiktok_client import TiktokLogisticsClient, TiktokOrderClient
from .vtex_client import VtexOrdersClient

__all__ = ["TiktokLogisticsClient", "TiktokOrderClient", "VtexOrdersClient"]
