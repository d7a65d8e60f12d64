"""
Invoice Poll Scheduler using APScheduler.

Periodically checks VTEX for invoices on orders still waiting for a label.
Covers notifications VTEX never delivered. With Redis configured, a lock
keeps several instances from polling at the same time.
"""

import asyncio
from typing import Optional

import redis.asyncio as aioredis
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from tts_vtex_bridge.config.constants import INVOICE_POLL_LOCK_KEY, INVOICE_POLL_LOCK_SECONDS
from tts_vtex_bridge.core.logger import setup_logger
from tts_vtex_bridge.services.order_service import OrderReconciliationService, PollResult

logger = setup_logger(__name__)


class InvoicePollScheduler:
    """Runs ``poll_pending_invoices`` on an interval."""

    def __init__(
        self,
        order_service: OrderReconciliationService,
        interval_minutes: int = 5,
        batch_size: int = 50,
        max_age_days: int = 30,
        redis_url: Optional[str] = None,
        redis_client: Optional[aioredis.Redis] = None,
    ):
        self.service = order_service
        self.interval_minutes = interval_minutes
        self.batch_size = batch_size
        self.max_age_days = max_age_days
        self.redis_url = redis_url
        self._redis = redis_client
        self._local_lock = asyncio.Lock()
        self.scheduler = AsyncIOScheduler()
        self._started = False

    async def _get_redis(self) -> Optional[aioredis.Redis]:
        if self._redis is None and self.redis_url:
            self._redis = aioredis.from_url(self.redis_url, decode_responses=True)
        return self._redis

    def start(self) -> None:
        if self._started:
            logger.warning("Invoice poll scheduler already started")
            return

        self.scheduler.add_job(
            self.run_once,
            IntervalTrigger(minutes=self.interval_minutes),
            id="vtex_invoice_poll",
            name="VTEX Invoice Poll",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        self._started = True
        logger.info(
            f"Invoice poll scheduler started (every {self.interval_minutes} minute(s), "
            f"batch={self.batch_size}, max_age_days={self.max_age_days})"
        )

    async def stop(self) -> None:
        """Gracefully stop scheduler and close Redis."""
        if self._started:
            self.scheduler.shutdown(wait=False)
            self._started = False
            logger.info("Invoice poll scheduler stopped")

        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def _acquire_distributed_lock(self) -> Optional[bool]:
        """True/False for the Redis lock, None when Redis is not configured."""
        client = await self._get_redis()
        if client is None:
            return None
        acquired = await client.set(INVOICE_POLL_LOCK_KEY, "1", nx=True, ex=INVOICE_POLL_LOCK_SECONDS)
        return bool(acquired)

    async def _release_distributed_lock(self) -> None:
        client = await self._get_redis()
        if client is not None:
            await client.delete(INVOICE_POLL_LOCK_KEY)

    async def run_once(self) -> Optional[PollResult]:
        """
        Single polling pass, skipped if another pass holds the lock.

        Returns:
            PollResult, or None if skipped or failed
        """
        if self._local_lock.locked():
            logger.info("Invoice poll already running in this process, skipping")
            return None

        async with self._local_lock:
            try:
                acquired = await self._acquire_distributed_lock()
            except Exception as e:
                logger.error(f"Failed to acquire invoice poll lock: {e}", exc_info=True)
                return None

            if acquired is False:
                logger.info("Invoice poll lock held by another instance, skipping")
                return None

            try:
                return await self.service.poll_pending_invoices(self.batch_size, self.max_age_days)
            except Exception as e:
                logger.error(f"Invoice poll failed: {e}", exc_info=True)
                return None
            finally:
                if acquired:
                    try:
                        await self._release_distributed_lock()
                    except Exception as e:
                        logger.warning(f"Failed to release invoice poll lock: {e}")

    @property
    def is_running(self) -> bool:
        return self._started and self.scheduler.running
