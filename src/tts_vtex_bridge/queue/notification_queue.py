"""
VTEX marketplace notification dispatcher.

The webhook route enqueues and answers right away; a single consumer task
runs the notifications one by one. Consumer errors are logged and sent to
Sentry, never raised back to the route.
"""

import asyncio
from typing import Any, Optional, Tuple

from tts_vtex_bridge.core.logger import setup_logger
from tts_vtex_bridge.core.monitoring import capture_exception

logger = setup_logger(__name__)


class NotificationDispatcher:
    """asyncio.Queue with one consumer calling ``handle_marketplace_notification``."""

    def __init__(self, order_service, maxsize: int = 0):
        self.order_service = order_service
        self.queue: "asyncio.Queue[Tuple[Any, str]]" = asyncio.Queue(maxsize=maxsize)
        self._consumer: Optional[asyncio.Task] = None
        self.processed = 0
        self.failed = 0

    @property
    def is_running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    def start(self) -> None:
        if self.is_running:
            logger.warning("Notification dispatcher already started")
            return
        self._consumer = asyncio.create_task(self._consume(), name="vtex-notification-consumer")
        logger.info("Notification dispatcher started")

    def submit(self, payload: Any, shop_id: str) -> None:
        """Enqueue a notification without waiting for it to be processed."""
        self.queue.put_nowait((payload, shop_id))
        logger.debug(f"Notification queued (depth={self.queue.qsize()})", extra={"shop_id": shop_id})

    async def _consume(self) -> None:
        while True:
            payload, shop_id = await self.queue.get()
            try:
                await self.order_service.handle_marketplace_notification(payload, shop_id)
                self.processed += 1
            except Exception as e:
                self.failed += 1
                logger.error(
                    f"Failed to process VTEX marketplace notification: {e}",
                    exc_info=True,
                    extra={"shop_id": shop_id},
                )
                capture_exception(e, {"shop_id": shop_id})
            finally:
                self.queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued notification has been handled."""
        await self.queue.join()

    async def stop(self, timeout: float = 30.0) -> None:
        """Drain the queue (bounded by ``timeout``) and stop the consumer."""
        if self._consumer is None:
            return

        try:
            await asyncio.wait_for(self.drain(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timeout draining notifications ({self.queue.qsize()} left)")

        self._consumer.cancel()
        await asyncio.gather(self._consumer, return_exceptions=True)
        self._consumer = None
        logger.info(f"Notification dispatcher stopped (processed={self.processed}, failed={self.failed})")
