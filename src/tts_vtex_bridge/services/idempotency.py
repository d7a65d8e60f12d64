"""Idempotency ledger for webhook and notification processing."""

from typing import Any, Awaitable, Callable, Literal

from sqlalchemy.exc import IntegrityError

from tts_vtex_bridge.core.logger import setup_logger
from tts_vtex_bridge.db.repository import IdempotencyRepository
from tts_vtex_bridge.utils.payload import create_payload_hash

logger = setup_logger(__name__)

RegisterResult = Literal["processed", "skipped"]


class IdempotencyService:
    """
    Runs a handler at most once per key.

    The ledger row is written only after the handler succeeds, so a failing
    handler leaves the key free for redelivery. The primary key on the ledger
    table is the commit point: when two deliveries race, the loser's insert
    fails and it reports "skipped".
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def already_processed(self, key: str) -> bool:
        async with self.session_factory() as session:
            return await IdempotencyRepository(session).exists(key)

    async def register(
        self,
        key: str,
        payload: Any,
        handler: Callable[[], Awaitable[Any]],
    ) -> RegisterResult:
        """
        Run ``handler`` unless ``key`` was already processed.

        Args:
            key: Business idempotency key
            payload: Event payload (only its hash is stored)
            handler: Coroutine function performing the side effects

        Returns:
            "processed" if the handler ran and the ledger was written,
            "skipped" if the key already existed

        Raises:
            Whatever the handler raises; no ledger row is written in that case
        """
        if await self.already_processed(key):
            logger.info(f"Idempotency key already processed: {key}", extra={"idempotency_key": key})
            return "skipped"

        await handler()

        payload_hash = create_payload_hash(payload)
        async with self.session_factory() as session:
            try:
                await IdempotencyRepository(session).insert(key, payload_hash)
            except IntegrityError:
                await session.rollback()
                logger.warning(
                    f"Concurrent delivery committed {key} first; reporting as skipped",
                    extra={"idempotency_key": key},
                )
                return "skipped"

        return "processed"
