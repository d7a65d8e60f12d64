"""
Sentry error monitoring utilities.

Initialisation plus helpers for tagging order context and capturing errors
raised in detached work (notification consumer, invoice poller).
"""

import logging
from typing import Any, Dict, Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from tts_vtex_bridge.config.settings import Settings
from tts_vtex_bridge.core.logger import setup_logger

logger = setup_logger(__name__)


def init_monitoring(settings: Settings) -> bool:
    """
    Initialise Sentry when a DSN is configured.

    Returns:
        True if Sentry was initialised
    """
    if not settings.sentry_dsn:
        logger.info("Sentry DSN not set, error monitoring disabled")
        return False

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            LoggingIntegration(level=None, event_level=logging.ERROR),
        ],
        traces_sample_rate=settings.sentry_traces_sample_rate,
        send_default_pii=False,
    )
    logger.info(f"Sentry initialised (environment={settings.environment})")
    return True


def set_order_context(
    shop_id: Optional[str] = None,
    order_id: Optional[str] = None,
    vtex_order_id: Optional[str] = None,
    **extra_tags,
) -> None:
    """
    Tag the current scope with order identifiers.

    Args:
        shop_id: TikTok shop id
        order_id: TikTok order id
        vtex_order_id: VTEX order id
        **extra_tags: Additional tags to add
    """
    tags = {
        "order.shop_id": shop_id,
        "order.tts_order_id": order_id,
        "order.vtex_order_id": vtex_order_id,
    }
    tags.update(extra_tags)
    for key, value in tags.items():
        if value is not None:
            sentry_sdk.set_tag(key, value)


def capture_exception(
    error: BaseException,
    context: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Send an exception to Sentry with optional custom context.

    Args:
        error: The exception to capture
        context: Additional context data
    """
    with sentry_sdk.new_scope() as scope:
        if context:
            scope.set_context("bridge", context)
        sentry_sdk.capture_exception(error)
