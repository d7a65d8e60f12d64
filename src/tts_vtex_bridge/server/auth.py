"""API key guard for operator endpoints."""

import hmac
from typing import Optional

from fastapi import Depends, Header, HTTPException, Query

from tts_vtex_bridge.core.logger import setup_logger
from tts_vtex_bridge.server.dependencies import BridgeServices, get_services_stub

logger = setup_logger(__name__)


async def verify_api_key(
    x_api_key: Optional[str] = Header(None),
    api_key: Optional[str] = Query(None, alias="apiKey"),
    services: BridgeServices = Depends(get_services_stub),
) -> None:
    """
    Accept the middleware key from ``X-API-Key`` or ``?apiKey=``.

    Raises:
        HTTPException: 401 when the key is missing or wrong, or none is configured
    """
    expected = services.settings.middleware_api_key
    provided = x_api_key or api_key

    if not expected:
        logger.error("MIDDLEWARE_API_KEY is not configured; rejecting request")
        raise HTTPException(status_code=401, detail="Invalid API key")

    if not provided or not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=401, detail="Invalid API key")
