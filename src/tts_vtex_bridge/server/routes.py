"""API routes for the order bridge."""

import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from tts_vtex_bridge import __version__
from tts_vtex_bridge.core.logger import setup_logger
from tts_vtex_bridge.core.signature import validate_webhook_request
from tts_vtex_bridge.db.repository import ping
from tts_vtex_bridge.server.auth import verify_api_key
from tts_vtex_bridge.server.dependencies import BridgeServices, get_services_stub

logger = setup_logger(__name__)
router = APIRouter()


async def _read_json(request: Request) -> Any:
    raw_body = await request.body()
    if not raw_body:
        return {}
    try:
        return json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning(f"Invalid JSON body on {request.url.path}: {e}")
        raise HTTPException(status_code=400, detail="Invalid JSON body")


@router.get("/health")
async def health_check(services: BridgeServices = Depends(get_services_stub)) -> dict:
    """Health check endpoint for monitoring."""
    health_status = {
        "status": "healthy",
        "service": "tts-vtex-bridge",
        "version": __version__,
        "checks": {},
    }

    try:
        async with services.session_factory() as session:
            await ping(session)
        health_status["checks"]["database"] = "ok"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        health_status["checks"]["database"] = "error"
        health_status["status"] = "degraded"

    health_status["checks"]["notification_dispatcher"] = (
        "running" if services.dispatcher.is_running else "stopped"
    )
    health_status["checks"]["invoice_poll"] = (
        "running" if services.scheduler and services.scheduler.is_running else "disabled"
    )
    return health_status


@router.post("/webhooks/tiktok/orders")
async def tiktok_order_webhook(
    request: Request,
    services: BridgeServices = Depends(get_services_stub),
) -> Dict[str, str]:
    """
    TikTok Shop order webhook.

    Runs the whole order pipeline before answering; TikTok retries on non-2xx,
    and redeliveries are short-circuited by the idempotency ledger.

    Returns:
        {"status": "processed" | "skipped" | "ignored"}
    """
    raw_body = await request.body()
    settings = services.settings

    if settings.verify_webhook_signature:
        is_valid, error_msg = validate_webhook_request(
            raw_body, request.headers, settings.tiktok_app_key, settings.tiktok_app_secret
        )
        if not is_valid:
            logger.warning(f"Rejected TikTok webhook: {error_msg}")
            raise HTTPException(status_code=401, detail=error_msg or "Invalid signature")

    payload = await _read_json(request)
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Webhook body must be a JSON object")

    data = payload.get("data")
    if not isinstance(data, dict) or not data.get("order_id"):
        logger.info(f"TikTok webhook without order id ignored (type={payload.get('type')})")
        return {"status": "ignored"}

    status = await services.order_service.handle_order_webhook(payload)
    return {"status": status}


@router.post("/webhooks/vtex/marketplace/{token}")
async def vtex_marketplace_webhook(
    token: str,
    request: Request,
    services: BridgeServices = Depends(get_services_stub),
) -> Dict[str, str]:
    """
    VTEX marketplace notification hook.

    The token identifies the shop. Processing happens on the notification
    dispatcher; VTEX gets an immediate 200.
    """
    shop_id = await services.shop_config.resolve_shop_by_webhook_token(token)
    payload = await _read_json(request)

    services.dispatcher.submit(payload, shop_id)
    logger.info("VTEX marketplace notification accepted", extra={"shop_id": shop_id})
    return {"status": "accepted"}


@router.get("/orders/{order_id}/label", dependencies=[Depends(verify_api_key)])
async def get_order_label(
    order_id: str,
    x_tts_shopid: Optional[str] = Header(None, alias="X-TTS-ShopId"),
    services: BridgeServices = Depends(get_services_stub),
) -> Dict[str, Any]:
    """Label URL for a TikTok order, or its current shipping document."""
    return await services.order_service.get_label(order_id, x_tts_shopid)
