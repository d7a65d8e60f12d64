"""
Order Reconciliation Service.

Drives a TikTok order through its lifecycle on VTEX:
1. TikTok webhook -> fetch order -> build payload -> create VTEX order
2. Dispatch authorization and TikTok acknowledgement (best-effort)
3. Shipping label, either immediately or once VTEX reports an invoice
4. Invoice detection from VTEX marketplace notifications or polling
"""

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional

from tts_vtex_bridge.config.constants import (
    PENDING_INVOICE_STATUSES,
    PRICE_MODE_PRICE,
    PRICE_MODE_SELLING,
    SKIP_ORDER_STATUSES,
    STATUS_AWAITING_INVOICE,
    STATUS_ERROR,
    STATUS_IMPORTED,
    STATUS_INVOICED,
)
from tts_vtex_bridge.core.errors import (
    NoDeliverySlaError,
    OrderValidationError,
    UnprocessableOrderError,
    VtexApiError,
)
from tts_vtex_bridge.core.logger import setup_logger
from tts_vtex_bridge.core.monitoring import capture_exception, set_order_context
from tts_vtex_bridge.db.models import OrderMapping, utcnow
from tts_vtex_bridge.db.repository import OrderMappingRepository
from tts_vtex_bridge.models.order import CreateOrderOutcome, InvoiceMeta, OrderBuildResult
from tts_vtex_bridge.models.webhook import MarketplaceEvent, TiktokWebhookEvent, is_ping
from tts_vtex_bridge.services.address import find_postal_code, resolve_recipient_address
from tts_vtex_bridge.services.documents import extract_document_candidates
from tts_vtex_bridge.services.idempotency import IdempotencyService
from tts_vtex_bridge.services.logistics_service import LabelService
from tts_vtex_bridge.services.order_payload_builder import OrderPayloadBuilder, order_line_items
from tts_vtex_bridge.utils.payload import (
    as_dict,
    as_list,
    dig,
    first_present,
    mask_hint,
    to_cents,
    to_number,
)

logger = setup_logger(__name__)

INVOICE_NUMBER_FIELDS = ("invoiceNumber", "invoice_number", "number", "number_nf")
INVOICE_KEY_FIELDS = ("invoiceKey", "invoice_key", "key", "nfeKey")
INVOICE_DATE_FIELDS = ("issuanceDate", "issuance_date", "date")
INVOICE_VALUE_FIELDS = ("invoiceValue", "value", "total")

ORDER_VALUE_PATHS = (
    ("value",),
    ("totalValue",),
    ("invoiceData", "totalValue"),
    ("invoiceData", "invoiceValue"),
)


@dataclass
class PollResult:
    """Result of one invoice polling pass."""
    checked: int = 0
    invoiced: int = 0
    errors: int = 0


def _first_field(candidate: Dict[str, Any], fields) -> Any:
    return first_present(*(candidate.get(name) for name in fields))


def extract_invoice_data(order: Any) -> Optional[InvoiceMeta]:
    """
    Invoice metadata from a VTEX order, or None if it has not been invoiced.

    Looks through ``invoiceData``, ``packageAttachment`` and ``invoices`` (both
    the containers and their list entries); the first candidate carrying a
    number or key wins.
    """
    if not isinstance(order, dict):
        return None

    invoice_data = order.get("invoiceData")
    attachment = order.get("packageAttachment")

    candidates = []
    candidates.extend(as_list(dig(invoice_data, "invoices")))
    candidates.append(invoice_data)
    candidates.extend(as_list(dig(attachment, "packages")))
    candidates.append(attachment)
    candidates.extend(as_list(order.get("invoices")))

    for raw in candidates:
        if not isinstance(raw, dict):
            continue
        number = _first_field(raw, INVOICE_NUMBER_FIELDS)
        key = _first_field(raw, INVOICE_KEY_FIELDS)
        if not number and not key:
            continue

        issuance_date = _first_field(raw, INVOICE_DATE_FIELDS)
        value = to_number(_first_field(raw, INVOICE_VALUE_FIELDS))
        return InvoiceMeta(
            number=str(number) if number else None,
            key=str(key) if key else None,
            issuance_date=str(issuance_date) if issuance_date else None,
            value=int(round(value)) if value is not None else None,
        )
    return None


def resolve_order_value(order: Any) -> int:
    """First positive order total on a VTEX order (already in cents), else 0."""
    for path in ORDER_VALUE_PATHS:
        value = to_number(dig(order, *path))
        if value is not None and value > 0:
            return int(round(value))
    return 0


def tiktok_order_value(order: Dict[str, Any]) -> int:
    """TikTok payment total in cents."""
    return to_cents(first_present(dig(order, "payment", "total_amount"), dig(order, "payment", "total")))


class OrderReconciliationService:
    """Coordinates TikTok orders, VTEX orders and shipping labels."""

    def __init__(
        self,
        session_factory,
        idempotency: IdempotencyService,
        order_client,
        vtex_client,
        payload_builder: OrderPayloadBuilder,
        label_service: LabelService,
        label_trigger: str = "immediate",
        settle_delay_seconds: float = 15.0,
    ):
        self.session_factory = session_factory
        self.idempotency = idempotency
        self.order_client = order_client
        self.vtex_client = vtex_client
        self.payload_builder = payload_builder
        self.label_service = label_service
        self.label_trigger = label_trigger
        self.settle_delay_seconds = settle_delay_seconds

    @property
    def label_deferred(self) -> bool:
        return self.label_trigger == "invoice"

    # ------------------------------------------------------------------
    # TikTok order webhook
    # ------------------------------------------------------------------

    async def handle_order_webhook(self, payload: Dict[str, Any]) -> str:
        """
        Process a TikTok order webhook.

        Args:
            payload: Raw webhook body

        Returns:
            "processed", "skipped" (already handled) or "ignored" (no order id)

        Raises:
            OrderValidationError: order data not usable yet (no error state)
            UnprocessableOrderError: VTEX cannot ship the order (error persisted)
            VtexApiError: VTEX rejected the order (error persisted)
        """
        event = TiktokWebhookEvent(**payload)
        order_id = event.get_order_id()
        shop_id = event.get_shop_id()

        if not order_id or not shop_id:
            logger.warning(f"Ignoring TikTok webhook without order or shop id (type={event.type})")
            return "ignored"

        key = event.idempotency_key()
        set_order_context(shop_id=shop_id, order_id=order_id)
        logger.info(
            f"Processing TikTok order webhook (type={event.type}, status={event.get_status_hint()})",
            extra={"shop_id": shop_id, "order_id": order_id, "idempotency_key": key},
        )

        async def handler():
            await self._process_order(shop_id, order_id, event.get_status_hint())

        return await self.idempotency.register(key, payload, handler)

    async def _process_order(self, shop_id: str, order_id: str, status_hint: str) -> None:
        context = {"shop_id": shop_id, "order_id": order_id}
        try:
            order = await self.order_client.get_order(shop_id, order_id)
            logger.info(f"Fetched TikTok order (status={order.get('status')})", extra=context)
            self.log_order_snapshot(order, order_id)

            resolved = resolve_recipient_address(order)
            recipient = resolved.data if resolved else {}
            raw_postal, postal_code = find_postal_code(order, recipient)
            if postal_code is None:
                logger.warning(
                    f"Rejecting order with missing recipient postal code "
                    f"(status={order.get('status') or status_hint}, "
                    f"postal={mask_hint(raw_postal)}, source={resolved.source if resolved else 'unknown'})",
                    extra=context,
                )
                raise OrderValidationError(f"Order {order_id} has no valid recipient postal code")

            if order.get("status") in SKIP_ORDER_STATUSES:
                logger.info(f"Skipping order in status {order.get('status')}", extra=context)
                return

            await self._create_vtex_order(shop_id, order_id, order)
        except Exception as e:
            logger.error(f"Failed to process TikTok order webhook: {e}", exc_info=True, extra=context)
            raise

    def log_order_snapshot(self, order: Dict[str, Any], order_id: str) -> None:
        """Log the order shape for diagnostics; identifiers only as hints."""
        resolved = resolve_recipient_address(order)
        recipient = resolved.data if resolved else {}
        raw_postal, _ = find_postal_code(order, recipient)
        document = first_present(*extract_document_candidates(order))

        snapshot = {
            "status": order.get("status"),
            "line_items": len(order_line_items(order)),
            "address_source": resolved.source if resolved else None,
            "address_keys": sorted(recipient.keys()),
            "postal": mask_hint(raw_postal),
            "document": mask_hint(document),
        }
        logger.info("TikTok order snapshot", extra={"order_id": order_id, "snapshot": snapshot})

    async def _build(self, shop_id: str, order_id: str, order: Dict[str, Any], price_mode: str) -> OrderBuildResult:
        try:
            return await self.payload_builder.build(shop_id, order, price_mode=price_mode)
        except NoDeliverySlaError as e:
            await self._mark_error(shop_id, order_id, str(e))
            raise UnprocessableOrderError(str(e)) from e

    async def _create_vtex_order(self, shop_id: str, order_id: str, order: Dict[str, Any]) -> None:
        """Build, submit, and on a pricing rejection rebuild once in price mode."""
        for price_mode in (PRICE_MODE_SELLING, PRICE_MODE_PRICE):
            build = await self._build(shop_id, order_id, order, price_mode)
            result = await self.vtex_client.create_order(shop_id, build.payload)

            if result.outcome is CreateOrderOutcome.PRICING_REJECTED and price_mode == PRICE_MODE_SELLING:
                logger.warning(
                    f"VTEX rejected payment totals ({result.error_code}); retrying with price mode",
                    extra={"order_id": order_id, "shop_id": shop_id},
                )
                continue
            break

        if result.ok:
            await self._on_order_created(shop_id, order_id, order, result.order_id, build.price_mode)
            return

        if result.outcome is CreateOrderOutcome.SLA_REJECTED:
            await self._log_sla_diagnostics(shop_id, order_id, build)
            message = str(
                NoDeliverySlaError([item.id for item in build.items], build.postal_code, result.error_message)
            )
            await self._mark_error(shop_id, order_id, message)
            raise UnprocessableOrderError(message)

        logger.error(
            f"Failed to create VTEX order (status={result.status_code}, code={result.error_code}): "
            f"{result.error_message}",
            extra={"order_id": order_id, "shop_id": shop_id},
        )
        await self._mark_error(shop_id, order_id, f"VTEX API Error: {result.error_message or 'Unknown error'}")
        raise VtexApiError(
            result.error_message or "VTEX order creation failed",
            status_code=result.status_code,
            code=result.error_code,
            body=result.body,
        )

    async def _on_order_created(
        self,
        shop_id: str,
        order_id: str,
        order: Dict[str, Any],
        vtex_order_id: Optional[str],
        price_mode: str,
    ) -> None:
        context = {"order_id": order_id, "shop_id": shop_id, "vtex_order_id": vtex_order_id}
        logger.info(f"Created VTEX order {vtex_order_id} (price_mode={price_mode})", extra=context)
        set_order_context(vtex_order_id=vtex_order_id)

        status = STATUS_AWAITING_INVOICE if self.label_deferred else STATUS_IMPORTED
        async with self.session_factory() as session:
            await OrderMappingRepository(session).upsert(
                order_id,
                shop_id,
                status,
                vtex_order_id=vtex_order_id,
                last_error=None,
            )

        if vtex_order_id:
            try:
                logger.info(
                    f"Waiting {self.settle_delay_seconds}s before VTEX dispatch authorization",
                    extra=context,
                )
                await asyncio.sleep(self.settle_delay_seconds)
                await self.vtex_client.authorize_dispatch(shop_id, vtex_order_id)
                logger.info("VTEX dispatch authorized", extra=context)
            except Exception as e:
                logger.error(f"Failed to authorize VTEX dispatch: {e}", exc_info=True, extra=context)
        else:
            logger.warning("VTEX response carried no order id; dispatch not authorized", extra=context)

        try:
            await self.order_client.ack_order(shop_id, order_id)
        except Exception as e:
            logger.warning(f"Failed to acknowledge TikTok order: {e}", extra=context)

        if self.label_deferred:
            logger.info("Label generation deferred until invoice notification", extra=context)
        else:
            order_value = tiktok_order_value(order)
            logger.info(f"Initiating label generation (order_value={order_value})", extra=context)
            await self.label_service.generate_label(shop_id, order_id, order_value)

        logger.info("TikTok order processed successfully", extra=context)

    async def _log_sla_diagnostics(self, shop_id: str, order_id: str, build: OrderBuildResult) -> None:
        """Re-simulate after a VTEX SLA rejection, for the logs only."""
        country = dig(build.payload, 0, "shippingData", "address", "country")
        try:
            simulation = await self.vtex_client.simulate_order(shop_id, build.items, build.postal_code, country)
            summary = [
                {
                    "itemIndex": as_dict(entry).get("itemIndex"),
                    "slas": [as_dict(sla).get("id") for sla in as_list(as_dict(entry).get("slas"))],
                }
                for entry in as_list(simulation.get("logisticsInfo"))
            ]
            logger.warning(f"VTEX rejected SLA; current simulation logistics: {summary}", extra={"order_id": order_id})
        except Exception as e:
            logger.warning(f"SLA diagnostic simulation failed: {e}", extra={"order_id": order_id})

    async def _mark_error(self, shop_id: str, order_id: str, message: str) -> None:
        async with self.session_factory() as session:
            await OrderMappingRepository(session).upsert(order_id, shop_id, STATUS_ERROR, last_error=message)

    # ------------------------------------------------------------------
    # VTEX marketplace notifications and invoice polling
    # ------------------------------------------------------------------

    async def handle_marketplace_notification(self, payload: Any, shop_id: str) -> None:
        """
        Process a VTEX marketplace notification (order status change).

        Generates the label once the VTEX order carries an invoice. Pings,
        unknown orders and orders that already have a label are no-ops.
        """
        if not isinstance(payload, dict) or not payload:
            logger.warning("Received empty VTEX marketplace notification", extra={"shop_id": shop_id})
            return

        if is_ping(payload):
            logger.info("Received VTEX marketplace hook ping", extra={"shop_id": shop_id})
            return

        event = MarketplaceEvent.from_payload(payload)
        key = event.idempotency_key(shop_id, payload)

        async def handler():
            await self._process_marketplace_event(event, shop_id)

        await self.idempotency.register(key, payload, handler)

    async def _process_marketplace_event(self, event: MarketplaceEvent, shop_id: str) -> None:
        mapping = await self._resolve_mapping(event, shop_id)
        if mapping is None:
            logger.warning(
                f"VTEX marketplace notification did not match any order mapping "
                f"(vtex={event.vtex_order_id}, marketplace={event.marketplace_order_id})",
                extra={"shop_id": shop_id},
            )
            return

        vtex_order_id = mapping.vtex_order_id or event.vtex_order_id
        context = {"shop_id": shop_id, "order_id": mapping.tts_order_id, "vtex_order_id": vtex_order_id}
        if not vtex_order_id:
            logger.warning("VTEX marketplace notification missing vtexOrderId", extra=context)
            return

        if mapping.label_url:
            logger.info("Label already generated; skipping marketplace notification", extra=context)
            return

        await self._process_invoice(shop_id, mapping.tts_order_id, vtex_order_id, event.status)

    async def _resolve_mapping(self, event: MarketplaceEvent, shop_id: str) -> Optional[OrderMapping]:
        async with self.session_factory() as session:
            repo = OrderMappingRepository(session)
            if event.marketplace_order_id:
                mapping = await repo.get(event.marketplace_order_id)
                if mapping:
                    return mapping
            if event.vtex_order_id:
                return await repo.get_by_vtex_order_id(event.vtex_order_id, shop_id)
        return None

    async def _process_invoice(
        self,
        shop_id: str,
        tts_order_id: str,
        vtex_order_id: str,
        status: Optional[str] = None,
    ) -> bool:
        """
        Generate the label if the VTEX order has been invoiced.

        Returns:
            True if an invoice was found and the label generated
        """
        context = {"shop_id": shop_id, "order_id": tts_order_id, "vtex_order_id": vtex_order_id}
        order_data = await self.vtex_client.get_order(shop_id, vtex_order_id)
        invoice = extract_invoice_data(order_data)
        if invoice is None:
            logger.info(f"No invoice found yet on VTEX order (status={status})", extra=context)
            return False

        async with self.session_factory() as session:
            await OrderMappingRepository(session).update(
                tts_order_id,
                status=STATUS_INVOICED,
                last_error=None,
                shop_id=shop_id,
            )

        order_value = resolve_order_value(order_data)
        logger.info(f"Generating label after invoice {invoice.number or invoice.key}", extra=context)
        await self.label_service.generate_label(shop_id, tts_order_id, order_value, invoice)
        return True

    async def poll_pending_invoices(self, batch_size: int, max_age_days: int) -> PollResult:
        """
        Check VTEX for invoices on mappings still waiting for a label.

        Each order is handled independently; a failure is counted, logged and
        reported, and the batch carries on.
        """
        result = PollResult()
        updated_since = utcnow() - timedelta(days=max_age_days)

        async with self.session_factory() as session:
            pending = await OrderMappingRepository(session).list_pending_invoice(
                PENDING_INVOICE_STATUSES, updated_since, batch_size
            )

        for mapping in pending:
            result.checked += 1
            try:
                if await self._process_invoice(mapping.shop_id, mapping.tts_order_id, mapping.vtex_order_id):
                    result.invoiced += 1
            except Exception as e:
                result.errors += 1
                logger.error(
                    f"Invoice poll failed for order {mapping.tts_order_id}: {e}",
                    exc_info=True,
                    extra={"order_id": mapping.tts_order_id, "vtex_order_id": mapping.vtex_order_id},
                )
                capture_exception(e, {"order_id": mapping.tts_order_id, "vtex_order_id": mapping.vtex_order_id})

        logger.info(
            f"Invoice poll finished: checked={result.checked}, "
            f"invoiced={result.invoiced}, errors={result.errors}"
        )
        return result

    async def get_label(self, order_id: str, shop_id: Optional[str] = None) -> Dict[str, Any]:
        return await self.label_service.get_label(order_id, shop_id)
