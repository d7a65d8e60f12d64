"""Shipment label generation and tracking push-back."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from tts_vtex_bridge.config.constants import DEFAULT_SHIPPING_PROVIDER
from tts_vtex_bridge.core.errors import NotFoundError
from tts_vtex_bridge.core.logger import setup_logger
from tts_vtex_bridge.db.repository import OrderMappingRepository
from tts_vtex_bridge.models.order import InvoiceMeta
from tts_vtex_bridge.utils.payload import dig, first_present

logger = setup_logger(__name__)


def extract_label_url(document: Any) -> Optional[str]:
    return first_present(
        dig(document, "data", "label_url"),
        dig(document, "data", "document_url"),
        dig(document, "label_url"),
    )


def build_invoice_payload(
    tracking_number: Optional[str],
    courier: str,
    order_id: str,
    order_value: Optional[int],
    invoice: Optional[InvoiceMeta],
) -> Dict[str, Any]:
    """
    VTEX invoice notification carrying the TikTok tracking data.

    Without a real invoice, the number is derived from the last five
    tracking digits and the issuance date is today (UTC).
    """
    reference = tracking_number or order_id
    invoice_number = (invoice.number if invoice else None) or f"TTS-{reference[-5:]}"
    issuance_date = (invoice.issuance_date if invoice else None) or datetime.now(timezone.utc).strftime("%Y-%m-%d")
    value = first_present(invoice.value if invoice else None, order_value)

    payload: Dict[str, Any] = {
        "type": "Output",
        "invoiceNumber": invoice_number,
        "issuanceDate": issuance_date,
        "invoiceValue": int(value or 0),
        "trackingNumber": tracking_number,
        "courier": courier,
        "items": [],
    }
    if invoice and invoice.key:
        payload["invoiceKey"] = invoice.key
    return payload


class LabelService:
    """Requests TikTok shipping documents and mirrors tracking into VTEX."""

    def __init__(self, session_factory, logistics_client, vtex_client):
        self.session_factory = session_factory
        self.logistics_client = logistics_client
        self.vtex_client = vtex_client

    async def generate_label(
        self,
        shop_id: str,
        order_id: str,
        order_value: Optional[int] = None,
        invoice: Optional[InvoiceMeta] = None,
    ) -> Dict[str, Any]:
        """
        Get-or-create the shipping document and store its label URL.

        Args:
            shop_id: TikTok shop id
            order_id: TikTok order id
            order_value: Order value in cents (used for the VTEX invoice)
            invoice: Invoice data when the label follows a VTEX invoice

        Returns:
            {"orderId", "labelUrl", "document"}

        Raises:
            NotFoundError: no mapping for the order
        """
        async with self.session_factory() as session:
            mapping = await OrderMappingRepository(session).get(order_id)
        if mapping is None:
            raise NotFoundError(f"Order mapping not found for {order_id}")

        document = await self.logistics_client.get_or_create_shipping_document(shop_id, order_id)
        label_url = extract_label_url(document)

        async with self.session_factory() as session:
            await OrderMappingRepository(session).update(
                order_id,
                label_url=label_url,
                last_error=None,
                shop_id=shop_id,
            )
        logger.info(
            f"Shipping document ready for order {order_id} (label={'yes' if label_url else 'no'})",
            extra={"order_id": order_id, "shop_id": shop_id},
        )

        if mapping.vtex_order_id and label_url:
            await self._push_tracking(shop_id, order_id, mapping.vtex_order_id, order_value, invoice)

        return {"orderId": order_id, "labelUrl": label_url, "document": document}

    async def _push_tracking(
        self,
        shop_id: str,
        order_id: str,
        vtex_order_id: str,
        order_value: Optional[int],
        invoice: Optional[InvoiceMeta],
    ) -> None:
        """Best-effort: failures are logged and never fail label generation."""
        try:
            tracking = await self.logistics_client.get_shipping_document(shop_id, order_id)
            tracking_number = first_present(
                dig(tracking, "data", "tracking_number"), dig(tracking, "tracking_number")
            )
            courier = first_present(
                dig(tracking, "data", "shipping_provider"),
                dig(tracking, "data", "shipping_provider_name"),
                dig(tracking, "shipping_provider"),
            ) or DEFAULT_SHIPPING_PROVIDER

            payload = build_invoice_payload(
                str(tracking_number) if tracking_number is not None else None,
                courier,
                order_id,
                order_value,
                invoice,
            )
            await self.vtex_client.update_tracking(shop_id, vtex_order_id, payload)
            logger.info(
                f"VTEX order {vtex_order_id} updated with tracking {tracking_number}",
                extra={"order_id": order_id, "vtex_order_id": vtex_order_id},
            )
        except Exception as e:
            logger.error(
                f"Failed to push tracking to VTEX order {vtex_order_id}: {e}",
                exc_info=True,
                extra={"order_id": order_id, "vtex_order_id": vtex_order_id},
            )

    async def get_label(self, order_id: str, shop_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Cached label URL if present, otherwise the current shipping document.

        Raises:
            NotFoundError: unknown order
        """
        async with self.session_factory() as session:
            mapping = await OrderMappingRepository(session).get(order_id)
        if mapping is None:
            raise NotFoundError(f"Label not found for order {order_id}")

        if mapping.label_url:
            return {"orderId": order_id, "labelUrl": mapping.label_url}

        document = await self.logistics_client.get_shipping_document(shop_id or mapping.shop_id, order_id)
        return {"orderId": order_id, "document": document}
