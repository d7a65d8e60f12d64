"""Tests for shipping label generation."""

from datetime import datetime, timezone

import pytest

from tts_vtex_bridge.config.constants import STATUS_IMPORTED
from tts_vtex_bridge.core.errors import NotFoundError, VtexApiError
from tts_vtex_bridge.db.models import OrderMapping
from tts_vtex_bridge.db.repository import OrderMappingRepository
from tts_vtex_bridge.models.order import InvoiceMeta
from tts_vtex_bridge.services.logistics_service import (
    LabelService,
    build_invoice_payload,
    extract_label_url,
)

from tests.fakes import SHOP_ID, FakeLogisticsClient, FakeVtexClient

LABEL_URL = "https://labels.example.com/order-001.pdf"


@pytest.fixture
def logistics():
    return FakeLogisticsClient()


@pytest.fixture
def vtex():
    return FakeVtexClient()


@pytest.fixture
def label_service(session_factory, logistics, vtex):
    return LabelService(session_factory, logistics, vtex)


@pytest.fixture
async def mapping(session_factory, shop):
    async with session_factory() as session:
        session.add(
            OrderMapping(tts_order_id="order-001", shop_id=SHOP_ID, vtex_order_id="vtex-001", status=STATUS_IMPORTED)
        )
        await session.commit()


class TestGenerateLabel:
    async def test_stores_label_and_pushes_tracking(self, label_service, session_factory, vtex, mapping):
        result = await label_service.generate_label(SHOP_ID, "order-001", 1000)

        assert result["labelUrl"] == LABEL_URL
        async with session_factory() as session:
            stored = await OrderMappingRepository(session).get("order-001")
        assert stored.label_url == LABEL_URL

        [(shop_id, vtex_order_id, invoice)] = vtex.tracking_calls
        assert (shop_id, vtex_order_id) == (SHOP_ID, "vtex-001")
        assert invoice["type"] == "Output"
        assert invoice["invoiceNumber"] == "TTS-56789"
        assert invoice["invoiceValue"] == 1000
        assert invoice["trackingNumber"] == "BR123456789"
        assert invoice["courier"] == "J&T Express"
        assert "invoiceKey" not in invoice

    async def test_real_invoice_is_forwarded(self, label_service, vtex, mapping):
        invoice = InvoiceMeta(number="NF-1", key="KEY-1", issuance_date="2024-01-02", value=1500)
        await label_service.generate_label(SHOP_ID, "order-001", 1000, invoice)

        payload = vtex.tracking_calls[0][2]
        assert payload["invoiceNumber"] == "NF-1"
        assert payload["invoiceKey"] == "KEY-1"
        assert payload["issuanceDate"] == "2024-01-02"
        assert payload["invoiceValue"] == 1500

    async def test_unknown_order(self, label_service, logistics, shop):
        with pytest.raises(NotFoundError):
            await label_service.generate_label(SHOP_ID, "order-404")
        assert logistics.create_calls == []

    async def test_tracking_failure_does_not_fail_label(self, label_service, session_factory, vtex, mapping):
        vtex.tracking_error = VtexApiError("tracking rejected", status_code=400)

        result = await label_service.generate_label(SHOP_ID, "order-001", 1000)

        assert result["labelUrl"] == LABEL_URL
        async with session_factory() as session:
            assert (await OrderMappingRepository(session).get("order-001")).label_url == LABEL_URL

    async def test_no_tracking_push_without_label(self, label_service, logistics, vtex, mapping):
        logistics.document = {"code": 0, "data": {"doc_type": "SHIPPING_LABEL"}}

        result = await label_service.generate_label(SHOP_ID, "order-001")

        assert result["labelUrl"] is None
        assert vtex.tracking_calls == []


class TestGetLabel:
    async def test_cached_label(self, label_service, session_factory, logistics, mapping):
        await label_service.generate_label(SHOP_ID, "order-001")
        logistics.get_calls.clear()

        assert await label_service.get_label("order-001") == {"orderId": "order-001", "labelUrl": LABEL_URL}
        assert logistics.get_calls == []

    async def test_document_when_not_cached(self, label_service, logistics, mapping):
        result = await label_service.get_label("order-001")

        assert result["orderId"] == "order-001"
        assert result["document"]["data"]["tracking_number"] == "BR123456789"
        assert logistics.get_calls == [(SHOP_ID, "order-001")]

    async def test_unknown_order(self, label_service, shop):
        with pytest.raises(NotFoundError):
            await label_service.get_label("order-404")


def test_extract_label_url():
    assert extract_label_url({"data": {"document_url": "https://x/doc.pdf"}}) == "https://x/doc.pdf"
    assert extract_label_url({"label_url": "https://x/top.pdf"}) == "https://x/top.pdf"
    assert extract_label_url({"data": {}}) is None


def test_invoice_payload_without_tracking_uses_order_id():
    payload = build_invoice_payload(None, "TikTok Shipping", "order-12345", None, None)

    assert payload["invoiceNumber"] == "TTS-12345"
    assert payload["invoiceValue"] == 0
    assert payload["issuanceDate"] == datetime.now(timezone.utc).strftime("%Y-%m-%d")
