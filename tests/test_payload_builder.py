"""Tests for the VTEX order payload builder."""

import pytest
from sqlalchemy import select

from tts_vtex_bridge.config.constants import PRICE_MODE_PRICE, PRODUCT_MAPPING_AUTO
from tts_vtex_bridge.core.errors import EmptyBasketError, NoDeliverySlaError
from tts_vtex_bridge.db.models import ProductMapping
from tts_vtex_bridge.services.order_payload_builder import OrderPayloadBuilder

from tests.fakes import SHOP_ID, VALID_CPF, FakeVtexClient, make_order, make_simulation


@pytest.fixture
def vtex():
    return FakeVtexClient()


@pytest.fixture
def builder(session_factory, shop_config, vtex, shop):
    return OrderPayloadBuilder(
        session_factory,
        vtex,
        shop_config,
        public_base_url="https://bridge.example.com/",
    )


async def test_build_assembles_payload(builder, vtex):
    result = await builder.build(SHOP_ID, make_order())
    order = result.payload[0]

    assert result.total == 1000
    assert result.shipping_total == 0
    assert order["marketplaceOrderId"] == "order-001"
    assert order["marketplaceServicesEndpoint"] == "https://bridge.example.com/webhooks/vtex/marketplace/hook-token"
    assert order["marketplacePaymentValue"] == 1000
    assert order["items"] == [{"id": "sku-001", "quantity": 1, "seller": "1", "price": 1000}]
    assert order["shippingData"]["selectedSla"] == "STANDARD"
    assert order["shippingData"]["address"]["postalCode"] == "01001000"
    assert order["shippingData"]["logisticsInfo"][0]["selectedSla"] == "STANDARD"

    profile = order["clientProfileData"]
    assert profile["document"] == VALID_CPF
    assert profile["documentType"] == "cpf"
    assert profile["firstName"] == "Maria"
    assert profile["lastName"] == "Silva"
    assert profile["phone"] == "5511987654321"

    payment = order["paymentData"]["payments"][0]
    assert payment == {
        "paymentSystem": "201",
        "installments": 1,
        "value": 1000,
        "referenceValue": 1000,
        "paymentSystemName": "TikTok Shop",
    }
    assert vtex.simulate_calls == [(SHOP_ID, ["sku-001"], "01001000", "BRA")]


async def test_price_tags_and_price_mode(builder, vtex):
    vtex.simulation = make_simulation(price=1000, price_tags=[{"name": "a", "value": 50}, {"name": "b", "value": -20}])

    selling = await builder.build(SHOP_ID, make_order())
    assert selling.total == 1030
    assert selling.payload[0]["items"][0]["priceTags"][0]["value"] == 50

    price = await builder.build(SHOP_ID, make_order(), price_mode=PRICE_MODE_PRICE)
    assert price.total == 1000
    assert "priceTags" not in price.payload[0]["items"][0]


async def test_shipping_is_added_to_total(builder, vtex):
    vtex.simulation = make_simulation(
        slas=[{"id": "Normal", "price": 1590, "shippingEstimate": "5bd"}]
    )
    order = make_order(line_items=[{"sku_id": "sku-001", "quantity": "2"}])
    result = await builder.build(SHOP_ID, order)
    assert result.shipping_total == 1590
    assert result.total == 2 * 1000 + 1590


async def test_seller_sku_is_auto_mapped(builder, vtex, session_factory):
    vtex.simulation = make_simulation(sku_id="sku-777")
    order = make_order(line_items=[{"sku_id": "tts-999", "product_id": "p-9", "seller_sku": "sku-777", "quantity": 1}])
    result = await builder.build(SHOP_ID, order)
    assert result.items[0].id == "sku-777"

    async with session_factory() as session:
        mapping = await session.get(ProductMapping, "sku-777")
    assert mapping.status == PRODUCT_MAPPING_AUTO
    assert mapping.tts_sku_id == "tts-999"


async def test_seller_sku_keeps_catalog_owned_row(builder, vtex, session_factory):
    async with session_factory() as session:
        session.add(
            ProductMapping(vtex_sku_id="sku-777", shop_id=SHOP_ID, status="synced", last_error="stock drift")
        )
        await session.commit()

    vtex.simulation = make_simulation(sku_id="sku-777")
    order = make_order(line_items=[{"sku_id": "tts-999", "product_id": "p-9", "seller_sku": "sku-777", "quantity": 1}])
    result = await builder.build(SHOP_ID, order)
    assert result.items[0].id == "sku-777"

    async with session_factory() as session:
        mapping = await session.get(ProductMapping, "sku-777")
    assert mapping.status == "synced"
    assert mapping.last_error == "stock drift"
    assert mapping.tts_sku_id == "tts-999"


async def test_ambiguous_product_mapping_is_skipped(builder, session_factory):
    async with session_factory() as session:
        session.add(ProductMapping(vtex_sku_id="sku-002", shop_id=SHOP_ID, tts_product_id="prod-001"))
        await session.commit()

    order = make_order(line_items=[{"product_id": "prod-001", "quantity": 1}])
    with pytest.raises(EmptyBasketError):
        await builder.build(SHOP_ID, order)


async def test_ambiguous_product_resolved_by_seller_sku(builder, session_factory):
    async with session_factory() as session:
        session.add(ProductMapping(vtex_sku_id="sku-002", shop_id=SHOP_ID, tts_product_id="prod-001"))
        await session.commit()

    order = make_order(line_items=[{"product_id": "prod-001", "seller_sku": "sku-001", "quantity": 1}])
    result = await builder.build(SHOP_ID, order)
    assert [i.id for i in result.items] == ["sku-001"]

    async with session_factory() as session:
        rows = (await session.execute(select(ProductMapping))).scalars().all()
    assert len(rows) == 2


async def test_unmapped_basket_raises(builder, vtex):
    order = make_order(line_items=[{"sku_id": "unknown", "quantity": 1}])
    with pytest.raises(EmptyBasketError):
        await builder.build(SHOP_ID, order)
    assert vtex.simulate_calls == []


async def test_no_delivery_sla_raises(builder, vtex):
    vtex.simulation = make_simulation(slas=[{"id": "Retirada", "deliveryChannel": "pickup-in-point"}])
    with pytest.raises(NoDeliverySlaError):
        await builder.build(SHOP_ID, make_order())
