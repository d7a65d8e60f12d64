"""
Order Payload Builder.

Turns a TikTok order detail into the VTEX fulfillment order payload:
1. Map line items to VTEX SKUs (product mappings, seller SKU fallback)
2. Resolve address, buyer profile and tax document
3. Simulate the basket and pick a delivery SLA per item
4. Reconcile prices against the simulation and compute the payment total
5. Assemble the marketplace order payload
"""

from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from tts_vtex_bridge.config.constants import (
    DEFAULT_PAYMENT_SYSTEM_ID,
    DEFAULT_SELLER_ID,
    FALLBACK_MARKETPLACE_ENDPOINT,
    PRICE_MODE_SELLING,
    PRODUCT_MAPPING_AUTO,
)
from tts_vtex_bridge.core.errors import EmptyBasketError
from tts_vtex_bridge.core.logger import setup_logger
from tts_vtex_bridge.db.repository import ProductMappingRepository
from tts_vtex_bridge.models.order import MappedItem, OrderBuildResult
from tts_vtex_bridge.services.address import build_shipping_address, resolve_recipient_address
from tts_vtex_bridge.services.buyer import resolve_buyer_profile
from tts_vtex_bridge.services.documents import resolve_document
from tts_vtex_bridge.services.pricing import resolve_simulation_pricing
from tts_vtex_bridge.services.shop_config import ShopConfigService, VtexShopConfig
from tts_vtex_bridge.services.sla import select_slas
from tts_vtex_bridge.utils.payload import as_list, first_present, normalize_quantity, to_cents

logger = setup_logger(__name__)


def order_line_items(order: Dict[str, Any]) -> List[Dict[str, Any]]:
    items = order.get("line_items")
    if not isinstance(items, list):
        items = order.get("items")
    return [item for item in as_list(items) if isinstance(item, dict)]


def order_id_of(order: Dict[str, Any]) -> Optional[str]:
    value = first_present(order.get("id"), order.get("order_id"))
    return str(value) if value is not None else None


def _optional_str(value: Any) -> Optional[str]:
    return str(value) if value is not None and str(value) != "" else None


def resolve_marketplace_endpoint(config: VtexShopConfig, public_base_url: Optional[str]) -> str:
    """
    Callback endpoint VTEX uses to notify the marketplace.

    Explicit shop setting first, then ``{public_base_url}/webhooks/vtex/marketplace/{token}``.
    """
    if config.marketplace_services_endpoint:
        return config.marketplace_services_endpoint

    base = public_base_url.rstrip("/") if public_base_url else None
    if base and config.webhook_token:
        return f"{base}/webhooks/vtex/marketplace/{config.webhook_token}"
    return base or FALLBACK_MARKETPLACE_ENDPOINT


def build_payment(total: int, config: VtexShopConfig) -> Dict[str, Any]:
    payment: Dict[str, Any] = {
        "paymentSystem": config.payment_system_id or DEFAULT_PAYMENT_SYSTEM_ID,
        "installments": 1,
        "value": total,
        "referenceValue": total,
    }
    if config.payment_system_name:
        payment["paymentSystemName"] = config.payment_system_name
    if config.payment_group:
        payment["group"] = config.payment_group
    if config.payment_merchant:
        payment["merchantName"] = config.payment_merchant
    return payment


class OrderPayloadBuilder:
    """Builds VTEX order payloads from TikTok order details."""

    def __init__(
        self,
        session_factory,
        vtex_client,
        shop_config: ShopConfigService,
        public_base_url: Optional[str] = None,
        allow_synthetic_document: bool = True,
    ):
        self.session_factory = session_factory
        self.vtex_client = vtex_client
        self.shop_config = shop_config
        self.public_base_url = public_base_url
        self.allow_synthetic_document = allow_synthetic_document

    async def map_line_items(
        self,
        shop_id: str,
        order: Dict[str, Any],
        seller_id: str = DEFAULT_SELLER_ID,
    ) -> List[MappedItem]:
        """
        Resolve each TikTok line item to a VTEX SKU.

        Unmappable or ambiguous lines are skipped with a warning; a seller SKU
        code with no mapping is adopted as the VTEX SKU id and persisted as an
        ``auto_mapped`` product mapping.
        """
        mapped: List[MappedItem] = []

        async with self.session_factory() as session:
            repo = ProductMappingRepository(session)

            for item in order_line_items(order):
                tts_sku_id = _optional_str(item.get("sku_id"))
                tts_product_id = _optional_str(item.get("product_id"))
                seller_sku = _optional_str(item.get("seller_sku"))

                vtex_sku_id: Optional[str] = None
                ambiguous = False

                if tts_sku_id:
                    mapping = await repo.find_by_tts_sku(shop_id, tts_sku_id)
                    if mapping:
                        vtex_sku_id = mapping.vtex_sku_id

                if vtex_sku_id is None and tts_product_id:
                    candidates = await repo.find_by_tts_product(shop_id, tts_product_id)
                    if len(candidates) == 1:
                        vtex_sku_id = candidates[0].vtex_sku_id
                    elif len(candidates) > 1:
                        match = next(
                            (
                                c for c in candidates
                                if seller_sku and seller_sku in (c.vtex_sku_id, c.seller_sku)
                            ),
                            None,
                        )
                        if match:
                            vtex_sku_id = match.vtex_sku_id
                        else:
                            ambiguous = True
                            logger.warning(
                                f"Ambiguous product mapping for TikTok item "
                                f"(sku={tts_sku_id}, product={tts_product_id}, seller_sku={seller_sku}, "
                                f"candidates={[c.vtex_sku_id for c in candidates]}); skipping"
                            )

                if ambiguous:
                    continue

                if vtex_sku_id is None and seller_sku:
                    logger.info(
                        f"Mapping not found for TikTok sku {tts_sku_id}, using seller_sku {seller_sku} as VTEX id"
                    )
                    try:
                        await repo.upsert_auto_mapping(
                            vtex_sku_id=seller_sku,
                            shop_id=shop_id,
                            tts_product_id=tts_product_id,
                            tts_sku_id=tts_sku_id,
                            status=PRODUCT_MAPPING_AUTO,
                        )
                    except SQLAlchemyError as e:
                        await session.rollback()
                        logger.warning(f"Failed to auto-create product mapping for {seller_sku}: {e}")
                    vtex_sku_id = seller_sku

                if vtex_sku_id is None:
                    logger.warning(
                        f"Unable to find product mapping for TikTok item "
                        f"(sku={tts_sku_id}, product={tts_product_id}); skipping"
                    )
                    continue

                mapped.append(
                    MappedItem(
                        id=vtex_sku_id,
                        quantity=normalize_quantity(item.get("quantity")),
                        price=to_cents(
                            first_present(
                                item.get("sale_price"), item.get("original_price"), item.get("price")
                            )
                        ),
                        seller=seller_id,
                        tts_sku_id=tts_sku_id,
                    )
                )

        return mapped

    async def build(
        self,
        shop_id: str,
        order: Dict[str, Any],
        price_mode: str = PRICE_MODE_SELLING,
    ) -> OrderBuildResult:
        """
        Build the VTEX order payload.

        Args:
            shop_id: TikTok shop id
            order: Unwrapped TikTok order detail
            price_mode: "selling" (tags applied) or "price" (base price only)

        Returns:
            OrderBuildResult with the payload and computed totals

        Raises:
            EmptyBasketError: no line item could be mapped
            NoDeliverySlaError: some item has no delivery SLA
            OrderValidationError: no valid document and synthetic ids disabled
        """
        order_id = order_id_of(order) or "unknown"
        config = await self.shop_config.get_vtex_config(shop_id)
        seller_id = config.seller_id or DEFAULT_SELLER_ID

        logger.info(
            f"Building VTEX payload for order {order_id} "
            f"(line_items={len(order_line_items(order))}, price_mode={price_mode})",
            extra={"order_id": order_id, "shop_id": shop_id},
        )

        items = await self.map_line_items(shop_id, order, seller_id=seller_id)
        if not items:
            raise EmptyBasketError(order_id)

        resolved = resolve_recipient_address(order)
        recipient = resolved.data if resolved else {}
        address = build_shipping_address(order, order_id)
        document = resolve_document(order, order_id, allow_synthetic=self.allow_synthetic_document)
        profile = resolve_buyer_profile(order, recipient, document)

        logger.info(
            f"Simulating order {order_id} with VTEX "
            f"(items={[(i.id, i.quantity) for i in items]}, country={address['country']})",
            extra={"order_id": order_id, "shop_id": shop_id},
        )
        simulation = await self.vtex_client.simulate_order(
            shop_id, items, address["postalCode"], address["country"]
        )

        choices = select_slas(simulation, items, address["postalCode"], preferred=config.preferred_sla)
        shipping_total = sum(choice.price for choice in choices)
        logger.info(
            f"Selected SLA {choices[0].sla_id} for order {order_id} "
            f"(shipping_total={shipping_total}, items={len(choices)})",
            extra={"order_id": order_id},
        )

        pricing = resolve_simulation_pricing(simulation, price_mode)
        priced_items = []
        items_total = 0
        for item in items:
            item_pricing = pricing.get(item.id)
            line = {
                "id": item.id,
                "quantity": item.quantity,
                "seller": item.seller,
                "price": item_pricing.base_price if item_pricing else item.price,
            }
            if item_pricing and item_pricing.price_tags:
                line["priceTags"] = item_pricing.price_tags
            priced_items.append(line)

            unit = item_pricing.final_price if item_pricing else item.price
            items_total += unit * item.quantity

        total = items_total + shipping_total
        if total <= 0:
            logger.warning(
                f"Computed payment total is zero or invalid for order {order_id} "
                f"(items_total={items_total}, shipping_total={shipping_total})",
                extra={"order_id": order_id},
            )

        payload = [
            {
                "marketplaceOrderId": order_id,
                "marketplaceServicesEndpoint": resolve_marketplace_endpoint(config, self.public_base_url),
                "marketplacePaymentValue": total,
                "items": priced_items,
                "clientProfileData": profile.to_client_profile(),
                "shippingData": {
                    "address": address,
                    "selectedSla": choices[0].sla_id,
                    "logisticsInfo": [choice.to_logistics_info() for choice in choices],
                },
                "paymentData": {"payments": [build_payment(total, config)]},
            }
        ]

        return OrderBuildResult(
            payload=payload,
            total=total,
            shipping_total=shipping_total,
            items=items,
            sla_choices=choices,
            postal_code=address["postalCode"],
            price_mode=price_mode,
        )
