"""Value objects produced while turning a TikTok order into a VTEX order."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass
class MappedItem:
    """A TikTok line item resolved to a VTEX SKU. Price is in cents."""

    id: str
    quantity: int
    price: int
    seller: str = "1"
    tts_sku_id: Optional[str] = None

    def to_simulation_item(self) -> Dict[str, Any]:
        return {"id": self.id, "quantity": self.quantity, "seller": self.seller}


@dataclass
class ResolvedAddress:
    """The address-like object found in an order, tagged with where it came from."""

    source: str
    data: Dict[str, Any]


@dataclass
class ResolvedDocument:
    """Buyer tax id. ``synthetic`` marks a generated CPF."""

    type: str  # "cpf" or "cnpj"
    value: str
    synthetic: bool = False


@dataclass
class BuyerProfile:
    email: str
    first_name: str
    last_name: str
    phone: str
    document: ResolvedDocument

    def to_client_profile(self) -> Dict[str, Any]:
        return {
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "phone": self.phone,
            "documentType": self.document.type,
            "document": self.document.value,
        }


@dataclass
class SlaChoice:
    """Selected delivery SLA for one basket item. Price is in cents."""

    item_index: int
    sla_id: str
    price: int
    shipping_estimate: str
    lock_ttl: str

    def to_logistics_info(self) -> Dict[str, Any]:
        return {
            "itemIndex": self.item_index,
            "selectedSla": self.sla_id,
            "price": self.price,
            "shippingEstimate": self.shipping_estimate,
            "lockTTL": self.lock_ttl,
        }


@dataclass
class ItemPricing:
    """Authoritative VTEX pricing for one SKU, in cents."""

    base_price: int
    final_price: int
    price_tags: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class OrderBuildResult:
    """Everything the orchestrator needs after a successful build."""

    payload: List[Dict[str, Any]]
    total: int
    shipping_total: int
    items: List[MappedItem]
    sla_choices: List[SlaChoice]
    postal_code: str
    price_mode: str


@dataclass
class InvoiceMeta:
    """Invoice data extracted from a VTEX order."""

    number: Optional[str] = None
    key: Optional[str] = None
    issuance_date: Optional[str] = None
    value: Optional[int] = None


class CreateOrderOutcome(str, Enum):
    OK = "ok"
    PRICING_REJECTED = "pricing_rejected"
    SLA_REJECTED = "sla_rejected"
    FAILED = "failed"


@dataclass
class CreateOrderResult:
    """Closed set of createOrder results so callers never parse error bodies."""

    outcome: CreateOrderOutcome
    order_id: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    status_code: Optional[int] = None
    body: Any = None

    @property
    def ok(self) -> bool:
        return self.outcome is CreateOrderOutcome.OK
