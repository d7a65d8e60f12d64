"""Brazilian tax id (CPF/CNPJ) validation and resolution."""

import hashlib
from typing import Any, Dict, List

from tts_vtex_bridge.core.errors import OrderValidationError
from tts_vtex_bridge.core.logger import setup_logger
from tts_vtex_bridge.models.order import ResolvedDocument
from tts_vtex_bridge.utils.payload import digits_only, is_present, values_at

logger = setup_logger(__name__)

CNPJ_FIRST_WEIGHTS = [5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2]
CNPJ_SECOND_WEIGHTS = [6, 5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2]

# Where TikTok payloads have carried the buyer tax id, in priority order
DOCUMENT_PATHS = (
    ("cpf",),
    ("buyer_cpf",),
    ("buyer_tax_number",),
    ("buyer_tax_id",),
    ("buyer_document",),
    ("buyer_id_number",),
    ("buyer_identity_number",),
    ("buyer", "tax_id"),
    ("buyer", "taxId"),
    ("buyer", "tax_number"),
    ("buyer", "taxNumber"),
    ("buyer", "document"),
    ("buyer", "document_number"),
    ("buyer", "cpf"),
    ("buyer", "cnpj"),
    ("buyer_info", "tax_id"),
    ("buyer_info", "taxId"),
    ("buyer_info", "tax_number"),
    ("buyer_info", "document"),
    ("recipient_address", "tax_id"),
    ("recipient_address", "taxId"),
    ("recipient_address", "tax_number"),
    ("recipient_address", "taxNumber"),
    ("recipient_address", "document"),
    ("recipient_address", "document_number"),
    ("recipient_address", "cpf"),
    ("recipient_address", "cnpj"),
    ("recipient_address", "id_number"),
    ("recipient_address", "identity_number"),
    ("recipient_address", "id_card_number"),
    ("recipient_address_list", 0, "tax_id"),
    ("recipient_address_list", 0, "tax_number"),
    ("recipient_address_list", 0, "document"),
    ("shipping_address", "tax_id"),
    ("shipping_address", "tax_number"),
    ("shipping_address", "document"),
)


def compute_cpf_digit(digits: str, factor: int) -> int:
    """Mod-11 CPF check digit over ``digits`` with weights factor, factor-1, ..."""
    total = sum(int(d) * (factor - i) for i, d in enumerate(digits))
    remainder = (total * 10) % 11
    return 0 if remainder == 10 else remainder


def is_valid_cpf(value: Any) -> bool:
    digits = digits_only(value)
    if len(digits) != 11 or len(set(digits)) == 1:
        return False
    first = compute_cpf_digit(digits[:9], 10)
    second = compute_cpf_digit(digits[:10], 11)
    return first == int(digits[9]) and second == int(digits[10])


def _cnpj_digit(digits: str, weights: List[int]) -> int:
    remainder = sum(int(d) * w for d, w in zip(digits, weights)) % 11
    return 0 if remainder < 2 else 11 - remainder


def is_valid_cnpj(value: Any) -> bool:
    digits = digits_only(value)
    if len(digits) != 14 or len(set(digits)) == 1:
        return False
    first = _cnpj_digit(digits[:12], CNPJ_FIRST_WEIGHTS)
    second = _cnpj_digit(digits[:13], CNPJ_SECOND_WEIGHTS)
    return first == int(digits[12]) and second == int(digits[13])


def generate_synthetic_cpf(seed: str) -> str:
    """
    Derive a deterministic, check-digit-valid CPF from a seed.

    Nine base digits come from the sha256 hex of the seed (each hex char mod
    10). An all-equal base is nudged so the result is never a repeated-digit CPF.
    """
    hex_digest = hashlib.sha256(seed.encode("utf-8")).hexdigest()
    base = [int(ch, 16) % 10 for ch in hex_digest[:9]]
    if len(set(base)) == 1:
        base[0] = (base[0] + 1) % 10

    digits = "".join(str(d) for d in base)
    digits += str(compute_cpf_digit(digits, 10))
    digits += str(compute_cpf_digit(digits, 11))
    return digits


def extract_document_candidates(order: Dict[str, Any]) -> List[Any]:
    return values_at(order, DOCUMENT_PATHS)


def resolve_document(
    order: Dict[str, Any],
    order_id: str,
    allow_synthetic: bool = True,
) -> ResolvedDocument:
    """
    Pick the first candidate that validates as CPF (11 digits) or CNPJ (14).

    When none validates, a synthetic CPF seeded by ``{buyer_email}:{order_id}``
    is returned and a warning logged.

    Raises:
        OrderValidationError: nothing validates and synthetic ids are disabled
    """
    candidates = [c for c in extract_document_candidates(order) if is_present(c)]
    for candidate in candidates:
        digits = digits_only(candidate)
        if len(digits) == 11 and is_valid_cpf(digits):
            return ResolvedDocument(type="cpf", value=digits)
        if len(digits) == 14 and is_valid_cnpj(digits):
            return ResolvedDocument(type="cnpj", value=digits)

    first_length = len(digits_only(candidates[0])) if candidates else 0
    if not allow_synthetic:
        raise OrderValidationError(
            f"Order {order_id} has no valid buyer document "
            f"(candidates={len(candidates)}, first_length={first_length})"
        )

    seed = f"{order.get('buyer_email') or ''}:{order_id}"
    generated = generate_synthetic_cpf(seed)
    logger.warning(
        f"Invalid or missing document for order {order_id} "
        f"(source={'order' if candidates else 'missing'}, length={first_length}); using generated CPF",
        extra={"order_id": order_id},
    )
    return ResolvedDocument(type="cpf", value=generated, synthetic=True)
