"""
Centralized application constants.

Single point of truth for the order pipeline: mapping statuses, provider
rejection codes and the placeholder values used when upstream payloads are
incomplete.
"""

# ==============================================================================
# ORDER MAPPING STATUSES
# ==============================================================================

STATUS_IMPORTED = "imported"
STATUS_AWAITING_INVOICE = "awaiting_invoice"
STATUS_INVOICED = "invoiced"
STATUS_ERROR = "error"

# Mappings the invoice poller still has to look at
PENDING_INVOICE_STATUSES = [STATUS_IMPORTED, STATUS_AWAITING_INVOICE]

# Product mapping created from a seller SKU code
PRODUCT_MAPPING_AUTO = "auto_mapped"

# ==============================================================================
# TIKTOK SHOP
# ==============================================================================

# Marketplace statuses that never produce a VTEX order
SKIP_ORDER_STATUSES = ["CANCELLED", "CANCEL_REQUESTED"]

WEBHOOK_KEY_PREFIX = "tiktok-order"
DEFAULT_SHIPPING_PROVIDER = "TikTok Shipping"

# ==============================================================================
# VTEX
# ==============================================================================

# Rejection codes returned in error.code by the fulfillment API
VTEX_PRICING_MISMATCH_CODE = "FMT007"
VTEX_NO_SLA_CODE = "FMT010"

NOTIFICATION_KEY_PREFIX = "vtex-marketplace"

DEFAULT_PAYMENT_SYSTEM_ID = "201"
DEFAULT_SELLER_ID = "1"
DEFAULT_SHIPPING_ESTIMATE = "10d"
DEFAULT_LOCK_TTL = "1bd"
DELIVERY_CHANNEL = "delivery"

# Price modes for payload building
PRICE_MODE_SELLING = "selling"
PRICE_MODE_PRICE = "price"

# ==============================================================================
# PLACEHOLDERS (degraded payloads, always logged)
# ==============================================================================

FALLBACK_POSTAL_CODE = "01001000"
FALLBACK_COUNTRY = "BRA"
FALLBACK_CITY = "São Paulo"
FALLBACK_STATE = "SP"
FALLBACK_STREET = "Endereço Pendente"
FALLBACK_NUMBER = "0"
FALLBACK_NEIGHBORHOOD = "Centro"
FALLBACK_BUYER_NAME = "TikTok Buyer"
FALLBACK_BUYER_EMAIL = "no-reply@tiktokshop.com"
FALLBACK_PHONE = "11999999999"
FALLBACK_MARKETPLACE_ENDPOINT = "TikTokShop"

# ==============================================================================
# SCHEDULER
# ==============================================================================

INVOICE_POLL_LOCK_KEY = "tts_vtex_bridge:invoice_poll:lock"
INVOICE_POLL_LOCK_SECONDS = 240
