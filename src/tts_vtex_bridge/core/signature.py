"""TikTok Shop signatures.

Verifies inbound order webhooks and signs outbound Open API requests, both
with HMAC-SHA256 keyed by the app secret.
"""

import hashlib
import hmac
import json
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import urlparse

from tts_vtex_bridge.core.logger import setup_logger

logger = setup_logger(__name__)

# Query params never included in the request sign string
EXCLUDED_SIGN_KEYS = ("access_token", "sign")

# Header names TikTok has used for the webhook signature, in lookup order
SIGNATURE_HEADERS = ("x-signature", "x-tt-signature", "authorization")


def compute_webhook_signature(app_key: str, app_secret: str, body: str) -> str:
    """HMAC-SHA256 of ``app_key + body`` keyed with the app secret."""
    return hmac.new(
        app_secret.encode("utf-8"),
        f"{app_key}{body}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def extract_signature(headers: Mapping[str, str]) -> Optional[str]:
    """Return the first signature header present (header names are case-insensitive)."""
    lowered = {k.lower(): v for k, v in headers.items()}
    for name in SIGNATURE_HEADERS:
        value = lowered.get(name)
        if value:
            return value
    return None


def verify_push_signature(
    request_body: str,
    signature_header: Optional[str],
    app_key: Optional[str],
    app_secret: Optional[str],
) -> bool:
    """
    Verify a TikTok webhook signature.

    Args:
        request_body: Raw request body as string (NOT parsed JSON)
        signature_header: Value of the signature header
        app_key: TikTok app key
        app_secret: TikTok app secret

    Returns:
        True if the signature matches
    """
    if not signature_header:
        logger.warning("Webhook received without signature header")
        return False

    if not app_key or not app_secret:
        logger.error("TikTok app key/secret not configured, cannot verify webhook")
        return False

    expected = compute_webhook_signature(app_key, app_secret, request_body)
    if hmac.compare_digest(expected.encode("utf-8"), signature_header.strip().encode("utf-8")):
        return True

    logger.warning(f"Invalid webhook signature. Got: {signature_header[:16]}...")
    return False


def validate_webhook_request(
    raw_body: bytes,
    headers: Mapping[str, str],
    app_key: Optional[str],
    app_secret: Optional[str],
) -> Tuple[bool, Optional[str]]:
    """
    Full webhook validation: body decoding + signature verification.

    Returns:
        (True, None) when valid, otherwise (False, error_message)
    """
    try:
        body_str = raw_body.decode("utf-8")
    except UnicodeDecodeError as e:
        error = f"Invalid UTF-8 in request body: {e}"
        logger.error(error)
        return False, error

    if not body_str.strip():
        return False, "Empty request body"

    signature = extract_signature(headers)
    if not signature:
        return False, "Missing TikTok webhook signature header"

    if not verify_push_signature(body_str, signature, app_key, app_secret):
        return False, "Invalid TikTok webhook signature"

    return True, None


def encode_body(body: Any) -> str:
    """Compact JSON, byte-identical to what is signed."""
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False)


def generate_api_sign(
    url: str,
    params: Dict[str, Any],
    app_secret: str,
    body: Any = None,
    content_type: Optional[str] = None,
) -> str:
    """
    Sign a TikTok Open API request.

    Sign string: path, then sorted ``{key}{value}`` query pairs (without
    ``sign``/``access_token``), then the JSON body unless multipart. The whole
    string is wrapped with the secret on both sides before hashing.
    """
    pairs = "".join(
        f"{key}{params[key]}"
        for key in sorted(params)
        if key not in EXCLUDED_SIGN_KEYS and params[key] is not None
    )
    sign_string = f"{urlparse(url).path}{pairs}"

    is_multipart = bool(content_type) and content_type.lower().startswith("multipart/form-data")
    if body and not is_multipart:
        sign_string += encode_body(body)

    wrapped = f"{app_secret}{sign_string}{app_secret}"
    return hmac.new(
        app_secret.encode("utf-8"),
        wrapped.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
