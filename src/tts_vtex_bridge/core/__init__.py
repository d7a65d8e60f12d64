"""Core module - Logging, errors, signatures, caching and monitoring."""

from tts_vtex_bridge.core.logger import setup_logger
from tts_vtex_bridge.core.signature import validate_webhook_request, verify_push_signature

__all__ = ["setup_logger", "verify_push_signature", "validate_webhook_request"]
