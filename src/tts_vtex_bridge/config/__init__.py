"""Configuration module."""

from tts_vtex_bridge.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
