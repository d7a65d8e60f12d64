"""TikTok Shop to VTEX order bridge."""

__version__ = "1.0.0"
