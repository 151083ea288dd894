"""Configuration module for billdesk."""

from billdesk.config.logging import configure_logging
from billdesk.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings", "configure_logging"]
