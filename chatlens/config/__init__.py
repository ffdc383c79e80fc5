"""Configuration for chatlens."""

from chatlens.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
