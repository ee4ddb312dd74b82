"""Configuration module for the edge classifier."""

from .settings import Settings, get_settings, reload_settings

__all__ = ["get_settings", "reload_settings", "Settings"]
