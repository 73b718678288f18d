"""Configuration module for the signature sync tool."""
from .settings import SyncSettings, load_settings, validate_settings

__all__ = ["SyncSettings", "load_settings", "validate_settings"]
