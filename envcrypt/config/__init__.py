"""Configuration for envcrypt."""

from .logging_config import get_logger, redact_sensitive_values, setup_logging
from .settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_logger",
    "get_settings",
    "redact_sensitive_values",
    "setup_logging",
]
