"""Core utilities for the admission layer."""

from edugate.app.core.config import Settings, settings
from edugate.app.core.logging import get_logger, setup_logging

__all__ = [
    "Settings",
    "settings",
    "get_logger",
    "setup_logging",
]
