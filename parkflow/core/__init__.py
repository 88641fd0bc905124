"""Core configuration and utilities package."""

from parkflow.core.config import Settings, get_settings
from parkflow.core.logging import (
    bound_context,
    get_correlation_id,
    get_logger,
    set_correlation_id,
    setup_logging,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Logging
    "bound_context",
    "get_correlation_id",
    "get_logger",
    "set_correlation_id",
    "setup_logging",
]
