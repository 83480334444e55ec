"""
Utility modules for channel sync
"""

from .logging import (
    SafeLogger,
    get_safe_logger,
    configure_logging,
    log_performance,
    sanitize_url,
)

__all__ = [
    "SafeLogger",
    "get_safe_logger",
    "configure_logging",
    "log_performance",
    "sanitize_url",
]
