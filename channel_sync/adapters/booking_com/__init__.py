"""
Booking.com channel adapter
"""

from .client import BookingComClient, resolve_base_url, PRODUCTION_BASE_URL, SANDBOX_BASE_URL

__all__ = [
    "BookingComClient",
    "resolve_base_url",
    "PRODUCTION_BASE_URL",
    "SANDBOX_BASE_URL",
]
