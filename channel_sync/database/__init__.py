"""
Database package for channel sync
"""

from .connection import Database
from .models import (
    Base,
    ChannelConnection,
    ChannelRateMap,
    ChannelSyncLog,
    RoomType,
    RoomInventory,
    Guest,
    Booking,
    CHANNEL_LABELS,
    BASE_RATE_PLAN,
)
from .repository import (
    Page,
    ChannelConnectionRepository,
    RateMapRepository,
    SyncLogRepository,
    InventoryRepository,
    GuestRepository,
    BookingRepository,
)

__all__ = [
    "Database",
    "Base",
    "ChannelConnection",
    "ChannelRateMap",
    "ChannelSyncLog",
    "RoomType",
    "RoomInventory",
    "Guest",
    "Booking",
    "CHANNEL_LABELS",
    "BASE_RATE_PLAN",
    "Page",
    "ChannelConnectionRepository",
    "RateMapRepository",
    "SyncLogRepository",
    "InventoryRepository",
    "GuestRepository",
    "BookingRepository",
]
