"""
Hotel Channel Sync Package

Pushes room availability and rates to online travel agencies, pulls
reservations made on those channels and imports them as local bookings:
- contracts and orchestration are shared by every channel
- channel-specific wire protocols live in adapters
"""

from .contracts import (
    ChannelClient,
    BaseChannelClient,
    ClientConfig,
    # Results
    AvailabilityRecord,
    RateRecord,
    ExternalReservation,
    PushResult,
    PullResult,
    ConnectionTestResult,
    SyncOutcome,
    FullSyncOutcome,
    # Enums
    SyncDirection,
    SyncType,
    SyncStatus,
    FailureKind,
    # Errors
    ChannelSyncError,
    ChannelInactiveError,
    TransportError,
    AuthenticationError,
    ParseError,
    PersistenceError,
    ClientNotRegisteredError,
    SyncLogSealedError,
    CredentialError,
    ValidationError,
    NotFoundError,
)

from .factory import (
    ClientRegistry,
    ClientFactory,
    get_registry,
    register_client,
)

from .events import EventBus, ChannelEvent
from .importer import ReservationImporter, ImportResult
from .orchestrator import ChannelSyncService
from .admin import ChannelAdminService, RateMappingInput

__all__ = [
    # Contracts
    "ChannelClient",
    "BaseChannelClient",
    "ClientConfig",
    "AvailabilityRecord",
    "RateRecord",
    "ExternalReservation",
    "PushResult",
    "PullResult",
    "ConnectionTestResult",
    "SyncOutcome",
    "FullSyncOutcome",
    "SyncDirection",
    "SyncType",
    "SyncStatus",
    "FailureKind",
    # Errors
    "ChannelSyncError",
    "ChannelInactiveError",
    "TransportError",
    "AuthenticationError",
    "ParseError",
    "PersistenceError",
    "ClientNotRegisteredError",
    "SyncLogSealedError",
    "CredentialError",
    "ValidationError",
    "NotFoundError",
    # Factory
    "ClientRegistry",
    "ClientFactory",
    "get_registry",
    "register_client",
    # Services
    "EventBus",
    "ChannelEvent",
    "ReservationImporter",
    "ImportResult",
    "ChannelSyncService",
    "ChannelAdminService",
    "RateMappingInput",
]

__version__ = "1.0.0"
