"""
Hotel Channel Sync Contracts
Universal interface that all OTA channel clients must implement
"""

from typing import Protocol, Optional, List, Dict, Any
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from dataclasses import dataclass, field
from abc import ABC, abstractmethod

from dateutil import parser as date_parser

from channel_sync.utils.logging import get_safe_logger


class SyncDirection(str, Enum):
    PUSH = "push"
    PULL = "pull"


class SyncType(str, Enum):
    AVAILABILITY = "availability"
    RATES = "rates"
    RESERVATIONS = "reservations"


class SyncStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class FailureKind(str, Enum):
    """Tags attached to structured outcomes instead of raised exceptions"""

    CHANNEL_INACTIVE = "channel_inactive"
    TRANSPORT = "transport"
    AUTH = "auth"
    HTTP_STATUS = "http_status"
    PROTOCOL_WARNING = "protocol_warning"
    PARSE = "parse"
    MAPPING_ABSENT = "mapping_absent"
    DUPLICATE = "duplicate"
    PERSISTENCE = "persistence"
    INTERNAL = "internal"


# Wire records (vendor-agnostic)
@dataclass
class AvailabilityRecord:
    channel_room_id: str
    date: date
    available_rooms: int
    stop_sell: bool = False
    min_stay: int = 1

    def as_dict(self) -> Dict[str, Any]:
        return {
            "channel_room_id": self.channel_room_id,
            "date": self.date.isoformat(),
            "available_rooms": self.available_rooms,
            "min_stay": self.min_stay,
            "stop_sell": self.stop_sell,
        }


@dataclass
class RateRecord:
    channel_room_id: str
    channel_rate_id: str
    date: date
    price: Decimal
    currency: str = "USD"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "channel_room_id": self.channel_room_id,
            "channel_rate_id": self.channel_rate_id,
            "date": self.date.isoformat(),
            "price": str(self.price),
            "currency": self.currency,
        }


@dataclass
class ExternalReservation:
    """Reservation as parsed from a channel payload. Only external_id is required."""

    external_id: str
    status: str = "confirmed"
    guest_first_name: str = ""
    guest_last_name: str = ""
    guest_email: str = ""
    guest_phone: str = ""
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    room_type_code: str = ""
    total_amount: Decimal = Decimal("0.00")
    currency: str = "USD"
    num_guests: int = 1
    special_requests: str = ""


# Client results
@dataclass
class PushResult:
    success: bool
    message: str
    records_processed: int = 0
    errors: List[str] = field(default_factory=list)
    failure: Optional[FailureKind] = None


@dataclass
class PullResult:
    success: bool
    message: str
    reservations: List[ExternalReservation] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    failure: Optional[FailureKind] = None


@dataclass
class ConnectionTestResult:
    success: bool
    message: str
    failure: Optional[FailureKind] = None


# Orchestrator results
@dataclass
class SyncOutcome:
    channel: str
    direction: SyncDirection
    sync_type: SyncType
    status: SyncStatus
    message: str
    records_processed: int = 0
    errors: List[str] = field(default_factory=list)
    log_id: Optional[int] = None
    failure: Optional[FailureKind] = None
    imported_booking_ids: List[int] = field(default_factory=list)

    @property
    def success(self) -> bool:
        # partial is surfaced as success with warnings
        return self.status in (SyncStatus.SUCCESS, SyncStatus.PARTIAL)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "channel": self.channel,
            "direction": self.direction.value,
            "sync_type": self.sync_type.value,
            "status": self.status.value,
            "success": self.success,
            "message": self.message,
            "records_processed": self.records_processed,
            "errors": list(self.errors),
            "log_id": self.log_id,
            "failure": self.failure.value if self.failure else None,
            "imported_booking_ids": list(self.imported_booking_ids),
        }


@dataclass
class FullSyncOutcome:
    availability: SyncOutcome
    rates: SyncOutcome
    reservations: SyncOutcome

    @property
    def success(self) -> bool:
        return all(o.success for o in (self.availability, self.rates, self.reservations))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "availability": self.availability.as_dict(),
            "rates": self.rates.as_dict(),
            "reservations": self.reservations.as_dict(),
        }


# Error types
class ChannelSyncError(Exception):
    """Base exception for channel sync operations"""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}


class ChannelInactiveError(ChannelSyncError):
    """No configured or active connection for the channel"""

    pass


class TransportError(ChannelSyncError):
    """Network level failure: DNS, timeout, connection refused"""

    pass


class AuthenticationError(ChannelSyncError):
    """Channel rejected the stored credentials (HTTP 401/403)"""

    pass


class ParseError(ChannelSyncError):
    """Malformed response body"""

    pass


class PersistenceError(ChannelSyncError):
    """Local store write failed"""

    pass


class ClientNotRegisteredError(ChannelSyncError):
    """No protocol client registered for the channel"""

    pass


class SyncLogSealedError(ChannelSyncError):
    """Sync log entry was already completed"""

    pass


class CredentialError(ChannelSyncError):
    """Credentials could not be encrypted"""

    pass


class ValidationError(ChannelSyncError):
    """Invalid admin input"""

    field: Optional[str] = None


class NotFoundError(ChannelSyncError):
    """Resource not found in the local store"""

    pass


# Main Protocol
class ChannelClient(Protocol):
    """
    Wire-level interface to one external channel.
    Protocol-level problems are reported in the returned results, never raised.
    """

    @property
    def channel_name(self) -> str:
        """Return the channel identifier (e.g., 'booking_com')"""
        ...

    async def push_availability(self, records: List[AvailabilityRecord]) -> PushResult:
        """Send availability, minimum stay and stop-sell per room and date"""
        ...

    async def push_rates(self, records: List[RateRecord]) -> PushResult:
        """Send nightly prices per room, rate plan and date"""
        ...

    async def pull_reservations(self, since: Optional[datetime] = None) -> PullResult:
        """Fetch reservations created on the channel, optionally since a timestamp"""
        ...

    async def test_connection(self) -> ConnectionTestResult:
        """Validate stored credentials without side effects"""
        ...


@dataclass
class ClientConfig:
    """Resolved settings a client needs to talk to one channel"""

    hotel_id: str
    username: str
    password: str
    base_url: str
    timeout: float = 30.0


# Base implementation with common functionality
class BaseChannelClient(ABC):
    """Base class with common functionality for all channel clients"""

    channel_name: str = "unknown"
    display_name: str = "Unknown"

    def __init__(self, config: ClientConfig):
        self.config = config
        self._client = None
        self.logger = get_safe_logger(
            f"{self.__class__.__module__}.{self.__class__.__name__}"
        ).bind(channel=self.channel_name, hotel_id=config.hotel_id)

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()

    @abstractmethod
    async def connect(self):
        """Open the HTTP session"""
        pass

    @abstractmethod
    async def disconnect(self):
        """Clean up the HTTP session"""
        pass

    @abstractmethod
    async def push_availability(self, records: List[AvailabilityRecord]) -> PushResult:
        pass

    @abstractmethod
    async def push_rates(self, records: List[RateRecord]) -> PushResult:
        pass

    @abstractmethod
    async def pull_reservations(self, since: Optional[datetime] = None) -> PullResult:
        pass

    @abstractmethod
    async def test_connection(self) -> ConnectionTestResult:
        pass

    def has_credentials(self) -> bool:
        return bool(self.config.hotel_id and self.config.username and self.config.password)

    def normalize_date(self, date_input) -> Optional[date]:
        """Normalize various date formats to Python date; None when unparseable"""
        if not date_input:
            return None
        if isinstance(date_input, datetime):
            return date_input.date()
        if isinstance(date_input, date):
            return date_input
        try:
            return date_parser.parse(date_input).date()
        except (ValueError, OverflowError):
            return None

    def normalize_amount(self, amount: Any) -> Decimal:
        """Normalize monetary amounts to Decimal"""
        if isinstance(amount, str):
            amount = amount.replace(",", "").strip() or "0"
        try:
            return Decimal(str(amount)).quantize(Decimal("0.01"))
        except ArithmeticError:
            return Decimal("0.00")
