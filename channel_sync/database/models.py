"""
SQLAlchemy models for channel connections, rate mappings and the sync log,
plus the local booking tables the importer writes to
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import (
    Column, String, Boolean, DateTime, Date, Text, ForeignKey,
    Integer, Numeric, CheckConstraint, UniqueConstraint, Index
)
from sqlalchemy.orm import declarative_base, relationship, validates

from channel_sync.contracts import SyncDirection, SyncStatus, SyncType

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


CHANNEL_LABELS = {
    "booking_com": "Booking.com",
    "expedia": "Expedia",
    "airbnb": "Airbnb",
    "agoda": "Agoda",
}

# local_rate_plan_id value meaning "base rate"
BASE_RATE_PLAN = 0


class ChannelConnection(Base):
    """One external channel with its encrypted credentials"""

    __tablename__ = 'channel_connections'

    id = Column(Integer, primary_key=True, autoincrement=True)
    channel_name = Column(String(50), nullable=False, unique=True)
    hotel_id = Column(String(100), nullable=False, default='')
    credentials = Column(Text)
    is_active = Column(Boolean, default=False, nullable=False)
    last_sync_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def channel_label(self) -> str:
        return CHANNEL_LABELS.get(
            self.channel_name, self.channel_name.replace('_', ' ').title()
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view; credentials are never included"""
        return {
            'id': self.id,
            'channel_name': self.channel_name,
            'channel_label': self.channel_label,
            'hotel_id': self.hotel_id,
            'is_active': self.is_active,
            'last_sync_at': self.last_sync_at.isoformat() if self.last_sync_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<ChannelConnection(channel={self.channel_name}, active={self.is_active})>"


class ChannelRateMap(Base):
    """Local room type / rate plan to channel room / rate code"""

    __tablename__ = 'channel_rate_map'

    id = Column(Integer, primary_key=True, autoincrement=True)
    channel_name = Column(String(50), nullable=False, index=True)
    local_room_type_id = Column(Integer, nullable=False, index=True)
    local_rate_plan_id = Column(Integer, nullable=False, default=BASE_RATE_PLAN)
    channel_room_id = Column(String(100), nullable=False, default='')
    channel_rate_id = Column(String(100), nullable=False, default='')
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            'channel_name', 'local_room_type_id', 'local_rate_plan_id',
            name='uk_channel_room_rate'
        ),
        Index('idx_rate_map_channel_room', 'channel_name', 'channel_room_id'),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'channel_name': self.channel_name,
            'local_room_type_id': self.local_room_type_id,
            'local_rate_plan_id': self.local_rate_plan_id,
            'channel_room_id': self.channel_room_id,
            'channel_rate_id': self.channel_rate_id,
            'is_active': self.is_active,
        }

    def __repr__(self):
        return (
            f"<ChannelRateMap(channel={self.channel_name}, room_type={self.local_room_type_id}, "
            f"channel_room={self.channel_room_id}, active={self.is_active})>"
        )


class ChannelSyncLog(Base):
    """One sync attempt; created pending, completed exactly once"""

    __tablename__ = 'channel_sync_log'

    id = Column(Integer, primary_key=True, autoincrement=True)
    channel_name = Column(String(50), nullable=False)
    direction = Column(String(10), nullable=False, default=SyncDirection.PUSH.value)
    sync_type = Column(String(30), nullable=False, default=SyncType.AVAILABILITY.value)
    status = Column(String(20), nullable=False, default=SyncStatus.PENDING.value)
    records_processed = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=False, default='')
    started_at = Column(DateTime(timezone=True), default=utcnow)
    completed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    __table_args__ = (
        CheckConstraint("direction IN ('push', 'pull')", name='check_sync_direction'),
        CheckConstraint(
            "status IN ('pending', 'success', 'partial', 'failed')",
            name='check_sync_status'
        ),
        CheckConstraint('records_processed >= 0', name='check_records_positive'),
        Index('idx_sync_log_channel_status', 'channel_name', 'status'),
        Index('idx_sync_log_direction', 'direction'),
    )

    @property
    def is_sealed(self) -> bool:
        return self.status != SyncStatus.PENDING.value

    @property
    def duration_seconds(self) -> Optional[int]:
        if not self.started_at or not self.completed_at:
            return None
        return max(0, int((self.completed_at - self.started_at).total_seconds()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'channel_name': self.channel_name,
            'direction': self.direction,
            'sync_type': self.sync_type,
            'status': self.status,
            'records_processed': self.records_processed,
            'error_message': self.error_message,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'duration_seconds': self.duration_seconds,
        }

    def __repr__(self):
        return (
            f"<ChannelSyncLog(id={self.id}, channel={self.channel_name}, "
            f"type={self.sync_type}, status={self.status})>"
        )


# Local property tables (owned by the wider PMS, read or written here)

class RoomType(Base):
    __tablename__ = 'room_types'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    base_price = Column(Numeric(10, 2), nullable=False, default=Decimal('0.00'))

    inventory = relationship("RoomInventory", back_populates="room_type")


class RoomInventory(Base):
    """Availability, restrictions and price override per room type and night"""

    __tablename__ = 'room_inventory'

    id = Column(Integer, primary_key=True, autoincrement=True)
    room_type_id = Column(Integer, ForeignKey('room_types.id'), nullable=False)
    date = Column(Date, nullable=False)
    available_rooms = Column(Integer, nullable=False, default=0)
    stop_sell = Column(Boolean, nullable=False, default=False)
    min_stay = Column(Integer, nullable=False, default=1)
    price_override = Column(Numeric(10, 2))

    room_type = relationship("RoomType", back_populates="inventory")

    __table_args__ = (
        UniqueConstraint('room_type_id', 'date', name='uk_inventory_room_date'),
    )


class Guest(Base):
    __tablename__ = 'guests'

    id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(100), nullable=False, default='')
    last_name = Column(String(100), nullable=False, default='')
    # Not unique: two racing imports may both create a guest
    email = Column(String(255), nullable=False, default='', index=True)
    phone = Column(String(50), nullable=False, default='')
    source = Column(String(30), nullable=False, default='direct')
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    @validates('email')
    def normalize_email(self, key, email):
        return (email or '').strip().lower()


class Booking(Base):
    __tablename__ = 'bookings'

    id = Column(Integer, primary_key=True, autoincrement=True)
    guest_id = Column(Integer, ForeignKey('guests.id'))
    room_type_id = Column(Integer, ForeignKey('room_types.id'))
    check_in = Column(Date)
    check_out = Column(Date)
    num_guests = Column(Integer, nullable=False, default=1)
    total_amount = Column(Numeric(10, 2), nullable=False, default=Decimal('0.00'))
    currency = Column(String(3), nullable=False, default='USD')
    status = Column(String(20), nullable=False, default='confirmed')
    source = Column(String(50), nullable=False, default='direct')
    channel_name = Column(String(50))
    channel_booking_id = Column(String(100))
    special_requests = Column(Text, nullable=False, default='')
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    guest = relationship("Guest")

    __table_args__ = (
        # Dedup key for imported reservations
        UniqueConstraint('channel_name', 'channel_booking_id', name='uk_booking_channel_ref'),
        CheckConstraint('num_guests >= 1', name='check_num_guests_positive'),
    )

    def __repr__(self):
        return (
            f"<Booking(id={self.id}, source={self.source}, "
            f"channel_booking_id={self.channel_booking_id})>"
        )
