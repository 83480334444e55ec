"""
Repositories for channel sync database operations
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, List, Optional, Tuple

from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from channel_sync.contracts import (
    NotFoundError,
    SyncDirection,
    SyncLogSealedError,
    SyncStatus,
    SyncType,
    ValidationError,
)
from channel_sync.database.models import (
    BASE_RATE_PLAN,
    Booking,
    ChannelConnection,
    ChannelRateMap,
    ChannelSyncLog,
    Guest,
    RoomInventory,
    RoomType,
    utcnow,
)
from channel_sync.utils.logging import get_safe_logger

logger = get_safe_logger("channel_sync.database.repository")


@dataclass
class Page:
    items: List[Any]
    total: int
    pages: int
    page: int
    per_page: int


class ChannelConnectionRepository:
    """Repository for channel connection records"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find(self, connection_id: int) -> Optional[ChannelConnection]:
        return await self.session.get(ChannelConnection, connection_id)

    async def get_by_channel_name(self, channel_name: str) -> Optional[ChannelConnection]:
        stmt = select(ChannelConnection).where(ChannelConnection.channel_name == channel_name)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_all(self) -> List[ChannelConnection]:
        stmt = select(ChannelConnection).order_by(ChannelConnection.channel_name.asc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_active(self) -> List[ChannelConnection]:
        stmt = (
            select(ChannelConnection)
            .where(ChannelConnection.is_active.is_(True))
            .order_by(ChannelConnection.channel_name.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create(
        self,
        channel_name: str,
        hotel_id: str = "",
        credentials: Optional[str] = None,
        is_active: bool = False,
    ) -> ChannelConnection:
        connection = ChannelConnection(
            channel_name=channel_name,
            hotel_id=hotel_id or "",
            credentials=credentials,
            is_active=bool(is_active),
        )
        self.session.add(connection)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise ValidationError(f"Connection for channel {channel_name} already exists")
        return connection

    async def update(self, connection_id: int, **changes) -> ChannelConnection:
        connection = await self.find(connection_id)
        if connection is None:
            raise NotFoundError(f"Connection {connection_id} not found")

        for key in ("channel_name", "hotel_id", "credentials", "is_active"):
            if key in changes and changes[key] is not None:
                value = bool(changes[key]) if key == "is_active" else changes[key]
                setattr(connection, key, value)

        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise ValidationError(
                f"Connection for channel {changes.get('channel_name')} already exists"
            )
        return connection

    async def delete(self, connection_id: int) -> bool:
        result = await self.session.execute(
            delete(ChannelConnection).where(ChannelConnection.id == connection_id)
        )
        await self.session.commit()
        return result.rowcount > 0

    async def touch_last_sync(self, connection_id: int, when: Optional[datetime] = None) -> None:
        now = when or utcnow()
        await self.session.execute(
            update(ChannelConnection)
            .where(ChannelConnection.id == connection_id)
            .values(last_sync_at=now, updated_at=now)
        )
        await self.session.commit()


class RateMapRepository:
    """Repository for channel rate mappings"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find(self, mapping_id: int) -> Optional[ChannelRateMap]:
        return await self.session.get(ChannelRateMap, mapping_id)

    async def list_by_channel(self, channel_name: str) -> List[ChannelRateMap]:
        stmt = (
            select(ChannelRateMap)
            .where(ChannelRateMap.channel_name == channel_name)
            .order_by(ChannelRateMap.local_room_type_id.asc(), ChannelRateMap.local_rate_plan_id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_active_by_channel(
        self, channel_name: str, room_type_id: Optional[int] = None
    ) -> List[ChannelRateMap]:
        stmt = select(ChannelRateMap).where(
            ChannelRateMap.channel_name == channel_name,
            ChannelRateMap.is_active.is_(True),
        )
        if room_type_id:
            stmt = stmt.where(ChannelRateMap.local_room_type_id == room_type_id)
        stmt = stmt.order_by(
            ChannelRateMap.local_room_type_id.asc(), ChannelRateMap.local_rate_plan_id.asc()
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_for_room_type(self, channel_name: str, room_type_id: int) -> List[ChannelRateMap]:
        stmt = (
            select(ChannelRateMap)
            .where(
                ChannelRateMap.channel_name == channel_name,
                ChannelRateMap.local_room_type_id == room_type_id,
            )
            .order_by(ChannelRateMap.local_rate_plan_id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_room_type_for_channel_code(
        self, channel_name: str, channel_room_id: str
    ) -> Optional[int]:
        """Reverse lookup: channel room code to local room type (active mappings, first match)"""
        stmt = (
            select(ChannelRateMap.local_room_type_id)
            .where(
                ChannelRateMap.channel_name == channel_name,
                ChannelRateMap.channel_room_id == channel_room_id,
                ChannelRateMap.is_active.is_(True),
            )
            .order_by(ChannelRateMap.id.asc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(
        self,
        channel_name: str,
        local_room_type_id: int,
        channel_room_id: str,
        channel_rate_id: str = "",
        local_rate_plan_id: int = BASE_RATE_PLAN,
        is_active: bool = True,
    ) -> ChannelRateMap:
        mapping = ChannelRateMap(
            channel_name=channel_name,
            local_room_type_id=local_room_type_id,
            local_rate_plan_id=local_rate_plan_id or BASE_RATE_PLAN,
            channel_room_id=channel_room_id,
            channel_rate_id=channel_rate_id or "",
            is_active=bool(is_active),
        )
        self.session.add(mapping)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise ValidationError(
                f"A mapping for room type {local_room_type_id} and rate plan "
                f"{local_rate_plan_id} already exists on {channel_name}"
            )
        return mapping

    async def update(self, mapping_id: int, **changes) -> ChannelRateMap:
        mapping = await self.find(mapping_id)
        if mapping is None:
            raise NotFoundError(f"Rate mapping {mapping_id} not found")

        for key in (
            "channel_name", "local_room_type_id", "local_rate_plan_id",
            "channel_room_id", "channel_rate_id", "is_active",
        ):
            if key in changes and changes[key] is not None:
                value = bool(changes[key]) if key == "is_active" else changes[key]
                setattr(mapping, key, value)

        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise ValidationError("Another mapping already uses this room type and rate plan")
        return mapping

    async def delete(self, mapping_id: int) -> bool:
        result = await self.session.execute(
            delete(ChannelRateMap).where(ChannelRateMap.id == mapping_id)
        )
        await self.session.commit()
        return result.rowcount > 0

    async def delete_by_channel(self, channel_name: str, commit: bool = True) -> int:
        result = await self.session.execute(
            delete(ChannelRateMap).where(ChannelRateMap.channel_name == channel_name)
        )
        if commit:
            await self.session.commit()
        return result.rowcount


class SyncLogRepository:
    """Append-only sync audit trail"""

    ORDERABLE_COLUMNS = {
        "id", "channel_name", "direction", "sync_type", "status",
        "records_processed", "started_at", "completed_at", "created_at",
    }

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find(self, log_id: int) -> Optional[ChannelSyncLog]:
        return await self.session.get(ChannelSyncLog, log_id)

    async def open(
        self, channel_name: str, direction: SyncDirection, sync_type: SyncType
    ) -> ChannelSyncLog:
        """Create a pending entry at attempt start"""
        now = utcnow()
        entry = ChannelSyncLog(
            channel_name=channel_name,
            direction=direction.value,
            sync_type=sync_type.value,
            status=SyncStatus.PENDING.value,
            records_processed=0,
            error_message="",
            started_at=now,
            created_at=now,
        )
        self.session.add(entry)
        await self.session.commit()
        return entry

    async def complete(
        self,
        log_id: int,
        status: SyncStatus,
        records_processed: int = 0,
        error_message: str = "",
    ) -> ChannelSyncLog:
        """Seal a pending entry. An entry can only be sealed once."""
        if status == SyncStatus.PENDING:
            raise ValueError("A sync log entry cannot be completed as pending")

        result = await self.session.execute(
            update(ChannelSyncLog)
            .where(
                ChannelSyncLog.id == log_id,
                ChannelSyncLog.status == SyncStatus.PENDING.value,
            )
            .values(
                status=status.value,
                records_processed=max(0, int(records_processed or 0)),
                error_message=error_message or "",
                completed_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()

        entry = await self.find(log_id)
        if entry is None:
            raise NotFoundError(f"Sync log entry {log_id} not found")

        await self.session.refresh(entry)
        if result.rowcount == 0:
            raise SyncLogSealedError(
                f"Sync log entry {log_id} is already {entry.status}",
                details={"log_id": log_id, "status": entry.status},
            )
        return entry

    async def record_failure(
        self,
        channel_name: str,
        direction: SyncDirection,
        sync_type: SyncType,
        error_message: str,
    ) -> ChannelSyncLog:
        """Open and immediately seal a failed entry"""
        entry = await self.open(channel_name, direction, sync_type)
        return await self.complete(entry.id, SyncStatus.FAILED, 0, error_message)

    async def paginate(
        self,
        channel_name: Optional[str] = None,
        direction: Optional[str] = None,
        status: Optional[str] = None,
        sync_type: Optional[str] = None,
        order_by: str = "created_at",
        order: str = "DESC",
        page: int = 1,
        per_page: int = 20,
    ) -> Page:
        page = max(1, int(page or 1))
        per_page = max(1, min(int(per_page or 20), 200))

        conditions = []
        if channel_name:
            conditions.append(ChannelSyncLog.channel_name == channel_name)
        if direction:
            conditions.append(ChannelSyncLog.direction == direction)
        if status:
            conditions.append(ChannelSyncLog.status == status)
        if sync_type:
            conditions.append(ChannelSyncLog.sync_type == sync_type)

        column_name = order_by if order_by in self.ORDERABLE_COLUMNS else "created_at"
        column = getattr(ChannelSyncLog, column_name)
        ordering = column.asc() if (order or "").upper() == "ASC" else column.desc()
        tiebreak = ChannelSyncLog.id.asc() if (order or "").upper() == "ASC" else ChannelSyncLog.id.desc()

        total = (
            await self.session.execute(
                select(func.count()).select_from(ChannelSyncLog).where(*conditions)
            )
        ).scalar_one()

        result = await self.session.execute(
            select(ChannelSyncLog)
            .where(*conditions)
            .order_by(ordering, tiebreak)
            .limit(per_page)
            .offset((page - 1) * per_page)
        )

        return Page(
            items=list(result.scalars().all()),
            total=total,
            pages=math.ceil(total / per_page),
            page=page,
            per_page=per_page,
        )

    async def delete_older_than(self, days: int = 90) -> int:
        cutoff = utcnow() - timedelta(days=days)
        result = await self.session.execute(
            delete(ChannelSyncLog).where(ChannelSyncLog.created_at < cutoff)
        )
        await self.session.commit()
        logger.info("sync_log_entries_deleted", days=days, removed=result.rowcount)
        return result.rowcount


# Local property data. These never commit; the caller owns the transaction.

class InventoryRepository:
    """Read access to nightly inventory and prices"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def availability_rows(
        self, room_type_id: int, start: date, end: date
    ) -> List[RoomInventory]:
        stmt = (
            select(RoomInventory)
            .where(
                RoomInventory.room_type_id == room_type_id,
                RoomInventory.date >= start,
                RoomInventory.date <= end,
            )
            .order_by(RoomInventory.date.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def rate_rows(
        self, room_type_id: int, start: date, end: date
    ) -> List[Tuple[date, Decimal]]:
        """(date, price) pairs; the override wins over the room type base price when set"""
        stmt = (
            select(RoomInventory.date, RoomInventory.price_override, RoomType.base_price)
            .join(RoomType, RoomType.id == RoomInventory.room_type_id)
            .where(
                RoomInventory.room_type_id == room_type_id,
                RoomInventory.date >= start,
                RoomInventory.date <= end,
            )
            .order_by(RoomInventory.date.asc())
        )
        result = await self.session.execute(stmt)

        rows = []
        for night, override, base_price in result.all():
            price = override if override else base_price
            rows.append((night, Decimal(str(price or 0)).quantize(Decimal("0.01"))))
        return rows


class GuestRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def first_by_email(self, email: str) -> Optional[Guest]:
        """Oldest guest with this email; several may share one"""
        normalized = (email or "").strip().lower()
        if not normalized:
            return None
        stmt = select(Guest).where(Guest.email == normalized).order_by(Guest.id.asc()).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(
        self,
        first_name: str = "",
        last_name: str = "",
        email: str = "",
        phone: str = "",
        source: str = "channel",
    ) -> Guest:
        guest = Guest(
            first_name=first_name or "",
            last_name=last_name or "",
            email=email or "",
            phone=phone or "",
            source=source,
        )
        self.session.add(guest)
        await self.session.flush()
        return guest


class BookingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_channel_ref(self, channel_name: str, channel_booking_id: str) -> Optional[Booking]:
        stmt = select(Booking).where(
            Booking.channel_name == channel_name,
            Booking.channel_booking_id == channel_booking_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, **fields: Any) -> Booking:
        booking = Booking(**fields)
        self.session.add(booking)
        await self.session.flush()
        return booking
