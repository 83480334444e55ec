"""
Channel Sync Orchestrator
Pushes availability and rates to channels, pulls reservations back and
records every attempt in the sync log
"""

import asyncio
import time
from datetime import date, datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from channel_sync.config import ChannelSyncSettings, get_settings
from channel_sync.contracts import (
    AuthenticationError,
    AvailabilityRecord,
    BaseChannelClient,
    ChannelInactiveError,
    ChannelSyncError,
    FailureKind,
    FullSyncOutcome,
    PersistenceError,
    RateRecord,
    SyncDirection,
    SyncOutcome,
    SyncStatus,
    SyncType,
    TransportError,
)
from channel_sync.database.connection import Database
from channel_sync.database.models import ChannelConnection, ChannelRateMap
from channel_sync.database.repository import (
    ChannelConnectionRepository,
    InventoryRepository,
    RateMapRepository,
    SyncLogRepository,
)
from channel_sync.events import (
    AVAILABILITY_PUSHED,
    RATES_PUSHED,
    RESERVATIONS_PULLED,
    ChannelEvent,
    EventBus,
)
from channel_sync.factory import ClientFactory
from channel_sync.importer import ReservationImporter
from channel_sync.metrics import sync_attempts_total, sync_duration_seconds, sync_records_total
from channel_sync.utils.logging import get_safe_logger

logger = get_safe_logger("channel_sync.orchestrator")

INACTIVE_MESSAGE = "Channel connection is not active."
CANCELLED_MESSAGE = "Sync attempt was cancelled."
NO_MAPPINGS_MESSAGE = "No rate mappings configured. Nothing to push."
NO_MAPPINGS_LOG_MESSAGE = "No rate mappings found for this channel."

DateInput = Union[date, str, None]

# Work performed between opening and sealing a log entry
SyncWork = Callable[[ChannelConnection, BaseChannelClient], Awaitable[SyncOutcome]]


class ChannelSyncService:
    """
    Runs push and pull attempts for one channel at a time.

    Every public operation returns an outcome and never raises: inactive
    channels, transport failures and storage errors all end up as a failed
    (or partial) outcome with a sealed sync log entry.
    """

    def __init__(
        self,
        db: Database,
        client_factory: ClientFactory,
        importer: Optional[ReservationImporter] = None,
        event_bus: Optional[EventBus] = None,
        settings: Optional[ChannelSyncSettings] = None,
    ):
        self.db = db
        self.client_factory = client_factory
        self.event_bus = event_bus or EventBus()
        self.importer = importer or ReservationImporter(db, self.event_bus)
        self.settings = settings or get_settings()
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, channel: str) -> asyncio.Lock:
        if channel not in self._locks:
            self._locks[channel] = asyncio.Lock()
        return self._locks[channel]

    # Public operations

    async def push_availability(
        self,
        channel: str,
        room_type_id: Optional[int] = None,
        start_date: DateInput = None,
        end_date: DateInput = None,
    ) -> SyncOutcome:
        async def work(connection, client):
            start, end = self._window(start_date, end_date)
            mappings = await self._active_mappings(channel, room_type_id)
            if not mappings:
                return self._no_mappings(channel, SyncType.AVAILABILITY)

            records = await self._availability_records(mappings, start, end)
            result = await client.push_availability(records)
            return self._push_outcome(channel, SyncType.AVAILABILITY, result)

        return await self._run(channel, SyncDirection.PUSH, SyncType.AVAILABILITY, work)

    async def push_rates(
        self,
        channel: str,
        room_type_id: Optional[int] = None,
        start_date: DateInput = None,
        end_date: DateInput = None,
    ) -> SyncOutcome:
        async def work(connection, client):
            start, end = self._window(start_date, end_date)
            mappings = await self._active_mappings(channel, room_type_id)
            if not mappings:
                return self._no_mappings(channel, SyncType.RATES)

            records = await self._rate_records(mappings, start, end)
            result = await client.push_rates(records)
            return self._push_outcome(channel, SyncType.RATES, result)

        return await self._run(channel, SyncDirection.PUSH, SyncType.RATES, work)

    async def pull_reservations(
        self, channel: str, since: Optional[datetime] = None
    ) -> SyncOutcome:
        """Pull reservations; without `since` the connection's last sync time is the window start"""
        return await self._pull_reservations(channel, since, explicit_since=since is not None)

    async def full_sync(self, channel: str) -> FullSyncOutcome:
        """Availability, rates, then reservations; each runs whatever the others returned"""
        logger.info("full_sync_started", channel=channel)

        # The pushes move last_sync_at, so the pull window is fixed first
        since = await self._stored_last_sync(channel)

        availability = await self.push_availability(channel)
        rates = await self.push_rates(channel)
        reservations = await self._pull_reservations(channel, since, explicit_since=True)

        outcome = FullSyncOutcome(availability=availability, rates=rates, reservations=reservations)
        logger.info(
            "full_sync_completed",
            channel=channel,
            availability=availability.status.value,
            rates=rates.status.value,
            reservations=reservations.status.value,
        )
        return outcome

    # Attempt lifecycle

    async def _run(
        self,
        channel: str,
        direction: SyncDirection,
        sync_type: SyncType,
        work: SyncWork,
    ) -> SyncOutcome:
        async with self._lock_for(channel):
            started = time.perf_counter()
            log = logger.bind(channel=channel, sync_type=sync_type.value)

            try:
                async with self.db.session() as session:
                    connection = await ChannelConnectionRepository(session).get_by_channel_name(channel)
                    if connection is None or not connection.is_active:
                        raise ChannelInactiveError(INACTIVE_MESSAGE, details={"channel": channel})

                    entry = await SyncLogRepository(session).open(channel, direction, sync_type)
                    log_id = entry.id
            except ChannelInactiveError as e:
                log.warning("sync_skipped_channel_inactive")
                outcome = SyncOutcome(
                    channel=channel,
                    direction=direction,
                    sync_type=sync_type,
                    status=SyncStatus.FAILED,
                    message=e.message,
                    errors=[e.message],
                    failure=self._failure_kind(e),
                )
                await self._record_skip(outcome, log)
                self._observe(outcome, started)
                return outcome
            except SQLAlchemyError as e:
                log.error("sync_log_open_failed", error=str(e))
                outcome = SyncOutcome(
                    channel=channel,
                    direction=direction,
                    sync_type=sync_type,
                    status=SyncStatus.FAILED,
                    message=str(e),
                    errors=[str(e)],
                    failure=FailureKind.PERSISTENCE,
                )
                self._observe(outcome, started)
                return outcome

            log = log.bind(log_id=log_id)
            log.info("sync_started", direction=direction.value)

            completed = False
            try:
                client = self.client_factory.create(connection)
                async with client:
                    outcome = await work(connection, client)
                completed = True
            except asyncio.CancelledError:
                log.warning("sync_cancelled")
                outcome = SyncOutcome(
                    channel=channel,
                    direction=direction,
                    sync_type=sync_type,
                    status=SyncStatus.FAILED,
                    message=CANCELLED_MESSAGE,
                    errors=[CANCELLED_MESSAGE],
                    log_id=log_id,
                    failure=FailureKind.INTERNAL,
                )
                await self._seal(outcome, connection, log)
                self._observe(outcome, started)
                raise
            except Exception as e:
                message = getattr(e, "message", None) or str(e) or e.__class__.__name__
                log.error("sync_failed", error=message, error_type=e.__class__.__name__)
                outcome = SyncOutcome(
                    channel=channel,
                    direction=direction,
                    sync_type=sync_type,
                    status=SyncStatus.FAILED,
                    message=message,
                    errors=[message],
                    failure=self._failure_kind(e),
                )

            outcome.log_id = log_id
            await self._seal(outcome, connection, log)

            if completed and outcome.failure != FailureKind.MAPPING_ABSENT:
                await self._emit(outcome)

            self._observe(outcome, started)
            log.info(
                "sync_finished",
                status=outcome.status.value,
                records_processed=outcome.records_processed,
            )
            return outcome

    async def _record_skip(self, outcome: SyncOutcome, log) -> None:
        """Skipped attempts still leave a sealed failed entry"""
        try:
            async with self.db.session() as session:
                entry = await SyncLogRepository(session).record_failure(
                    outcome.channel, outcome.direction, outcome.sync_type, outcome.message
                )
            outcome.log_id = entry.id
        except (SQLAlchemyError, ChannelSyncError) as e:
            log.error("sync_log_open_failed", error=str(e))
            outcome.errors.append(str(e))

    async def _seal(self, outcome: SyncOutcome, connection: ChannelConnection, log) -> None:
        if outcome.failure == FailureKind.MAPPING_ABSENT:
            error_message = NO_MAPPINGS_LOG_MESSAGE
        else:
            error_message = "; ".join(outcome.errors)

        try:
            async with self.db.session() as session:
                await SyncLogRepository(session).complete(
                    outcome.log_id, outcome.status, outcome.records_processed, error_message
                )
        except (SQLAlchemyError, ChannelSyncError) as e:
            log.error("sync_log_seal_failed", error=str(e))
            if outcome.status != SyncStatus.FAILED:
                outcome.status = SyncStatus.FAILED
                outcome.failure = FailureKind.PERSISTENCE
            outcome.errors.append(str(e))

        try:
            async with self.db.session() as session:
                await ChannelConnectionRepository(session).touch_last_sync(connection.id)
        except SQLAlchemyError as e:
            log.error("last_sync_update_failed", error=str(e))

    async def _emit(self, outcome: SyncOutcome) -> None:
        names = {
            SyncType.AVAILABILITY: AVAILABILITY_PUSHED,
            SyncType.RATES: RATES_PUSHED,
            SyncType.RESERVATIONS: RESERVATIONS_PULLED,
        }
        await self.event_bus.publish(
            ChannelEvent(
                name=names[outcome.sync_type],
                channel=outcome.channel,
                payload=outcome.as_dict(),
            )
        )

    def _observe(self, outcome: SyncOutcome, started: float) -> None:
        sync_attempts_total.labels(
            channel=outcome.channel,
            sync_type=outcome.sync_type.value,
            status=outcome.status.value,
        ).inc()
        sync_duration_seconds.labels(
            channel=outcome.channel, sync_type=outcome.sync_type.value
        ).observe(time.perf_counter() - started)
        if outcome.records_processed:
            sync_records_total.labels(
                channel=outcome.channel, sync_type=outcome.sync_type.value
            ).inc(outcome.records_processed)

    @staticmethod
    def _failure_kind(error: Exception) -> FailureKind:
        if isinstance(error, (PersistenceError, SQLAlchemyError)):
            return FailureKind.PERSISTENCE
        if isinstance(error, ChannelInactiveError):
            return FailureKind.CHANNEL_INACTIVE
        if isinstance(error, AuthenticationError):
            return FailureKind.AUTH
        if isinstance(error, TransportError):
            return FailureKind.TRANSPORT
        return FailureKind.INTERNAL

    # Push helpers

    def _window(self, start_date: DateInput, end_date: DateInput):
        start = self._coerce_date(start_date) or date.today()
        end = self._coerce_date(end_date) or date.today() + timedelta(
            days=self.settings.sync_window_days
        )
        return start, end

    @staticmethod
    def _coerce_date(value: DateInput) -> Optional[date]:
        if not value:
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        return date.fromisoformat(str(value).strip())

    async def _active_mappings(
        self, channel: str, room_type_id: Optional[int]
    ) -> List[ChannelRateMap]:
        async with self.db.session() as session:
            return await RateMapRepository(session).list_active_by_channel(channel, room_type_id)

    async def _availability_records(
        self, mappings: List[ChannelRateMap], start: date, end: date
    ) -> List[AvailabilityRecord]:
        records = []
        async with self.db.session() as session:
            inventory = InventoryRepository(session)
            for mapping in mappings:
                for row in await inventory.availability_rows(mapping.local_room_type_id, start, end):
                    records.append(
                        AvailabilityRecord(
                            channel_room_id=mapping.channel_room_id,
                            date=row.date,
                            available_rooms=int(row.available_rooms or 0),
                            stop_sell=bool(row.stop_sell),
                            min_stay=int(row.min_stay or 1),
                        )
                    )
        return records

    async def _rate_records(
        self, mappings: List[ChannelRateMap], start: date, end: date
    ) -> List[RateRecord]:
        currency = self.settings.default_currency or "USD"
        records = []
        async with self.db.session() as session:
            inventory = InventoryRepository(session)
            for mapping in mappings:
                for night, price in await inventory.rate_rows(mapping.local_room_type_id, start, end):
                    records.append(
                        RateRecord(
                            channel_room_id=mapping.channel_room_id,
                            channel_rate_id=mapping.channel_rate_id,
                            date=night,
                            price=price,
                            currency=currency,
                        )
                    )
        return records

    @staticmethod
    def _no_mappings(channel: str, sync_type: SyncType) -> SyncOutcome:
        return SyncOutcome(
            channel=channel,
            direction=SyncDirection.PUSH,
            sync_type=sync_type,
            status=SyncStatus.SUCCESS,
            message=NO_MAPPINGS_MESSAGE,
            failure=FailureKind.MAPPING_ABSENT,
        )

    @staticmethod
    def _push_outcome(channel: str, sync_type: SyncType, result) -> SyncOutcome:
        if not result.success:
            status = SyncStatus.FAILED
        elif result.errors:
            status = SyncStatus.PARTIAL
        else:
            status = SyncStatus.SUCCESS

        return SyncOutcome(
            channel=channel,
            direction=SyncDirection.PUSH,
            sync_type=sync_type,
            status=status,
            message=result.message,
            records_processed=result.records_processed if result.success else 0,
            errors=list(result.errors),
            failure=result.failure,
        )

    # Pull helpers

    async def _stored_last_sync(self, channel: str) -> Optional[datetime]:
        try:
            async with self.db.session() as session:
                connection = await ChannelConnectionRepository(session).get_by_channel_name(channel)
        except SQLAlchemyError as e:
            logger.error("last_sync_lookup_failed", channel=channel, error=str(e))
            return None
        return connection.last_sync_at if connection is not None else None

    async def _pull_reservations(
        self, channel: str, since: Optional[datetime], explicit_since: bool
    ) -> SyncOutcome:
        async def work(connection, client):
            window_start = since if explicit_since else connection.last_sync_at
            result = await client.pull_reservations(window_start)

            if not result.success:
                return SyncOutcome(
                    channel=channel,
                    direction=SyncDirection.PULL,
                    sync_type=SyncType.RESERVATIONS,
                    status=SyncStatus.FAILED,
                    message=result.message,
                    errors=list(result.errors),
                    failure=result.failure,
                )

            errors = list(result.errors)
            booking_ids = []
            for reservation in result.reservations:
                try:
                    imported = await self.importer.import_reservation(channel, reservation)
                except PersistenceError as e:
                    errors.append(e.message)
                    continue
                if imported:
                    booking_ids.append(imported.booking_id)

            status = SyncStatus.PARTIAL if errors else SyncStatus.SUCCESS
            failure = result.failure
            if errors and failure is None:
                failure = FailureKind.PERSISTENCE

            return SyncOutcome(
                channel=channel,
                direction=SyncDirection.PULL,
                sync_type=SyncType.RESERVATIONS,
                status=status,
                message=result.message,
                records_processed=len(booking_ids),
                errors=errors,
                failure=failure,
                imported_booking_ids=booking_ids,
            )

        return await self._run(channel, SyncDirection.PULL, SyncType.RESERVATIONS, work)
