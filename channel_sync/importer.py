"""
Reservation importer
Turns pulled channel reservations into local bookings without duplicating them
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from channel_sync.contracts import ExternalReservation, FailureKind, PersistenceError
from channel_sync.database.connection import Database
from channel_sync.database.repository import (
    BookingRepository,
    GuestRepository,
    RateMapRepository,
)
from channel_sync.events import RESERVATION_IMPORTED, ChannelEvent, EventBus
from channel_sync.metrics import reservations_imported_total
from channel_sync.utils.logging import get_safe_logger

logger = get_safe_logger("channel_sync.importer")


@dataclass
class ImportResult:
    created: bool
    booking_id: Optional[int] = None
    skipped: Optional[FailureKind] = None
    room_type_id: Optional[int] = None

    def __bool__(self) -> bool:
        return self.created


class ReservationImporter:
    """
    Creates a local booking for each new channel reservation.

    The (channel, external id) pair is the dedup key: a reservation seen
    before is skipped, never updated. Lookup, guest resolution and booking
    creation share one transaction, and the unique key on bookings catches
    anything a concurrent import slipped in between.
    """

    def __init__(self, db: Database, event_bus: Optional[EventBus] = None):
        self.db = db
        self.event_bus = event_bus

    async def import_reservation(
        self, channel: str, reservation: ExternalReservation
    ) -> ImportResult:
        external_id = (reservation.external_id or "").strip()
        if not external_id:
            logger.warning("reservation_without_external_id_skipped", channel=channel)
            reservations_imported_total.labels(channel=channel, result="rejected").inc()
            return ImportResult(created=False, skipped=FailureKind.PARSE)

        try:
            async with self.db.session() as session:
                async with session.begin():
                    bookings = BookingRepository(session)

                    if await bookings.find_by_channel_ref(channel, external_id) is not None:
                        logger.info(
                            "reservation_already_imported",
                            channel=channel,
                            external_id=external_id,
                        )
                        reservations_imported_total.labels(channel=channel, result="duplicate").inc()
                        return ImportResult(created=False, skipped=FailureKind.DUPLICATE)

                    room_type_id = None
                    if reservation.room_type_code:
                        room_type_id = await RateMapRepository(
                            session
                        ).find_room_type_for_channel_code(channel, reservation.room_type_code)
                    if room_type_id is None:
                        logger.info(
                            "reservation_room_type_unmapped",
                            channel=channel,
                            external_id=external_id,
                            room_type_code=reservation.room_type_code,
                        )

                    guest_id = await self._resolve_guest(session, reservation)

                    booking = await bookings.create(
                        guest_id=guest_id,
                        room_type_id=room_type_id,
                        check_in=reservation.check_in,
                        check_out=reservation.check_out,
                        num_guests=max(1, int(reservation.num_guests or 1)),
                        total_amount=reservation.total_amount,
                        currency=(reservation.currency or "USD").upper(),
                        status="confirmed",
                        source=channel,
                        channel_name=channel,
                        channel_booking_id=external_id,
                        special_requests=reservation.special_requests or "",
                    )
                    booking_id = booking.id

        except IntegrityError as e:
            # Only a clash on the dedup key means another import won the race
            if await self._already_imported(channel, external_id):
                logger.info(
                    "reservation_duplicate_on_insert", channel=channel, external_id=external_id
                )
                reservations_imported_total.labels(channel=channel, result="duplicate").inc()
                return ImportResult(created=False, skipped=FailureKind.DUPLICATE)
            raise self._persistence_error(channel, external_id, e)
        except SQLAlchemyError as e:
            raise self._persistence_error(channel, external_id, e)

        reservations_imported_total.labels(channel=channel, result="created").inc()
        logger.info(
            "reservation_imported",
            channel=channel,
            external_id=external_id,
            booking_id=booking_id,
            room_type_id=room_type_id,
        )

        if self.event_bus is not None:
            await self.event_bus.publish(
                ChannelEvent(
                    name=RESERVATION_IMPORTED,
                    channel=channel,
                    payload={
                        "booking_id": booking_id,
                        "external_id": external_id,
                        "room_type_id": room_type_id,
                    },
                )
            )

        return ImportResult(created=True, booking_id=booking_id, room_type_id=room_type_id)

    async def _already_imported(self, channel: str, external_id: str) -> bool:
        try:
            async with self.db.session() as session:
                found = await BookingRepository(session).find_by_channel_ref(channel, external_id)
        except SQLAlchemyError as e:
            raise self._persistence_error(channel, external_id, e)
        return found is not None

    def _persistence_error(
        self, channel: str, external_id: str, error: Exception
    ) -> PersistenceError:
        logger.error(
            "reservation_import_failed",
            channel=channel,
            external_id=external_id,
            error=str(error),
        )
        reservations_imported_total.labels(channel=channel, result="error").inc()
        return PersistenceError(
            f"Failed to import reservation {external_id}: {error}",
            details={"channel": channel, "external_id": external_id},
        )

    async def _resolve_guest(self, session, reservation: ExternalReservation) -> int:
        guests = GuestRepository(session)

        if reservation.guest_email:
            existing = await guests.first_by_email(reservation.guest_email)
            if existing is not None:
                return existing.id

        guest = await guests.create(
            first_name=reservation.guest_first_name,
            last_name=reservation.guest_last_name,
            email=reservation.guest_email,
            phone=reservation.guest_phone,
            source="channel",
        )
        return guest.id
