"""
Tests for importing pulled reservations into local bookings
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from channel_sync.contracts import ExternalReservation, FailureKind, PersistenceError
from channel_sync.database.models import Booking, Guest
from channel_sync.database.repository import BookingRepository
from channel_sync.events import RESERVATION_IMPORTED

from .fixtures import enforce_foreign_keys, seed_mapping, seed_room_type


def reservation(external_id="BDC-1", room_code="101", email="ada@example.com", **overrides):
    fields = dict(
        external_id=external_id,
        guest_first_name="Ada",
        guest_last_name="Lovelace",
        guest_email=email,
        guest_phone="+44 20 7946 0000",
        check_in=date(2025, 6, 1),
        check_out=date(2025, 6, 3),
        room_type_code=room_code,
        total_amount=Decimal("240.50"),
        currency="eur",
        num_guests=2,
        special_requests="Late arrival",
    )
    fields.update(overrides)
    return ExternalReservation(**fields)


async def count(db, model, *conditions):
    async with db.session() as session:
        stmt = select(func.count()).select_from(model)
        if conditions:
            stmt = stmt.where(*conditions)
        return (await session.execute(stmt)).scalar_one()


class TestReservationImporter:
    @pytest.mark.asyncio
    async def test_creates_booking_and_guest(self, db, importer):
        await seed_room_type(db, 5)
        await seed_mapping(db, 5, "101")

        result = await importer.import_reservation("booking_com", reservation())

        assert result.created is True
        assert result.room_type_id == 5

        async with db.session() as session:
            booking = await session.get(Booking, result.booking_id)
            guest = await session.get(Guest, booking.guest_id)

        assert booking.source == "booking_com"
        assert booking.channel_name == "booking_com"
        assert booking.channel_booking_id == "BDC-1"
        assert booking.status == "confirmed"
        assert booking.room_type_id == 5
        assert booking.check_in == date(2025, 6, 1)
        assert booking.total_amount == Decimal("240.50")
        assert booking.currency == "EUR"
        assert booking.num_guests == 2
        assert guest.email == "ada@example.com"
        assert guest.source == "channel"

    @pytest.mark.asyncio
    async def test_second_import_is_skipped(self, db, importer):
        first = await importer.import_reservation("booking_com", reservation())
        second = await importer.import_reservation(
            "booking_com", reservation(total_amount=Decimal("999.00"))
        )

        assert first.created is True
        assert not second
        assert second.skipped == FailureKind.DUPLICATE
        assert await count(db, Booking) == 1

        # existing bookings are never updated from the channel
        async with db.session() as session:
            booking = await session.get(Booking, first.booking_id)
        assert booking.total_amount == Decimal("240.50")

    @pytest.mark.asyncio
    async def test_same_reference_on_another_channel_is_new(self, db, importer):
        await importer.import_reservation("booking_com", reservation())
        other = await importer.import_reservation("expedia", reservation())

        assert other.created is True
        assert await count(db, Booking) == 2

    @pytest.mark.asyncio
    async def test_missing_external_id(self, db, importer):
        result = await importer.import_reservation("booking_com", reservation(external_id="  "))

        assert result.created is False
        assert result.skipped == FailureKind.PARSE
        assert await count(db, Booking) == 0

    @pytest.mark.asyncio
    async def test_unmapped_room_code_leaves_room_type_empty(self, db, importer):
        await seed_mapping(db, 5, "101", is_active=False)

        result = await importer.import_reservation("booking_com", reservation(room_code="101"))

        assert result.created is True
        assert result.room_type_id is None
        async with db.session() as session:
            booking = await session.get(Booking, result.booking_id)
        assert booking.room_type_id is None

    @pytest.mark.asyncio
    async def test_guest_reused_by_email(self, db, importer):
        async with db.session() as session:
            older = Guest(first_name="Ada", last_name="King", email="ada@example.com")
            newer = Guest(first_name="Ada", last_name="Byron", email="ada@example.com")
            session.add(older)
            await session.flush()
            session.add(newer)
            await session.commit()

        result = await importer.import_reservation(
            "booking_com", reservation(email="ADA@example.com")
        )

        async with db.session() as session:
            booking = await session.get(Booking, result.booking_id)
        assert booking.guest_id == older.id
        assert await count(db, Guest) == 2

    @pytest.mark.asyncio
    async def test_guest_without_email_is_always_new(self, db, importer):
        await importer.import_reservation("booking_com", reservation("A", email=""))
        await importer.import_reservation("booking_com", reservation("B", email=""))

        assert await count(db, Guest) == 2

    @pytest.mark.asyncio
    async def test_num_guests_never_below_one(self, db, importer):
        result = await importer.import_reservation("booking_com", reservation(num_guests=0))

        async with db.session() as session:
            booking = await session.get(Booking, result.booking_id)
        assert booking.num_guests == 1

    @pytest.mark.asyncio
    async def test_publishes_imported_event(self, db, importer, event_bus):
        await seed_mapping(db, 5, "101")
        events = []
        event_bus.subscribe(RESERVATION_IMPORTED, events.append)

        result = await importer.import_reservation("booking_com", reservation())
        await importer.import_reservation("booking_com", reservation())

        assert len(events) == 1
        assert events[0].channel == "booking_com"
        assert events[0].payload == {
            "booking_id": result.booking_id,
            "external_id": "BDC-1",
            "room_type_id": 5,
        }


class TestImportFailures:
    @pytest.mark.asyncio
    async def test_storage_failure_is_not_a_duplicate(self, db, importer):
        # mapped to a room type that has no row
        await seed_mapping(db, 5, "101")
        await enforce_foreign_keys(db)

        with pytest.raises(PersistenceError) as exc_info:
            await importer.import_reservation("booking_com", reservation("BDC-9"))

        assert exc_info.value.details == {"channel": "booking_com", "external_id": "BDC-9"}
        assert "BDC-9" in exc_info.value.message
        assert await count(db, Booking) == 0
        # the guest was created in the same transaction as the failed booking
        assert await count(db, Guest) == 0

    @pytest.mark.asyncio
    async def test_lost_insert_race_is_a_duplicate(self, db, importer, monkeypatch):
        await importer.import_reservation("booking_com", reservation(email=""))
        assert await count(db, Guest) == 1

        lookups = []
        find_by_channel_ref = BookingRepository.find_by_channel_ref

        async def stale_first_lookup(self, channel_name, channel_booking_id):
            lookups.append(channel_booking_id)
            if len(lookups) == 1:
                return None
            return await find_by_channel_ref(self, channel_name, channel_booking_id)

        monkeypatch.setattr(BookingRepository, "find_by_channel_ref", stale_first_lookup)

        result = await importer.import_reservation("booking_com", reservation(email=""))

        assert result.created is False
        assert result.skipped == FailureKind.DUPLICATE
        assert lookups == ["BDC-1", "BDC-1"]
        assert await count(db, Booking) == 1
        assert await count(db, Guest) == 1
