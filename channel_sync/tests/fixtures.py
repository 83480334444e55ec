"""
Shared test fixtures for channel sync tests
Uses pytest-httpx for mocking HTTP calls
"""

import asyncio
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Type

import pytest
from pytest_httpx import HTTPXMock
from sqlalchemy import text

from channel_sync.contracts import (
    AvailabilityRecord,
    BaseChannelClient,
    ConnectionTestResult,
    PullResult,
    PushResult,
    RateRecord,
)
from channel_sync.credentials import CredentialCipher
from channel_sync.database.connection import Database
from channel_sync.database.models import (
    ChannelConnection,
    ChannelRateMap,
    RoomInventory,
    RoomType,
)

BASE_URL = "https://supply-xml.test/hotels/xml/"
AVAILABILITY_URL = BASE_URL + "availability"
RATES_URL = BASE_URL + "rates"
RESERVATIONS_URL = BASE_URL + "reservations"

OTA_NS = {"ota": "http://www.opentravel.org/OTA/2003/05"}


# Response bodies

OK_RESPONSE = """<?xml version="1.0" encoding="UTF-8"?>
<OTA_HotelAvailNotifRS xmlns="http://www.opentravel.org/OTA/2003/05" Version="1.0">
  <Success/>
</OTA_HotelAvailNotifRS>"""

ERROR_RESPONSE = """<?xml version="1.0" encoding="UTF-8"?>
<OTA_HotelAvailNotifRS xmlns="http://www.opentravel.org/OTA/2003/05" Version="1.0">
  <Errors>
    <Error Type="3" Code="392" ShortText="Invalid hotel code"/>
  </Errors>
</OTA_HotelAvailNotifRS>"""

WARNING_RESPONSE = """<?xml version="1.0" encoding="UTF-8"?>
<OTA_HotelRateAmountNotifRS Version="1.0">
  <Success/>
  <Warnings>
    <Warning Type="10">Rate plan BAR closed for some dates</Warning>
  </Warnings>
  <Errors>
    <Error>Room 102 unknown</Error>
  </Errors>
</OTA_HotelRateAmountNotifRS>"""

AUTH_ERROR_RESPONSE = """<?xml version="1.0" encoding="UTF-8"?>
<OTA_PingRS xmlns="http://www.opentravel.org/OTA/2003/05">
  <Errors><Error Code="497" ShortText="Authentication failed"/></Errors>
</OTA_PingRS>"""

PING_RESPONSE = """<?xml version="1.0" encoding="UTF-8"?>
<OTA_PingRS xmlns="http://www.opentravel.org/OTA/2003/05">
  <Success/>
  <EchoData>Connection test from channel sync</EchoData>
</OTA_PingRS>"""

PULL_REJECTED_RESPONSE = """<?xml version="1.0" encoding="UTF-8"?>
<OTA_ResRetrieveRS xmlns="http://www.opentravel.org/OTA/2003/05" Version="1.0">
  <Errors>
    <Error Type="6" Code="497" ShortText="Hotel not authorised"/>
  </Errors>
</OTA_ResRetrieveRS>"""


def reservation_node(
    external_id: str = "BDC-1",
    room_code: str = "101",
    email: str = "ada@example.com",
    id_style: str = "unique_id",
) -> str:
    if id_style == "unique_id":
        opening = '<HotelReservation ResStatus="Book">'
        id_element = f'<UniqueID Type="14" ID="{external_id}"/>'
    elif id_style == "attribute":
        opening = f'<HotelReservation ResStatus="Modify" ResID_Value="{external_id}">'
        id_element = ""
    else:
        opening = "<HotelReservation>"
        id_element = ""

    return f"""
    {opening}
      {id_element}
      <RoomStays>
        <RoomStay>
          <RoomTypes><RoomType RoomTypeCode="{room_code}"/></RoomTypes>
          <GuestCounts>
            <GuestCount AgeQualifyingCode="10" Count="2"/>
            <GuestCount AgeQualifyingCode="8" Count="1"/>
          </GuestCounts>
          <TimeSpan Start="2025-06-01" End="2025-06-03"/>
          <Total AmountAfterTax="240.50" CurrencyCode="EUR"/>
        </RoomStay>
      </RoomStays>
      <ResGuests>
        <ResGuest>
          <Profiles><ProfileInfo><Profile><Customer>
            <PersonName><GivenName>Ada</GivenName><Surname>Lovelace</Surname></PersonName>
            <Telephone PhoneNumber="+44 20 7946 0000"/>
            <Email>{email}</Email>
          </Customer></Profile></ProfileInfo></Profiles>
        </ResGuest>
      </ResGuests>
      <SpecialRequests>
        <SpecialRequest><Text>Late arrival &amp; quiet room</Text></SpecialRequest>
      </SpecialRequests>
    </HotelReservation>"""


def reservations_response(*nodes: str, namespaced: bool = True) -> str:
    xmlns = ' xmlns="http://www.opentravel.org/OTA/2003/05"' if namespaced else ""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<OTA_ResRetrieveRS{xmlns} Version="1.0"><Success/>'
        f'<ReservationsList>{"".join(nodes)}</ReservationsList>'
        "</OTA_ResRetrieveRS>"
    )


@pytest.fixture
def booking_credentials() -> Dict[str, Any]:
    """Credential bundle pointing the client at the mocked endpoint"""
    return {
        "username": "channel-user",
        "password": "s3cret",
        "api_endpoint": BASE_URL.rstrip("/"),
    }


@pytest.fixture
def mock_availability_ok(httpx_mock: HTTPXMock):
    httpx_mock.add_response(method="POST", url=AVAILABILITY_URL, text=OK_RESPONSE, status_code=200)


@pytest.fixture
def mock_rates_ok(httpx_mock: HTTPXMock):
    httpx_mock.add_response(method="POST", url=RATES_URL, text=OK_RESPONSE, status_code=200)


@pytest.fixture
def mock_reservations_empty(httpx_mock: HTTPXMock):
    httpx_mock.add_response(
        method="POST", url=RESERVATIONS_URL, text=reservations_response(), status_code=200
    )


# Database seeding helpers

async def seed_connection(
    db: Database,
    cipher: CredentialCipher,
    channel_name: str = "booking_com",
    hotel_id: str = "HOTEL-1",
    is_active: bool = True,
    credentials: Optional[Dict[str, Any]] = None,
    last_sync_at: Optional[datetime] = None,
) -> ChannelConnection:
    if credentials is None:
        credentials = {
            "username": "channel-user",
            "password": "s3cret",
            "api_endpoint": BASE_URL,
        }
    async with db.session() as session:
        connection = ChannelConnection(
            channel_name=channel_name,
            hotel_id=hotel_id,
            credentials=cipher.encrypt(credentials),
            is_active=is_active,
            last_sync_at=last_sync_at,
        )
        session.add(connection)
        await session.commit()
        return connection


async def seed_room_type(
    db: Database, room_type_id: int, name: str = "Standard", base_price: str = "100.00"
) -> RoomType:
    async with db.session() as session:
        room_type = RoomType(id=room_type_id, name=name, base_price=Decimal(base_price))
        session.add(room_type)
        await session.commit()
        return room_type


async def seed_inventory(
    db: Database,
    room_type_id: int,
    night: date,
    available_rooms: int = 3,
    min_stay: int = 1,
    stop_sell: bool = False,
    price_override: Optional[str] = None,
) -> RoomInventory:
    async with db.session() as session:
        row = RoomInventory(
            room_type_id=room_type_id,
            date=night,
            available_rooms=available_rooms,
            min_stay=min_stay,
            stop_sell=stop_sell,
            price_override=Decimal(price_override) if price_override is not None else None,
        )
        session.add(row)
        await session.commit()
        return row


async def seed_mapping(
    db: Database,
    room_type_id: int,
    channel_room_id: str,
    channel_rate_id: str = "BAR",
    channel_name: str = "booking_com",
    rate_plan_id: int = 0,
    is_active: bool = True,
) -> ChannelRateMap:
    async with db.session() as session:
        mapping = ChannelRateMap(
            channel_name=channel_name,
            local_room_type_id=room_type_id,
            local_rate_plan_id=rate_plan_id,
            channel_room_id=channel_room_id,
            channel_rate_id=channel_rate_id,
            is_active=is_active,
        )
        session.add(mapping)
        await session.commit()
        return mapping


async def enforce_foreign_keys(db: Database) -> None:
    """SQLite skips foreign key checks unless the connection asks for them"""
    async with db.engine.connect() as conn:
        await conn.execute(text("PRAGMA foreign_keys=ON"))


def make_recording_client(
    push_result: Optional[PushResult] = None,
    pull_result: Optional[PullResult] = None,
    fail_with: Optional[Exception] = None,
    blocked_by: Optional[asyncio.Event] = None,
) -> Type[BaseChannelClient]:
    """A client class that records what it was asked to send instead of calling a channel"""

    class RecordingClient(BaseChannelClient):
        channel_name = "booking_com"
        display_name = "Recording"
        calls: List[Any] = []
        since_values: List[Any] = []

        async def connect(self):
            pass

        async def disconnect(self):
            pass

        async def push_availability(self, records: List[AvailabilityRecord]) -> PushResult:
            self.calls.append(("availability", list(records)))
            if blocked_by is not None:
                await blocked_by.wait()
            if fail_with is not None:
                raise fail_with
            return push_result or PushResult(
                success=True, message="ok", records_processed=len(records)
            )

        async def push_rates(self, records: List[RateRecord]) -> PushResult:
            self.calls.append(("rates", list(records)))
            if fail_with is not None:
                raise fail_with
            return push_result or PushResult(
                success=True, message="ok", records_processed=len(records)
            )

        async def pull_reservations(self, since=None) -> PullResult:
            self.calls.append(("reservations", since))
            self.since_values.append(since)
            return pull_result or PullResult(success=True, message="Pulled 0 reservations")

        async def test_connection(self) -> ConnectionTestResult:
            return ConnectionTestResult(success=True, message="ok")

    return RecordingClient
