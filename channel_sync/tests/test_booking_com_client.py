"""
Unit tests for the Booking.com client with HTTPX mocking
"""

import base64
import xml.etree.ElementTree as ET
from datetime import date, datetime, timezone
from decimal import Decimal

import httpx
import pytest
from pytest_httpx import HTTPXMock

from channel_sync.adapters.booking_com import (
    PRODUCTION_BASE_URL,
    SANDBOX_BASE_URL,
    BookingComClient,
    resolve_base_url,
)
from channel_sync.contracts import (
    AvailabilityRecord,
    ClientConfig,
    FailureKind,
    RateRecord,
)

from .fixtures import (
    AUTH_ERROR_RESPONSE,
    AVAILABILITY_URL,
    BASE_URL,
    ERROR_RESPONSE,
    OK_RESPONSE,
    OTA_NS,
    PING_RESPONSE,
    PULL_REJECTED_RESPONSE,
    RATES_URL,
    RESERVATIONS_URL,
    WARNING_RESPONSE,
    reservation_node,
    reservations_response,
)


@pytest.fixture
def config():
    return ClientConfig(
        hotel_id="HOTEL-1",
        username="channel-user",
        password="s3cret",
        base_url=BASE_URL,
        timeout=5.0,
    )


@pytest.fixture
def availability_records():
    return [
        AvailabilityRecord("101", date(2025, 6, 1), 3, min_stay=2),
        AvailabilityRecord("101", date(2025, 6, 2), 1),
    ]


@pytest.fixture
def rate_records():
    return [RateRecord("101", "BAR", date(2025, 6, 1), Decimal("120.00"), "USD")]


class TestBaseUrl:
    def test_custom_endpoint_wins(self):
        assert resolve_base_url("https://proxy.test/ota", use_sandbox=True) == "https://proxy.test/ota/"
        assert resolve_base_url("https://proxy.test/ota/") == "https://proxy.test/ota/"

    def test_sandbox_then_production(self):
        assert resolve_base_url(None, use_sandbox=True) == SANDBOX_BASE_URL
        assert resolve_base_url("", use_sandbox=False) == PRODUCTION_BASE_URL


class TestPushes:
    @pytest.mark.asyncio
    async def test_push_availability_success(
        self, config, availability_records, httpx_mock: HTTPXMock
    ):
        httpx_mock.add_response(method="POST", url=AVAILABILITY_URL, text=OK_RESPONSE)

        async with BookingComClient(config) as client:
            result = await client.push_availability(availability_records)

        assert result.success is True
        assert result.records_processed == 2
        assert result.errors == []
        assert result.message == "Successfully pushed 2 availability records to Booking.com."

        request = httpx_mock.get_request()
        assert request.headers["Content-Type"] == "application/xml; charset=utf-8"
        expected = base64.b64encode(b"channel-user:s3cret").decode()
        assert request.headers["Authorization"] == f"Basic {expected}"

        root = ET.fromstring(request.content)
        assert len(root.findall(".//ota:AvailStatusMessage", OTA_NS)) == 2

    @pytest.mark.asyncio
    async def test_empty_input_sends_nothing(self, config, httpx_mock: HTTPXMock):
        async with BookingComClient(config) as client:
            availability = await client.push_availability([])
            rates = await client.push_rates([])

        assert availability.success is True
        assert availability.records_processed == 0
        assert availability.message == "No availability data to push."
        assert rates.message == "No rate data to push."
        assert httpx_mock.get_requests() == []

    @pytest.mark.asyncio
    async def test_error_node_on_200_is_success_with_warnings(
        self, config, availability_records, httpx_mock: HTTPXMock
    ):
        httpx_mock.add_response(method="POST", url=AVAILABILITY_URL, text=ERROR_RESPONSE)

        async with BookingComClient(config) as client:
            result = await client.push_availability(availability_records)

        assert result.success is True
        assert result.errors == ["[392] Invalid hotel code"]
        assert result.records_processed == 2
        assert result.failure == FailureKind.PROTOCOL_WARNING
        assert result.message == "Booking.com availability sync completed with 1 warnings."

    @pytest.mark.asyncio
    async def test_rates_with_plain_warnings(self, config, rate_records, httpx_mock: HTTPXMock):
        httpx_mock.add_response(method="POST", url=RATES_URL, text=WARNING_RESPONSE)

        async with BookingComClient(config) as client:
            result = await client.push_rates(rate_records)

        assert result.success is True
        assert len(result.errors) == 2
        assert result.message == "Booking.com rates sync completed with 2 warnings."

    @pytest.mark.asyncio
    async def test_server_error(self, config, rate_records, httpx_mock: HTTPXMock):
        httpx_mock.add_response(method="POST", url=RATES_URL, status_code=500, text="boom")

        async with BookingComClient(config) as client:
            result = await client.push_rates(rate_records)

        assert result.success is False
        assert result.records_processed == 0
        assert result.message == "Booking.com API error for rates: HTTP 500"
        assert result.errors == [result.message]
        assert result.failure == FailureKind.HTTP_STATUS

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, config, rate_records, httpx_mock: HTTPXMock):
        httpx_mock.add_response(method="POST", url=RATES_URL, status_code=401)

        async with BookingComClient(config) as client:
            result = await client.push_rates(rate_records)

        assert result.success is False
        assert result.failure == FailureKind.AUTH

    @pytest.mark.asyncio
    async def test_transport_failure_reason_verbatim(
        self, config, availability_records, httpx_mock: HTTPXMock
    ):
        httpx_mock.add_exception(httpx.ConnectError("Connection refused"), url=AVAILABILITY_URL)

        async with BookingComClient(config) as client:
            result = await client.push_availability(availability_records)

        assert result.success is False
        assert result.message == "Connection refused"
        assert result.errors == ["Connection refused"]
        assert result.failure == FailureKind.TRANSPORT


class TestTestConnection:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 403])
    async def test_credential_failure_is_distinguishable(
        self, config, status_code, httpx_mock: HTTPXMock
    ):
        httpx_mock.add_response(method="POST", url=AVAILABILITY_URL, status_code=status_code)

        async with BookingComClient(config) as client:
            result = await client.test_connection()

        assert result.success is False
        assert result.failure == FailureKind.AUTH
        assert "credentials" in result.message.lower()

    @pytest.mark.asyncio
    async def test_timeout_is_transport_failure(self, config, httpx_mock: HTTPXMock):
        httpx_mock.add_exception(httpx.ConnectTimeout("timed out"), url=AVAILABILITY_URL)

        async with BookingComClient(config) as client:
            result = await client.test_connection()

        assert result.success is False
        assert result.failure == FailureKind.TRANSPORT
        assert result.message == "timed out"

    @pytest.mark.asyncio
    async def test_missing_credentials_sends_nothing(self, httpx_mock: HTTPXMock):
        config = ClientConfig(hotel_id="HOTEL-1", username="", password="", base_url=BASE_URL)

        async with BookingComClient(config) as client:
            result = await client.test_connection()

        assert result.success is False
        assert result.message.startswith("Missing credentials")
        assert httpx_mock.get_requests() == []

    @pytest.mark.asyncio
    async def test_authentication_error_in_body(self, config, httpx_mock: HTTPXMock):
        httpx_mock.add_response(method="POST", url=AVAILABILITY_URL, text=AUTH_ERROR_RESPONSE)

        async with BookingComClient(config) as client:
            result = await client.test_connection()

        assert result.success is False
        assert result.failure == FailureKind.AUTH

    @pytest.mark.asyncio
    async def test_ping_ok(self, config, httpx_mock: HTTPXMock):
        httpx_mock.add_response(method="POST", url=AVAILABILITY_URL, text=PING_RESPONSE)

        async with BookingComClient(config) as client:
            result = await client.test_connection()

        assert result.success is True
        assert result.failure is None
        root = ET.fromstring(httpx_mock.get_request().content)
        assert root.tag.endswith("OTA_PingRQ")

    @pytest.mark.asyncio
    async def test_unexpected_status(self, config, httpx_mock: HTTPXMock):
        httpx_mock.add_response(method="POST", url=AVAILABILITY_URL, status_code=502)

        async with BookingComClient(config) as client:
            result = await client.test_connection()

        assert result.success is False
        assert result.failure == FailureKind.HTTP_STATUS
        assert "HTTP 502" in result.message


class TestPullReservations:
    @pytest.mark.asyncio
    async def test_parses_reservations(self, config, httpx_mock: HTTPXMock):
        body = reservations_response(
            reservation_node("BDC-1"),
            reservation_node("BDC-2", id_style="attribute", room_code="202"),
        )
        httpx_mock.add_response(method="POST", url=RESERVATIONS_URL, text=body)

        async with BookingComClient(config) as client:
            result = await client.pull_reservations()

        assert result.success is True
        assert result.message == "Pulled 2 reservations from Booking.com."
        first, second = result.reservations

        assert first.external_id == "BDC-1"
        assert first.check_in == date(2025, 6, 1)
        assert first.check_out == date(2025, 6, 3)
        assert first.total_amount == Decimal("240.50")
        assert first.currency == "EUR"
        assert first.num_guests == 3
        assert first.guest_email == "ada@example.com"
        assert second.external_id == "BDC-2"
        assert second.room_type_code == "202"

    @pytest.mark.asyncio
    async def test_reservation_without_id_is_dropped(self, config, httpx_mock: HTTPXMock):
        body = reservations_response(
            reservation_node("BDC-1"), reservation_node("", id_style="none")
        )
        httpx_mock.add_response(method="POST", url=RESERVATIONS_URL, text=body)

        async with BookingComClient(config) as client:
            result = await client.pull_reservations()

        assert [r.external_id for r in result.reservations] == ["BDC-1"]

    @pytest.mark.asyncio
    async def test_malformed_body(self, config, httpx_mock: HTTPXMock):
        httpx_mock.add_response(
            method="POST", url=RESERVATIONS_URL, text="<OTA_ResRetrieveRS><Hotel"
        )

        async with BookingComClient(config) as client:
            result = await client.pull_reservations()

        assert result.reservations == []
        assert result.failure == FailureKind.PARSE
        assert result.errors and "Malformed" in result.errors[0]

    @pytest.mark.asyncio
    async def test_http_error(self, config, httpx_mock: HTTPXMock):
        httpx_mock.add_response(method="POST", url=RESERVATIONS_URL, status_code=503)

        async with BookingComClient(config) as client:
            result = await client.pull_reservations()

        assert result.success is False
        assert result.message == "Booking.com API error for reservations: HTTP 503"

    @pytest.mark.asyncio
    async def test_since_goes_into_selection_criteria(self, config, httpx_mock: HTTPXMock):
        httpx_mock.add_response(method="POST", url=RESERVATIONS_URL, text=reservations_response())

        async with BookingComClient(config) as client:
            await client.pull_reservations(datetime(2025, 5, 1, tzinfo=timezone.utc))

        root = ET.fromstring(httpx_mock.get_request().content)
        criteria = root.find(".//ota:SelectionCriteria", OTA_NS)
        assert criteria.get("Start") == "2025-05-01"

    @pytest.mark.asyncio
    async def test_error_nodes_in_2xx_body_are_reported(self, config, httpx_mock: HTTPXMock):
        httpx_mock.add_response(method="POST", url=RESERVATIONS_URL, text=PULL_REJECTED_RESPONSE)

        async with BookingComClient(config) as client:
            result = await client.pull_reservations()

        assert result.success is True
        assert result.reservations == []
        assert result.errors == ["[497] Hotel not authorised"]
        assert result.failure == FailureKind.PROTOCOL_WARNING
        assert result.message == "Pulled 0 reservations from Booking.com with 1 warnings."

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, config, httpx_mock: HTTPXMock):
        httpx_mock.add_response(method="POST", url=RESERVATIONS_URL, status_code=403)

        async with BookingComClient(config) as client:
            result = await client.pull_reservations()

        assert result.success is False
        assert result.failure == FailureKind.AUTH
        assert result.errors == ["Invalid credentials. Authentication failed."]
