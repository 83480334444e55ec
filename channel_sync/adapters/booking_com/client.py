"""
Booking.com Channel Client
OTA XML over HTTPS with Basic authentication
"""

from datetime import datetime
from typing import List, Optional

import httpx

from ...contracts import (
    AuthenticationError,
    AvailabilityRecord,
    BaseChannelClient,
    ClientConfig,
    ConnectionTestResult,
    ExternalReservation,
    FailureKind,
    ParseError,
    PullResult,
    PushResult,
    RateRecord,
    TransportError,
)
from ...metrics import client_requests_total
from ...utils.logging import log_performance, sanitize_url
from . import messages

PRODUCTION_BASE_URL = "https://supply-xml.booking.com/hotels/xml/"
SANDBOX_BASE_URL = "https://supply-xml.booking.com/hotels/xml/test/"

AUTH_FAILED_MESSAGE = "Invalid credentials. Authentication failed."


def resolve_base_url(api_endpoint: Optional[str] = None, use_sandbox: bool = False) -> str:
    """Custom endpoint wins over the sandbox, which wins over production"""
    if api_endpoint:
        return api_endpoint if api_endpoint.endswith("/") else api_endpoint + "/"
    if use_sandbox:
        return SANDBOX_BASE_URL
    return PRODUCTION_BASE_URL


class BookingComClient(BaseChannelClient):
    """Booking.com supply XML client"""

    channel_name = "booking_com"
    display_name = "Booking.com"

    def __init__(self, config: ClientConfig):
        super().__init__(config)
        self.base_url = config.base_url or PRODUCTION_BASE_URL

    async def connect(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout),
                auth=httpx.BasicAuth(self.config.username or "", self.config.password or ""),
                headers={
                    "Content-Type": "application/xml; charset=utf-8",
                    "User-Agent": "channel-sync/1.0",
                },
            )

    async def disconnect(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _send(self, endpoint: str, body: bytes) -> httpx.Response:
        """POST one XML message; raises TransportError or, on 401/403, AuthenticationError"""
        await self.connect()
        url = self.base_url + endpoint

        try:
            response = await self._client.post(url, content=body)
        except httpx.RequestError as e:
            reason = str(e) or e.__class__.__name__
            client_requests_total.labels(
                channel=self.channel_name, endpoint=endpoint, outcome="transport"
            ).inc()
            self.logger.error(
                "channel_request_failed",
                endpoint=endpoint,
                url=sanitize_url(url),
                error=reason,
            )
            raise TransportError(reason, details={"endpoint": endpoint})

        self.logger.debug(
            "channel_request_sent",
            endpoint=endpoint,
            url=sanitize_url(url),
            status_code=response.status_code,
        )

        if response.status_code in (401, 403):
            self._count(endpoint, "auth")
            self.logger.error(
                "channel_auth_rejected", endpoint=endpoint, status_code=response.status_code
            )
            raise AuthenticationError(
                AUTH_FAILED_MESSAGE,
                details={"endpoint": endpoint, "status_code": response.status_code},
            )
        return response

    def _count(self, endpoint: str, outcome: str) -> None:
        client_requests_total.labels(
            channel=self.channel_name, endpoint=endpoint, outcome=outcome
        ).inc()

    @log_performance("push_availability")
    async def push_availability(self, records: List[AvailabilityRecord]) -> PushResult:
        if not records:
            return PushResult(success=True, message="No availability data to push.")

        body = messages.build_availability(self.config.hotel_id, records)
        self.logger.debug("pushing_availability", record_count=len(records))
        return await self._push("availability", body, len(records))

    @log_performance("push_rates")
    async def push_rates(self, records: List[RateRecord]) -> PushResult:
        if not records:
            return PushResult(success=True, message="No rate data to push.")

        body = messages.build_rates(self.config.hotel_id, records)
        self.logger.debug("pushing_rates", record_count=len(records))
        return await self._push("rates", body, len(records))

    async def _push(self, sync_type: str, body: bytes, record_count: int) -> PushResult:
        try:
            response = await self._send(sync_type, body)
        except TransportError as e:
            return PushResult(
                success=False,
                message=e.message,
                errors=[e.message],
                failure=FailureKind.TRANSPORT,
            )
        except AuthenticationError as e:
            return PushResult(
                success=False,
                message=e.message,
                errors=[e.message],
                failure=FailureKind.AUTH,
            )

        status_code = response.status_code
        if 200 <= status_code < 300:
            errors = messages.extract_errors(response.content)
            if errors:
                self._count(sync_type, "warning")
                self.logger.warning(
                    "channel_partial_errors", sync_type=sync_type, errors=errors
                )
                return PushResult(
                    success=True,
                    message=(
                        f"Booking.com {sync_type} sync completed with {len(errors)} warnings."
                    ),
                    records_processed=record_count,
                    errors=errors,
                    failure=FailureKind.PROTOCOL_WARNING,
                )

            self._count(sync_type, "ok")
            self.logger.info(
                "channel_push_completed", sync_type=sync_type, record_count=record_count
            )
            return PushResult(
                success=True,
                message=f"Successfully pushed {record_count} {sync_type} records to Booking.com.",
                records_processed=record_count,
            )

        error = f"Booking.com API error for {sync_type}: HTTP {status_code}"
        self._count(sync_type, "http_error")
        self.logger.error(
            "channel_http_error",
            sync_type=sync_type,
            status_code=status_code,
            body=response.text[:500],
        )
        return PushResult(
            success=False,
            message=error,
            errors=[error],
            failure=FailureKind.HTTP_STATUS,
        )

    @log_performance("pull_reservations")
    async def pull_reservations(self, since: Optional[datetime] = None) -> PullResult:
        body = messages.build_read_request(self.config.hotel_id, since)
        self.logger.debug(
            "pulling_reservations", since=since.isoformat() if since else None
        )

        try:
            response = await self._send("reservations", body)
        except TransportError as e:
            return PullResult(
                success=False,
                message=e.message,
                errors=[e.message],
                failure=FailureKind.TRANSPORT,
            )
        except AuthenticationError as e:
            return PullResult(
                success=False,
                message=e.message,
                errors=[e.message],
                failure=FailureKind.AUTH,
            )

        status_code = response.status_code
        if not 200 <= status_code < 300:
            error = f"Booking.com API error for reservations: HTTP {status_code}"
            self._count("reservations", "http_error")
            self.logger.error(
                "channel_http_error",
                sync_type="reservations",
                status_code=status_code,
                body=response.text[:500],
            )
            return PullResult(
                success=False,
                message=error,
                errors=[error],
                failure=FailureKind.HTTP_STATUS,
            )

        try:
            reservations = self.parse_reservations(response.content)
        except ParseError as e:
            self._count("reservations", "parse_error")
            self.logger.warning("reservation_parse_failed", error=e.message)
            return PullResult(
                success=True,
                message="Pulled 0 reservations from Booking.com.",
                errors=[e.message],
                failure=FailureKind.PARSE,
            )

        errors = messages.extract_errors(response.content)
        if errors:
            self._count("reservations", "warning")
            self.logger.warning(
                "channel_partial_errors", sync_type="reservations", errors=errors
            )
            return PullResult(
                success=True,
                message=(
                    f"Pulled {len(reservations)} reservations from Booking.com "
                    f"with {len(errors)} warnings."
                ),
                reservations=reservations,
                errors=errors,
                failure=FailureKind.PROTOCOL_WARNING,
            )

        self._count("reservations", "ok")
        return PullResult(
            success=True,
            message=f"Pulled {len(reservations)} reservations from Booking.com.",
            reservations=reservations,
        )

    def parse_reservations(self, body) -> List[ExternalReservation]:
        """HotelReservation nodes to reservations; nodes without an id are dropped"""
        if not body or not body.strip():
            return []

        root = messages.parse_document(body)

        reservations = []
        for index, raw in enumerate(messages.read_reservations(root)):
            if not raw["external_id"]:
                self.logger.warning("reservation_without_id_dropped", position=index)
                continue
            reservations.append(self._to_reservation(raw))
        return reservations

    def _to_reservation(self, raw) -> ExternalReservation:
        num_guests = 1
        if raw["num_guests"]:
            num_guests = max(1, int(raw["num_guests"]))

        return ExternalReservation(
            external_id=raw["external_id"],
            status=raw["status"] or "confirmed",
            guest_first_name=raw["guest_first_name"],
            guest_last_name=raw["guest_last_name"],
            guest_email=raw["guest_email"],
            guest_phone=raw["guest_phone"],
            check_in=self.normalize_date(raw["check_in"]),
            check_out=self.normalize_date(raw["check_out"]),
            room_type_code=raw["room_type_code"],
            total_amount=self.normalize_amount(raw["total_amount"] or "0"),
            currency=(raw["currency"] or "USD").upper(),
            num_guests=num_guests,
            special_requests=raw["special_requests"],
        )

    @log_performance("test_connection")
    async def test_connection(self) -> ConnectionTestResult:
        if not self.has_credentials():
            return ConnectionTestResult(
                success=False,
                message="Missing credentials. Please provide hotel ID, username, and password.",
                failure=FailureKind.AUTH,
            )

        try:
            response = await self._send("availability", messages.build_ping())
        except TransportError as e:
            return ConnectionTestResult(
                success=False, message=e.message, failure=FailureKind.TRANSPORT
            )
        except AuthenticationError as e:
            return ConnectionTestResult(
                success=False, message=e.message, failure=FailureKind.AUTH
            )

        status_code = response.status_code
        if 200 <= status_code < 300:
            if messages.mentions_authentication_error(response.content):
                self._count("availability", "auth")
                return ConnectionTestResult(
                    success=False,
                    message="Authentication failed. Please check your credentials.",
                    failure=FailureKind.AUTH,
                )
            self._count("availability", "ok")
            return ConnectionTestResult(
                success=True, message="Connection successful. Credentials are valid."
            )

        self._count("availability", "http_error")
        return ConnectionTestResult(
            success=False,
            message=f"Unexpected response (HTTP {status_code}). Please try again.",
            failure=FailureKind.HTTP_STATUS,
        )
