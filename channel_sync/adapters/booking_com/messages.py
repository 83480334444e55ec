"""
OTA 2003/05 message builders and response readers for the Booking.com
supply XML interface.

Requests are built as element trees so room codes, rate codes and any
guest-supplied text are always escaped. Responses are read without caring
whether the payload carries the OTA namespace or not.
"""

import uuid
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterator, List, Optional

from channel_sync.contracts import AvailabilityRecord, ParseError, RateRecord

OTA_NAMESPACE = "http://www.opentravel.org/OTA/2003/05"
OTA_VERSION = "1.0"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"


def _root(tag: str, echo_prefix: str = "") -> ET.Element:
    return ET.Element(
        tag,
        {
            "xmlns": OTA_NAMESPACE,
            "EchoToken": f"{echo_prefix}{uuid.uuid4()}",
            "TimeStamp": datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT),
            "Version": OTA_VERSION,
        },
    )


def _serialize(root: ET.Element) -> bytes:
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def build_ping() -> bytes:
    """OTA_PingRQ used to validate credentials"""
    root = _root("OTA_PingRQ", echo_prefix="test-")
    ET.SubElement(root, "EchoData").text = "Connection test from channel sync"
    return _serialize(root)


def build_availability(hotel_id: str, records: List[AvailabilityRecord]) -> bytes:
    """OTA_HotelAvailNotifRQ with one AvailStatusMessage per record"""
    root = _root("OTA_HotelAvailNotifRQ")
    messages = ET.SubElement(root, "AvailStatusMessages", {"HotelCode": hotel_id or ""})

    for record in records:
        night = record.date.isoformat()
        message = ET.SubElement(messages, "AvailStatusMessage")
        ET.SubElement(
            message,
            "StatusApplicationControl",
            {"Start": night, "End": night, "InvTypeCode": record.channel_room_id or ""},
        )
        lengths = ET.SubElement(message, "LengthsOfStay")
        ET.SubElement(
            lengths,
            "LengthOfStay",
            {"MinMaxMessageType": "SetMinLOS", "Time": str(int(record.min_stay or 1))},
        )
        ET.SubElement(
            message,
            "StatusApplicationControl",
            {"BookingLimit": str(int(record.available_rooms or 0))},
        )
        ET.SubElement(
            message,
            "RestrictionStatus",
            {"Status": "Close" if record.stop_sell else "Open", "Restriction": "Master"},
        )

    return _serialize(root)


def build_rates(hotel_id: str, records: List[RateRecord]) -> bytes:
    """OTA_HotelRateAmountNotifRQ with one RateAmountMessage per record"""
    root = _root("OTA_HotelRateAmountNotifRQ")
    messages = ET.SubElement(root, "RateAmountMessages", {"HotelCode": hotel_id or ""})

    for record in records:
        night = record.date.isoformat()
        message = ET.SubElement(messages, "RateAmountMessage")
        ET.SubElement(
            message,
            "StatusApplicationControl",
            {
                "Start": night,
                "End": night,
                "InvTypeCode": record.channel_room_id or "",
                "RatePlanCode": record.channel_rate_id or "",
            },
        )
        rates = ET.SubElement(message, "Rates")
        rate = ET.SubElement(rates, "Rate")
        amounts = ET.SubElement(rate, "BaseByGuestAmts")
        ET.SubElement(
            amounts,
            "BaseByGuestAmt",
            {
                "AmountAfterTax": f"{Decimal(str(record.price or 0)):.2f}",
                "CurrencyCode": record.currency or "USD",
            },
        )

    return _serialize(root)


def build_read_request(hotel_id: str, since: Optional[datetime] = None) -> bytes:
    """OTA_ReadRQ for reservations, optionally limited to those created since a point in time"""
    root = _root("OTA_ReadRQ")
    requests = ET.SubElement(root, "ReadRequests")
    hotel_request = ET.SubElement(requests, "HotelReadRequest", {"HotelCode": hotel_id or ""})

    if since:
        start = since.date() if isinstance(since, datetime) else since
        ET.SubElement(
            hotel_request,
            "SelectionCriteria",
            {
                "Start": start.isoformat(),
                "End": datetime.now(timezone.utc).date().isoformat(),
                "DateType": "CreateDate",
            },
        )

    return _serialize(root)


# Response reading

def local_name(tag: str) -> str:
    """Strip an XML namespace from a tag name"""
    if isinstance(tag, str) and tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def parse_document(body) -> ET.Element:
    """Parse a response body; raises ParseError when it is not well-formed XML"""
    if isinstance(body, str):
        body = body.encode("utf-8")
    if not body or not body.strip():
        raise ParseError("Empty response body")
    try:
        return ET.fromstring(body)
    except ET.ParseError as e:
        raise ParseError(f"Malformed XML response: {e}")


def iter_named(node: ET.Element, name: str) -> Iterator[ET.Element]:
    """Descendants (and the node itself) with the given local name"""
    for element in node.iter():
        if local_name(element.tag) == name:
            yield element


def find_path(node: ET.Element, *names: str) -> Optional[ET.Element]:
    """First element reached by a chain of descendant steps (like .//A//B)"""
    current = [node]
    for name in names:
        found = []
        for element in current:
            for child in element.iter():
                if child is not element and local_name(child.tag) == name:
                    found.append(child)
        if not found:
            return None
        current = found
    return current[0]


def _text(element: Optional[ET.Element]) -> str:
    if element is None:
        return ""
    return "".join(element.itertext()).strip()


def _child_text(element: Optional[ET.Element], name: str) -> str:
    if element is None:
        return ""
    for child in element:
        if local_name(child.tag) == name:
            return _text(child)
    return ""


def extract_errors(body) -> List[str]:
    """
    Error and Warning nodes of a 2xx response, rendered as strings.

    Errors read as "[code] message" (or just the message when no code is
    given), warnings as "Warning: message". A body that cannot be parsed
    carries no readable errors.
    """
    try:
        root = parse_document(body)
    except ParseError:
        return []

    errors = []
    for node in iter_named(root, "Error"):
        message = node.get("ShortText") or _text(node)
        if message:
            code = node.get("Code", "")
            errors.append(f"[{code}] {message}" if code else message)

    for node in iter_named(root, "Warning"):
        message = node.get("ShortText") or _text(node)
        if message:
            errors.append(f"Warning: {message}")

    return errors


def read_reservations(root: ET.Element) -> List[Dict[str, str]]:
    """Raw field values of each HotelReservation node; missing fields are empty strings"""
    raw = []
    for node in iter_named(root, "HotelReservation"):
        raw.append(_read_reservation(node))
    return raw


def _read_reservation(node: ET.Element) -> Dict[str, str]:
    external_id = node.get("ResID_Value") or node.get("UniqueID") or ""
    if not external_id:
        unique_id = find_path(node, "UniqueID")
        if unique_id is not None:
            external_id = unique_id.get("ID", "")

    fields = {
        "external_id": external_id.strip(),
        "status": (node.get("ResStatus") or "confirmed").strip().lower(),
        "guest_first_name": "",
        "guest_last_name": "",
        "guest_email": "",
        "guest_phone": "",
        "check_in": "",
        "check_out": "",
        "room_type_code": "",
        "total_amount": "",
        "currency": "",
        "num_guests": "",
        "special_requests": "",
    }

    person = find_path(node, "ResGuest", "PersonName")
    if person is not None:
        fields["guest_first_name"] = _child_text(person, "GivenName")
        fields["guest_last_name"] = _child_text(person, "Surname")

    fields["guest_email"] = _text(find_path(node, "ResGuest", "Email"))

    phone = find_path(node, "ResGuest", "Telephone")
    if phone is not None:
        fields["guest_phone"] = phone.get("PhoneNumber") or _text(phone)

    span = find_path(node, "RoomStay", "TimeSpan")
    if span is not None:
        fields["check_in"] = span.get("Start", "")
        fields["check_out"] = span.get("End", "")

    room_type = find_path(node, "RoomType")
    if room_type is not None:
        fields["room_type_code"] = room_type.get("RoomTypeCode", "")

    total = find_path(node, "Total")
    if total is not None:
        fields["total_amount"] = total.get("AmountAfterTax", "")
        fields["currency"] = total.get("CurrencyCode", "")

    fields["special_requests"] = _text(find_path(node, "SpecialRequest", "Text"))

    counts = list(iter_named(node, "GuestCount"))
    if counts:
        guests = 0
        for count in counts:
            try:
                guests += int(count.get("Count", "0"))
            except ValueError:
                continue
        fields["num_guests"] = str(max(1, guests))

    return fields


def mentions_authentication_error(body) -> bool:
    """Whether a 2xx body reports an authentication Error"""
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    return "Error" in (body or "") and "Authentication" in (body or "")
