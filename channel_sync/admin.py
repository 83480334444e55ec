"""
Channel administration service
Connection, rate mapping and sync log management for the admin layer
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from channel_sync.config import ChannelSyncSettings, get_settings
from channel_sync.contracts import (
    ConnectionTestResult,
    NotFoundError,
    ValidationError,
)
from channel_sync.credentials import CredentialCipher
from channel_sync.database.connection import Database
from channel_sync.database.models import BASE_RATE_PLAN
from channel_sync.database.repository import (
    ChannelConnectionRepository,
    RateMapRepository,
    SyncLogRepository,
)
from channel_sync.factory import ClientFactory
from channel_sync.orchestrator import ChannelSyncService
from channel_sync.utils.logging import get_safe_logger

logger = get_safe_logger("channel_sync.admin")

SYNC_KINDS = ("full", "availability", "rates", "reservations")


class RateMappingInput(BaseModel):
    """Validated rate mapping payload"""

    channel_name: str = ""
    local_room_type_id: int = 0
    local_rate_plan_id: int = Field(default=BASE_RATE_PLAN, ge=0)
    channel_room_id: str = Field(default="", max_length=100)
    channel_rate_id: str = Field(default="", max_length=100)
    is_active: bool = True

    @field_validator("channel_name", "channel_room_id", "channel_rate_id", mode="before")
    @classmethod
    def strip_text(cls, v):
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("channel_name")
    @classmethod
    def require_channel_name(cls, v):
        if not v:
            raise ValueError("Channel name is required.")
        return v

    @field_validator("local_room_type_id")
    @classmethod
    def require_room_type(cls, v):
        if v is None or v <= 0:
            raise ValueError("Local room type is required.")
        return v


def _validation_error(error: PydanticValidationError) -> ValidationError:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ()))
    message = str(first.get("msg", "Invalid input")).replace("Value error, ", "")
    exc = ValidationError(message, details={"errors": error.errors(include_url=False)})
    exc.field = field or None
    return exc


class ChannelAdminService:
    """Operations behind the channel admin screens"""

    def __init__(
        self,
        db: Database,
        cipher: CredentialCipher,
        sync_service: ChannelSyncService,
        client_factory: Optional[ClientFactory] = None,
        settings: Optional[ChannelSyncSettings] = None,
    ):
        self.db = db
        self.cipher = cipher
        self.sync_service = sync_service
        self.client_factory = client_factory or sync_service.client_factory
        self.settings = settings or get_settings()

    # Connections

    async def list_connections(self) -> List[Dict[str, Any]]:
        async with self.db.session() as session:
            connections = await ChannelConnectionRepository(session).list_all()
        return [c.to_dict() for c in connections]

    async def save_connection(
        self,
        channel_name: str,
        hotel_id: str = "",
        is_active: bool = False,
        username: Optional[str] = None,
        password: Optional[str] = None,
        api_endpoint: Optional[str] = None,
        use_sandbox: Optional[bool] = None,
        credentials: Optional[Dict[str, Any]] = None,
        connection_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Create or update a connection.

        With an id the matching connection is updated; without one an
        existing connection for the same channel is updated instead of
        creating a second. Credential fields that are not supplied keep
        their stored values.
        """
        channel_name = (channel_name or "").strip()
        if not channel_name:
            exc = ValidationError("Channel name is required.")
            exc.field = "channel_name"
            raise exc

        supplied = dict(credentials or {})
        if username is not None:
            supplied["username"] = username.strip()
        if password is not None:
            supplied["password"] = password
        if api_endpoint is not None:
            supplied["api_endpoint"] = api_endpoint.strip()
        if use_sandbox is not None:
            supplied["use_sandbox"] = bool(use_sandbox)

        async with self.db.session() as session:
            repo = ChannelConnectionRepository(session)

            if connection_id:
                existing = await repo.find(connection_id)
                if existing is None:
                    raise NotFoundError("Connection not found.", details={"id": connection_id})
            else:
                existing = await repo.get_by_channel_name(channel_name)

            if existing is not None:
                merged = self.cipher.decrypt(existing.credentials)
                merged.update(supplied)
                connection = await repo.update(
                    existing.id,
                    channel_name=channel_name,
                    hotel_id=(hotel_id or "").strip(),
                    credentials=self.cipher.encrypt(merged),
                    is_active=bool(is_active),
                )
                action = "updated"
            else:
                connection = await repo.create(
                    channel_name=channel_name,
                    hotel_id=(hotel_id or "").strip(),
                    credentials=self.cipher.encrypt(supplied),
                    is_active=bool(is_active),
                )
                action = "created"

        logger.info(
            "channel_connection_saved",
            channel=channel_name,
            connection_id=connection.id,
            action=action,
            is_active=connection.is_active,
        )
        return connection.to_dict()

    async def delete_connection(self, connection_id: int) -> int:
        """Delete a connection and its channel's rate mappings; returns the mappings removed"""
        async with self.db.session() as session:
            repo = ChannelConnectionRepository(session)
            connection = await repo.find(connection_id)
            if connection is None:
                raise NotFoundError("Connection not found.", details={"id": connection_id})

            channel_name = connection.channel_name
            # Both deletes land in the one commit made by repo.delete
            removed = await RateMapRepository(session).delete_by_channel(channel_name, commit=False)
            await repo.delete(connection_id)

        logger.info(
            "channel_connection_deleted",
            channel=channel_name,
            connection_id=connection_id,
            mappings_removed=removed,
        )
        return removed

    async def test_connection(self, connection_id: int) -> ConnectionTestResult:
        async with self.db.session() as session:
            connection = await ChannelConnectionRepository(session).find(connection_id)
        if connection is None:
            raise NotFoundError("Connection not found.", details={"id": connection_id})

        client = self.client_factory.create(connection)
        async with client:
            result = await client.test_connection()

        logger.info(
            "channel_connection_tested",
            channel=connection.channel_name,
            success=result.success,
            failure=result.failure.value if result.failure else None,
        )
        return result

    # Sync triggers

    async def trigger_sync(self, channel: str, kind: str = "full") -> Dict[str, Any]:
        if kind not in SYNC_KINDS:
            exc = ValidationError(
                f"Unknown sync kind: {kind}", details={"allowed": list(SYNC_KINDS)}
            )
            exc.field = "kind"
            raise exc

        if kind == "availability":
            outcome = await self.sync_service.push_availability(channel)
        elif kind == "rates":
            outcome = await self.sync_service.push_rates(channel)
        elif kind == "reservations":
            outcome = await self.sync_service.pull_reservations(channel)
        else:
            outcome = await self.sync_service.full_sync(channel)
        return outcome.as_dict()

    # Rate mappings

    async def list_rate_mappings(self, channel: str) -> List[Dict[str, Any]]:
        async with self.db.session() as session:
            mappings = await RateMapRepository(session).list_by_channel(channel)
        return [m.to_dict() for m in mappings]

    async def save_rate_mapping(
        self,
        data: Union[RateMappingInput, Dict[str, Any]],
        mapping_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        if not isinstance(data, RateMappingInput):
            try:
                data = RateMappingInput(**data)
            except PydanticValidationError as e:
                raise _validation_error(e)

        async with self.db.session() as session:
            repo = RateMapRepository(session)
            if mapping_id:
                if await repo.find(mapping_id) is None:
                    raise NotFoundError("Rate mapping not found.", details={"id": mapping_id})
                mapping = await repo.update(mapping_id, **data.model_dump())
            else:
                mapping = await repo.create(**data.model_dump())

        logger.info(
            "rate_mapping_saved",
            channel=mapping.channel_name,
            mapping_id=mapping.id,
            local_room_type_id=mapping.local_room_type_id,
        )
        return mapping.to_dict()

    async def delete_rate_mapping(self, mapping_id: int) -> None:
        async with self.db.session() as session:
            deleted = await RateMapRepository(session).delete(mapping_id)
        if not deleted:
            raise NotFoundError("Rate mapping not found.", details={"id": mapping_id})

    # Sync log

    async def list_sync_log(
        self,
        channel: Optional[str] = None,
        direction: Optional[str] = None,
        status: Optional[str] = None,
        sync_type: Optional[str] = None,
        order_by: str = "created_at",
        order: str = "DESC",
        page: int = 1,
        per_page: int = 20,
    ) -> Dict[str, Any]:
        async with self.db.session() as session:
            result = await SyncLogRepository(session).paginate(
                channel_name=channel,
                direction=direction,
                status=status,
                sync_type=sync_type,
                order_by=order_by,
                order=order,
                page=page,
                per_page=per_page,
            )
        return {
            "items": [entry.to_dict() for entry in result.items],
            "total": result.total,
            "pages": result.pages,
            "page": result.page,
            "per_page": result.per_page,
        }

    async def purge_sync_log(self, days: Optional[int] = None) -> int:
        days = days or self.settings.sync_log_retention_days
        async with self.db.session() as session:
            removed = await SyncLogRepository(session).delete_older_than(days)
        logger.info("sync_log_purged", days=days, removed=removed)
        return removed
