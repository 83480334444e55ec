"""
Channel client factory
Maps channel names to client classes and builds configured clients from stored connections
"""

from typing import Dict, List, Optional, Type

from channel_sync.adapters.booking_com import BookingComClient, resolve_base_url
from channel_sync.config import ChannelSyncSettings, get_settings
from channel_sync.contracts import BaseChannelClient, ClientConfig, ClientNotRegisteredError
from channel_sync.credentials import CredentialCipher
from channel_sync.database.models import ChannelConnection
from channel_sync.utils.logging import get_safe_logger

logger = get_safe_logger("channel_sync.factory")


class ClientRegistry:
    """Registry of available channel clients"""

    def __init__(self):
        self._clients: Dict[str, Type[BaseChannelClient]] = {}

    def register(self, channel_name: str, client_class: Type[BaseChannelClient]) -> None:
        if not issubclass(client_class, BaseChannelClient):
            raise TypeError(f"{client_class.__name__} must extend BaseChannelClient")
        self._clients[channel_name] = client_class
        logger.debug("channel_client_registered", channel=channel_name, client=client_class.__name__)

    def get(self, channel_name: str) -> Type[BaseChannelClient]:
        if channel_name not in self._clients:
            raise ClientNotRegisteredError(
                f"No client registered for channel: {channel_name}",
                details={"available": self.list_channels()},
            )
        return self._clients[channel_name]

    def is_registered(self, channel_name: str) -> bool:
        return channel_name in self._clients

    def list_channels(self) -> List[str]:
        return sorted(self._clients)


# Global registry instance
_registry = ClientRegistry()
_registry.register(BookingComClient.channel_name, BookingComClient)


def get_registry() -> ClientRegistry:
    return _registry


def register_client(channel_name: str, client_class: Type[BaseChannelClient]) -> None:
    """Register a client class on the global registry"""
    _registry.register(channel_name, client_class)


class ClientFactory:
    """Builds a configured client for a stored channel connection"""

    def __init__(
        self,
        cipher: CredentialCipher,
        settings: Optional[ChannelSyncSettings] = None,
        registry: Optional[ClientRegistry] = None,
    ):
        self.cipher = cipher
        self.settings = settings or get_settings()
        self.registry = registry or _registry

    def build_config(self, connection: ChannelConnection) -> ClientConfig:
        credentials = self.cipher.load(connection.credentials)
        return ClientConfig(
            hotel_id=connection.hotel_id or credentials.hotel_id or "",
            username=credentials.username or "",
            password=credentials.password or "",
            base_url=resolve_base_url(credentials.api_endpoint, credentials.use_sandbox),
            timeout=self.settings.request_timeout,
        )

    def create(self, connection: ChannelConnection) -> BaseChannelClient:
        client_class = self.registry.get(connection.channel_name)
        config = self.build_config(connection)
        logger.debug(
            "channel_client_created",
            channel=connection.channel_name,
            client=client_class.__name__,
            hotel_id=config.hotel_id,
        )
        return client_class(config)
