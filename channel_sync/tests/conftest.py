"""
Pytest configuration for channel sync tests
"""

import pytest
import pytest_asyncio
from cryptography.fernet import Fernet

from channel_sync.admin import ChannelAdminService
from channel_sync.config import ChannelSyncSettings, EnvironmentType
from channel_sync.credentials import CredentialCipher
from channel_sync.database.connection import Database
from channel_sync.events import EventBus
from channel_sync.factory import ClientFactory, ClientRegistry
from channel_sync.importer import ReservationImporter
from channel_sync.orchestrator import ChannelSyncService

# Import shared httpx fixtures
from .fixtures import *  # noqa: F401, F403
from .fixtures import make_recording_client

MEMORY_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# Markers for different test types
def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line("markers", "e2e: mark test as an end-to-end sync scenario")
    config.addinivalue_line("markers", "slow: mark test as slow running")


@pytest.fixture
def credentials_key() -> str:
    return Fernet.generate_key().decode()


@pytest.fixture
def settings(credentials_key) -> ChannelSyncSettings:
    return ChannelSyncSettings(
        _env_file=None,
        environment=EnvironmentType.DEVELOPMENT,
        database_url=MEMORY_DATABASE_URL,
        credentials_key=credentials_key,
        request_timeout=5.0,
        default_currency="USD",
    )


@pytest.fixture
def cipher(settings) -> CredentialCipher:
    return CredentialCipher(settings.resolved_credentials_key())


@pytest_asyncio.fixture
async def db():
    """Fresh in-memory database per test"""
    database = Database(MEMORY_DATABASE_URL)
    await database.create_all()
    yield database
    await database.dispose()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def client_factory(cipher, settings) -> ClientFactory:
    return ClientFactory(cipher, settings)


@pytest.fixture
def importer(db, event_bus) -> ReservationImporter:
    return ReservationImporter(db, event_bus)


@pytest.fixture
def sync_service(db, client_factory, importer, event_bus, settings) -> ChannelSyncService:
    return ChannelSyncService(
        db, client_factory, importer=importer, event_bus=event_bus, settings=settings
    )


@pytest.fixture
def admin_service(db, cipher, sync_service, client_factory, settings) -> ChannelAdminService:
    return ChannelAdminService(db, cipher, sync_service, client_factory, settings)


@pytest.fixture
def recording_client():
    """Client class that records calls; replace it with make_recording_client(...) for custom results"""
    return make_recording_client()


@pytest.fixture
def recording_service(db, cipher, settings, importer, event_bus, recording_client) -> ChannelSyncService:
    registry = ClientRegistry()
    registry.register("booking_com", recording_client)
    factory = ClientFactory(cipher, settings, registry=registry)
    return ChannelSyncService(
        db, factory, importer=importer, event_bus=event_bus, settings=settings
    )
