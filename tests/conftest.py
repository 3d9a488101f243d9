"""Shared fixtures: two sqlite databases and an ACL-enforcing fake Redis."""

import pytest
import pytest_asyncio

from helpers import FakeRedisBroker, install_session_settings, sqlite_config
from isolation_service.database import DatabaseManager, RoutingDatabaseManager
from isolation_service.streams import StreamClient
from isolation_service.traffic import get_classification_context


@pytest.fixture(autouse=True)
def clean_classification():
    """No test may leak a classification into the next one."""
    get_classification_context().clear()
    yield
    get_classification_context().clear()


@pytest.fixture
def context():
    return get_classification_context()


@pytest.fixture
def broker():
    return FakeRedisBroker()


@pytest.fixture
def stream_client_factory(broker):
    def factory(name, credentials):
        return StreamClient(name, credentials, redis_client=broker.client(credentials.username))

    return factory


@pytest_asyncio.fixture
async def real_db(tmp_path):
    manager = DatabaseManager(sqlite_config(tmp_path, "real"))
    await manager.create_schema()
    yield manager
    await manager.close()


@pytest_asyncio.fixture
async def test_db(tmp_path):
    manager = DatabaseManager(sqlite_config(tmp_path, "test"))
    await manager.create_schema()
    yield manager
    await manager.close()


@pytest_asyncio.fixture
async def routing_db(real_db, test_db, context):
    manager = RoutingDatabaseManager(real_db, test_db, context)
    await manager.initialize()
    yield manager
    await manager.close()


@pytest_asyncio.fixture
async def marked_db(tmp_path):
    manager = DatabaseManager(sqlite_config(tmp_path, "shared"))
    await manager.initialize()
    install_session_settings(manager.engine)
    await manager.create_schema()
    yield manager
    await manager.close()
