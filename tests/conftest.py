"""
Pytest configuration and fixtures.
"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient
from unittest.mock import patch

from aclsync.core.config import Settings
from aclsync.core.database import Base, get_db
from aclsync.core.errors import GatewayClosedError
from aclsync.main import app
from aclsync.services.connector import Connector
from aclsync.services.gateway import AdminGateway
from aclsync.services.scheduler import Scheduler, get_scheduler
from aclsync.utils.acl.acl_models import AccessControlListParameters

# Import all models to ensure they register with Base.metadata
from aclsync.models import AccessControlListResource, ReconcileEvent  # noqa: F401

# Use file-based SQLite for testing (more reliable than in-memory across threads)
TEST_DATABASE_URL = "sqlite:///./test_aclsync.db"

test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    pool_pre_ping=False,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class FakeGateway(AdminGateway):
    """In-memory admin gateway that records every call."""

    def __init__(self):
        self.rules = set()
        self.calls = []
        self.fail_with = None
        self.closed = False
        self.close_count = 0

    def _call(self, name, descriptor):
        self.calls.append((name, descriptor))
        if self.closed:
            raise GatewayClosedError()
        if self.fail_with is not None:
            raise self.fail_with

    def list(self, descriptor):
        self._call("list", descriptor)
        return descriptor if descriptor in self.rules else None

    def create(self, descriptor):
        self._call("create", descriptor)
        self.rules.add(descriptor)

    def delete(self, descriptor):
        self._call("delete", descriptor)
        self.rules.discard(descriptor)

    def close(self):
        self.closed = True
        self.close_count += 1

    def call_names(self):
        return [name for name, _ in self.calls]


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """
    Create all tables before tests run and drop them after all tests complete.
    """
    Base.metadata.create_all(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function", autouse=True)
def clean_tables():
    """Start every test with empty tables."""
    yield
    db = TestingSessionLocal()
    try:
        db.query(ReconcileEvent).delete()
        db.query(AccessControlListResource).delete()
        db.commit()
    finally:
        db.close()


@pytest.fixture(scope="function", autouse=True)
def disable_api_key():
    """Disable API key authentication for all tests."""
    with patch("aclsync.core.config.settings.API_KEY", None):
        yield


@pytest.fixture
def test_settings():
    """Settings with short delays for scheduler tests."""
    return Settings(
        RECONCILE_ENABLED=False,
        RECONCILE_WORKERS=1,
        RECONCILE_POLL_INTERVAL_SECONDS=3600,
        RECONCILE_BACKOFF_BASE_SECONDS=1,
        RECONCILE_BACKOFF_MAX_SECONDS=8,
        RECONCILE_CREATE_REQUEUE_SECONDS=5,
        KAFKA_BOOTSTRAP_SERVERS="localhost:9092",
        KAFKA_CREDENTIALS_FILE=None,
        KAFKA_SASL_MECHANISM=None,
    )


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def connector(gateway, test_settings):
    """Real connector whose gateway factory hands out the fake gateway."""
    return Connector(test_settings, new_gateway_fn=lambda credentials, settings: gateway)


@pytest.fixture
def scheduler(connector, test_settings):
    sched = Scheduler(TestingSessionLocal, connector, test_settings)
    yield sched
    sched.queue.shutdown()


@pytest.fixture
def alice_read_orders():
    """The declared specification used by the end-to-end scenarios."""
    return AccessControlListParameters(
        principal="User:alice",
        host="*",
        operation="Read",
        permission_type="Allow",
        resource_type="Topic",
        resource_name="orders",
        pattern_type="Literal",
    )


@pytest.fixture(scope="function")
def client(scheduler):
    """
    Create a test client with database and scheduler overrides.

    The get_db dependency is overridden to use TestingSessionLocal,
    creating a new session for each request (as FastAPI expects).
    """
    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_scheduler] = lambda: scheduler

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client_with_auth(scheduler):
    """
    Create a test client with API key authentication enabled.

    Sets API_KEY="test-key" for testing authentication.
    """
    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_scheduler] = lambda: scheduler

    with patch("aclsync.core.config.settings.API_KEY", "test-key"):
        yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def db_session():
    """
    Provide a database session for tests that need direct DB access.
    """
    db = TestingSessionLocal()
    try:
        yield db
        db.rollback()
    finally:
        db.close()
