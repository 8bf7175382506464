"""Shared test fixtures for all test modules."""

import contextlib
import uuid
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import grant_webhooks.models  # noqa: F401  registers tables on Base.metadata
from grant_webhooks.core import database as db_module
from grant_webhooks.core.database import Base, get_db
from grant_webhooks.repositories.webhook_config_repository import WebhookConfigRepository
from grant_webhooks.schemas.webhook import WebhookConfigCreate

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

# Well-known organization IDs used across tests
DEFAULT_ORG_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
OTHER_ORG_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")

WEBHOOK_URL = "https://example.com/webhooks"


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    yield
    with _test_engine.connect() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.commit()

    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def db_session():
    """Create a database session for testing."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


@pytest.fixture
def default_org_id():
    """Return the default organization ID for tests."""
    return DEFAULT_ORG_ID


def create_config(db, **overrides):
    """Register a webhook config with sensible defaults."""
    data = {
        "org_id": DEFAULT_ORG_ID,
        "name": "Grant alerts",
        "url": WEBHOOK_URL,
        "events": ["new_grant_match"],
    }
    data.update(overrides)
    return WebhookConfigRepository(db).create(WebhookConfigCreate(**data))


def mock_http_client(mock_client_cls, status_code=200, text="OK", side_effect=None):
    """Wire a patched ``httpx.Client`` class to return a canned response.

    Returns the mock client so tests can inspect ``post`` calls.
    """
    mock_client = MagicMock()
    if side_effect is not None:
        mock_client.post.side_effect = side_effect
    else:
        mock_response = MagicMock()
        mock_response.status_code = status_code
        mock_response.text = text
        mock_client.post.return_value = mock_response
    mock_client_cls.return_value.__enter__ = MagicMock(return_value=mock_client)
    mock_client_cls.return_value.__exit__ = MagicMock(return_value=False)
    return mock_client
