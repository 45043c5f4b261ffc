"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.helpers import get_dispatcher, get_registry
from database import Base, get_db
from main import app
from tasks.dispatcher import InlineDispatcher
# Pytest fixtures - imported to make them available to tests
from tests.fixtures import (  # noqa: F401
    account,
    connection,
    provider_account,
    security,
)
from tests.fixtures.mocks import SAMPLE_MERCURY_ACCOUNTS, MockProviderClient, make_registry


@pytest.fixture(name="db")
def db_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(name="dispatcher")
def dispatcher_fixture():
    """A dispatcher that records jobs without running them."""
    return InlineDispatcher(eager=False)


@pytest.fixture(name="mock_client")
def mock_client_fixture():
    return MockProviderClient(accounts=SAMPLE_MERCURY_ACCOUNTS)


@pytest.fixture(name="registry")
def registry_fixture(mock_client):
    return make_registry(mock_client)


@pytest.fixture(name="client")
def client_fixture(db, dispatcher, registry):
    """Create a test client with the test database and a recording dispatcher."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_registry] = lambda: registry
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
