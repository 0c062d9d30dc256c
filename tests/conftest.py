"""Pytest configuration and fixtures."""

import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from src import models  # noqa: F401
from src.api.dependencies import get_notifier
from src.config import Settings
from src.database import Base, get_db
from src.main import app

TEST_PASSWORD = "testpass123"


class AuthHeaders(dict):
    """Dict subclass that also stores the user and token behind the headers."""

    def __init__(
        self, *args, user_id: int | None = None, email: str = "", token: str = "", **kwargs
    ):
        super().__init__(*args, **kwargs)
        self.user_id = user_id
        self.email = email
        self.token = token


class RecordingNotifier:
    """Email notifier that keeps sent codes instead of delivering them."""

    def __init__(self):
        self.sent: list[tuple[str, str, str | None]] = []
        self.fail = False

    def send(self, email: str, code: str, display_name: str | None = None) -> None:
        if self.fail:
            raise ConnectionError("SMTP server unavailable")
        self.sent.append((email, code, display_name))

    def last_code(self, email: str) -> str:
        """Most recent code sent to an email."""
        return next(code for to, code, _ in reversed(self.sent) if to == email)


# Use test database - PostgreSQL in Docker, SQLite locally
if os.getenv("DATABASE_URL"):
    # Running in Docker - use PostgreSQL test database
    SQLALCHEMY_DATABASE_URL = os.getenv("DATABASE_URL").replace("/bus_booking", "/bus_booking_test")
else:
    # Running locally - use SQLite
    SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"

connect_args = {"check_same_thread": False} if "sqlite" in SQLALCHEMY_DATABASE_URL else {}
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args=connect_args)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create test database schema once at the start of the test session."""
    if "postgresql" in SQLALCHEMY_DATABASE_URL:
        # For PostgreSQL, create the test database
        from sqlalchemy_utils import create_database, database_exists

        # Create test database if it doesn't exist
        if not database_exists(SQLALCHEMY_DATABASE_URL):
            create_database(SQLALCHEMY_DATABASE_URL)

    Base.metadata.create_all(bind=engine)
    yield
    # Don't drop database - just leave it for next run (each test cleans up after itself)


@pytest.fixture(scope="function", autouse=True)
def db():
    """Create a fresh database session for each test with cleanup."""
    session = TestingSessionLocal()

    yield session

    # Clean up all data after test
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.close()


@pytest.fixture
def settings():
    """Settings with the defaults used in production code paths."""
    return Settings(jwt_secret="test-secret", email_provider="console")


@pytest.fixture
def notifier():
    """Recording notifier shared by the API client and service tests."""
    return RecordingNotifier()


@pytest.fixture(scope="function")
def client(db, notifier):
    """Create a test client with database and email overrides."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(client):
    """Register a user and return bearer headers with user info."""
    response = client.post(
        "/auth/register",
        json={"email": "test@example.com", "password": TEST_PASSWORD, "name": "Test User"},
    )
    assert response.status_code == 201
    data = response.json()
    token = data["token"]

    return AuthHeaders(
        {"Authorization": f"Bearer {token}"},
        user_id=data["user"]["id"],
        email=data["user"]["email"],
        token=token,
    )
