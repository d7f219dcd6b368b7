"""Pytest configuration and fixtures."""

import os
from collections.abc import Generator
from uuid import uuid4

# Set test environment before importing app
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["DEBUG"] = "false"
os.environ["ENVIRONMENT"] = "development"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["CRON_SECRET_KEY"] = ""

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from gotta_listen.auth.utils import get_password_hash
from gotta_listen.db.models import Base, User

# Use in-memory SQLite for testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

SESSION_COOKIE = "gl_session"
LOGGED_IN_COOKIE = "gl_logged_in"

USER_PASSWORD = "testpassword123"
ADMIN_PASSWORD = "adminpassword123"


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    # Import here to ensure env vars are set
    from gotta_listen.dependencies import get_db
    from gotta_listen.main import app

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_client(client: TestClient) -> Generator:
    """Factory for extra clients (other browsers/devices) sharing the test database."""
    from gotta_listen.main import app

    extra_clients = []

    def _make() -> TestClient:
        extra = TestClient(app, raise_server_exceptions=False)
        extra_clients.append(extra)
        return extra

    yield _make
    for extra in extra_clients:
        extra.close()


def create_user(
    db: Session,
    email: str,
    username: str,
    password: str,
    display_name: str | None = None,
    is_admin: bool = False,
) -> User:
    """Insert a user directly into the database."""
    user = User(
        id=str(uuid4()),
        email=email,
        username=username,
        display_name=display_name or username.capitalize(),
        password_hash=get_password_hash(password),
        is_admin=is_admin,
        is_banned=False,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def login(
    client: TestClient, email: str, password: str, remember_me: bool = False
) -> httpx.Response:
    """Log in through the API; the client keeps the session cookies."""
    return client.post(
        "/api/auth/login",
        json={"email": email, "password": password, "remember_me": remember_me},
    )


@pytest.fixture
def test_user(db: Session) -> User:
    """Create a test user."""
    return create_user(db, "test@example.com", "testuser", USER_PASSWORD, "Test User")


@pytest.fixture
def test_admin(db: Session) -> User:
    """Create a test admin user."""
    return create_user(
        db, "admin@example.com", "admin", ADMIN_PASSWORD, "Admin User", is_admin=True
    )


@pytest.fixture
def authenticated_client(client: TestClient, test_user: User) -> TestClient:
    """Create a test client holding a real session for test_user."""
    response = login(client, test_user.email, USER_PASSWORD)
    assert response.status_code == 200
    return client


@pytest.fixture
def admin_client(make_client, test_admin: User) -> TestClient:
    """Create a separate test client holding a real session for test_admin."""
    admin = make_client()
    response = login(admin, test_admin.email, ADMIN_PASSWORD)
    assert response.status_code == 200
    return admin
