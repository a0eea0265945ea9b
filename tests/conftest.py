"""
Global pytest fixtures for the Nimbus Console test suite.

Provides:
- Test environment (in-memory SQLite, no provider credentials)
- The real app with its lifespan running
- Async HTTP client over ASGI
- Bearer token helpers per role
"""
import os
from typing import AsyncGenerator, Callable, Optional

import pytest
import pytest_asyncio

# Set test environment BEFORE any app imports
os.environ["TESTING"] = "true"
os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-jwt-secret-for-testing-at-least-32-bytes"
os.environ["SECURITY_SCAN_DELAY_SECONDS"] = "0"
os.environ["DEMO_LOGIN_ENABLED"] = "true"

# Every provider runs in demo mode unless a test configures one explicitly.
_PROVIDER_ENV_VARS = (
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "AWS_SESSION_TOKEN",
    "GCP_PROJECT_ID",
    "GCP_KEY_FILE",
    "AZURE_TENANT_ID",
    "AZURE_CLIENT_ID",
    "AZURE_CLIENT_SECRET",
    "AZURE_SUBSCRIPTION_ID",
    "IBM_CLOUD_API_KEY",
)
for _name in _PROVIDER_ENV_VARS:
    os.environ.pop(_name, None)


@pytest.fixture(autouse=True)
def fresh_runtime():
    """Fresh settings and a fresh in-memory database for every test."""
    from app.shared.core.config import get_settings
    from app.shared.db.session import reset_db_runtime

    get_settings.cache_clear()
    reset_db_runtime()
    yield
    reset_db_runtime()
    get_settings.cache_clear()


# ============================================================================
# FastAPI Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def app():
    """The real Nimbus app with startup/shutdown run around each test."""
    from app.main import app as nimbus_app

    async with nimbus_app.router.lifespan_context(nimbus_app):
        yield nimbus_app


@pytest_asyncio.fixture
async def async_client(app) -> AsyncGenerator:
    """Async test client for FastAPI."""
    from httpx import ASGITransport, AsyncClient

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def ac(async_client):
    """Alias for async_client."""
    return async_client


@pytest_asyncio.fixture
async def db_session(app) -> AsyncGenerator:
    """Session on the same engine the app is using."""
    from app.shared.db.session import async_session_maker

    async with async_session_maker() as session:
        yield session


# ============================================================================
# Authentication Fixtures
# ============================================================================

@pytest.fixture
def make_token() -> Callable[..., str]:
    """Build a signed bearer token for an arbitrary principal."""
    from app.shared.core.auth import create_access_token

    def _make(role: Optional[str] = "user", sub: Optional[str] = None, **claims) -> str:
        payload = {"sub": sub or f"test-{role or 'anon'}", **claims}
        if role is not None:
            payload["role"] = role
        return create_access_token(payload)

    return _make


@pytest.fixture
def auth_headers(make_token) -> Callable[..., dict[str, str]]:
    def _headers(role: Optional[str] = "user", sub: Optional[str] = None) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(role, sub)}"}

    return _headers


@pytest.fixture
def guest_headers(auth_headers) -> dict[str, str]:
    return auth_headers("guest")


@pytest.fixture
def user_headers(auth_headers) -> dict[str, str]:
    return auth_headers("user")


@pytest.fixture
def admin_headers(auth_headers) -> dict[str, str]:
    return auth_headers("admin")


@pytest.fixture
def superadmin_headers(auth_headers) -> dict[str, str]:
    return auth_headers("superadmin")
