"""Test fixtures — a throwaway profile store per test, real identity provider.

Learn: Testing pattern for the Profile Service + SessionController:

1. Each test gets its own SQLite file (via aiosqlite) and the process-wide
   engine is initialized against it with create_schema=True. ASGITransport
   does not run the app lifespan, so the fixture plays that role.
2. Auth is NOT overridden. A LocalIdentityProvider (cheap bcrypt rounds)
   backs the app, and tests mint real bearer tokens from it.
3. The client half talks to the app in-process: ProfileClient gets an
   httpx.AsyncClient wired to the ASGI app, so controller tests exercise
   the full HTTP protocol without a server.

Set ACCOUNTFLOW_TEST_DATABASE_URL to run the same suite against PostgreSQL.
"""

import os
import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from accountflow.client.session import SessionController
from accountflow.client.transfer import ProfileClient
from accountflow.db.engine import close_engine, init_engine
from accountflow.db.models import Base
from accountflow.gateway.local import LocalCredentialGateway, LocalIdentityProvider
from accountflow.main import create_app

TEST_DB_URL = os.environ.get("ACCOUNTFLOW_TEST_DATABASE_URL")


@pytest_asyncio.fixture()
async def store(tmp_path):
    """Initialize the profile store against an empty database."""
    url = TEST_DB_URL or f"sqlite+aiosqlite:///{tmp_path / 'profiles.db'}"
    engine = await init_engine(url, create_schema=True)
    try:
        yield engine
    finally:
        if TEST_DB_URL:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.drop_all)
        await close_engine()


@pytest.fixture()
def provider():
    return LocalIdentityProvider(password_rounds=4)


@pytest.fixture()
def app(provider):
    return create_app(identity_admin=provider)


@pytest_asyncio.fixture()
async def client(app, store):
    """HTTP client against the app, store ready."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture()
async def unstarted_client(app):
    """HTTP client against an app whose store was never initialized."""
    await close_engine()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture()
def account(provider):
    """A fresh email/password account (unverified)."""
    return provider.create_account(f"user-{uuid.uuid4().hex[:8]}@example.com", "secret123")


@pytest.fixture()
def auth_headers(provider, account):
    return {"Authorization": f"Bearer {provider.issue_id_token(account.subject_id)}"}


@pytest_asyncio.fixture()
async def api_http(app, store):
    """httpx client rooted at /api/v1, the way ProfileClient expects."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test/api/v1") as ac:
        yield ac


@pytest.fixture()
def make_controller(provider, api_http):
    """Build a SessionController wired to the in-process service.

    Learn: The bearer token provider is the gateway's mint_bearer_token,
    exactly as on a device — every request carries a freshly minted token
    for whoever is signed in right now.
    """

    def _make(gateway=None, federated=None, required_fields=None):
        gateway = gateway or LocalCredentialGateway(provider)
        profiles = ProfileClient(gateway.mint_bearer_token, http=api_http)
        return SessionController(
            gateway,
            profiles,
            federated=federated,
            required_fields=required_fields,
        )

    return _make
