"""Shared test fixtures."""

from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, create_engine
from sqlmodel.pool import StaticPool

from tokenkeeper.core.database import create_db_and_tables
from tokenkeeper.main import app
from tokenkeeper.models import AccessCredential, Principal
from tokenkeeper.oauth.client import IdentityProviderError, TokenGrant
from tokenkeeper.routes.dependencies import get_manager
from tokenkeeper.services.token_manager import TokenLifecycleManager
from tokenkeeper.store import CredentialStore

CALLBACK_URL = "https://platform.example.com/auth/callback"
VERIFY_URL = "https://sso.example.com/verify"


class FrozenClock:
    """Controllable stand-in for utcnow."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeIdentityProvider:
    """Records provider calls and answers from canned responses."""

    def __init__(self):
        self.exchanged: list[str] = []
        self.exchange_callbacks: list[str | None] = []
        self.refreshed: list[str] = []
        self.verified: list[tuple[str, str]] = []
        self.exchange_grant = TokenGrant("access-1", "refresh-1", 1200)
        self.refresh_grant = TokenGrant("access-2", "refresh-2", 1200)
        self.display_name = "Test Pilot"
        self.fail_exchange = False
        self.fail_refresh = False
        self.fail_verify = False

    def build_authorization_url(self, callback_url: str, scopes: str, state: str) -> str:
        return f"https://sso.example.com/authorize?scope={scopes}&state={state}"

    def exchange_code(self, code: str, callback_url: str | None = None) -> TokenGrant:
        self.exchanged.append(code)
        self.exchange_callbacks.append(callback_url)
        if self.fail_exchange:
            raise IdentityProviderError("invalid_grant")
        return self.exchange_grant

    def refresh(self, refresh_token: str) -> TokenGrant:
        self.refreshed.append(refresh_token)
        if self.fail_refresh:
            raise IdentityProviderError("invalid_token")
        return self.refresh_grant

    def verify_identity(self, access_token: str, verify_url: str) -> str:
        self.verified.append((access_token, verify_url))
        if self.fail_verify:
            raise IdentityProviderError("HTTP 401")
        return self.display_name


def state_from_url(url: str) -> str:
    return url.rsplit("state=", 1)[1]


@pytest.fixture(name="engine")
def engine_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_db_and_tables(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="store")
def store_fixture(engine) -> CredentialStore:
    return CredentialStore(engine)


@pytest.fixture(name="clock")
def clock_fixture() -> FrozenClock:
    return FrozenClock(datetime(2024, 5, 1, 12, 0, tzinfo=UTC))


@pytest.fixture(name="provider")
def provider_fixture() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture(name="manager")
def manager_fixture(store, provider, clock) -> TokenLifecycleManager:
    return TokenLifecycleManager(
        store,
        provider,
        callback_url=CALLBACK_URL,
        verify_url=VERIFY_URL,
        clock=clock,
    )


@pytest.fixture(name="principal")
def principal_fixture(store, clock) -> Principal:
    return store.create_principal(now=clock())


@pytest.fixture(name="other_principal")
def other_principal_fixture(store, clock) -> Principal:
    return store.create_principal(now=clock())


@pytest.fixture(name="credential")
def credential_fixture(store, principal, clock) -> AccessCredential:
    """A usable credential whose access token expires in one hour."""
    return store.record_grant(
        principal_id=principal.id,
        scopes="read",
        display_name="Test Pilot",
        access_token="stored-access",
        expires_at=clock() + timedelta(hours=1),
        refresh_token="stored-refresh",
    )


@pytest.fixture(name="client")
def client_fixture(manager: TokenLifecycleManager):
    """Create a test client wired to the test manager."""

    def get_manager_override():
        return manager

    app.dependency_overrides[get_manager] = get_manager_override
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
