"""
Shared pytest setup for unit tests.

Environment variables are set before any service module is imported so
``config`` never reaches for AWS SSM and the OAuth settings are complete.
Xero identity is replaced by ``FakeOAuthClient``; nothing here touches the network.
"""

import os
import tempfile
import threading
import urllib.parse
from typing import Any

os.environ.setdefault("XERO_CLIENT_ID", "test-client-id")
os.environ.setdefault("XERO_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("XERO_REDIRECT_URI", "http://localhost:5000/callback")
os.environ.setdefault("FLASK_SECRET_KEY", "unit-test-secret")
os.environ.setdefault("TOKEN_STORE_BACKEND", "file")
os.environ.setdefault("TOKEN_FILE", os.path.join(tempfile.gettempdir(), "xero-dashboard-tests", "xero_tokens.json"))

import pytest  # noqa: E402
from cachelib.simple import SimpleCache  # noqa: E402

import cache_provider  # noqa: E402
from config import XeroSettings  # noqa: E402
from core.models import TenantRef  # noqa: E402
from exceptions import CallbackExchangeError, NotAuthenticatedError  # noqa: E402
from token_manager import TokenLifecycleManager  # noqa: E402
from utils.storage import FileTokenStore  # noqa: E402

TEST_SETTINGS = XeroSettings(client_id="test-client-id", client_secret="test-client-secret", redirect_uri="http://localhost:5000/callback")


class FakeOAuthClient:
    """
    Test double for XeroOAuthClient.

    Tokens whose access token is listed in ``expired_tokens`` report as expired.
    Refresh hands out ``refreshed`` (or raises ``refresh_error``); tenant discovery
    returns ``tenants`` (or raises ``discover_error``). Every call is recorded.
    """

    def __init__(self, tenants: list[TenantRef] | None = None) -> None:
        self.settings = TEST_SETTINGS
        self.tenants = tenants if tenants is not None else [TenantRef(tenant_id="tenant-1", tenant_name="Demo Company (NZ)")]
        self.expired_tokens: set[str] = set()
        self.refreshed: dict[str, Any] = {"access_token": "access-2", "refresh_token": "refresh-2", "expires_at": 4102444800, "token_type": "Bearer"}
        self.exchanged: dict[str, Any] = {"access_token": "access-1", "refresh_token": "refresh-1", "expires_at": 4102444800, "token_type": "Bearer"}
        self.refresh_error: Exception | None = None
        self.discover_error: Exception | None = None
        self.consent_error: Exception | None = None
        self.exchange_error: Exception | None = None
        self.refresh_calls: list[dict[str, Any]] = []
        self.discover_calls: list[dict[str, Any]] = []
        self.exchange_calls: list[tuple[str, str | None]] = []
        self._lock = threading.Lock()

    def build_consent_url(self, state: str) -> str:
        if self.consent_error is not None:
            raise self.consent_error
        return f"https://login.xero.test/authorize?{urllib.parse.urlencode({'state': state})}"

    def exchange_code(self, callback_url: str, expected_state: str | None = None) -> dict[str, Any]:
        self.exchange_calls.append((callback_url, expected_state))
        if self.exchange_error is not None:
            raise self.exchange_error
        params = dict(urllib.parse.parse_qsl(urllib.parse.urlsplit(callback_url).query))
        if expected_state is not None and params.get("state") != expected_state:
            raise CallbackExchangeError("Invalid OAuth state", status_code=400)
        return dict(self.exchanged)

    def refresh_token(self, record: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            self.refresh_calls.append(record)
        if not record.get("refresh_token"):
            raise NotAuthenticatedError("No refresh token available")
        if self.refresh_error is not None:
            raise self.refresh_error
        return dict(self.refreshed)

    def is_expired(self, record: dict[str, Any]) -> bool:
        return record.get("access_token") in self.expired_tokens

    def discover_tenants(self, record: dict[str, Any]) -> list[TenantRef]:
        with self._lock:
            self.discover_calls.append(record)
        if self.discover_error is not None:
            raise self.discover_error
        return list(self.tenants)


@pytest.fixture(autouse=True)
def _reset_tenant_cache(monkeypatch: pytest.MonkeyPatch) -> None:
    """Start every test without a registered cache so tenant lookups are never shared."""
    monkeypatch.setitem(cache_provider._CACHE_STATE, "cache", None)


@pytest.fixture
def token_path(tmp_path) -> str:
    return str(tmp_path / "xero_tokens.json")


@pytest.fixture
def store(token_path: str) -> FileTokenStore:
    return FileTokenStore(token_path)


@pytest.fixture
def oauth() -> FakeOAuthClient:
    return FakeOAuthClient()


@pytest.fixture
def manager(store: FileTokenStore, oauth: FakeOAuthClient) -> TokenLifecycleManager:
    return TokenLifecycleManager(store, oauth)  # type: ignore[arg-type]


@pytest.fixture
def app(manager: TokenLifecycleManager):
    from app import create_app

    flask_app = create_app(token_manager=manager, config_overrides={"TESTING": True, "SESSION_CACHELIB": SimpleCache()})
    # create_app registers its own cache; clear it again so tests control tenant caching.
    cache_provider.set_cache(None)
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()
