"""Xero token lifecycle: connection status, login, callback, refresh and disconnect."""

import threading
from typing import Any

import cache_provider
from core.models import ConnectionStatus, StatusReason, TenantRef
from exceptions import (
    AuthExpiredError,
    AuthServerUnavailableError,
    NotAuthenticatedError,
    PersistenceError,
    TenantDiscoveryError,
)
from logger import logger
from utils.storage import TokenStore
from xero_oauth import XeroOAuthClient


class TokenLifecycleManager:
    """
    Owns the stored Xero token record and answers whether the dashboard is connected.

    ``get_status`` is the fail-closed boundary used on every page render and never
    raises. The flow operations (``begin_login``, ``handle_callback``, ``refresh``)
    raise so routes can show an error or send the user back to login.

    Refreshes are single-flight: concurrent requests holding the same expired token
    wait on one lock, and whoever arrives after the first refresh reuses its result.
    """

    def __init__(self, store: TokenStore, oauth_client: XeroOAuthClient) -> None:
        self.store = store
        self.oauth = oauth_client
        self._refresh_lock = threading.Lock()

    def get_status(self) -> ConnectionStatus:
        """Resolve the connection status for the current request.

        Tenant lists are cached per access token, so ``connected`` can stay True for up to
        ``TENANT_CACHE_SECONDS`` after the connection is revoked at Xero.

        Returns:
            ConnectionStatus; ``connected`` is False on any doubt about the credentials.
        """
        record = self.store.load()
        if not record or not record.get("access_token"):
            return ConnectionStatus.disconnected(StatusReason.NOT_AUTHENTICATED, tokens=record)

        try:
            if self.oauth.is_expired(record):
                logger.info("Token expired, refreshing")
                record = self._refresh_if_still_expired(record)
        except (AuthExpiredError, NotAuthenticatedError) as e:
            logger.warning("Token refresh rejected", error=str(e))
            return ConnectionStatus.disconnected(StatusReason.REFRESH_REJECTED, tokens=record)
        except AuthServerUnavailableError as e:
            logger.warning("Xero identity unavailable during refresh", error=str(e))
            return ConnectionStatus.disconnected(StatusReason.AUTH_SERVER_UNAVAILABLE, tokens=record)
        except Exception as e:
            logger.exception("Token validation error", error=str(e))
            return ConnectionStatus.disconnected(StatusReason.REFRESH_REJECTED, tokens=record)

        try:
            tenants = self._tenants_for(record)
        except TenantDiscoveryError as e:
            logger.warning("Tenant discovery failed", error=str(e), error_code=e.status_code)
            return ConnectionStatus.disconnected(StatusReason.TENANT_DISCOVERY_FAILED, tokens=record)
        except Exception as e:
            logger.exception("Unexpected tenant discovery error", error=str(e))
            return ConnectionStatus.disconnected(StatusReason.TENANT_DISCOVERY_FAILED, tokens=record)

        if not tenants:
            logger.info("No Xero tenants connected to this token")
            return ConnectionStatus.disconnected(StatusReason.NO_TENANTS, tokens=record)

        # Multi-tenant selection is not supported; the first connection wins.
        tenant = tenants[0]
        return ConnectionStatus(connected=True, tenant_id=tenant.tenant_id, tenant_name=tenant.tenant_name, tokens=record, reason=StatusReason.CONNECTED)

    def begin_login(self, state: str) -> str:
        """Return the Xero consent URL for a new login.

        Raises:
            ConsentBuildError: When the OAuth client is misconfigured.
        """
        url = self.oauth.build_consent_url(state)
        logger.info("Redirecting to Xero authorization", scope_count=len(self.oauth.settings.scopes))
        return url

    def handle_callback(self, callback_url: str, expected_state: str | None = None) -> dict[str, Any]:
        """Exchange the callback's code, persist the tokens and warm tenant discovery.

        Args:
            callback_url: Full callback URL including the query string.
            expected_state: CSRF state stored when the login began.

        Returns:
            The stored token record.

        Raises:
            CallbackExchangeError: When the exchange fails; nothing is persisted.
            PersistenceError: When the new tokens cannot be saved.
            TenantDiscoveryError: When the connections call fails after a successful exchange.
        """
        tokens = self.oauth.exchange_code(callback_url, expected_state=expected_state)
        stored = self.store.save(tokens)
        if stored is None:
            raise PersistenceError("Unable to save Xero tokens")

        tenants = self._tenants_for(stored)
        logger.info("OAuth callback processed", tenants=len(tenants))
        return stored

    def refresh(self) -> dict[str, Any]:
        """Refresh on demand regardless of expiry.

        Raises:
            NotAuthenticatedError: When no refresh token is stored.
            AuthExpiredError: When Xero rejects the refresh token.
            AuthServerUnavailableError: When Xero identity cannot be reached.
        """
        with self._refresh_lock:
            record = self.store.load()
            if not record or not record.get("refresh_token"):
                raise NotAuthenticatedError("No refresh token saved")
            return self._refresh_and_save(record)

    def disconnect(self) -> None:
        """Forget the stored tokens locally. The grant is not revoked at Xero."""
        with self._refresh_lock:
            record = self.store.load()
            self.store.clear()
        if record:
            cache_provider.clear_cached_tenants(record.get("access_token"))
        logger.info("Disconnected from Xero")

    def save_rotated_tokens(self, previous: dict[str, Any], new_tokens: dict[str, Any]) -> dict[str, Any] | None:
        """Persist a token set the Xero SDK rotated mid-request.

        Skipped when the record was cleared in the meantime, so a disconnect is never undone.
        """
        with self._refresh_lock:
            if not self.store.load():
                logger.info("Ignoring rotated tokens for a disconnected session")
                return None
            stored = self.store.save(new_tokens)
        if stored is not None:
            cache_provider.clear_cached_tenants(previous.get("access_token"))
        return stored

    def get_raw_token_record(self) -> dict[str, Any] | None:
        return self.store.load()

    def _refresh_if_still_expired(self, record: dict[str, Any]) -> dict[str, Any]:
        with self._refresh_lock:
            current = self.store.load()
            # Disconnected while this request waited on the lock.
            if not current or not current.get("access_token"):
                raise NotAuthenticatedError("Tokens were cleared before the refresh ran")
            if not self.oauth.is_expired(current):
                logger.info("Token already refreshed by a concurrent request")
                return current
            return self._refresh_and_save(current)

    def _refresh_and_save(self, record: dict[str, Any]) -> dict[str, Any]:
        new_tokens = self.oauth.refresh_token(record)
        stored = self.store.save(new_tokens)
        if stored is None:
            # Keep serving this request; the next one will try to refresh again.
            logger.error("Refreshed tokens could not be persisted")
            return dict(new_tokens)
        cache_provider.clear_cached_tenants(record.get("access_token"))
        return stored

    def _tenants_for(self, record: dict[str, Any]) -> list[TenantRef]:
        access_token = record.get("access_token")
        cached = cache_provider.get_cached_tenants(access_token)
        if cached is not None:
            return [TenantRef(**tenant) for tenant in cached]

        tenants = self.oauth.discover_tenants(record)
        if tenants:
            cache_provider.set_cached_tenants(access_token, [tenant.to_dict() for tenant in tenants])
        return tenants
