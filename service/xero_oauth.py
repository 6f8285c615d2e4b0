"""Calls to Xero identity: consent URL, code exchange, refresh and tenant discovery."""

import time
import urllib.parse
from collections.abc import Callable
from typing import Any

import requests

from config import XeroSettings
from core.models import TenantRef, TokenRecord
from exceptions import (
    AuthExpiredError,
    AuthServerUnavailableError,
    CallbackExchangeError,
    ConsentBuildError,
    NotAuthenticatedError,
    TenantDiscoveryError,
)
from logger import logger

AUTH_URL = "https://login.xero.com/identity/connect/authorize"
TOKEN_URL = "https://identity.xero.com/connect/token"
CONNECTIONS_URL = "https://api.xero.com/connections"


class XeroOAuthClient:
    """
    Stateless Xero identity client.

    Token sets are passed in and returned explicitly; nothing about the current
    credentials is kept on the instance, so one client can serve concurrent requests.
    """

    def __init__(self, settings: XeroSettings, clock: Callable[[], float] = time.time) -> None:
        self.settings = settings
        self._clock = clock

    def _require_credentials(self) -> None:
        missing = [
            name
            for name, value in (
                ("XERO_CLIENT_ID", self.settings.client_id),
                ("XERO_CLIENT_SECRET", self.settings.client_secret),
                ("XERO_REDIRECT_URI", self.settings.redirect_uri),
            )
            if not value
        ]
        if missing:
            raise ConsentBuildError(f"Missing {', '.join(missing)}")

    def build_consent_url(self, state: str) -> str:
        """Build the Xero authorization URL for the Authorization Code flow.

        Args:
            state: CSRF state echoed back on the callback.

        Returns:
            Consent URL to redirect the browser to.

        Raises:
            ConsentBuildError: When client credentials or the redirect URI are missing.
        """
        self._require_credentials()
        params = {
            "response_type": "code",
            "client_id": self.settings.client_id,
            "redirect_uri": self.settings.redirect_uri,
            "scope": self.settings.scope_str(),
            "state": state,
        }
        return f"{AUTH_URL}?{urllib.parse.urlencode(params)}"

    def _with_expiry(self, tokens: dict[str, Any]) -> dict[str, Any]:
        """Add an absolute ``expires_at`` derived from ``expires_in`` when Xero omits it."""
        if tokens.get("expires_at") is None and tokens.get("expires_in") is not None:
            try:
                tokens["expires_at"] = int(self._clock() + float(tokens["expires_in"]))
            except (TypeError, ValueError):
                logger.warning("Token response has an unusable expires_in")
        return tokens

    def _post_token(self, data: dict[str, str]) -> requests.Response:
        headers = {"Content-Type": "application/x-www-form-urlencoded", "Accept": "application/json"}
        # Xero expects client_secret_basic (HTTP Basic) auth for token endpoint
        return requests.post(
            TOKEN_URL,
            data=data,
            headers=headers,
            auth=(self.settings.client_id, self.settings.client_secret),
            timeout=self.settings.http_timeout,
        )

    def exchange_code(self, callback_url: str, expected_state: str | None = None) -> dict[str, Any]:
        """Exchange the authorization code carried by the callback URL for a token set.

        Args:
            callback_url: Full URL Xero redirected the browser to.
            expected_state: State stored when the login began; skipped when None.

        Returns:
            Token set with ``expires_at`` filled in.

        Raises:
            CallbackExchangeError: On an OAuth error, missing code, state mismatch or failed exchange.
            ConsentBuildError: When the client is not configured.
        """
        self._require_credentials()
        query = urllib.parse.parse_qs(urllib.parse.urlsplit(callback_url).query)
        params = {key: values[0] for key, values in query.items() if values}

        if "error" in params:
            raise CallbackExchangeError(f"OAuth error: {params.get('error_description', params['error'])}", status_code=400)

        code = params.get("code")
        if not code:
            raise CallbackExchangeError("No authorization code returned from Xero", status_code=400)

        if expected_state is not None and params.get("state") != expected_state:
            raise CallbackExchangeError("Invalid OAuth state", status_code=400)

        data = {"grant_type": "authorization_code", "code": code, "redirect_uri": self.settings.redirect_uri or ""}
        try:
            response = self._post_token(data)
        except requests.RequestException as e:
            raise CallbackExchangeError(f"Error contacting Xero identity: {e}") from e

        if response.status_code != 200:
            logger.error("Error fetching token", error=response.text, error_code=response.status_code)
            raise CallbackExchangeError(f"Error fetching token: {response.text}", status_code=response.status_code)

        try:
            tokens = response.json()
        except ValueError as e:
            raise CallbackExchangeError("Xero identity returned an unreadable token response") from e

        if not isinstance(tokens, dict) or not tokens.get("access_token"):
            raise CallbackExchangeError("Xero identity returned no access token")

        return self._with_expiry(tokens)

    def refresh_token(self, record: dict[str, Any]) -> dict[str, Any]:
        """Mint a new token set from the record's refresh token.

        Args:
            record: Currently stored token record.

        Returns:
            New token set with ``expires_at`` filled in.

        Raises:
            NotAuthenticatedError: When the record has no refresh token.
            AuthExpiredError: When Xero rejects the refresh token.
            AuthServerUnavailableError: On network failure or a Xero server error.
        """
        refresh_token = (record or {}).get("refresh_token")
        if not refresh_token:
            raise NotAuthenticatedError("No refresh token available")
        self._require_credentials()

        try:
            response = self._post_token({"grant_type": "refresh_token", "refresh_token": refresh_token})
        except requests.RequestException as e:
            raise AuthServerUnavailableError(f"Error contacting Xero identity: {e}") from e

        if response.status_code >= 500:
            raise AuthServerUnavailableError(f"Xero identity error: {response.status_code}", status_code=response.status_code)
        if response.status_code != 200:
            logger.warning("Refresh token rejected", error_code=response.status_code)
            raise AuthExpiredError(f"Refresh token rejected: {response.text}", status_code=response.status_code)

        try:
            tokens = response.json()
        except ValueError as e:
            raise AuthServerUnavailableError("Xero identity returned an unreadable token response") from e

        if not isinstance(tokens, dict) or not tokens.get("access_token"):
            raise AuthExpiredError("Xero identity returned no access token")

        # Xero rotates refresh tokens; keep the old one only if none came back.
        tokens.setdefault("refresh_token", refresh_token)
        return self._with_expiry(tokens)

    def is_expired(self, record: dict[str, Any]) -> bool:
        """True when ``now + skew >= expires_at``. Records with no expiry information never expire."""
        try:
            expires_at = TokenRecord.model_validate(record).expires_at_epoch()
        except ValueError:
            return True
        if expires_at is None:
            return False
        return self._clock() + self.settings.expiry_skew_seconds >= expires_at

    def discover_tenants(self, record: dict[str, Any]) -> list[TenantRef]:
        """List the tenants the record's access token is connected to, in Xero's order.

        Raises:
            TenantDiscoveryError: When the connections endpoint fails.
        """
        access_token = (record or {}).get("access_token")
        if not access_token:
            raise TenantDiscoveryError("No access token available")

        try:
            response = requests.get(
                CONNECTIONS_URL,
                headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
                timeout=self.settings.http_timeout,
            )
        except requests.RequestException as e:
            raise TenantDiscoveryError(f"Error contacting Xero: {e}") from e

        if response.status_code != 200:
            raise TenantDiscoveryError(f"Xero connections request failed: {response.status_code}", status_code=response.status_code)

        try:
            connections = response.json()
        except ValueError as e:
            raise TenantDiscoveryError("Xero returned an unreadable connections response") from e

        if not isinstance(connections, list):
            raise TenantDiscoveryError("Xero returned an unexpected connections response")

        tenants = [TenantRef.from_connection(conn) for conn in connections if isinstance(conn, dict)]
        return [tenant for tenant in tenants if tenant is not None]
