"""Auth helpers shared by the dashboard routes."""

from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import Response, current_app, g, redirect, request, url_for
from werkzeug.exceptions import HTTPException
from xero_python.accounting import AccountingApi
from xero_python.api_client import ApiClient  # type: ignore
from xero_python.api_client.configuration import Configuration  # type: ignore
from xero_python.api_client.oauth2 import OAuth2Token  # type: ignore

from core.models import ConnectionStatus
from logger import logger
from token_manager import TokenLifecycleManager

TOKEN_MANAGER_EXTENSION = "xero_token_manager"
_XERO_TOKEN_FIELDS = {"access_token", "refresh_token", "expires_in", "expires_at", "token_type", "scope", "id_token"}


def _sanitize_xero_token(token: dict | None) -> dict | None:
    """Filter a token payload to fields accepted by the Xero SDK.

    Args:
        token: Stored token record.

    Returns:
        Sanitized token dict, or None when the input is not a dict.
    """
    if not isinstance(token, dict):
        return None
    # The stored record carries saved_at; the Xero SDK rejects unknown keys.
    return {key: value for key, value in token.items() if key in _XERO_TOKEN_FIELDS}


def get_token_manager() -> TokenLifecycleManager:
    """Return the token lifecycle manager registered on the current app."""
    return current_app.extensions[TOKEN_MANAGER_EXTENSION]


def get_xero_api_client(oauth_token: dict, token_saver: Callable[[dict], Any] | None = None) -> AccountingApi:
    """Build a request-scoped AccountingApi client for one token.
    Each call gets its own ApiClient, so concurrent requests never share token state.

    Args:
        oauth_token: Token record to authenticate with.
        token_saver: Optional callback used if the SDK hands back a new token set.

    Returns:
        Configured AccountingApi client.
    """
    manager = get_token_manager()
    settings = manager.oauth.settings
    token_state = {"token": _sanitize_xero_token(oauth_token)}

    def token_getter() -> dict | None:
        return token_state["token"]

    def save_token(new_token: dict) -> None:
        token_state["token"] = _sanitize_xero_token(new_token)
        if token_saver is not None:
            token_saver(new_token)

    api_client = ApiClient(
        Configuration(oauth2_token=OAuth2Token(client_id=settings.client_id, client_secret=settings.client_secret)),
        pool_threads=1,
        oauth2_token_getter=token_getter,
        oauth2_token_saver=save_token,
    )

    if token_state["token"]:
        api_client.set_oauth2_token(token_state["token"])

    return AccountingApi(api_client)


class RedirectToLogin(HTTPException):
    """
    Represent a redirect-to-login HTTP exception for auth failures.

    This exception belongs to the auth routing layer and is raised to short-circuit
    handlers with a 302 redirect.

    Attributes:
        code: HTTP status code for the redirect.
    """

    code = 302

    def __init__(self) -> None:
        super().__init__(description="Redirecting to login")

    def get_response(self, _environ: dict[str, Any] | None = None, _scope: dict[str, Any] | None = None) -> Response:
        """Return a redirect response to the login route."""
        return redirect(url_for("dashboard.login"))


def raise_for_unauthorized(error: Exception) -> None:
    """Redirect to login when the Xero API reports unauthorized access.

    Args:
        error: Exception from the Xero SDK or wrapped HTTP layers.

    Returns:
        None.

    Raises:
        RedirectToLogin: When the error carries a 401 or 403 status code.
    """
    # Errors bubble up from different SDK layers, so check common status fields.
    potential_statuses = []
    for attr in ("status", "status_code", "code"):
        potential_statuses.append(getattr(error, attr, None))

    response = getattr(error, "response", None)
    if response is not None:
        for attr in ("status", "status_code", "code"):
            potential_statuses.append(getattr(response, attr, None))

    for status in potential_statuses:
        try:
            status_code = int(status)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            continue

        if status_code in {401, 403}:
            logger.info("Xero API returned unauthorized/forbidden; redirecting to login", status_code=status_code)
            raise RedirectToLogin()


def current_status() -> ConnectionStatus:
    """Status resolved for this request, computing it on first use."""
    status = g.get("xero_status")
    if status is None:
        status = get_token_manager().get_status()
        g.xero_status = status
    return status


def xero_token_required(f: Callable[..., Any]) -> Callable[..., Any]:
    """Require a connected Xero token and tenant for route access.
    This refreshes an expired token on the way through and redirects to login when disconnected.

    Args:
        f: Route handler to wrap.

    Returns:
        Wrapped route handler with connection validation.
    """

    @wraps(f)
    def decorated_function(*args: Any, **kwargs: Any) -> Any:
        status = current_status()
        if not status.connected:
            logger.info("Xero not connected; redirecting", route=request.path, reason=str(status.reason))
            return redirect(url_for("dashboard.login"))

        return f(*args, **kwargs)

    return decorated_function


def route_handler_logging(function: Callable[..., Any]) -> Callable[..., Any]:
    """Log entry into route handlers.

    Args:
        function: Route handler to wrap.

    Returns:
        Wrapped route handler with entry logging.
    """

    @wraps(function)
    def decorator(*args: Any, **kwargs: Any) -> Any:
        logger.info("Entering route", route=request.path, event_type="USER_TRAIL", path=request.path)

        return function(*args, **kwargs)

    return decorator
