"""Errors raised by the Xero token lifecycle components."""

from typing import Optional


class XeroAuthError(Exception):
    """Base class for token lifecycle failures.

    Attributes:
        status_code: HTTP status returned by Xero, when the failure came from a response.
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PersistenceError(XeroAuthError):
    """Token storage could not be read or written."""


class AuthExpiredError(XeroAuthError):
    """The refresh token was rejected by Xero (revoked or expired)."""


class AuthServerUnavailableError(XeroAuthError):
    """Xero identity could not be reached or answered with a server error."""


class NotAuthenticatedError(XeroAuthError):
    """No stored credentials are available for the requested operation."""


class ConsentBuildError(XeroAuthError):
    """The consent URL cannot be built because the OAuth client is misconfigured."""


class CallbackExchangeError(XeroAuthError):
    """The OAuth callback could not be turned into a token set."""


class TenantDiscoveryError(XeroAuthError):
    """The Xero connections endpoint failed."""
