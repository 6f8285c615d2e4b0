from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict

Number = Union[int, float, str]


class TokenRecord(BaseModel):
    """Shape check for the persisted Xero token set.

    Every field is optional so a partially populated record still loads;
    callers decide whether an access or refresh token is required.
    """

    model_config = ConfigDict(extra="allow")

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[Number] = None
    expires_in: Optional[Number] = None
    id_token: Optional[str] = None
    scope: Optional[Union[str, List[str]]] = None
    token_type: Optional[str] = None
    saved_at: Optional[str] = None

    def expires_at_epoch(self) -> Optional[float]:
        """Absolute expiry as epoch seconds, or None when it cannot be determined."""
        expires_at = _to_epoch(self.expires_at)
        if expires_at is not None:
            return expires_at

        # Older records only carry the relative lifetime.
        saved_at = _to_epoch(self.saved_at)
        try:
            lifetime = float(self.expires_in) if self.expires_in is not None else None
        except (TypeError, ValueError):
            lifetime = None
        if saved_at is None or lifetime is None:
            return None
        return saved_at + lifetime


def _to_epoch(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    try:
        return float(text)
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


@dataclass(frozen=True)
class TenantRef:
    """A Xero organisation the token is authorised against."""

    tenant_id: str
    tenant_name: str = ""
    tenant_type: Optional[str] = None
    connection_id: Optional[str] = None

    @classmethod
    def from_connection(cls, connection: Dict[str, Any]) -> Optional["TenantRef"]:
        """Build a TenantRef from one entry of the Xero connections payload."""
        tenant_id = connection.get("tenantId")
        if not tenant_id:
            return None
        return cls(
            tenant_id=str(tenant_id),
            tenant_name=connection.get("tenantName") or "",
            tenant_type=connection.get("tenantType"),
            connection_id=connection.get("id"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class StatusReason(StrEnum):
    CONNECTED = "connected"
    NOT_AUTHENTICATED = "not_authenticated"
    REFRESH_REJECTED = "refresh_rejected"
    AUTH_SERVER_UNAVAILABLE = "auth_server_unavailable"
    TENANT_DISCOVERY_FAILED = "tenant_discovery_failed"
    NO_TENANTS = "no_tenants"


@dataclass(frozen=True)
class ConnectionStatus:
    """
    Per-request answer to "are we connected to Xero, and as which tenant".

    Attributes:
        connected: True only when a token loaded, survived any refresh, and resolved a tenant.
        tenant_id: ID of the first tenant returned by Xero.
        tenant_name: Display name of that tenant.
        tokens: The stored (possibly refreshed) token record, for display.
        reason: Why the status is what it is.
    """

    connected: bool
    tenant_id: Optional[str] = None
    tenant_name: str = ""
    tokens: Optional[Dict[str, Any]] = None
    reason: StatusReason = StatusReason.NOT_AUTHENTICATED

    @classmethod
    def disconnected(cls, reason: StatusReason, tokens: Optional[Dict[str, Any]] = None) -> "ConnectionStatus":
        return cls(connected=False, tenant_id=None, tenant_name="", tokens=tokens, reason=reason)

    def to_context(self) -> Dict[str, Any]:
        """Template/JSON view of the status."""
        return {
            "connected": self.connected,
            "tenantId": self.tenant_id,
            "tenantName": self.tenant_name,
            "tokens": self.tokens,
            "reason": str(self.reason),
        }
