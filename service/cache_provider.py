import hashlib
from typing import Any, Dict, List, Optional

from flask_caching import Cache

from logger import logger

_CACHE_STATE: Dict[str, Any] = {"cache": None}
_TENANT_CACHE_TIMEOUT_SECONDS = 60


def set_cache(instance: Optional[Cache], tenant_timeout_seconds: int = _TENANT_CACHE_TIMEOUT_SECONDS) -> None:
    """Register the shared cache instance."""
    _CACHE_STATE["cache"] = instance
    _CACHE_STATE["tenant_timeout"] = tenant_timeout_seconds


def get_cache() -> Optional[Cache]:
    return _CACHE_STATE.get("cache")


def _tenant_cache_key(access_token: str) -> str:
    # Never use the raw bearer token as a cache key.
    digest = hashlib.sha256(access_token.encode("utf-8")).hexdigest()
    return f"xero_tenants_{digest}"


def _tenant_cache_enabled() -> bool:
    return get_cache() is not None and _CACHE_STATE.get("tenant_timeout", _TENANT_CACHE_TIMEOUT_SECONDS) > 0


def get_cached_tenants(access_token: Optional[str]) -> Optional[List[Dict[str, Any]]]:
    """Return the cached tenant list for an access token, if present."""
    if not access_token or not _tenant_cache_enabled():
        return None
    return get_cache().get(_tenant_cache_key(access_token))


def set_cached_tenants(access_token: Optional[str], tenants: List[Dict[str, Any]]) -> None:
    """Write the tenant list for an access token to cache if a cache is configured."""
    if not access_token or not _tenant_cache_enabled():
        return

    timeout = _CACHE_STATE.get("tenant_timeout", _TENANT_CACHE_TIMEOUT_SECONDS)
    get_cache().set(_tenant_cache_key(access_token), tenants, timeout=timeout)
    logger.info("Updated Cache", tenant_count=len(tenants))


def clear_cached_tenants(access_token: Optional[str]) -> None:
    if not access_token or get_cache() is None:
        return
    get_cache().delete(_tenant_cache_key(access_token))
