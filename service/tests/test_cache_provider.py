"""Unit tests for cache provider helpers."""

from typing import Any

import cache_provider


class DummyCache:
    """Test double that records cache calls."""

    def __init__(self) -> None:
        self.values: dict[str, Any] = {}
        self.calls: list[tuple[str, Any, int | None]] = []

    def get(self, key: str) -> Any:
        return self.values.get(key)

    def set(self, key: str, value: Any, timeout: int | None = None) -> None:
        self.calls.append((key, value, timeout))
        self.values[key] = value

    def delete(self, key: str) -> None:
        self.values.pop(key, None)


TENANTS = [{"tenant_id": "tenant-1", "tenant_name": "Demo Company (NZ)", "tenant_type": None, "connection_id": None}]


def test_set_cached_tenants_uses_configured_timeout(monkeypatch: Any) -> None:
    dummy_cache = DummyCache()
    monkeypatch.setitem(cache_provider._CACHE_STATE, "cache", dummy_cache)
    monkeypatch.setitem(cache_provider._CACHE_STATE, "tenant_timeout", 45)

    cache_provider.set_cached_tenants("access-1", TENANTS)

    assert dummy_cache.calls == [(cache_provider._tenant_cache_key("access-1"), TENANTS, 45)]
    assert cache_provider.get_cached_tenants("access-1") == TENANTS


def test_cache_key_does_not_contain_the_raw_token() -> None:
    key = cache_provider._tenant_cache_key("secret-access-token")

    assert "secret-access-token" not in key
    assert key.startswith("xero_tenants_")
    assert key == cache_provider._tenant_cache_key("secret-access-token")


def test_cached_tenants_skip_empty_token(monkeypatch: Any) -> None:
    dummy_cache = DummyCache()
    monkeypatch.setitem(cache_provider._CACHE_STATE, "cache", dummy_cache)

    cache_provider.set_cached_tenants("", TENANTS)

    assert dummy_cache.calls == []
    assert cache_provider.get_cached_tenants(None) is None


def test_zero_timeout_disables_tenant_cache(monkeypatch: Any) -> None:
    dummy_cache = DummyCache()
    monkeypatch.setitem(cache_provider._CACHE_STATE, "cache", dummy_cache)
    monkeypatch.setitem(cache_provider._CACHE_STATE, "tenant_timeout", 0)

    cache_provider.set_cached_tenants("access-1", TENANTS)

    assert dummy_cache.calls == []
    assert cache_provider.get_cached_tenants("access-1") is None


def test_no_registered_cache_is_a_no_op() -> None:
    cache_provider.set_cached_tenants("access-1", TENANTS)
    cache_provider.clear_cached_tenants("access-1")

    assert cache_provider.get_cached_tenants("access-1") is None


def test_clear_cached_tenants_removes_entry(monkeypatch: Any) -> None:
    dummy_cache = DummyCache()
    monkeypatch.setitem(cache_provider._CACHE_STATE, "cache", dummy_cache)
    monkeypatch.setitem(cache_provider._CACHE_STATE, "tenant_timeout", 60)
    cache_provider.set_cached_tenants("access-1", TENANTS)

    cache_provider.clear_cached_tenants("access-1")

    assert cache_provider.get_cached_tenants("access-1") is None
