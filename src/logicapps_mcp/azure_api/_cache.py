"""In-memory TTL cache for per-app facts (backend kind, runtime access).

Entries are keyed by subscription / resource group / app name, compared
case-insensitively.  Expiry is lazy: an expired entry reads as a miss but
stays in the map until it is overwritten or cleared.
"""

from __future__ import annotations

import threading
import time
from typing import Generic, TypeVar

from logicapps_mcp.errors import InvalidParameterError

T = TypeVar("T")

DEFAULT_CACHE_TTL = 300  # 5 minutes


def make_cache_key(subscription_id: str, resource_group_name: str, app_name: str) -> str:
    """Return the case-insensitive cache key for an app."""
    return f"{subscription_id}/{resource_group_name}/{app_name}".lower()


class ResourceCache(Generic[T]):
    """Expiring key/value store with subscription / resource-group scoped clears."""

    def __init__(self, ttl: float = DEFAULT_CACHE_TTL) -> None:
        self._ttl = ttl
        self._entries: dict[str, tuple[T, float]] = {}
        self._lock = threading.Lock()

    @property
    def ttl(self) -> float:
        return self._ttl

    def set_ttl(self, seconds: float) -> None:
        """Change the TTL used by later :meth:`set` calls.

        Entries already stored keep their original expiry.
        """
        self._ttl = seconds

    def get(self, key: str) -> T | None:
        """Return the live value for *key*, or ``None``."""
        entry = self._entries.get(key.lower())
        if entry is None:
            return None
        value, expires_at = entry
        if time.monotonic() < expires_at:
            return value
        return None

    def set(self, key: str, value: T) -> None:
        with self._lock:
            self._entries[key.lower()] = (value, time.monotonic() + self._ttl)

    def clear(
        self,
        subscription_id: str | None = None,
        resource_group_name: str | None = None,
        app_name: str | None = None,
    ) -> int:
        """Remove entries and return how many were dropped.

        Without arguments everything goes.  A subscription alone drops every
        resource group and app under it, a subscription plus resource group
        drops every app in that group, and all three drop a single key.  A
        narrower scope without its parents is rejected.
        """
        if resource_group_name is not None and subscription_id is None:
            raise InvalidParameterError("resource_group_name requires subscription_id")
        if app_name is not None and (subscription_id is None or resource_group_name is None):
            raise InvalidParameterError(
                "logic_app_name requires subscription_id and resource_group_name"
            )

        with self._lock:
            if subscription_id is None:
                count = len(self._entries)
                self._entries.clear()
                return count

            if resource_group_name is not None and app_name is not None:
                key = make_cache_key(subscription_id, resource_group_name, app_name)
                return 1 if self._entries.pop(key, None) is not None else 0

            prefix = f"{subscription_id}/".lower()
            if resource_group_name is not None:
                prefix += f"{resource_group_name}/".lower()
            stale = [k for k in self._entries if k.startswith(prefix)]
            for k in stale:
                del self._entries[k]
            return len(stale)

    def __len__(self) -> int:
        return len(self._entries)
