"""Backend detection and Standard runtime access.

A Logic App name is backed either by the Consumption control plane
(``Microsoft.Logic/workflows``, one workflow per resource) or by the
Standard one (``Microsoft.Web/sites`` of kind ``workflowapp``, many
workflows reached through the runtime API).  This module decides which,
and fetches the hostname and host key the runtime API needs.  Both facts
are cached per app.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from logicapps_mcp.azure_api._cache import DEFAULT_CACHE_TTL, ResourceCache, make_cache_key
from logicapps_mcp.azure_api._http import arm_request
from logicapps_mcp.errors import InvalidParameterError, ResourceNotFoundError
from logicapps_mcp.settings import settings

logger = logging.getLogger(__name__)

LOGIC_API_VERSION = "2019-05-01"
WEB_API_VERSION = "2023-01-01"

RequestFn = Callable[..., Awaitable[Any]]


class BackendKind(StrEnum):
    """Control plane hosting a Logic App."""

    consumption = "consumption"
    standard = "standard"


@dataclass(frozen=True)
class StandardAccess:
    """Hostname and host key for a Standard app's runtime API."""

    hostname: str
    admin_key: str


def resource_group_path(subscription_id: str, resource_group_name: str) -> str:
    return f"/subscriptions/{subscription_id}/resourceGroups/{resource_group_name}"


def consumption_path(subscription_id: str, resource_group_name: str, app_name: str) -> str:
    return (
        f"{resource_group_path(subscription_id, resource_group_name)}"
        f"/providers/Microsoft.Logic/workflows/{app_name}"
    )


def standard_path(subscription_id: str, resource_group_name: str, app_name: str) -> str:
    return (
        f"{resource_group_path(subscription_id, resource_group_name)}"
        f"/providers/Microsoft.Web/sites/{app_name}"
    )


@dataclass(frozen=True)
class ConsumptionApp:
    """A Consumption Logic App; the app is its own single workflow."""

    subscription_id: str
    resource_group_name: str
    name: str

    kind = BackendKind.consumption

    @property
    def resource_path(self) -> str:
        return consumption_path(self.subscription_id, self.resource_group_name, self.name)


@dataclass(frozen=True)
class StandardApp:
    """A Standard Logic App hosting any number of workflows."""

    subscription_id: str
    resource_group_name: str
    name: str

    kind = BackendKind.standard

    @property
    def resource_path(self) -> str:
        return standard_path(self.subscription_id, self.resource_group_name, self.name)

    def require_workflow(self, workflow_name: str | None) -> str:
        """Return *workflow_name*, which Standard operations cannot do without."""
        if not workflow_name:
            raise InvalidParameterError("workflow_name is required for Standard Logic Apps")
        return workflow_name


LogicApp = ConsumptionApp | StandardApp


class BackendResolver:
    """Detects backend kinds and Standard runtime access, with caching.

    *request* is the ARM call used for probing; it must raise
    :class:`ResourceNotFoundError` for a missing resource.
    """

    def __init__(self, request: RequestFn | None = None, ttl: float = DEFAULT_CACHE_TTL) -> None:
        self._request = request or arm_request
        self.kind_cache: ResourceCache[BackendKind] = ResourceCache(ttl)
        self.access_cache: ResourceCache[StandardAccess] = ResourceCache(ttl)

    async def detect_backend_kind(
        self, subscription_id: str, resource_group_name: str, app_name: str
    ) -> BackendKind:
        """Return which control plane hosts *app_name*.

        Consumption is probed first.  Only a not-found answer moves on to the
        Standard probe; any other failure (auth, throttling, network) is
        raised as-is so it is never mistaken for "wrong backend".
        """
        key = make_cache_key(subscription_id, resource_group_name, app_name)
        cached = self.kind_cache.get(key)
        if cached is not None:
            logger.debug("Backend kind cache hit for %s: %s", key, cached)
            return cached

        try:
            await self._request(
                consumption_path(subscription_id, resource_group_name, app_name),
                query_params={"api-version": LOGIC_API_VERSION},
            )
        except ResourceNotFoundError:
            pass
        else:
            self.kind_cache.set(key, BackendKind.consumption)
            logger.debug("Detected Consumption backend for %s", key)
            return BackendKind.consumption

        try:
            site = await self._request(
                standard_path(subscription_id, resource_group_name, app_name),
                query_params={"api-version": WEB_API_VERSION},
            )
        except ResourceNotFoundError:
            site = None

        if site and "workflowapp" in (site.get("kind") or "").lower():
            self.kind_cache.set(key, BackendKind.standard)
            logger.debug("Detected Standard backend for %s", key)
            return BackendKind.standard

        raise ResourceNotFoundError(
            f"Logic App '{app_name}' not found in resource group '{resource_group_name}'"
        )

    async def resolve(
        self, subscription_id: str, resource_group_name: str, app_name: str
    ) -> LogicApp:
        """Return the app as a :class:`ConsumptionApp` or :class:`StandardApp`."""
        kind = await self.detect_backend_kind(subscription_id, resource_group_name, app_name)
        if kind is BackendKind.consumption:
            return ConsumptionApp(subscription_id, resource_group_name, app_name)
        return StandardApp(subscription_id, resource_group_name, app_name)

    async def get_standard_access(
        self, subscription_id: str, resource_group_name: str, app_name: str
    ) -> StandardAccess:
        """Return the runtime hostname and host master key of a Standard app.

        The site descriptor and the key listing are fetched concurrently.
        Nothing is cached unless both succeed.
        """
        key = make_cache_key(subscription_id, resource_group_name, app_name)
        cached = self.access_cache.get(key)
        if cached is not None:
            logger.debug("Standard access cache hit for %s", key)
            return cached

        path = standard_path(subscription_id, resource_group_name, app_name)
        params = {"api-version": WEB_API_VERSION}
        site, keys = await asyncio.gather(
            self._request(path, query_params=params),
            self._request(f"{path}/host/default/listkeys", method="POST", query_params=params),
        )
        access = StandardAccess(
            hostname=site["properties"]["defaultHostName"],
            admin_key=keys["masterKey"],
        )
        self.access_cache.set(key, access)
        logger.info("Refreshed Standard runtime access for %s", key)
        return access

    def clear_cache(
        self,
        subscription_id: str | None = None,
        resource_group_name: str | None = None,
        app_name: str | None = None,
    ) -> int:
        """Invalidate both caches for the given scope; return entries dropped."""
        return self.kind_cache.clear(
            subscription_id, resource_group_name, app_name
        ) + self.access_cache.clear(subscription_id, resource_group_name, app_name)

    def set_cache_ttl(self, seconds: float) -> None:
        self.kind_cache.set_ttl(seconds)
        self.access_cache.set_ttl(seconds)


# ---------------------------------------------------------------------------
# Process-wide default resolver used by the tool modules
# ---------------------------------------------------------------------------

_resolver: BackendResolver | None = None


def get_resolver() -> BackendResolver:
    """Return the shared resolver, creating it on first use."""
    global _resolver
    if _resolver is None:
        _resolver = BackendResolver(ttl=settings.cache_ttl)
    return _resolver


async def detect_backend_kind(
    subscription_id: str, resource_group_name: str, app_name: str
) -> BackendKind:
    return await get_resolver().detect_backend_kind(
        subscription_id, resource_group_name, app_name
    )


async def resolve_logic_app(
    subscription_id: str, resource_group_name: str, app_name: str
) -> LogicApp:
    return await get_resolver().resolve(subscription_id, resource_group_name, app_name)


async def get_standard_access(
    subscription_id: str, resource_group_name: str, app_name: str
) -> StandardAccess:
    return await get_resolver().get_standard_access(
        subscription_id, resource_group_name, app_name
    )


async def standard_access_for(app: StandardApp) -> StandardAccess:
    return await get_standard_access(app.subscription_id, app.resource_group_name, app.name)


def clear_cache(
    subscription_id: str | None = None,
    resource_group_name: str | None = None,
    app_name: str | None = None,
) -> int:
    return get_resolver().clear_cache(subscription_id, resource_group_name, app_name)


def set_cache_ttl(seconds: float) -> None:
    get_resolver().set_cache_ttl(seconds)
