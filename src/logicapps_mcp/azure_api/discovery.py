"""Subscription and Logic App discovery."""

from __future__ import annotations

import logging
import re
from typing import Literal

from logicapps_mcp.azure_api._pagination import arm_request_all_pages
from logicapps_mcp.azure_api.backends import LOGIC_API_VERSION, WEB_API_VERSION
from logicapps_mcp.errors import InvalidParameterError

logger = logging.getLogger(__name__)

SUBSCRIPTIONS_API_VERSION = "2022-12-01"

Sku = Literal["consumption", "standard", "all"]

_RG_RE = re.compile(r"/resourceGroups/([^/]+)", re.IGNORECASE)


def extract_resource_group(resource_id: str) -> str:
    """Return the resource group segment of an ARM resource ID, or ``""``."""
    match = _RG_RE.search(resource_id or "")
    return match.group(1) if match else ""


async def list_subscriptions() -> dict:
    """Return ``{"subscriptions": [{"subscriptionId", "displayName", "state"}, ...]}``."""
    subs = await arm_request_all_pages(
        "/subscriptions", {"api-version": SUBSCRIPTIONS_API_VERSION}
    )
    result = [
        {
            "subscriptionId": s["subscriptionId"],
            "displayName": s.get("displayName") or s["subscriptionId"],
            "state": s.get("state", ""),
        }
        for s in subs
    ]
    return {"subscriptions": sorted(result, key=lambda x: x["displayName"].lower())}


def _scope(subscription_id: str, resource_group_name: str | None, provider: str) -> str:
    if resource_group_name:
        return (
            f"/subscriptions/{subscription_id}/resourceGroups/{resource_group_name}"
            f"/providers/{provider}"
        )
    return f"/subscriptions/{subscription_id}/providers/{provider}"


async def _consumption_apps(subscription_id: str, resource_group_name: str | None) -> list[dict]:
    workflows = await arm_request_all_pages(
        _scope(subscription_id, resource_group_name, "Microsoft.Logic/workflows"),
        {"api-version": LOGIC_API_VERSION},
    )
    return [
        {
            "id": wf["id"],
            "name": wf["name"],
            "resourceGroup": extract_resource_group(wf["id"]),
            "location": wf.get("location"),
            "sku": "consumption",
            "state": wf.get("properties", {}).get("state"),
            "createdTime": wf.get("properties", {}).get("createdTime"),
            "changedTime": wf.get("properties", {}).get("changedTime"),
            "tags": wf.get("tags"),
        }
        for wf in workflows
    ]


async def _standard_apps(subscription_id: str, resource_group_name: str | None) -> list[dict]:
    sites = await arm_request_all_pages(
        _scope(subscription_id, resource_group_name, "Microsoft.Web/sites"),
        {"api-version": WEB_API_VERSION},
    )
    return [
        {
            "id": site["id"],
            "name": site["name"],
            "resourceGroup": extract_resource_group(site["id"]),
            "location": site.get("location"),
            "sku": "standard",
            "state": site.get("properties", {}).get("state"),
            "tags": site.get("tags"),
        }
        for site in sites
        if "workflowapp" in (site.get("kind") or "").lower()
    ]


async def list_logic_apps(
    subscription_id: str,
    resource_group_name: str | None = None,
    sku: Sku = "all",
) -> dict:
    """Return Consumption and/or Standard Logic Apps as ``{"logicApps": [...]}``.

    Standard apps are the ``Microsoft.Web/sites`` whose kind contains
    ``workflowapp``; plain web and function apps are skipped.
    """
    if sku not in ("consumption", "standard", "all"):
        raise InvalidParameterError(f"sku must be consumption, standard or all, got '{sku}'")

    apps: list[dict] = []
    if sku in ("consumption", "all"):
        apps.extend(await _consumption_apps(subscription_id, resource_group_name))
    if sku in ("standard", "all"):
        apps.extend(await _standard_apps(subscription_id, resource_group_name))
    logger.debug("Found %d Logic Apps in %s", len(apps), subscription_id)
    return {"logicApps": apps}
