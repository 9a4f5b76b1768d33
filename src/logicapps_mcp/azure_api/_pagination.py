"""ARM and runtime pagination helpers."""

from __future__ import annotations

from typing import Any

from logicapps_mcp.azure_api._http import arm_request, workflow_mgmt_request


async def arm_request_all_pages(
    path: str, query_params: dict[str, str] | None = None
) -> list[dict[str, Any]]:
    """Fetch all pages from an ARM list endpoint and return the merged values."""
    items: list[dict[str, Any]] = []
    data = await arm_request(path, query_params=query_params)
    while True:
        items.extend(data.get("value", []))
        next_link = data.get("nextLink")
        if not next_link:
            return items
        data = await arm_request(next_link)


async def workflow_mgmt_request_all_pages(
    hostname: str, path: str, admin_key: str
) -> list[dict[str, Any]]:
    """Fetch all pages from a Workflow Management list endpoint."""
    items: list[dict[str, Any]] = []
    data = await workflow_mgmt_request(hostname, path, admin_key)
    while True:
        data = data or {}
        items.extend(data.get("value", []))
        next_link = data.get("nextLink")
        if not next_link:
            return items
        # nextLink is absolute; strip the origin so the runtime helper can rebuild it.
        data = await workflow_mgmt_request(
            hostname, next_link.removeprefix(f"https://{hostname}"), admin_key
        )
