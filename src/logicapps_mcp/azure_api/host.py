"""Runtime host status of Standard Logic Apps."""

from __future__ import annotations

from logicapps_mcp.azure_api._http import workflow_mgmt_request
from logicapps_mcp.azure_api.backends import (
    ConsumptionApp,
    resolve_logic_app,
    standard_access_for,
)
from logicapps_mcp.errors import UnsupportedOperationError


async def get_host_status(
    subscription_id: str, resource_group_name: str, logic_app_name: str
) -> dict:
    """Return runtime version, extension bundle and instance diagnostics.

    Consumption apps have no host endpoint and raise
    :class:`UnsupportedOperationError`.
    """
    app = await resolve_logic_app(subscription_id, resource_group_name, logic_app_name)
    if isinstance(app, ConsumptionApp):
        raise UnsupportedOperationError(
            "Host status is only available for Standard Logic Apps. "
            "Consumption Logic Apps do not expose this endpoint."
        )

    access = await standard_access_for(app)
    status = await workflow_mgmt_request(access.hostname, "/admin/host/status", access.admin_key)
    status = status or {}
    return {
        "sku": "standard",
        "state": status.get("state"),
        "version": status.get("version"),
        "platformVersion": status.get("platformVersion"),
        "extensionBundle": status.get("extensionBundle"),
        "instanceId": status.get("instanceId"),
        "computerName": status.get("computerName"),
        "processUptimeMs": status.get("processUptime"),
    }
