"""Trigger history, callback URLs and manual trigger runs."""

from __future__ import annotations

import logging
from urllib.parse import quote

from logicapps_mcp.azure_api._http import arm_request, arm_request_void, workflow_mgmt_request
from logicapps_mcp.azure_api._pagination import arm_request_all_pages
from logicapps_mcp.azure_api.backends import (
    LOGIC_API_VERSION,
    ConsumptionApp,
    StandardApp,
    resolve_logic_app,
    standard_access_for,
)
from logicapps_mcp.azure_api.runs import DEFAULT_TOP, HOSTRUNTIME_API_VERSION, MAX_TOP
from logicapps_mcp.azure_api.workflows import MANAGEMENT_BASE, RUNTIME_API_VERSION

logger = logging.getLogger(__name__)


def _hostruntime_trigger_path(app: StandardApp, workflow_name: str, trigger_name: str) -> str:
    return (
        f"{app.resource_path}/hostruntime{MANAGEMENT_BASE}"
        f"/workflows/{workflow_name}/triggers/{trigger_name}"
    )


def _summarize_history(entry: dict) -> dict:
    props = entry.get("properties", {})
    return {
        "name": entry.get("name"),
        "status": props.get("status"),
        "startTime": props.get("startTime"),
        "endTime": props.get("endTime"),
        "code": props.get("code"),
        "fired": props.get("fired", False),
        "runId": (props.get("run") or {}).get("name"),
        "error": props.get("error"),
    }


async def get_trigger_history(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    trigger_name: str,
    workflow_name: str | None = None,
    top: int | None = None,
    filter: str | None = None,
) -> dict:
    """Return when a trigger fired, succeeded, failed or was skipped."""
    app = await resolve_logic_app(subscription_id, resource_group_name, logic_app_name)
    effective_top = max(1, min(top or DEFAULT_TOP, MAX_TOP))

    if isinstance(app, ConsumptionApp):
        params = {"api-version": LOGIC_API_VERSION, "$top": str(effective_top)}
        if filter:
            params["$filter"] = filter
        histories = await arm_request_all_pages(
            f"{app.resource_path}/triggers/{trigger_name}/histories", params
        )
    else:
        name = app.require_workflow(workflow_name)
        access = await standard_access_for(app)
        path = (
            f"{MANAGEMENT_BASE}/workflows/{name}/triggers/{trigger_name}/histories"
            f"?api-version={RUNTIME_API_VERSION}&$top={effective_top}"
        )
        if filter:
            path += f"&$filter={quote(filter)}"
        data = await workflow_mgmt_request(access.hostname, path, access.admin_key)
        histories = (data or {}).get("value", [])

    return {
        "triggerName": trigger_name,
        "histories": [_summarize_history(h) for h in histories[:effective_top]],
    }


async def get_trigger_callback_url(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    trigger_name: str,
    workflow_name: str | None = None,
) -> dict:
    """Return the signed callback URL of a request trigger."""
    app = await resolve_logic_app(subscription_id, resource_group_name, logic_app_name)

    if isinstance(app, ConsumptionApp):
        resp = await arm_request(
            f"{app.resource_path}/triggers/{trigger_name}/listCallbackUrl",
            method="POST",
            query_params={"api-version": LOGIC_API_VERSION},
        )
    else:
        name = app.require_workflow(workflow_name)
        resp = await arm_request(
            f"{_hostruntime_trigger_path(app, name, trigger_name)}/listCallbackUrl",
            method="POST",
            query_params={"api-version": HOSTRUNTIME_API_VERSION},
        )

    return {
        "triggerName": trigger_name,
        "callbackUrl": resp.get("value"),
        "method": resp.get("method"),
        "basePath": resp.get("basePath"),
        "queries": resp.get("queries"),
    }


async def run_trigger(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    trigger_name: str,
    workflow_name: str | None = None,
) -> dict:
    """Fire a trigger manually, starting a new run."""
    app = await resolve_logic_app(subscription_id, resource_group_name, logic_app_name)

    if isinstance(app, ConsumptionApp):
        await arm_request_void(
            f"{app.resource_path}/triggers/{trigger_name}/run",
            query_params={"api-version": LOGIC_API_VERSION},
        )
        target = f"Consumption workflow '{logic_app_name}'"
    else:
        name = app.require_workflow(workflow_name)
        await arm_request_void(
            f"{_hostruntime_trigger_path(app, name, trigger_name)}/run",
            query_params={"api-version": HOSTRUNTIME_API_VERSION},
        )
        target = f"Standard workflow '{name}' in '{logic_app_name}'"

    logger.info("Fired trigger %s on %s", trigger_name, logic_app_name)
    return {
        "success": True,
        "triggerName": trigger_name,
        "message": f"Trigger '{trigger_name}' has been fired for {target}. "
        "Check run history for the new run.",
    }
