"""Workflow run history, run actions and run cancellation."""

from __future__ import annotations

import logging
from typing import Literal
from urllib.parse import quote

from logicapps_mcp.azure_api._http import (
    arm_request,
    arm_request_void,
    fetch_content_link,
    workflow_mgmt_request,
)
from logicapps_mcp.azure_api._pagination import arm_request_all_pages
from logicapps_mcp.azure_api.backends import (
    LOGIC_API_VERSION,
    ConsumptionApp,
    LogicApp,
    StandardApp,
    resolve_logic_app,
    standard_access_for,
)
from logicapps_mcp.azure_api.workflows import MANAGEMENT_BASE, RUNTIME_API_VERSION

logger = logging.getLogger(__name__)

DEFAULT_TOP = 25
MAX_TOP = 100
HOSTRUNTIME_API_VERSION = "2022-03-01"

RunStatus = Literal["Succeeded", "Failed", "Cancelled", "Running"]
IOType = Literal["inputs", "outputs", "both"]


def _effective_top(top: int | None) -> int:
    return max(1, min(top or DEFAULT_TOP, MAX_TOP))


def _summarize_run(run: dict) -> dict:
    props = run.get("properties", {})
    return {
        "id": run.get("id"),
        "name": run.get("name"),
        "status": props.get("status"),
        "startTime": props.get("startTime"),
        "endTime": props.get("endTime"),
        "trigger": {"name": (props.get("trigger") or {}).get("name", "unknown")},
        "correlation": props.get("correlation"),
    }


def _summarize_action(action: dict) -> dict:
    props = action.get("properties", {})
    return {
        "name": action.get("name"),
        "type": action.get("type"),
        "status": props.get("status"),
        "startTime": props.get("startTime"),
        "endTime": props.get("endTime"),
        "error": props.get("error"),
        "trackedProperties": props.get("trackedProperties"),
    }


async def _runtime_get(app: StandardApp, workflow_name: str | None, path: str) -> dict:
    """GET ``/workflows/{name}{path}`` on a Standard app's runtime API."""
    name = app.require_workflow(workflow_name)
    access = await standard_access_for(app)
    sep = "&" if "?" in path else "?"
    data = await workflow_mgmt_request(
        access.hostname,
        f"{MANAGEMENT_BASE}/workflows/{name}{path}{sep}api-version={RUNTIME_API_VERSION}",
        access.admin_key,
    )
    return data or {}


async def list_run_history(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    workflow_name: str | None = None,
    top: int = DEFAULT_TOP,
    filter: str | None = None,
) -> dict:
    """Return ``{"runs": [...]}``, newest first, at most 100 entries."""
    app = await resolve_logic_app(subscription_id, resource_group_name, logic_app_name)
    effective_top = _effective_top(top)

    if isinstance(app, ConsumptionApp):
        params = {"api-version": LOGIC_API_VERSION, "$top": str(effective_top)}
        if filter:
            params["$filter"] = filter
        runs = await arm_request_all_pages(f"{app.resource_path}/runs", params)
        return {"runs": [_summarize_run(r) for r in runs[:effective_top]]}

    query = f"/runs?$top={effective_top}"
    if filter:
        query += f"&$filter={quote(filter)}"
    data = await _runtime_get(app, workflow_name, query)
    return {"runs": [_summarize_run(r) for r in data.get("value", [])[:effective_top]]}


async def get_run_details(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    run_id: str,
    workflow_name: str | None = None,
) -> dict:
    """Return ``{"run": {...}}`` including the run's error, if any."""
    app = await resolve_logic_app(subscription_id, resource_group_name, logic_app_name)

    if isinstance(app, ConsumptionApp):
        run = await arm_request(
            f"{app.resource_path}/runs/{run_id}",
            query_params={"api-version": LOGIC_API_VERSION},
        )
    else:
        run = await _runtime_get(app, workflow_name, f"/runs/{run_id}")

    summary = _summarize_run(run)
    summary.pop("correlation")
    summary["error"] = run.get("properties", {}).get("error")
    return {"run": summary}


async def _fetch_action(
    app: LogicApp, workflow_name: str | None, run_id: str, action_name: str
) -> dict:
    if isinstance(app, ConsumptionApp):
        return await arm_request(
            f"{app.resource_path}/runs/{run_id}/actions/{action_name}",
            query_params={"api-version": LOGIC_API_VERSION},
        )
    return await _runtime_get(app, workflow_name, f"/runs/{run_id}/actions/{action_name}")


async def get_run_actions(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    run_id: str,
    workflow_name: str | None = None,
    action_name: str | None = None,
) -> dict:
    """Return ``{"actions": [...]}`` for a run, or just *action_name*."""
    app = await resolve_logic_app(subscription_id, resource_group_name, logic_app_name)

    if action_name:
        action = await _fetch_action(app, workflow_name, run_id, action_name)
        return {"actions": [_summarize_action(action)]}

    if isinstance(app, ConsumptionApp):
        actions = await arm_request_all_pages(
            f"{app.resource_path}/runs/{run_id}/actions",
            {"api-version": LOGIC_API_VERSION},
        )
    else:
        actions = (await _runtime_get(app, workflow_name, f"/runs/{run_id}/actions")).get(
            "value", []
        )
    return {"actions": [_summarize_action(a) for a in actions]}


async def get_action_io(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    run_id: str,
    action_name: str,
    workflow_name: str | None = None,
    type: IOType = "both",
) -> dict:
    """Return the actual input and/or output content of a run action.

    Content is read from the action's SAS-signed ``inputsLink`` /
    ``outputsLink``; a side without a link is omitted.
    """
    app = await resolve_logic_app(subscription_id, resource_group_name, logic_app_name)
    action = await _fetch_action(app, workflow_name, run_id, action_name)
    props = action.get("properties", {})

    result: dict = {"actionName": action_name}
    inputs_uri = (props.get("inputsLink") or {}).get("uri")
    outputs_uri = (props.get("outputsLink") or {}).get("uri")
    if type in ("inputs", "both") and inputs_uri:
        result["inputs"] = await fetch_content_link(inputs_uri)
    if type in ("outputs", "both") and outputs_uri:
        result["outputs"] = await fetch_content_link(outputs_uri)
    return result


def build_run_filter(
    status: str | None = None,
    start_time: str | None = None,
    end_time: str | None = None,
) -> str | None:
    """Build an OData ``$filter`` from friendly search parameters."""
    parts = []
    if status:
        parts.append(f"status eq '{status}'")
    if start_time:
        parts.append(f"startTime ge {start_time}")
    if end_time:
        parts.append(f"startTime le {end_time}")
    return " and ".join(parts) or None


async def search_runs(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    workflow_name: str | None = None,
    status: RunStatus | None = None,
    start_time: str | None = None,
    end_time: str | None = None,
    client_tracking_id: str | None = None,
    top: int = DEFAULT_TOP,
) -> dict:
    """Search runs by status, start-time window and client tracking ID.

    Status and time bounds are filtered server-side.  The tracking ID is not
    filterable through the API and is matched on the returned page.
    """
    result = await list_run_history(
        subscription_id,
        resource_group_name,
        logic_app_name,
        workflow_name,
        top,
        build_run_filter(status, start_time, end_time),
    )
    runs = result["runs"]
    if client_tracking_id:
        runs = [
            r
            for r in runs
            if (r.get("correlation") or {}).get("clientTrackingId") == client_tracking_id
        ]
    return {"runs": runs, "count": len(runs)}


async def cancel_run(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    run_id: str,
    workflow_name: str | None = None,
) -> dict:
    """Cancel a ``Running`` or ``Waiting`` run."""
    app = await resolve_logic_app(subscription_id, resource_group_name, logic_app_name)

    if isinstance(app, ConsumptionApp):
        await arm_request_void(
            f"{app.resource_path}/runs/{run_id}/cancel",
            query_params={"api-version": LOGIC_API_VERSION},
        )
        logger.info("Cancelled run %s of %s", run_id, logic_app_name)
        return {
            "success": True,
            "runId": run_id,
            "message": f"Run '{run_id}' has been cancelled for Consumption workflow "
            f"'{logic_app_name}'.",
        }

    name = app.require_workflow(workflow_name)
    await arm_request_void(
        f"{app.resource_path}/hostruntime{MANAGEMENT_BASE}/workflows/{name}/runs/{run_id}/cancel",
        query_params={"api-version": HOSTRUNTIME_API_VERSION},
    )
    logger.info("Cancelled run %s of %s/%s", run_id, logic_app_name, name)
    return {
        "success": True,
        "runId": run_id,
        "message": f"Run '{run_id}' has been cancelled for Standard workflow '{name}' "
        f"in '{logic_app_name}'.",
    }
