"""Per-action run diagnostics.

Loop iterations (repetitions), scope repetitions, connector request
history and expression evaluation traces.
"""

from __future__ import annotations

import logging

from logicapps_mcp.azure_api._http import arm_request, workflow_mgmt_request
from logicapps_mcp.azure_api._pagination import arm_request_all_pages
from logicapps_mcp.azure_api.backends import (
    LOGIC_API_VERSION,
    ConsumptionApp,
    LogicApp,
    resolve_logic_app,
    standard_access_for,
)
from logicapps_mcp.azure_api.workflows import MANAGEMENT_BASE, RUNTIME_API_VERSION

logger = logging.getLogger(__name__)


async def _action_get(
    app: LogicApp,
    workflow_name: str | None,
    run_id: str,
    action_name: str,
    suffix: str,
    *,
    method: str = "GET",
    many: bool = True,
) -> list[dict] | dict:
    """Read ``.../runs/{run}/actions/{action}{suffix}`` from either backend.

    With *many* the ``value`` list is returned, following ARM pagination
    for Consumption apps.
    """
    if isinstance(app, ConsumptionApp):
        path = f"{app.resource_path}/runs/{run_id}/actions/{action_name}{suffix}"
        params = {"api-version": LOGIC_API_VERSION}
        if many and method == "GET":
            return await arm_request_all_pages(path, params)
        return await arm_request(path, method=method, query_params=params)

    name = app.require_workflow(workflow_name)
    access = await standard_access_for(app)
    data = await workflow_mgmt_request(
        access.hostname,
        f"{MANAGEMENT_BASE}/workflows/{name}/runs/{run_id}/actions/{action_name}{suffix}"
        f"?api-version={RUNTIME_API_VERSION}",
        access.admin_key,
        method=method,
    )
    data = data or {}
    return data.get("value", []) if many else data


def _repetition(entry: dict) -> dict:
    props = entry.get("properties", {})
    return {
        "name": entry.get("name"),
        "status": props.get("status"),
        "startTime": props.get("startTime"),
        "endTime": props.get("endTime"),
        "iterationCount": props.get("iterationCount"),
        "hasInputs": bool(props.get("inputsLink")),
        "hasOutputs": bool(props.get("outputsLink")),
        "error": props.get("error"),
        "trackedProperties": props.get("trackedProperties"),
    }


async def get_action_repetitions(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    run_id: str,
    action_name: str,
    workflow_name: str | None = None,
    repetition_name: str | None = None,
) -> dict:
    """Return the iterations of a ForEach / Until action."""
    app = await resolve_logic_app(subscription_id, resource_group_name, logic_app_name)
    if repetition_name:
        entry = await _action_get(
            app,
            workflow_name,
            run_id,
            action_name,
            f"/repetitions/{repetition_name}",
            many=False,
        )
        entries = [entry]
    else:
        entries = await _action_get(app, workflow_name, run_id, action_name, "/repetitions")
    return {"actionName": action_name, "repetitions": [_repetition(e) for e in entries]}


async def get_scope_repetitions(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    run_id: str,
    action_name: str,
    workflow_name: str | None = None,
) -> dict:
    """Return the executions of a Scope, Switch or Condition action."""
    app = await resolve_logic_app(subscription_id, resource_group_name, logic_app_name)
    entries = await _action_get(app, workflow_name, run_id, action_name, "/scopeRepetitions")
    return {
        "actionName": action_name,
        "scopeRepetitions": [
            {
                "name": e.get("name"),
                "status": e.get("properties", {}).get("status"),
                "startTime": e.get("properties", {}).get("startTime"),
                "endTime": e.get("properties", {}).get("endTime"),
                "error": e.get("properties", {}).get("error"),
            }
            for e in entries
        ],
    }


def _request_history(entry: dict) -> dict:
    props = entry.get("properties", {})
    request = props.get("request")
    response = props.get("response")
    return {
        "name": entry.get("name"),
        "startTime": props.get("startTime"),
        "endTime": props.get("endTime"),
        "request": {
            "method": request.get("method"),
            "uri": request.get("uri"),
            "headers": request.get("headers"),
        }
        if request
        else None,
        "response": {
            "statusCode": response.get("statusCode"),
            "headers": response.get("headers"),
            "bodyContentSize": (response.get("bodyLink") or {}).get("contentSize"),
        }
        if response
        else None,
        "error": props.get("error"),
    }


async def get_action_request_history(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    run_id: str,
    action_name: str,
    workflow_name: str | None = None,
    request_history_name: str | None = None,
) -> dict:
    """Return the HTTP calls a connector action made to its service."""
    app = await resolve_logic_app(subscription_id, resource_group_name, logic_app_name)
    if request_history_name:
        entry = await _action_get(
            app,
            workflow_name,
            run_id,
            action_name,
            f"/requestHistories/{request_history_name}",
            many=False,
        )
        entries = [entry]
    else:
        entries = await _action_get(app, workflow_name, run_id, action_name, "/requestHistories")
    return {
        "actionName": action_name,
        "requestHistories": [_request_history(e) for e in entries],
    }


async def get_expression_traces(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    run_id: str,
    action_name: str,
    workflow_name: str | None = None,
) -> dict:
    """Return how each expression of an action evaluated at run time."""
    app = await resolve_logic_app(subscription_id, resource_group_name, logic_app_name)
    # Consumption exposes this as a POST action; the runtime API answers a GET.
    method = "POST" if isinstance(app, ConsumptionApp) else "GET"
    data = await _action_get(
        app,
        workflow_name,
        run_id,
        action_name,
        "/listExpressionTraces",
        method=method,
        many=False,
    )
    return {
        "actionName": action_name,
        "traces": [
            {
                "expression": t.get("text") or "",
                "value": t.get("value"),
                "error": (t.get("error") or {}).get("message"),
            }
            for t in data.get("inputs") or []
        ],
    }
