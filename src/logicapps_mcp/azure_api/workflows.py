"""Workflow read and write operations for both backends.

Consumption workflows are ARM resources.  Standard workflows are listed
through the runtime API, their definitions live as ``workflow.json`` files
in the app's VFS, and their state is toggled through ARM.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from logicapps_mcp.azure_api._http import (
    arm_request,
    arm_request_void,
    vfs_request,
    workflow_mgmt_request,
)
from logicapps_mcp.azure_api._pagination import arm_request_all_pages
from logicapps_mcp.azure_api.backends import (
    LOGIC_API_VERSION,
    ConsumptionApp,
    StandardApp,
    clear_cache,
    resolve_logic_app,
    standard_access_for,
)
from logicapps_mcp.errors import (
    ConflictError,
    InvalidParameterError,
    ResourceNotFoundError,
    UnsupportedOperationError,
)

logger = logging.getLogger(__name__)

RUNTIME_API_VERSION = "2020-05-01-preview"
SITE_WORKFLOWS_API_VERSION = "2024-04-01"
MANAGEMENT_BASE = "/runtime/webhooks/workflow/api/management"

WorkflowKind = Literal["Stateful", "Stateless"]

_VERSIONS_UNSUPPORTED = (
    "Workflow versions are only available for Consumption Logic Apps. "
    "Standard Logic Apps store versions in source control."
)


def _runtime_path(path: str) -> str:
    return f"{MANAGEMENT_BASE}{path}?api-version={RUNTIME_API_VERSION}"


def _vfs_workflow_path(workflow_name: str) -> str:
    return f"/admin/vfs/site/wwwroot/{workflow_name}/workflow.json"


def _logic_params() -> dict[str, str]:
    return {"api-version": LOGIC_API_VERSION}


# ---------------------------------------------------------------------------
# Read operations
# ---------------------------------------------------------------------------


async def list_workflows(
    subscription_id: str, resource_group_name: str, logic_app_name: str
) -> dict:
    """Return ``{"workflows": [{"name", "state", ...}, ...]}``.

    A Consumption app yields a single entry named after the app.
    """
    app = await resolve_logic_app(subscription_id, resource_group_name, logic_app_name)

    if isinstance(app, ConsumptionApp):
        wf = await arm_request(app.resource_path, query_params=_logic_params())
        props = wf.get("properties", {})
        return {
            "workflows": [
                {
                    "name": logic_app_name,
                    "state": props.get("state"),
                    "createdTime": props.get("createdTime"),
                    "changedTime": props.get("changedTime"),
                }
            ]
        }

    access = await standard_access_for(app)
    data = await workflow_mgmt_request(
        access.hostname, _runtime_path("/workflows"), access.admin_key
    )
    # The runtime answers with a bare array; tolerate the ARM list shape too.
    items = data.get("value", []) if isinstance(data, dict) else data or []
    return {
        "workflows": [
            {
                "name": wf.get("name"),
                "state": "Disabled" if wf.get("isDisabled") else "Enabled",
                "kind": wf.get("kind"),
            }
            for wf in items
        ]
    }


async def get_workflow_definition(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    workflow_name: str | None = None,
) -> dict:
    """Return ``{"definition": ..., "parameters"?: ...}`` for a workflow."""
    app = await resolve_logic_app(subscription_id, resource_group_name, logic_app_name)

    if isinstance(app, ConsumptionApp):
        wf = await arm_request(app.resource_path, query_params=_logic_params())
        props = wf.get("properties", {})
        return {"definition": props.get("definition"), "parameters": props.get("parameters")}

    name = app.require_workflow(workflow_name)
    access = await standard_access_for(app)
    content = await vfs_request(access.hostname, _vfs_workflow_path(name), access.admin_key)
    content = content or {}
    return {"definition": content.get("definition"), "kind": content.get("kind")}


async def get_workflow_triggers(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    workflow_name: str | None = None,
) -> dict:
    """Return ``{"triggers": [...]}`` with last/next execution times where known."""
    app = await resolve_logic_app(subscription_id, resource_group_name, logic_app_name)

    if isinstance(app, ConsumptionApp):
        triggers = await arm_request_all_pages(
            f"{app.resource_path}/triggers", _logic_params()
        )
        return {
            "triggers": [
                {
                    "name": t["name"],
                    "type": t.get("type"),
                    "state": t.get("properties", {}).get("state"),
                    "lastExecutionTime": t.get("properties", {}).get("lastExecutionTime"),
                    "nextExecutionTime": t.get("properties", {}).get("nextExecutionTime"),
                }
                for t in triggers
            ]
        }

    name = app.require_workflow(workflow_name)
    access = await standard_access_for(app)
    wf = await workflow_mgmt_request(
        access.hostname, _runtime_path(f"/workflows/{name}"), access.admin_key
    )
    wf = wf or {}
    state = "Disabled" if wf.get("isDisabled") else "Enabled"
    return {
        "triggers": [
            {"name": trigger_name, "type": trigger.get("type"), "state": state}
            for trigger_name, trigger in (wf.get("triggers") or {}).items()
        ]
    }


async def list_workflow_versions(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    top: int | None = None,
) -> dict:
    """Return ``{"versions": [...]}``. Consumption only."""
    app = await resolve_logic_app(subscription_id, resource_group_name, logic_app_name)
    if not isinstance(app, ConsumptionApp):
        raise UnsupportedOperationError(_VERSIONS_UNSUPPORTED)

    params = _logic_params()
    if top:
        params["$top"] = str(top)
    versions = await arm_request_all_pages(f"{app.resource_path}/versions", params)
    return {
        "versions": [
            {
                "version": v["name"],
                "createdTime": v.get("properties", {}).get("createdTime"),
                "changedTime": v.get("properties", {}).get("changedTime"),
                "state": v.get("properties", {}).get("state"),
            }
            for v in versions
        ]
    }


async def get_workflow_version(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    version_id: str,
) -> dict:
    """Return one historical version with its definition. Consumption only."""
    app = await resolve_logic_app(subscription_id, resource_group_name, logic_app_name)
    if not isinstance(app, ConsumptionApp):
        raise UnsupportedOperationError(_VERSIONS_UNSUPPORTED)

    v = await arm_request(
        f"{app.resource_path}/versions/{version_id}", query_params=_logic_params()
    )
    props = v.get("properties", {})
    return {
        "version": v.get("name"),
        "createdTime": props.get("createdTime"),
        "changedTime": props.get("changedTime"),
        "state": props.get("state"),
        "definition": props.get("definition"),
        "parameters": props.get("parameters"),
    }


async def get_workflow_swagger(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    workflow_name: str | None = None,
) -> dict:
    """Return ``{"swagger": {...}}`` describing the workflow's callable triggers."""
    app = await resolve_logic_app(subscription_id, resource_group_name, logic_app_name)

    if isinstance(app, ConsumptionApp):
        swagger = await arm_request(
            f"{app.resource_path}/listSwagger", method="POST", query_params=_logic_params()
        )
    else:
        name = app.require_workflow(workflow_name)
        access = await standard_access_for(app)
        swagger = await workflow_mgmt_request(
            access.hostname,
            _runtime_path(f"/workflows/{name}/listSwagger"),
            access.admin_key,
        )
        swagger = swagger or {}

    keys = ("swagger", "info", "host", "basePath", "schemes", "paths", "definitions")
    return {"swagger": {k: swagger.get(k) for k in keys if k in swagger}}


# ---------------------------------------------------------------------------
# Write operations
# ---------------------------------------------------------------------------


async def _set_state(
    app: ConsumptionApp | StandardApp, workflow_name: str | None, state: str
) -> dict:
    if isinstance(app, ConsumptionApp):
        verb = "enable" if state == "Enabled" else "disable"
        await arm_request_void(f"{app.resource_path}/{verb}", query_params=_logic_params())
        logger.info("Consumption workflow %s is now %s", app.name, state)
        return {
            "success": True,
            "name": app.name,
            "state": state,
            "message": f"Consumption workflow '{app.name}' has been {state.lower()}.",
        }

    name = app.require_workflow(workflow_name)
    await arm_request_void(
        f"{app.resource_path}/workflows/{name}",
        method="PATCH",
        query_params={"api-version": SITE_WORKFLOWS_API_VERSION},
        body={"properties": {"state": state}},
    )
    logger.info("Standard workflow %s/%s is now %s", app.name, name, state)
    return {
        "success": True,
        "name": name,
        "state": state,
        "message": f"Standard workflow '{name}' in '{app.name}' has been {state.lower()}.",
    }


async def enable_workflow(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    workflow_name: str | None = None,
) -> dict:
    """Set a workflow's state to ``Enabled``."""
    app = await resolve_logic_app(subscription_id, resource_group_name, logic_app_name)
    return await _set_state(app, workflow_name, "Enabled")


async def disable_workflow(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    workflow_name: str | None = None,
) -> dict:
    """Set a workflow's state to ``Disabled``."""
    app = await resolve_logic_app(subscription_id, resource_group_name, logic_app_name)
    return await _set_state(app, workflow_name, "Disabled")


def _check_definition(definition: Any) -> dict[str, Any]:
    if not isinstance(definition, dict) or not definition:
        raise InvalidParameterError("definition must be a non-empty JSON object")
    return definition


async def _standard_exists(app: StandardApp, workflow_name: str) -> bool:
    access = await standard_access_for(app)
    try:
        await vfs_request(access.hostname, _vfs_workflow_path(workflow_name), access.admin_key)
    except ResourceNotFoundError:
        return False
    return True


async def create_workflow(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    definition: dict[str, Any],
    location: str | None = None,
    workflow_name: str | None = None,
    kind: WorkflowKind = "Stateful",
) -> dict:
    """Create a new workflow.

    For Consumption this creates the ``Microsoft.Logic/workflows`` resource
    named *logic_app_name*, so the app must not be resolvable yet and
    *location* is required.  For Standard it writes
    ``{workflow_name}/workflow.json`` into the existing app.
    """
    definition = _check_definition(definition)

    try:
        app = await resolve_logic_app(subscription_id, resource_group_name, logic_app_name)
    except ResourceNotFoundError:
        app = None

    if app is None:
        if not location:
            raise InvalidParameterError("location is required to create a Consumption workflow")
        new_app = ConsumptionApp(subscription_id, resource_group_name, logic_app_name)
        created = await arm_request(
            new_app.resource_path,
            method="PUT",
            query_params=_logic_params(),
            body={"location": location, "properties": {"definition": definition}},
        )
        logger.info("Created Consumption workflow %s in %s", logic_app_name, location)
        return {
            "success": True,
            "name": logic_app_name,
            "id": created.get("id"),
            "location": created.get("location", location),
            "message": f"Consumption workflow '{logic_app_name}' has been created.",
        }

    if isinstance(app, ConsumptionApp):
        raise ConflictError(f"Consumption workflow '{logic_app_name}' already exists")

    name = app.require_workflow(workflow_name)
    if await _standard_exists(app, name):
        raise ConflictError(f"Workflow '{name}' already exists in '{logic_app_name}'")

    access = await standard_access_for(app)
    await vfs_request(
        access.hostname,
        _vfs_workflow_path(name),
        access.admin_key,
        method="PUT",
        body={"definition": definition, "kind": kind},
    )
    logger.info("Created Standard workflow %s/%s (%s)", logic_app_name, name, kind)
    return {
        "success": True,
        "name": name,
        "kind": kind,
        "message": f"Standard workflow '{name}' has been created in '{logic_app_name}'.",
    }


async def update_workflow(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    definition: dict[str, Any],
    workflow_name: str | None = None,
    kind: WorkflowKind | None = None,
) -> dict:
    """Replace a workflow's definition.

    Consumption keeps the existing location, parameters and state.  Standard
    keeps the existing kind unless *kind* is given.
    """
    definition = _check_definition(definition)
    app = await resolve_logic_app(subscription_id, resource_group_name, logic_app_name)

    if isinstance(app, ConsumptionApp):
        current = await arm_request(app.resource_path, query_params=_logic_params())
        props = current.get("properties", {})
        body: dict[str, Any] = {
            "location": current.get("location"),
            "properties": {"definition": definition, "state": props.get("state")},
        }
        if props.get("parameters") is not None:
            body["properties"]["parameters"] = props["parameters"]
        if current.get("tags"):
            body["tags"] = current["tags"]
        await arm_request(
            app.resource_path, method="PUT", query_params=_logic_params(), body=body
        )
        logger.info("Updated Consumption workflow %s", logic_app_name)
        return {
            "success": True,
            "name": logic_app_name,
            "message": f"Consumption workflow '{logic_app_name}' has been updated.",
        }

    name = app.require_workflow(workflow_name)
    access = await standard_access_for(app)
    existing = await vfs_request(access.hostname, _vfs_workflow_path(name), access.admin_key)
    effective_kind = kind or (existing or {}).get("kind") or "Stateful"
    await vfs_request(
        access.hostname,
        _vfs_workflow_path(name),
        access.admin_key,
        method="PUT",
        body={"definition": definition, "kind": effective_kind},
    )
    logger.info("Updated Standard workflow %s/%s", logic_app_name, name)
    return {
        "success": True,
        "name": name,
        "kind": effective_kind,
        "message": f"Standard workflow '{name}' in '{logic_app_name}' has been updated.",
    }


async def delete_workflow(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    workflow_name: str | None = None,
) -> dict:
    """Delete a workflow; a Consumption app is deleted as a whole."""
    app = await resolve_logic_app(subscription_id, resource_group_name, logic_app_name)

    if isinstance(app, ConsumptionApp):
        await arm_request_void(
            app.resource_path, method="DELETE", query_params=_logic_params()
        )
        clear_cache(subscription_id, resource_group_name, logic_app_name)
        logger.info("Deleted Consumption workflow %s", logic_app_name)
        return {
            "success": True,
            "name": logic_app_name,
            "message": f"Consumption workflow '{logic_app_name}' has been deleted.",
        }

    name = app.require_workflow(workflow_name)
    access = await standard_access_for(app)
    await vfs_request(
        access.hostname,
        f"/admin/vfs/site/wwwroot/{name}/?recursive=true",
        access.admin_key,
        method="DELETE",
    )
    logger.info("Deleted Standard workflow %s/%s", logic_app_name, name)
    return {
        "success": True,
        "name": name,
        "message": f"Standard workflow '{name}' has been deleted from '{logic_app_name}'.",
    }
