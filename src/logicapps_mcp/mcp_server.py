"""MCP server for Azure Logic Apps.

Exposes Consumption and Standard Logic Apps – workflows, run history,
triggers, connections and bulk operations – as MCP tools so that AI
agents can inspect and operate them directly.

Run with:
    logicapps-mcp mcp            # stdio transport (default)
    logicapps-mcp mcp --http     # Streamable HTTP transport on port 8080

Or add to your MCP client config (e.g. Claude Desktop):
    {
      "mcpServers": {
        "logicapps": {
          "command": "logicapps-mcp",
          "args": ["mcp"]
        }
      }
    }
"""

import json
import logging
import os
from collections.abc import Awaitable
from typing import Annotated, Any, Literal

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from mcp.server.transport_security import TransportSecuritySettings
from pydantic import Field

from logicapps_mcp import azure_api
from logicapps_mcp.errors import LogicAppsError, format_error

logger = logging.getLogger(__name__)

# Behind a reverse proxy, set FASTMCP_ALLOWED_HOSTS to a comma-separated list
# of allowed Host header values.  If unset, DNS rebinding protection is off.
_allowed_hosts_env = os.environ.get("FASTMCP_ALLOWED_HOSTS", "")
if _allowed_hosts_env:
    _transport_security = TransportSecuritySettings(
        enable_dns_rebinding_protection=True,
        allowed_hosts=[h.strip() for h in _allowed_hosts_env.split(",")],
    )
else:
    _transport_security = TransportSecuritySettings(
        enable_dns_rebinding_protection=False,
    )

mcp = FastMCP(
    "logicapps-mcp",
    instructions=(
        "Azure Logic Apps tools for both Consumption and Standard SKUs. "
        "Start with list_subscriptions and list_logic_apps, then use the "
        "workflow, run and trigger tools to inspect or operate a Logic App. "
        "Standard Logic Apps host several workflows, so pass workflow_name for "
        "them. All tools require valid Azure credentials via "
        "DefaultAzureCredential (e.g. `az login`)."
    ),
    transport_security=_transport_security,
)

SubscriptionId = Annotated[str, Field(description="Azure subscription ID.")]
ResourceGroup = Annotated[str, Field(description="Resource group name.")]
LogicAppName = Annotated[str, Field(description="Logic App resource name.")]
WorkflowName = Annotated[
    str | None,
    Field(description="Workflow name (required for Standard SKU, omit for Consumption)."),
]
RunId = Annotated[str, Field(description="Workflow run ID.")]
ActionName = Annotated[str, Field(description="Action name within the workflow.")]
Concurrency = Annotated[
    int, Field(description="Maximum operations in flight at once.", ge=1, le=20)
]


async def _run(call: Awaitable[Any]) -> str:
    """Await an API helper and serialize its result.

    :class:`LogicAppsError` becomes a tool error whose text is the JSON
    error envelope, so the client can read ``error.code``.
    """
    try:
        result = await call
    except LogicAppsError as exc:
        raise _tool_error(exc) from exc
    return json.dumps(result, indent=2)


def _tool_error(exc: LogicAppsError) -> ToolError:
    logger.warning("Tool call failed: %s: %s", exc.code, exc.message)
    return ToolError(json.dumps(format_error(exc)))


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


@mcp.tool()
async def list_subscriptions() -> str:
    """List Azure subscriptions accessible to the current credential.

    Returns ``{"subscriptions": [{"subscriptionId", "displayName", "state"}]}``
    sorted by display name.  Use this first to find where Logic Apps live.
    """
    return await _run(azure_api.list_subscriptions())


@mcp.tool()
async def list_logic_apps(
    subscription_id: SubscriptionId,
    resource_group_name: Annotated[
        str | None, Field(description="Optional resource group filter.")
    ] = None,
    sku: Annotated[
        Literal["consumption", "standard", "all"],
        Field(description="Filter by SKU type."),
    ] = "all",
) -> str:
    """List Logic Apps (Consumption and Standard) in a subscription or resource group."""
    return await _run(azure_api.list_logic_apps(subscription_id, resource_group_name, sku))


# ---------------------------------------------------------------------------
# Workflows
# ---------------------------------------------------------------------------


@mcp.tool()
async def list_workflows(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
) -> str:
    """List the workflows of a Logic App.

    A Consumption Logic App is a single workflow; a Standard one can host many.
    """
    return await _run(
        azure_api.list_workflows(subscription_id, resource_group_name, logic_app_name)
    )


@mcp.tool()
async def get_workflow_definition(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    workflow_name: WorkflowName = None,
) -> str:
    """Get the full workflow definition (JSON) of a workflow."""
    return await _run(
        azure_api.get_workflow_definition(
            subscription_id, resource_group_name, logic_app_name, workflow_name
        )
    )


@mcp.tool()
async def get_workflow_triggers(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    workflow_name: WorkflowName = None,
) -> str:
    """Get the triggers of a workflow including last/next execution times."""
    return await _run(
        azure_api.get_workflow_triggers(
            subscription_id, resource_group_name, logic_app_name, workflow_name
        )
    )


@mcp.tool()
async def list_workflow_versions(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    top: Annotated[int | None, Field(description="Number of versions to return.")] = None,
) -> str:
    """List saved versions of a Consumption workflow. Consumption SKU only."""
    return await _run(
        azure_api.list_workflow_versions(subscription_id, resource_group_name, logic_app_name, top)
    )


@mcp.tool()
async def get_workflow_version(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    version_id: Annotated[str, Field(description="Version ID from list_workflow_versions.")],
) -> str:
    """Get the definition of a historical workflow version. Consumption SKU only."""
    return await _run(
        azure_api.get_workflow_version(
            subscription_id, resource_group_name, logic_app_name, version_id
        )
    )


@mcp.tool()
async def get_workflow_swagger(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    workflow_name: WorkflowName = None,
) -> str:
    """Get the OpenAPI (swagger) description of a workflow's callable triggers."""
    return await _run(
        azure_api.get_workflow_swagger(
            subscription_id, resource_group_name, logic_app_name, workflow_name
        )
    )


@mcp.tool()
async def enable_workflow(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    workflow_name: WorkflowName = None,
) -> str:
    """Enable a workflow so its triggers fire again."""
    return await _run(
        azure_api.enable_workflow(
            subscription_id, resource_group_name, logic_app_name, workflow_name
        )
    )


@mcp.tool()
async def disable_workflow(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    workflow_name: WorkflowName = None,
) -> str:
    """Disable a workflow. Running instances finish; no new runs start."""
    return await _run(
        azure_api.disable_workflow(
            subscription_id, resource_group_name, logic_app_name, workflow_name
        )
    )


@mcp.tool()
async def create_workflow(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    definition: Annotated[dict[str, Any], Field(description="Workflow definition JSON.")],
    location: Annotated[
        str | None, Field(description="Azure region (required for a new Consumption app).")
    ] = None,
    workflow_name: WorkflowName = None,
    kind: Annotated[
        Literal["Stateful", "Stateless"], Field(description="Standard workflow kind.")
    ] = "Stateful",
) -> str:
    """Create a workflow.

    For Consumption a new Logic App resource named *logic_app_name* is
    created.  For Standard the workflow is added to the existing app.
    """
    return await _run(
        azure_api.create_workflow(
            subscription_id,
            resource_group_name,
            logic_app_name,
            definition,
            location,
            workflow_name,
            kind,
        )
    )


@mcp.tool()
async def update_workflow(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    definition: Annotated[dict[str, Any], Field(description="New workflow definition JSON.")],
    workflow_name: WorkflowName = None,
    kind: Annotated[
        Literal["Stateful", "Stateless"] | None,
        Field(description="Standard workflow kind; keeps the current kind if omitted."),
    ] = None,
) -> str:
    """Replace the definition of an existing workflow."""
    return await _run(
        azure_api.update_workflow(
            subscription_id, resource_group_name, logic_app_name, definition, workflow_name, kind
        )
    )


@mcp.tool()
async def delete_workflow(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    workflow_name: WorkflowName = None,
) -> str:
    """Delete a workflow. For Consumption the whole Logic App is deleted."""
    return await _run(
        azure_api.delete_workflow(
            subscription_id, resource_group_name, logic_app_name, workflow_name
        )
    )


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------


@mcp.tool()
async def list_run_history(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    workflow_name: WorkflowName = None,
    top: Annotated[int, Field(description="Number of runs to return (max 100).")] = 25,
    filter: Annotated[
        str | None, Field(description="OData filter, e.g. \"status eq 'Failed'\".")
    ] = None,
) -> str:
    """Get the run history of a workflow, newest first."""
    return await _run(
        azure_api.list_run_history(
            subscription_id, resource_group_name, logic_app_name, workflow_name, top, filter
        )
    )


@mcp.tool()
async def get_run_details(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    run_id: RunId,
    workflow_name: WorkflowName = None,
) -> str:
    """Get status, timing, trigger and error of a single run."""
    return await _run(
        azure_api.get_run_details(
            subscription_id, resource_group_name, logic_app_name, run_id, workflow_name
        )
    )


@mcp.tool()
async def get_run_actions(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    run_id: RunId,
    workflow_name: WorkflowName = None,
    action_name: Annotated[
        str | None, Field(description="Only return this action.")
    ] = None,
) -> str:
    """Get the action execution details of a run."""
    return await _run(
        azure_api.get_run_actions(
            subscription_id,
            resource_group_name,
            logic_app_name,
            run_id,
            workflow_name,
            action_name,
        )
    )


@mcp.tool()
async def get_action_io(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    run_id: RunId,
    action_name: ActionName,
    workflow_name: WorkflowName = None,
    type: Annotated[
        Literal["inputs", "outputs", "both"], Field(description="Which side to fetch.")
    ] = "both",
) -> str:
    """Get the actual inputs and/or outputs content of a run action."""
    return await _run(
        azure_api.get_action_io(
            subscription_id,
            resource_group_name,
            logic_app_name,
            run_id,
            action_name,
            workflow_name,
            type,
        )
    )


@mcp.tool()
async def search_runs(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    workflow_name: WorkflowName = None,
    status: Annotated[
        Literal["Succeeded", "Failed", "Cancelled", "Running"] | None,
        Field(description="Run status to match."),
    ] = None,
    start_time: Annotated[
        str | None, Field(description="Earliest start time (ISO 8601).")
    ] = None,
    end_time: Annotated[str | None, Field(description="Latest start time (ISO 8601).")] = None,
    client_tracking_id: Annotated[
        str | None, Field(description="Client tracking ID to match.")
    ] = None,
    top: Annotated[int, Field(description="Number of runs to scan (max 100).")] = 25,
) -> str:
    """Search runs by status, time window or client tracking ID without writing OData."""
    return await _run(
        azure_api.search_runs(
            subscription_id,
            resource_group_name,
            logic_app_name,
            workflow_name,
            status,
            start_time,
            end_time,
            client_tracking_id,
            top,
        )
    )


@mcp.tool()
async def cancel_run(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    run_id: RunId,
    workflow_name: WorkflowName = None,
) -> str:
    """Cancel a Running or Waiting run."""
    return await _run(
        azure_api.cancel_run(
            subscription_id, resource_group_name, logic_app_name, run_id, workflow_name
        )
    )


# ---------------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------------


@mcp.tool()
async def get_trigger_history(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    trigger_name: Annotated[str, Field(description="Trigger name.")],
    workflow_name: WorkflowName = None,
    top: Annotated[int, Field(description="Number of entries to return (max 100).")] = 25,
    filter: Annotated[str | None, Field(description="OData filter.")] = None,
) -> str:
    """Get when a trigger fired, succeeded, failed or was skipped.

    Useful for finding out why a workflow did not run when expected.
    """
    return await _run(
        azure_api.get_trigger_history(
            subscription_id,
            resource_group_name,
            logic_app_name,
            trigger_name,
            workflow_name,
            top,
            filter,
        )
    )


@mcp.tool()
async def get_trigger_callback_url(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    trigger_name: Annotated[str, Field(description="Request trigger name.")],
    workflow_name: WorkflowName = None,
) -> str:
    """Get the signed callback URL of an HTTP request trigger."""
    return await _run(
        azure_api.get_trigger_callback_url(
            subscription_id, resource_group_name, logic_app_name, trigger_name, workflow_name
        )
    )


@mcp.tool()
async def run_trigger(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    trigger_name: Annotated[str, Field(description="Trigger name.")],
    workflow_name: WorkflowName = None,
) -> str:
    """Fire a trigger manually, starting a new run."""
    return await _run(
        azure_api.run_trigger(
            subscription_id, resource_group_name, logic_app_name, trigger_name, workflow_name
        )
    )


# ---------------------------------------------------------------------------
# Run diagnostics
# ---------------------------------------------------------------------------


@mcp.tool()
async def get_action_repetitions(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    run_id: RunId,
    action_name: Annotated[str, Field(description="The loop action (ForEach / Until).")],
    workflow_name: WorkflowName = None,
    repetition_name: Annotated[
        str | None, Field(description="A single repetition, e.g. '000001'.")
    ] = None,
) -> str:
    """Get per-iteration details of a loop action."""
    return await _run(
        azure_api.get_action_repetitions(
            subscription_id,
            resource_group_name,
            logic_app_name,
            run_id,
            action_name,
            workflow_name,
            repetition_name,
        )
    )


@mcp.tool()
async def get_scope_repetitions(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    run_id: RunId,
    action_name: Annotated[str, Field(description="The Scope, Switch or Condition action.")],
    workflow_name: WorkflowName = None,
) -> str:
    """Get execution details of a scope-like action."""
    return await _run(
        azure_api.get_scope_repetitions(
            subscription_id, resource_group_name, logic_app_name, run_id, action_name, workflow_name
        )
    )


@mcp.tool()
async def get_action_request_history(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    run_id: RunId,
    action_name: ActionName,
    workflow_name: WorkflowName = None,
    request_history_name: Annotated[
        str | None, Field(description="A single request history entry.")
    ] = None,
) -> str:
    """Get the HTTP requests and responses a connector action exchanged."""
    return await _run(
        azure_api.get_action_request_history(
            subscription_id,
            resource_group_name,
            logic_app_name,
            run_id,
            action_name,
            workflow_name,
            request_history_name,
        )
    )


@mcp.tool()
async def get_expression_traces(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    run_id: RunId,
    action_name: ActionName,
    workflow_name: WorkflowName = None,
) -> str:
    """Get how each expression in an action's inputs evaluated at run time."""
    return await _run(
        azure_api.get_expression_traces(
            subscription_id, resource_group_name, logic_app_name, run_id, action_name, workflow_name
        )
    )


# ---------------------------------------------------------------------------
# Connections
# ---------------------------------------------------------------------------


@mcp.tool()
async def get_connections(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
) -> str:
    """List API connections in a resource group."""
    return await _run(azure_api.get_connections(subscription_id, resource_group_name))


@mcp.tool()
async def get_connection_details(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    connection_name: Annotated[str, Field(description="API connection name.")],
) -> str:
    """Get an API connection's status, parameters and test links."""
    return await _run(
        azure_api.get_connection_details(subscription_id, resource_group_name, connection_name)
    )


@mcp.tool()
async def test_connection(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    connection_name: Annotated[str, Field(description="API connection name.")],
) -> str:
    """Check whether an API connection is authorized and working."""
    return await _run(
        azure_api.test_connection(subscription_id, resource_group_name, connection_name)
    )


@mcp.tool()
async def create_connection(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    connection_name: Annotated[
        str, Field(description="New connection name (letters, digits, '-', '_'; max 80).")
    ],
    connector_name: Annotated[str, Field(description="Managed connector, e.g. 'office365'.")],
    location: Annotated[str, Field(description="Azure region of the connection.")],
    display_name: Annotated[str | None, Field(description="Display name.")] = None,
    parameter_values: Annotated[
        dict[str, Any] | None, Field(description="Connector parameter values.")
    ] = None,
) -> str:
    """Create an API connection to a managed connector.

    OAuth connectors need to be authorized afterwards in the Azure Portal;
    the result contains the link.
    """
    return await _run(
        azure_api.create_connection(
            subscription_id,
            resource_group_name,
            connection_name,
            connector_name,
            location,
            display_name,
            parameter_values,
        )
    )


@mcp.tool()
async def get_connector_swagger(
    subscription_id: SubscriptionId,
    location: Annotated[str, Field(description="Azure region.")],
    connector_name: Annotated[str, Field(description="Managed connector, e.g. 'office365'.")],
) -> str:
    """Get a managed connector's metadata and available operations."""
    return await _run(azure_api.get_connector_swagger(subscription_id, location, connector_name))


@mcp.tool()
async def invoke_connector_operation(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    connection_name: Annotated[str, Field(description="Authorized API connection name.")],
    operation_id: Annotated[
        str, Field(description="Connector operation ID, e.g. 'GetTables' or 'ListFolder'.")
    ],
    parameters: Annotated[
        dict[str, Any] | None,
        Field(description="Operation parameters keyed by name (path, query or body)."),
    ] = None,
) -> str:
    """Run a connector operation through an API connection.

    Useful to list tables, folders, lists or channels when filling in a
    workflow action.  Use get_connector_swagger to see the operation IDs.
    """
    return await _run(
        azure_api.invoke_connector_operation(
            subscription_id, resource_group_name, connection_name, operation_id, parameters
        )
    )


# ---------------------------------------------------------------------------
# Host
# ---------------------------------------------------------------------------


@mcp.tool()
async def get_host_status(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
) -> str:
    """Get runtime version, extension bundle and diagnostics. Standard SKU only."""
    return await _run(
        azure_api.get_host_status(subscription_id, resource_group_name, logic_app_name)
    )


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------


@mcp.tool()
async def cancel_runs(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    run_ids: Annotated[list[str], Field(description="Run IDs to cancel.")],
    workflow_name: WorkflowName = None,
    concurrency: Concurrency = 5,
) -> str:
    """Cancel several runs at once.

    Returns ``{"total", "succeeded", "failed", "results": [{"id", "success",
    "error"?}]}``; one failing run does not stop the others.
    """
    return await _run(
        azure_api.cancel_runs(
            subscription_id,
            resource_group_name,
            logic_app_name,
            run_ids,
            workflow_name,
            concurrency,
        )
    )


@mcp.tool()
async def batch_enable_workflows(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    workflow_names: Annotated[list[str], Field(description="Workflows to enable.")],
    concurrency: Concurrency = 5,
) -> str:
    """Enable several workflows of a Logic App at once.

    For a Consumption Logic App the app itself is enabled once.
    """
    return await _run(
        azure_api.batch_enable_workflows(
            subscription_id, resource_group_name, logic_app_name, workflow_names, concurrency
        )
    )


@mcp.tool()
async def batch_disable_workflows(
    subscription_id: SubscriptionId,
    resource_group_name: ResourceGroup,
    logic_app_name: LogicAppName,
    workflow_names: Annotated[list[str], Field(description="Workflows to disable.")],
    concurrency: Concurrency = 5,
) -> str:
    """Disable several workflows of a Logic App at once.

    For a Consumption Logic App the app itself is disabled once.
    """
    return await _run(
        azure_api.batch_disable_workflows(
            subscription_id, resource_group_name, logic_app_name, workflow_names, concurrency
        )
    )


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------


@mcp.tool()
async def clear_cache(
    subscription_id: Annotated[str | None, Field(description="Limit to a subscription.")] = None,
    resource_group_name: Annotated[
        str | None, Field(description="Limit to a resource group.")
    ] = None,
    logic_app_name: Annotated[str | None, Field(description="Limit to one Logic App.")] = None,
) -> str:
    """Forget cached backend kinds and Standard runtime keys.

    Use after a Logic App was recreated, moved or had its keys rotated.
    """
    try:
        cleared = azure_api.clear_cache(subscription_id, resource_group_name, logic_app_name)
    except LogicAppsError as exc:
        raise _tool_error(exc) from exc
    return json.dumps({"cleared": cleared}, indent=2)
