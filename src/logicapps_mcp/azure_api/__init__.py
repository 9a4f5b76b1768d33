"""Azure Logic Apps API helpers.

Every public function is a coroutine returning plain Python objects
(dicts / lists) that the MCP server serializes as-is.

This package re-exports the public names so that callers can use
``from logicapps_mcp import azure_api`` and ``azure_api.list_workflows(...)``.
"""

# -- Auth ---------------------------------------------------------------------
from logicapps_mcp.azure_api._auth import (  # noqa: F401
    check_auth,
    credential,
    reset_token_cache,
)

# -- Backends & caches -------------------------------------------------------
from logicapps_mcp.azure_api.backends import (  # noqa: F401
    BackendKind,
    BackendResolver,
    ConsumptionApp,
    LogicApp,
    StandardAccess,
    StandardApp,
    clear_cache,
    detect_backend_kind,
    get_resolver,
    get_standard_access,
    resolve_logic_app,
    set_cache_ttl,
)

# -- Batch -------------------------------------------------------------------
from logicapps_mcp.azure_api.batch import (  # noqa: F401
    BatchItemResult,
    BatchResult,
    batch_disable_workflows,
    batch_enable_workflows,
    cancel_runs,
    run_bounded,
)

# -- Connections -------------------------------------------------------------
from logicapps_mcp.azure_api.connections import (  # noqa: F401
    create_connection,
    get_connection_details,
    get_connections,
    get_connector_swagger,
    invoke_connector_operation,
    test_connection,
)

# -- Diagnostics -------------------------------------------------------------
from logicapps_mcp.azure_api.diagnostics import (  # noqa: F401
    get_action_repetitions,
    get_action_request_history,
    get_expression_traces,
    get_scope_repetitions,
)

# -- Discovery ---------------------------------------------------------------
from logicapps_mcp.azure_api.discovery import (  # noqa: F401
    list_logic_apps,
    list_subscriptions,
)

# -- Host --------------------------------------------------------------------
from logicapps_mcp.azure_api.host import get_host_status  # noqa: F401

# -- Runs --------------------------------------------------------------------
from logicapps_mcp.azure_api.runs import (  # noqa: F401
    cancel_run,
    get_action_io,
    get_run_actions,
    get_run_details,
    list_run_history,
    search_runs,
)

# -- Triggers ----------------------------------------------------------------
from logicapps_mcp.azure_api.triggers import (  # noqa: F401
    get_trigger_callback_url,
    get_trigger_history,
    run_trigger,
)

# -- Workflows ---------------------------------------------------------------
from logicapps_mcp.azure_api.workflows import (  # noqa: F401
    create_workflow,
    delete_workflow,
    disable_workflow,
    enable_workflow,
    get_workflow_definition,
    get_workflow_swagger,
    get_workflow_triggers,
    get_workflow_version,
    list_workflow_versions,
    list_workflows,
    update_workflow,
)
