"""API connections (``Microsoft.Web/connections``) and managed connectors."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from datetime import UTC, datetime
from typing import Any
from urllib.parse import quote

from logicapps_mcp.azure_api._http import arm_request, arm_request_void
from logicapps_mcp.azure_api._pagination import arm_request_all_pages
from logicapps_mcp.azure_api.backends import resource_group_path
from logicapps_mcp.errors import InvalidParameterError, LogicAppsError

logger = logging.getLogger(__name__)

CONNECTIONS_API_VERSION = "2018-07-01-preview"
CONNECTION_NAME_MAX_LENGTH = 80

_CONNECTION_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")


def _params(**extra: str) -> dict[str, str]:
    return {"api-version": CONNECTIONS_API_VERSION, **extra}


def connection_path(subscription_id: str, resource_group_name: str, connection_name: str) -> str:
    return (
        f"{resource_group_path(subscription_id, resource_group_name)}"
        f"/providers/Microsoft.Web/connections/{connection_name}"
    )


def managed_api_path(subscription_id: str, location: str, connector_name: str) -> str:
    return (
        f"/subscriptions/{subscription_id}/providers/Microsoft.Web/locations/{location}"
        f"/managedApis/{connector_name}"
    )


def portal_url(subscription_id: str, resource_group_name: str, connection_name: str) -> str:
    return (
        "https://portal.azure.com/#resource"
        f"{connection_path(subscription_id, resource_group_name, connection_name)}"
    )


def _first_status(props: dict) -> str:
    statuses = props.get("statuses") or []
    return statuses[0].get("status", "Unknown") if statuses else "Unknown"


async def get_connections(subscription_id: str, resource_group_name: str) -> dict:
    """Return ``{"connections": [...]}`` for a resource group."""
    conns = await arm_request_all_pages(
        f"{resource_group_path(subscription_id, resource_group_name)}"
        "/providers/Microsoft.Web/connections",
        _params(),
    )
    return {
        "connections": [
            {
                "id": c["id"],
                "name": c["name"],
                "apiName": (c.get("properties", {}).get("api") or {}).get("name", "unknown"),
                "displayName": c.get("properties", {}).get("displayName"),
                "status": _first_status(c.get("properties", {})),
                "createdTime": c.get("properties", {}).get("createdTime"),
            }
            for c in conns
        ]
    }


async def get_connection_details(
    subscription_id: str, resource_group_name: str, connection_name: str
) -> dict:
    """Return a connection's API, statuses, parameters and test links."""
    conn = await arm_request(
        connection_path(subscription_id, resource_group_name, connection_name),
        query_params=_params(),
    )
    props = conn.get("properties", {})
    return {
        "id": conn.get("id"),
        "name": conn.get("name"),
        "location": conn.get("location"),
        "api": props.get("api"),
        "displayName": props.get("displayName"),
        "status": _first_status(props),
        "statuses": props.get("statuses") or [],
        "createdTime": props.get("createdTime"),
        "changedTime": props.get("changedTime"),
        "parameterValues": props.get("parameterValues"),
        "customParameterValues": props.get("customParameterValues"),
        "testLinks": props.get("testLinks"),
    }


async def test_connection(
    subscription_id: str, resource_group_name: str, connection_name: str
) -> dict:
    """Check whether a connection is authorized and working.

    A status error is reported as-is and a ``Connected`` status is trusted.
    Otherwise the connection's first test link is invoked.  Failures of the
    test call are part of the result, not raised.
    """
    details = await get_connection_details(subscription_id, resource_group_name, connection_name)
    result: dict[str, Any] = {
        "connectionName": connection_name,
        "isValid": False,
        "status": details["status"],
        "testedAt": datetime.now(UTC).isoformat(),
    }

    status_error = next((s["error"] for s in details["statuses"] if s.get("error")), None)
    if status_error:
        result["error"] = status_error
        return result

    if details["status"] == "Connected":
        result["isValid"] = True
        return result

    test_links = details.get("testLinks") or []
    if test_links:
        link = test_links[0]
        try:
            await arm_request_void(link["requestUri"], method=link.get("method", "GET"))
        except LogicAppsError as exc:
            logger.debug("Connection test for %s failed: %s", connection_name, exc)
            result["error"] = {"code": exc.code, "message": exc.message}
        else:
            result["isValid"] = True
            result["status"] = "Connected"
        return result

    result["error"] = {
        "code": "NotConnected",
        "message": f"Connection status is {details['status']}",
    }
    return result


def validate_connection_name(connection_name: str) -> str:
    """Return *connection_name* if it is a valid Azure resource name."""
    if not connection_name or not connection_name.strip():
        raise InvalidParameterError("connection_name is required and cannot be empty")
    if not _CONNECTION_NAME_RE.match(connection_name):
        raise InvalidParameterError(
            "connection_name must start with a letter or number and can only contain "
            "letters, numbers, hyphens, and underscores"
        )
    if len(connection_name) > CONNECTION_NAME_MAX_LENGTH:
        raise InvalidParameterError(
            f"connection_name must be {CONNECTION_NAME_MAX_LENGTH} characters or less"
        )
    return connection_name


async def create_connection(
    subscription_id: str,
    resource_group_name: str,
    connection_name: str,
    connector_name: str,
    location: str,
    display_name: str | None = None,
    parameter_values: dict[str, Any] | None = None,
) -> dict:
    """Create an API connection to a managed connector.

    OAuth connectors come back unauthenticated; the result then carries a
    portal link where the user can authorize the connection.
    """
    for field, value in (
        ("subscription_id", subscription_id),
        ("resource_group_name", resource_group_name),
        ("connector_name", connector_name),
        ("location", location),
    ):
        if not value or not value.strip():
            raise InvalidParameterError(f"{field} is required and cannot be empty")
    validate_connection_name(connection_name)

    properties: dict[str, Any] = {
        "displayName": display_name or connection_name,
        "api": {"id": managed_api_path(subscription_id, location, connector_name)},
    }
    if parameter_values:
        properties["parameterValues"] = parameter_values

    created = await arm_request(
        connection_path(subscription_id, resource_group_name, connection_name),
        method="PUT",
        query_params=_params(),
        body={"location": location, "properties": properties},
    )
    status = _first_status(created.get("properties", {}))
    url = portal_url(subscription_id, resource_group_name, connection_name)
    logger.info("Created connection %s (%s): %s", connection_name, connector_name, status)

    if status == "Connected":
        message = f"Connection '{connection_name}' created successfully and is ready to use."
    else:
        message = (
            f"Connection '{connection_name}' created but needs authorization. "
            f"Open the Azure Portal to authorize: {url}"
        )
    return {
        "connectionName": created.get("name", connection_name),
        "location": created.get("location", location),
        "status": status,
        "portalUrl": url,
        "message": message,
    }


async def get_connector_swagger(subscription_id: str, location: str, connector_name: str) -> dict:
    """Return a managed connector's metadata and its operations (swagger)."""
    path = managed_api_path(subscription_id, location, connector_name)
    swagger, metadata = await asyncio.gather(
        arm_request(path, query_params=_params(export="true")),
        arm_request(path, query_params=_params()),
    )

    props = metadata.get("properties", {})
    general = props.get("generalInformation") or {}
    info = swagger.get("info") or {}
    result: dict[str, Any] = {
        "connectorName": metadata.get("name", connector_name),
        "displayName": general.get("displayName") or info.get("title") or metadata.get("name"),
        "description": general.get("description") or info.get("description") or "",
        "iconUri": general.get("iconUrl"),
        "capabilities": props.get("capabilities"),
        "connectionParameters": props.get("connectionParameters"),
    }
    if swagger.get("paths"):
        result["swagger"] = {
            "basePath": swagger.get("basePath"),
            "paths": swagger["paths"],
            "definitions": swagger.get("definitions"),
        }
    return result


def _find_operation(swagger: dict, operation_id: str) -> tuple[str, str, dict] | None:
    """Return ``(path, METHOD, operation)`` for *operation_id* in a swagger document."""
    for path, methods in (swagger.get("paths") or {}).items():
        for method, operation in methods.items():
            if isinstance(operation, dict) and operation.get("operationId") == operation_id:
                return path, method.upper(), operation
    return None


def _build_dynamic_request(
    path: str, method: str, operation: dict, parameters: dict[str, Any] | None
) -> dict[str, Any]:
    """Build the ``dynamicInvoke`` request for a swagger operation.

    The ``{connectionId}`` path prefix is dropped since the call is already
    scoped to the connection.  Parameters are placed in the path, query or
    body according to the operation's declaration.
    """
    path = path.removeprefix("/").removeprefix("{connectionId}")
    if path and not path.startswith("/"):
        path = f"/{path}"

    queries: dict[str, str] = {}
    body: dict[str, Any] = {}
    for param in operation.get("parameters") or []:
        name = param.get("name")
        if name == "connectionId" or not parameters or name not in parameters:
            continue
        value = parameters[name]
        if param.get("in") == "path":
            path = path.replace(f"{{{name}}}", quote(str(value), safe=""))
        elif param.get("in") == "query":
            queries[name] = str(value)
        elif param.get("in") == "body" and isinstance(value, dict):
            body.update(value)

    request: dict[str, Any] = {"method": method, "path": path}
    if queries:
        request["queries"] = queries
    if body:
        request["body"] = body
    return request


def _status_code(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 200


async def invoke_connector_operation(
    subscription_id: str,
    resource_group_name: str,
    connection_name: str,
    operation_id: str,
    parameters: dict[str, Any] | None = None,
) -> dict:
    """Run a connector operation through an authorized API connection.

    This is how the designer fills dropdowns and fetches dynamic schemas:
    the operation is looked up in the managed API's swagger and proxied
    through the connection's ``dynamicInvoke`` endpoint.  An unauthorized
    connection, an unknown operation or a failed call is reported in the
    result with ``success: false``.
    """
    if not operation_id or not operation_id.strip():
        raise InvalidParameterError("operation_id is required and cannot be empty")

    check = await test_connection(subscription_id, resource_group_name, connection_name)
    if not check["isValid"]:
        reason = (check.get("error") or {}).get("message")
        return {
            "operationId": operation_id,
            "success": False,
            "error": f"Connection '{connection_name}' is not authorized. "
            f"Status: {check['status']}. "
            + (f"Error: {reason} " if reason else "")
            + "Authorize it in the Azure Portal: "
            + portal_url(subscription_id, resource_group_name, connection_name),
        }

    details = await get_connection_details(subscription_id, resource_group_name, connection_name)
    api_name = (details.get("api") or {}).get("name")
    swagger = await arm_request(
        managed_api_path(subscription_id, details.get("location"), api_name),
        query_params=_params(export="true"),
    )

    found = _find_operation(swagger, operation_id)
    if found is None:
        return {
            "operationId": operation_id,
            "success": False,
            "error": f"Operation '{operation_id}' not found in connector '{api_name}'. "
            "Use get_connector_swagger to see available operations.",
        }

    request = _build_dynamic_request(*found, parameters)
    try:
        result = await arm_request(
            f"{connection_path(subscription_id, resource_group_name, connection_name)}"
            "/dynamicInvoke",
            method="POST",
            query_params=_params(),
            body={"request": request},
        )
    except LogicAppsError as exc:
        logger.debug("dynamicInvoke of %s on %s failed: %s", operation_id, connection_name, exc)
        return {"operationId": operation_id, "success": False, "error": exc.message}

    if result.get("error"):
        error = result["error"]
        return {
            "operationId": operation_id,
            "success": False,
            "error": f"{error.get('code')}: {error.get('message')}",
        }

    response = result.get("response")
    if response is None:
        return {"operationId": operation_id, "success": True, "data": result}
    if _status_code(response.get("statusCode")) >= 400:
        return {
            "operationId": operation_id,
            "success": False,
            "error": f"HTTP {response.get('statusCode')}: {json.dumps(response.get('body'))}",
        }
    return {"operationId": operation_id, "success": True, "data": response.get("body")}
