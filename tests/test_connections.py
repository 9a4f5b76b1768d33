"""Tests for discovery and API connection operations."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from logicapps_mcp.azure_api import connections, discovery
from logicapps_mcp.errors import AuthorizationError, InvalidParameterError

SUB = "sub-1"
RG = "rg-1"


def _conn(statuses=None, test_links=None) -> dict:
    return {
        "id": "/conn/office365",
        "name": "office365",
        "location": "westeurope",
        "properties": {
            "api": {"name": "office365"},
            "displayName": "Office 365",
            "statuses": statuses or [],
            "testLinks": test_links,
        },
    }


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


class TestExtractResourceGroup:
    def test_found(self):
        rid = "/subscriptions/s/resourceGroups/My-RG/providers/Microsoft.Logic/workflows/a"
        assert discovery.extract_resource_group(rid) == "My-RG"

    def test_case_insensitive(self):
        assert discovery.extract_resource_group("/subscriptions/s/resourcegroups/rg/x") == "rg"

    def test_missing(self):
        assert discovery.extract_resource_group("/subscriptions/s") == ""


class TestListSubscriptions:
    @pytest.mark.anyio()
    async def test_sorted_by_display_name(self):
        subs = [
            {"subscriptionId": "2", "displayName": "beta", "state": "Enabled"},
            {"subscriptionId": "1", "displayName": "Alpha", "state": "Enabled"},
            {"subscriptionId": "3"},
        ]
        with patch.object(discovery, "arm_request_all_pages", new=AsyncMock(return_value=subs)):
            result = await discovery.list_subscriptions()

        assert [s["displayName"] for s in result["subscriptions"]] == ["3", "Alpha", "beta"]


class TestListLogicApps:
    """Tests for listing both kinds of Logic Apps."""

    WORKFLOW = {
        "id": "/subscriptions/sub-1/resourceGroups/rg-a/providers/Microsoft.Logic/workflows/c1",
        "name": "c1",
        "location": "westeurope",
        "properties": {"state": "Enabled"},
    }
    SITES = [
        {
            "id": "/subscriptions/sub-1/resourceGroups/rg-b/providers/Microsoft.Web/sites/s1",
            "name": "s1",
            "kind": "functionapp,workflowapp",
            "properties": {"state": "Running"},
        },
        {
            "id": "/subscriptions/sub-1/resourceGroups/rg-b/providers/Microsoft.Web/sites/web",
            "name": "web",
            "kind": "app",
        },
    ]

    def _pages(self):
        async def _request(path, params):
            if "Microsoft.Logic" in path:
                return [self.WORKFLOW]
            return self.SITES

        return AsyncMock(side_effect=_request)

    @pytest.mark.anyio()
    async def test_all_skips_plain_web_apps(self):
        with patch.object(discovery, "arm_request_all_pages", new=self._pages()):
            result = await discovery.list_logic_apps(SUB)

        apps = result["logicApps"]
        assert [(a["name"], a["sku"], a["resourceGroup"]) for a in apps] == [
            ("c1", "consumption", "rg-a"),
            ("s1", "standard", "rg-b"),
        ]

    @pytest.mark.anyio()
    async def test_scoped_to_resource_group_and_sku(self):
        pages = self._pages()
        with patch.object(discovery, "arm_request_all_pages", new=pages):
            result = await discovery.list_logic_apps(SUB, RG, sku="standard")

        assert [a["name"] for a in result["logicApps"]] == ["s1"]
        assert pages.await_count == 1
        assert pages.await_args.args[0] == (
            "/subscriptions/sub-1/resourceGroups/rg-1/providers/Microsoft.Web/sites"
        )

    @pytest.mark.anyio()
    async def test_invalid_sku(self):
        with pytest.raises(InvalidParameterError, match="sku"):
            await discovery.list_logic_apps(SUB, sku="premium")


# ---------------------------------------------------------------------------
# Connections
# ---------------------------------------------------------------------------


class TestGetConnections:
    @pytest.mark.anyio()
    async def test_lists_with_first_status(self):
        conn = _conn(statuses=[{"status": "Connected"}])
        with patch.object(connections, "arm_request_all_pages", new=AsyncMock(return_value=[conn])):
            result = await connections.get_connections(SUB, RG)

        assert result["connections"][0]["apiName"] == "office365"
        assert result["connections"][0]["status"] == "Connected"

    @pytest.mark.anyio()
    async def test_details_without_statuses_are_unknown(self):
        with patch.object(connections, "arm_request", new=AsyncMock(return_value=_conn())):
            result = await connections.get_connection_details(SUB, RG, "office365")

        assert result["status"] == "Unknown"
        assert result["statuses"] == []


class TestTestConnection:
    """Tests for connection health checks."""

    @pytest.mark.anyio()
    async def test_status_error_is_reported(self):
        conn = _conn(statuses=[{"status": "Error", "error": {"code": "Unauthorized"}}])
        with patch.object(connections, "arm_request", new=AsyncMock(return_value=conn)):
            result = await connections.test_connection(SUB, RG, "office365")

        assert result["isValid"] is False
        assert result["error"] == {"code": "Unauthorized"}

    @pytest.mark.anyio()
    async def test_connected_status_is_trusted(self):
        conn = _conn(
            statuses=[{"status": "Connected"}],
            test_links=[{"requestUri": "https://x", "method": "get"}],
        )
        with (
            patch.object(connections, "arm_request", new=AsyncMock(return_value=conn)),
            patch.object(connections, "arm_request_void", new=AsyncMock()) as void,
        ):
            result = await connections.test_connection(SUB, RG, "office365")

        assert result["isValid"] is True
        void.assert_not_awaited()

    @pytest.mark.anyio()
    async def test_test_link_success(self):
        conn = _conn(
            statuses=[{"status": "Ready"}],
            test_links=[{"requestUri": "https://management.azure.com/test", "method": "post"}],
        )
        with (
            patch.object(connections, "arm_request", new=AsyncMock(return_value=conn)),
            patch.object(connections, "arm_request_void", new=AsyncMock()) as void,
        ):
            result = await connections.test_connection(SUB, RG, "office365")

        assert result["isValid"] is True
        assert result["status"] == "Connected"
        void.assert_awaited_once_with("https://management.azure.com/test", method="post")

    @pytest.mark.anyio()
    async def test_test_link_failure_is_captured(self):
        conn = _conn(statuses=[{"status": "Ready"}], test_links=[{"requestUri": "https://t"}])
        with (
            patch.object(connections, "arm_request", new=AsyncMock(return_value=conn)),
            patch.object(
                connections,
                "arm_request_void",
                new=AsyncMock(side_effect=AuthorizationError("token expired")),
            ),
        ):
            result = await connections.test_connection(SUB, RG, "office365")

        assert result["isValid"] is False
        assert result["error"] == {"code": "AuthorizationError", "message": "token expired"}

    @pytest.mark.anyio()
    async def test_no_links_not_connected(self):
        conn = _conn(statuses=[{"status": "Unauthenticated"}])
        with patch.object(connections, "arm_request", new=AsyncMock(return_value=conn)):
            result = await connections.test_connection(SUB, RG, "office365")

        assert result["error"]["code"] == "NotConnected"
        assert "Unauthenticated" in result["error"]["message"]


class TestValidateConnectionName:
    @pytest.mark.parametrize("name", ["office365", "my-conn_1", "A" * 80])
    def test_valid(self, name):
        assert connections.validate_connection_name(name) == name

    @pytest.mark.parametrize("name", ["", "   ", "-leading", "has space", "a/b", "A" * 81])
    def test_invalid(self, name):
        with pytest.raises(InvalidParameterError):
            connections.validate_connection_name(name)


class TestCreateConnection:
    @pytest.mark.anyio()
    async def test_unauthenticated_points_to_portal(self):
        created = {"name": "outlook", "properties": {"statuses": [{"status": "Error"}]}}
        arm = AsyncMock(return_value=created)
        with patch.object(connections, "arm_request", new=arm):
            result = await connections.create_connection(
                SUB, RG, "outlook", "office365", "westeurope"
            )

        assert result["status"] == "Error"
        assert result["portalUrl"] == (
            "https://portal.azure.com/#resource/subscriptions/sub-1/resourceGroups/rg-1"
            "/providers/Microsoft.Web/connections/outlook"
        )
        assert "needs authorization" in result["message"]
        body = arm.await_args.kwargs["body"]
        assert body["properties"]["displayName"] == "outlook"
        assert body["properties"]["api"]["id"] == (
            "/subscriptions/sub-1/providers/Microsoft.Web/locations/westeurope"
            "/managedApis/office365"
        )

    @pytest.mark.anyio()
    async def test_rejects_missing_location(self):
        arm = AsyncMock()
        with patch.object(connections, "arm_request", new=arm):
            with pytest.raises(InvalidParameterError, match="location"):
                await connections.create_connection(SUB, RG, "outlook", "office365", " ")
        arm.assert_not_awaited()


class TestGetConnectorSwagger:
    @pytest.mark.anyio()
    async def test_merges_export_and_metadata(self):
        swagger = {"info": {"title": "Office"}, "paths": {"/mail": {}}, "basePath": "/"}
        metadata = {
            "name": "office365",
            "properties": {"generalInformation": {"description": "Mail"}},
        }

        async def _request(path, *, query_params=None, **kwargs):
            return swagger if query_params.get("export") == "true" else metadata

        with patch.object(connections, "arm_request", new=AsyncMock(side_effect=_request)):
            result = await connections.get_connector_swagger(SUB, "westeurope", "office365")

        assert result["displayName"] == "Office"
        assert result["description"] == "Mail"
        assert result["swagger"]["paths"] == {"/mail": {}}


class TestInvokeConnectorOperation:
    """Tests for running connector operations through a connection."""

    SWAGGER = {
        "paths": {
            "/{connectionId}/datasets/{dataset}/tables": {
                "get": {
                    "operationId": "GetTables",
                    "parameters": [
                        {"name": "connectionId", "in": "path"},
                        {"name": "dataset", "in": "path"},
                        {"name": "$top", "in": "query"},
                    ],
                }
            },
            "/{connectionId}/datasets/{dataset}/query": {
                "post": {
                    "operationId": "RunQuery",
                    "parameters": [
                        {"name": "dataset", "in": "path"},
                        {"name": "query", "in": "body"},
                    ],
                }
            },
        }
    }

    def _arm(self, invoke_result: dict | Exception) -> AsyncMock:
        conn = _conn(statuses=[{"status": "Connected"}])

        async def _request(path, *, query_params=None, **kwargs):
            if path.endswith("/dynamicInvoke"):
                if isinstance(invoke_result, Exception):
                    raise invoke_result
                return invoke_result
            if "/managedApis/" in path:
                return self.SWAGGER
            return conn

        return AsyncMock(side_effect=_request)

    @pytest.mark.anyio()
    async def test_maps_path_and_query_parameters(self):
        arm = self._arm({"response": {"statusCode": "OK", "body": {"value": ["t1"]}}})
        with patch.object(connections, "arm_request", new=arm):
            result = await connections.invoke_connector_operation(
                SUB, RG, "office365", "GetTables", {"dataset": "db/main", "$top": 5}
            )

        assert result == {"operationId": "GetTables", "success": True, "data": {"value": ["t1"]}}
        invoke = arm.await_args_list[-1]
        assert invoke.args[0].endswith("/connections/office365/dynamicInvoke")
        assert invoke.kwargs["method"] == "POST"
        assert invoke.kwargs["body"] == {
            "request": {
                "method": "GET",
                "path": "/datasets/db%2Fmain/tables",
                "queries": {"$top": "5"},
            }
        }
        swagger_call = arm.await_args_list[-2]
        assert "/locations/westeurope/managedApis/office365" in swagger_call.args[0]
        assert swagger_call.kwargs["query_params"]["export"] == "true"

    @pytest.mark.anyio()
    async def test_body_parameters_are_sent_as_body(self):
        arm = self._arm({"response": {"statusCode": 200, "body": []}})
        with patch.object(connections, "arm_request", new=arm):
            await connections.invoke_connector_operation(
                SUB, RG, "office365", "RunQuery", {"dataset": "d", "query": {"q": "select"}}
            )

        request = arm.await_args_list[-1].kwargs["body"]["request"]
        assert request == {"method": "POST", "path": "/datasets/d/query", "body": {"q": "select"}}

    @pytest.mark.anyio()
    async def test_unauthorized_connection_points_to_portal(self):
        conn = _conn(statuses=[{"status": "Error", "error": {"message": "token expired"}}])
        arm = AsyncMock(return_value=conn)
        with patch.object(connections, "arm_request", new=arm):
            result = await connections.invoke_connector_operation(
                SUB, RG, "office365", "GetTables"
            )

        assert result["success"] is False
        assert "not authorized" in result["error"]
        assert "token expired" in result["error"]
        assert "https://portal.azure.com/#resource/subscriptions/sub-1" in result["error"]
        assert arm.await_count == 1

    @pytest.mark.anyio()
    async def test_unknown_operation(self):
        arm = self._arm({})
        with patch.object(connections, "arm_request", new=arm):
            result = await connections.invoke_connector_operation(
                SUB, RG, "office365", "Nope"
            )

        assert result["success"] is False
        assert "Operation 'Nope' not found in connector 'office365'" in result["error"]
        assert not any(c.args[0].endswith("/dynamicInvoke") for c in arm.await_args_list)

    @pytest.mark.anyio()
    async def test_http_error_response(self):
        arm = self._arm({"response": {"statusCode": 404, "body": {"message": "no dataset"}}})
        with patch.object(connections, "arm_request", new=arm):
            result = await connections.invoke_connector_operation(
                SUB, RG, "office365", "GetTables", {"dataset": "x"}
            )

        assert result["success"] is False
        assert result["error"] == 'HTTP 404: {"message": "no dataset"}'

    @pytest.mark.anyio()
    async def test_invoke_error_payload(self):
        arm = self._arm({"error": {"code": "BadGateway", "message": "backend down"}})
        with patch.object(connections, "arm_request", new=arm):
            result = await connections.invoke_connector_operation(
                SUB, RG, "office365", "GetTables"
            )

        assert result["error"] == "BadGateway: backend down"

    @pytest.mark.anyio()
    async def test_failed_call_is_captured(self):
        arm = self._arm(AuthorizationError("denied"))
        with patch.object(connections, "arm_request", new=arm):
            result = await connections.invoke_connector_operation(
                SUB, RG, "office365", "GetTables"
            )

        assert result == {"operationId": "GetTables", "success": False, "error": "denied"}

    @pytest.mark.anyio()
    async def test_empty_operation_id_is_rejected(self):
        with pytest.raises(InvalidParameterError):
            await connections.invoke_connector_operation(SUB, RG, "office365", " ")
