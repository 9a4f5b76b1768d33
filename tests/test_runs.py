"""Tests for run history, triggers, run diagnostics and host status."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from logicapps_mcp.azure_api import diagnostics, host, runs, triggers
from logicapps_mcp.azure_api.backends import ConsumptionApp, StandardAccess, StandardApp
from logicapps_mcp.errors import InvalidParameterError, UnsupportedOperationError

SUB = "sub-1"
RG = "rg-1"
ACCESS = StandardAccess("app.azurewebsites.net", "key")
CONSUMPTION_PATH = (
    "/subscriptions/sub-1/resourceGroups/rg-1/providers/Microsoft.Logic/workflows/app"
)
STANDARD_PATH = "/subscriptions/sub-1/resourceGroups/rg-1/providers/Microsoft.Web/sites/app"
MGMT = "/runtime/webhooks/workflow/api/management"


def _as(module, app):
    """Patch *module*'s resolver imports so every call resolves to *app*."""
    return (
        patch.object(module, "resolve_logic_app", new=AsyncMock(return_value=app)),
        patch.object(module, "standard_access_for", new=AsyncMock(return_value=ACCESS)),
    )


def _run(name: str, status: str = "Succeeded", tracking: str | None = None) -> dict:
    return {
        "id": f"/runs/{name}",
        "name": name,
        "properties": {
            "status": status,
            "startTime": "2024-01-01T00:00:00Z",
            "trigger": {"name": "manual"},
            "correlation": {"clientTrackingId": tracking} if tracking else None,
        },
    }


# ---------------------------------------------------------------------------
# Run history
# ---------------------------------------------------------------------------


class TestListRunHistory:
    """Tests for run listing on both backends."""

    @pytest.mark.anyio()
    async def test_consumption_passes_top_and_filter(self):
        resolve, access = _as(runs, ConsumptionApp(SUB, RG, "app"))
        pages = AsyncMock(return_value=[_run("r1"), _run("r2")])
        with resolve, access, patch.object(runs, "arm_request_all_pages", new=pages):
            result = await runs.list_run_history(
                SUB, RG, "app", top=10, filter="status eq 'Failed'"
            )

        assert [r["name"] for r in result["runs"]] == ["r1", "r2"]
        assert result["runs"][0]["trigger"] == {"name": "manual"}
        path, params = pages.await_args.args
        assert path == f"{CONSUMPTION_PATH}/runs"
        assert params == {
            "api-version": "2019-05-01",
            "$top": "10",
            "$filter": "status eq 'Failed'",
        }

    @pytest.mark.anyio()
    @pytest.mark.parametrize(("top", "expected"), [(None, 25), (0, 25), (500, 100), (1, 1)])
    async def test_top_is_clamped(self, top, expected):
        resolve, access = _as(runs, ConsumptionApp(SUB, RG, "app"))
        pages = AsyncMock(return_value=[])
        with resolve, access, patch.object(runs, "arm_request_all_pages", new=pages):
            await runs.list_run_history(SUB, RG, "app", top=top)

        assert pages.await_args.args[1]["$top"] == str(expected)

    @pytest.mark.anyio()
    async def test_consumption_truncates_to_top(self):
        resolve, access = _as(runs, ConsumptionApp(SUB, RG, "app"))
        pages = AsyncMock(return_value=[_run(f"r{i}") for i in range(5)])
        with resolve, access, patch.object(runs, "arm_request_all_pages", new=pages):
            result = await runs.list_run_history(SUB, RG, "app", top=3)

        assert len(result["runs"]) == 3

    @pytest.mark.anyio()
    async def test_standard_encodes_filter(self):
        resolve, access = _as(runs, StandardApp(SUB, RG, "app"))
        wm = AsyncMock(return_value={"value": [_run("r1")]})
        with resolve, access, patch.object(runs, "workflow_mgmt_request", new=wm):
            result = await runs.list_run_history(
                SUB, RG, "app", "orders", top=5, filter="status eq 'Failed'"
            )

        assert result["runs"][0]["name"] == "r1"
        hostname, path, key = wm.await_args.args
        assert hostname == "app.azurewebsites.net"
        assert path == (
            f"{MGMT}/workflows/orders/runs?$top=5&$filter=status%20eq%20%27Failed%27"
            "&api-version=2020-05-01-preview"
        )

    @pytest.mark.anyio()
    async def test_standard_requires_workflow_name(self):
        resolve, access = _as(runs, StandardApp(SUB, RG, "app"))
        with resolve, access, pytest.raises(InvalidParameterError):
            await runs.list_run_history(SUB, RG, "app")


class TestGetRunDetails:
    @pytest.mark.anyio()
    async def test_includes_error_and_drops_correlation(self):
        run = _run("r1", status="Failed")
        run["properties"]["error"] = {"code": "ActionFailed"}
        resolve, access = _as(runs, ConsumptionApp(SUB, RG, "app"))
        with resolve, access, patch.object(runs, "arm_request", new=AsyncMock(return_value=run)):
            result = await runs.get_run_details(SUB, RG, "app", "r1")

        assert result["run"]["status"] == "Failed"
        assert result["run"]["error"] == {"code": "ActionFailed"}
        assert "correlation" not in result["run"]


class TestBuildRunFilter:
    def test_no_criteria(self):
        assert runs.build_run_filter() is None

    def test_all_criteria(self):
        assert runs.build_run_filter("Failed", "2024-01-01", "2024-01-31") == (
            "status eq 'Failed' and startTime ge 2024-01-01 and startTime le 2024-01-31"
        )


class TestSearchRuns:
    @pytest.mark.anyio()
    async def test_matches_client_tracking_id_on_page(self):
        page = [_run("r1", tracking="abc"), _run("r2", tracking="xyz"), _run("r3")]
        resolve, access = _as(runs, ConsumptionApp(SUB, RG, "app"))
        pages = AsyncMock(return_value=page)
        with resolve, access, patch.object(runs, "arm_request_all_pages", new=pages):
            result = await runs.search_runs(
                SUB, RG, "app", status="Failed", client_tracking_id="abc"
            )

        assert result["count"] == 1
        assert result["runs"][0]["name"] == "r1"
        assert pages.await_args.args[1]["$filter"] == "status eq 'Failed'"


class TestGetRunActions:
    @pytest.mark.anyio()
    async def test_lists_all_actions(self):
        actions = [{"name": "Compose", "properties": {"status": "Succeeded"}}]
        resolve, access = _as(runs, ConsumptionApp(SUB, RG, "app"))
        pages = AsyncMock(return_value=actions)
        with resolve, access, patch.object(runs, "arm_request_all_pages", new=pages):
            result = await runs.get_run_actions(SUB, RG, "app", "r1")

        assert result["actions"][0]["name"] == "Compose"
        assert pages.await_args.args[0] == f"{CONSUMPTION_PATH}/runs/r1/actions"

    @pytest.mark.anyio()
    async def test_single_standard_action(self):
        action = {"name": "HTTP", "properties": {"status": "Failed", "error": {"code": "x"}}}
        resolve, access = _as(runs, StandardApp(SUB, RG, "app"))
        wm = AsyncMock(return_value=action)
        with resolve, access, patch.object(runs, "workflow_mgmt_request", new=wm):
            result = await runs.get_run_actions(SUB, RG, "app", "r1", "orders", "HTTP")

        assert result == {
            "actions": [
                {
                    "name": "HTTP",
                    "type": None,
                    "status": "Failed",
                    "startTime": None,
                    "endTime": None,
                    "error": {"code": "x"},
                    "trackedProperties": None,
                }
            ]
        }
        assert "/workflows/orders/runs/r1/actions/HTTP?" in wm.await_args.args[1]


class TestGetActionIo:
    """Tests for reading action content links."""

    @pytest.mark.anyio()
    async def test_fetches_requested_sides(self):
        action = {
            "properties": {
                "inputsLink": {"uri": "https://blob/in"},
                "outputsLink": {"uri": "https://blob/out"},
            }
        }
        resolve, access = _as(runs, ConsumptionApp(SUB, RG, "app"))
        fetch = AsyncMock(side_effect=lambda uri: {"from": uri})
        with (
            resolve,
            access,
            patch.object(runs, "arm_request", new=AsyncMock(return_value=action)),
            patch.object(runs, "fetch_content_link", new=fetch),
        ):
            both = await runs.get_action_io(SUB, RG, "app", "r1", "HTTP")
            outputs = await runs.get_action_io(SUB, RG, "app", "r1", "HTTP", type="outputs")

        assert both == {
            "actionName": "HTTP",
            "inputs": {"from": "https://blob/in"},
            "outputs": {"from": "https://blob/out"},
        }
        assert "inputs" not in outputs

    @pytest.mark.anyio()
    async def test_missing_link_is_omitted(self):
        resolve, access = _as(runs, ConsumptionApp(SUB, RG, "app"))
        fetch = AsyncMock()
        with (
            resolve,
            access,
            patch.object(runs, "arm_request", new=AsyncMock(return_value={"properties": {}})),
            patch.object(runs, "fetch_content_link", new=fetch),
        ):
            result = await runs.get_action_io(SUB, RG, "app", "r1", "Compose")

        assert result == {"actionName": "Compose"}
        fetch.assert_not_awaited()


class TestCancelRun:
    @pytest.mark.anyio()
    async def test_consumption(self):
        resolve, access = _as(runs, ConsumptionApp(SUB, RG, "app"))
        with resolve, access, patch.object(runs, "arm_request_void", new=AsyncMock()) as void:
            result = await runs.cancel_run(SUB, RG, "app", "r1")

        assert void.await_args.args[0] == f"{CONSUMPTION_PATH}/runs/r1/cancel"
        assert result["success"] is True
        assert result["runId"] == "r1"

    @pytest.mark.anyio()
    async def test_standard_goes_through_hostruntime(self):
        resolve, access = _as(runs, StandardApp(SUB, RG, "app"))
        with resolve, access, patch.object(runs, "arm_request_void", new=AsyncMock()) as void:
            await runs.cancel_run(SUB, RG, "app", "r1", "orders")

        assert void.await_args.args[0] == (
            f"{STANDARD_PATH}/hostruntime{MGMT}/workflows/orders/runs/r1/cancel"
        )
        assert void.await_args.kwargs["query_params"] == {"api-version": "2022-03-01"}


# ---------------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------------


class TestTriggers:
    @pytest.mark.anyio()
    async def test_history_summarizes_entries(self):
        entry = {
            "name": "h1",
            "properties": {"status": "Succeeded", "fired": True, "run": {"name": "r9"}},
        }
        resolve, access = _as(triggers, ConsumptionApp(SUB, RG, "app"))
        pages = AsyncMock(return_value=[entry])
        with resolve, access, patch.object(triggers, "arm_request_all_pages", new=pages):
            result = await triggers.get_trigger_history(SUB, RG, "app", "manual", top=1000)

        assert result["triggerName"] == "manual"
        assert result["histories"][0]["fired"] is True
        assert result["histories"][0]["runId"] == "r9"
        assert pages.await_args.args[1]["$top"] == "100"

    @pytest.mark.anyio()
    async def test_standard_callback_url(self):
        resp = {"value": "https://cb", "method": "POST", "basePath": "/b", "queries": {"sig": "s"}}
        resolve, access = _as(triggers, StandardApp(SUB, RG, "app"))
        arm = AsyncMock(return_value=resp)
        with resolve, access, patch.object(triggers, "arm_request", new=arm):
            result = await triggers.get_trigger_callback_url(SUB, RG, "app", "manual", "orders")

        assert result["callbackUrl"] == "https://cb"
        assert arm.await_args.args[0] == (
            f"{STANDARD_PATH}/hostruntime{MGMT}/workflows/orders/triggers/manual/listCallbackUrl"
        )
        assert arm.await_args.kwargs["method"] == "POST"

    @pytest.mark.anyio()
    async def test_run_trigger_consumption(self):
        resolve, access = _as(triggers, ConsumptionApp(SUB, RG, "app"))
        with (
            resolve,
            access,
            patch.object(triggers, "arm_request_void", new=AsyncMock()) as void,
        ):
            result = await triggers.run_trigger(SUB, RG, "app", "manual")

        assert void.await_args.args[0] == f"{CONSUMPTION_PATH}/triggers/manual/run"
        assert result["success"] is True


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


class TestDiagnostics:
    """Tests for repetitions, request histories and expression traces."""

    @pytest.mark.anyio()
    async def test_repetitions_list(self):
        reps = [
            {
                "name": "000000",
                "properties": {"status": "Succeeded", "inputsLink": {"uri": "x"}},
            }
        ]
        resolve, access = _as(diagnostics, ConsumptionApp(SUB, RG, "app"))
        pages = AsyncMock(return_value=reps)
        with resolve, access, patch.object(diagnostics, "arm_request_all_pages", new=pages):
            result = await diagnostics.get_action_repetitions(SUB, RG, "app", "r1", "For_each")

        rep = result["repetitions"][0]
        assert rep["name"] == "000000"
        assert rep["hasInputs"] is True
        assert rep["hasOutputs"] is False
        assert pages.await_args.args[0] == (
            f"{CONSUMPTION_PATH}/runs/r1/actions/For_each/repetitions"
        )

    @pytest.mark.anyio()
    async def test_single_repetition_on_standard(self):
        resolve, access = _as(diagnostics, StandardApp(SUB, RG, "app"))
        wm = AsyncMock(return_value={"name": "000001", "properties": {"status": "Failed"}})
        with resolve, access, patch.object(diagnostics, "workflow_mgmt_request", new=wm):
            result = await diagnostics.get_action_repetitions(
                SUB, RG, "app", "r1", "For_each", "orders", "000001"
            )

        assert [r["name"] for r in result["repetitions"]] == ["000001"]
        assert "/actions/For_each/repetitions/000001?" in wm.await_args.args[1]

    @pytest.mark.anyio()
    async def test_scope_repetitions(self):
        resolve, access = _as(diagnostics, StandardApp(SUB, RG, "app"))
        wm = AsyncMock(return_value={"value": [{"name": "0", "properties": {"status": "Ok"}}]})
        with resolve, access, patch.object(diagnostics, "workflow_mgmt_request", new=wm):
            result = await diagnostics.get_scope_repetitions(
                SUB, RG, "app", "r1", "Scope", "orders"
            )

        assert result["scopeRepetitions"][0]["status"] == "Ok"

    @pytest.mark.anyio()
    async def test_request_history_shapes_request_and_response(self):
        entry = {
            "name": "h",
            "properties": {
                "request": {"method": "GET", "uri": "https://api"},
                "response": {"statusCode": 500, "bodyLink": {"contentSize": 12}},
            },
        }
        resolve, access = _as(diagnostics, ConsumptionApp(SUB, RG, "app"))
        pages = AsyncMock(return_value=[entry])
        with resolve, access, patch.object(diagnostics, "arm_request_all_pages", new=pages):
            result = await diagnostics.get_action_request_history(SUB, RG, "app", "r1", "HTTP")

        history = result["requestHistories"][0]
        assert history["request"]["method"] == "GET"
        assert history["response"]["statusCode"] == 500
        assert history["response"]["bodyContentSize"] == 12

    @pytest.mark.anyio()
    async def test_expression_traces_post_on_consumption(self):
        data = {"inputs": [{"text": "@add(1,2)", "value": 3}, {"error": {"message": "bad"}}]}
        resolve, access = _as(diagnostics, ConsumptionApp(SUB, RG, "app"))
        arm = AsyncMock(return_value=data)
        with resolve, access, patch.object(diagnostics, "arm_request", new=arm):
            result = await diagnostics.get_expression_traces(SUB, RG, "app", "r1", "Compose")

        assert arm.await_args.kwargs["method"] == "POST"
        assert result["traces"] == [
            {"expression": "@add(1,2)", "value": 3, "error": None},
            {"expression": "", "value": None, "error": "bad"},
        ]

    @pytest.mark.anyio()
    async def test_expression_traces_get_on_standard(self):
        resolve, access = _as(diagnostics, StandardApp(SUB, RG, "app"))
        wm = AsyncMock(return_value={"inputs": []})
        with resolve, access, patch.object(diagnostics, "workflow_mgmt_request", new=wm):
            result = await diagnostics.get_expression_traces(
                SUB, RG, "app", "r1", "Compose", "orders"
            )

        assert result["traces"] == []
        assert wm.await_args.kwargs["method"] == "GET"


# ---------------------------------------------------------------------------
# Host status
# ---------------------------------------------------------------------------


class TestHostStatus:
    @pytest.mark.anyio()
    async def test_standard(self):
        status = {"state": "Running", "version": "4.0", "processUptime": 1234}
        resolve, access = _as(host, StandardApp(SUB, RG, "app"))
        wm = AsyncMock(return_value=status)
        with resolve, access, patch.object(host, "workflow_mgmt_request", new=wm):
            result = await host.get_host_status(SUB, RG, "app")

        assert result["state"] == "Running"
        assert result["processUptimeMs"] == 1234
        assert wm.await_args.args == ("app.azurewebsites.net", "/admin/host/status", "key")

    @pytest.mark.anyio()
    async def test_consumption_is_unsupported(self):
        resolve, access = _as(host, ConsumptionApp(SUB, RG, "app"))
        with resolve, access, pytest.raises(UnsupportedOperationError):
            await host.get_host_status(SUB, RG, "app")
