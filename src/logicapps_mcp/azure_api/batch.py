"""Bulk run cancellation and workflow enable/disable.

Items run through :func:`run_bounded`, which keeps at most ``concurrency``
operations in flight to stay under Azure throttling limits.  Each item's
failure is captured in its :class:`BatchItemResult`; only backend
resolution failures escape a batch call.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import NotRequired, TypedDict, TypeVar

from logicapps_mcp.azure_api.backends import BackendKind, detect_backend_kind
from logicapps_mcp.azure_api.runs import cancel_run
from logicapps_mcp.azure_api.workflows import disable_workflow, enable_workflow

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_CONCURRENCY = 5


class BatchItemResult(TypedDict):
    id: str
    success: bool
    error: NotRequired[str]


class BatchResult(TypedDict):
    total: int
    succeeded: int
    failed: int
    results: list[BatchItemResult]


async def run_bounded(
    items: Sequence[T],
    operation: Callable[[T], Awaitable[R]],
    concurrency: int = DEFAULT_CONCURRENCY,
) -> list[R]:
    """Apply *operation* to every item with at most *concurrency* in flight.

    Admission is a sliding window: whenever one operation finishes the next
    queued item starts.  ``results[i]`` always belongs to ``items[i]``.
    Exceptions from *operation* are not caught here.
    """
    if not items:
        return []

    limit = asyncio.Semaphore(max(1, concurrency))

    async def _admit(item: T) -> R:
        async with limit:
            return await operation(item)

    return list(await asyncio.gather(*(_admit(item) for item in items)))


async def _attempt(item_id: str, call: Awaitable[object]) -> BatchItemResult:
    try:
        await call
    except Exception as exc:
        logger.warning("Batch item %s failed: %s", item_id, exc)
        return {"id": item_id, "success": False, "error": str(exc)}
    return {"id": item_id, "success": True}


def _summarize(results: list[BatchItemResult]) -> BatchResult:
    succeeded = sum(1 for r in results if r["success"])
    return {
        "total": len(results),
        "succeeded": succeeded,
        "failed": len(results) - succeeded,
        "results": results,
    }


def _empty() -> BatchResult:
    return {"total": 0, "succeeded": 0, "failed": 0, "results": []}


async def cancel_runs(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    run_ids: Sequence[str],
    workflow_name: str | None = None,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> BatchResult:
    """Cancel several runs; failures are reported per run."""
    if not run_ids:
        return _empty()

    async def _cancel(run_id: str) -> BatchItemResult:
        return await _attempt(
            run_id,
            cancel_run(
                subscription_id, resource_group_name, logic_app_name, run_id, workflow_name
            ),
        )

    result = _summarize(await run_bounded(run_ids, _cancel, concurrency))
    logger.info(
        "Cancelled %s/%s runs on %s", result["succeeded"], result["total"], logic_app_name
    )
    return result


async def _batch_set_state(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    workflow_names: Sequence[str],
    concurrency: int,
    toggle: Callable[..., Awaitable[object]],
) -> BatchResult:
    if not workflow_names:
        return _empty()

    kind = await detect_backend_kind(subscription_id, resource_group_name, logic_app_name)

    if kind is BackendKind.consumption:
        # A Consumption app is a single workflow: one app-level call covers it.
        item = await _attempt(
            logic_app_name, toggle(subscription_id, resource_group_name, logic_app_name)
        )
        return _summarize([item])

    async def _toggle(workflow_name: str) -> BatchItemResult:
        return await _attempt(
            workflow_name,
            toggle(subscription_id, resource_group_name, logic_app_name, workflow_name),
        )

    return _summarize(await run_bounded(workflow_names, _toggle, concurrency))


async def batch_enable_workflows(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    workflow_names: Sequence[str],
    concurrency: int = DEFAULT_CONCURRENCY,
) -> BatchResult:
    """Enable several workflows of one Logic App."""
    result = await _batch_set_state(
        subscription_id,
        resource_group_name,
        logic_app_name,
        workflow_names,
        concurrency,
        enable_workflow,
    )
    logger.info(
        "Enabled %s/%s workflows on %s", result["succeeded"], result["total"], logic_app_name
    )
    return result


async def batch_disable_workflows(
    subscription_id: str,
    resource_group_name: str,
    logic_app_name: str,
    workflow_names: Sequence[str],
    concurrency: int = DEFAULT_CONCURRENCY,
) -> BatchResult:
    """Disable several workflows of one Logic App."""
    result = await _batch_set_state(
        subscription_id,
        resource_group_name,
        logic_app_name,
        workflow_names,
        concurrency,
        disable_workflow,
    )
    logger.info(
        "Disabled %s/%s workflows on %s", result["succeeded"], result["total"], logic_app_name
    )
    return result
