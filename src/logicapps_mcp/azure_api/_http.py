"""Async HTTP helpers for ARM, the Workflow Management API and the VFS API.

All requests go through :func:`_send`, which retries transient failures
with exponential back-off and honours ``Retry-After`` on 429.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any

import httpx

from logicapps_mcp.azure_api._auth import _get_headers
from logicapps_mcp.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    LogicAppsError,
    RateLimitedError,
    ResourceNotFoundError,
    ServiceError,
)
from logicapps_mcp.settings import settings

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})
_BASE_DELAY = 1.0
_MAX_DELAY = 30.0

# Replaced by tests with an ``httpx.MockTransport``.
_transport: httpx.AsyncBaseTransport | None = None


def _backoff(attempt: int) -> float:
    return min(_BASE_DELAY * 2**attempt + random.random(), _MAX_DELAY)


def _retry_after(resp: httpx.Response, attempt: int) -> float:
    header = resp.headers.get("Retry-After")
    if header:
        try:
            return min(float(header), _MAX_DELAY)
        except ValueError:
            return _BASE_DELAY
    return min(_BASE_DELAY * 2**attempt, _MAX_DELAY)


async def _send(
    method: str,
    url: str,
    *,
    headers: dict[str, str],
    params: dict[str, str] | None = None,
    body: Any = None,
) -> httpx.Response:
    """Send a request, retrying transient failures.

    The last response is returned even when it is an error; callers map
    status codes to typed errors.
    """
    max_retries = settings.max_retries
    async with httpx.AsyncClient(timeout=settings.http_timeout, transport=_transport) as client:
        for attempt in range(max_retries + 1):
            try:
                resp = await client.request(method, url, headers=headers, params=params, json=body)
            except httpx.TimeoutException as exc:
                if attempt >= max_retries:
                    raise ServiceError(
                        f"Request timed out after {settings.http_timeout:g}s"
                    ) from exc
                delay = _backoff(attempt)
                logger.warning(
                    "%s %s timed out, retrying in %.1fs (attempt %s/%s)",
                    method,
                    url,
                    delay,
                    attempt + 1,
                    max_retries,
                )
                await asyncio.sleep(delay)
                continue
            except httpx.TransportError as exc:
                if attempt >= max_retries:
                    raise ServiceError(f"Network error calling {url}: {exc}") from exc
                delay = _backoff(attempt)
                logger.warning(
                    "%s %s failed (%s), retrying in %.1fs (attempt %s/%s)",
                    method,
                    url,
                    exc,
                    delay,
                    attempt + 1,
                    max_retries,
                )
                await asyncio.sleep(delay)
                continue

            if resp.status_code not in RETRYABLE_STATUS_CODES or attempt >= max_retries:
                return resp

            delay = _retry_after(resp, attempt) if resp.status_code == 429 else _backoff(attempt)
            logger.warning(
                "%s %s returned %s, retrying in %.1fs (attempt %s/%s)",
                method,
                url,
                resp.status_code,
                delay,
                attempt + 1,
                max_retries,
            )
            await asyncio.sleep(delay)

    raise ServiceError(f"Request to {url} failed after {max_retries} retries")


def _arm_error(resp: httpx.Response) -> LogicAppsError:
    """Map an ARM error response to a typed error."""
    try:
        payload = resp.json()
    except ValueError:
        payload = {}
    error = payload.get("error") if isinstance(payload, dict) else None
    error = error if isinstance(error, dict) else {}
    code = error.get("code") or f"HTTP{resp.status_code}"
    message = error.get("message") or resp.reason_phrase or f"HTTP {resp.status_code}"

    if resp.status_code == 401:
        return AuthenticationError(message)
    if resp.status_code == 403:
        return AuthorizationError(message)
    if resp.status_code == 404:
        return ResourceNotFoundError(message)
    if resp.status_code == 429:
        return RateLimitedError(message)
    return ServiceError(message, code=code)


def _json_body(resp: httpx.Response) -> Any:
    if resp.status_code in (202, 204) or not resp.content:
        raise ServiceError(
            f"Unexpected empty response ({resp.status_code}) when data was expected"
        )
    return resp.json()


# ---------------------------------------------------------------------------
# Azure Resource Manager
# ---------------------------------------------------------------------------


async def _arm_raw(
    path: str,
    *,
    method: str = "GET",
    query_params: dict[str, str] | None = None,
    body: Any = None,
) -> httpx.Response:
    url = path if path.startswith("https://") else f"{settings.endpoints.resource_manager}{path}"
    headers = await _get_headers()
    resp = await _send(method, url, headers=headers, params=query_params, body=body)
    if resp.is_error:
        raise _arm_error(resp)
    return resp


async def arm_request(
    path: str,
    *,
    method: str = "GET",
    query_params: dict[str, str] | None = None,
    body: Any = None,
) -> Any:
    """Call ARM and return the decoded JSON body.

    Raises :class:`ServiceError` when the response carries no body.
    """
    resp = await _arm_raw(path, method=method, query_params=query_params, body=body)
    return _json_body(resp)


async def arm_request_void(
    path: str,
    *,
    method: str = "POST",
    query_params: dict[str, str] | None = None,
    body: Any = None,
) -> None:
    """Call ARM for an action that may answer 200/202/204 without a body."""
    await _arm_raw(path, method=method, query_params=query_params, body=body)


# ---------------------------------------------------------------------------
# Standard Logic App runtime (Workflow Management + VFS)
# ---------------------------------------------------------------------------


def _runtime_headers(admin_key: str) -> dict[str, str]:
    return {"x-functions-key": admin_key, "Content-Type": "application/json"}


def _runtime_error(resp: httpx.Response) -> ServiceError:
    try:
        payload = resp.json()
    except ValueError:
        payload = {}
    message = payload.get("message") if isinstance(payload, dict) else None
    if not message and isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        message = payload["error"].get("message")
    return ServiceError(message or f"Workflow management API error: {resp.status_code}")


async def workflow_mgmt_request(
    hostname: str,
    path: str,
    admin_key: str,
    *,
    method: str = "GET",
    body: Any = None,
) -> Any:
    """Call the runtime API of a Standard Logic App and return decoded JSON."""
    url = f"https://{hostname}{path}"
    resp = await _send(method, url, headers=_runtime_headers(admin_key), body=body)
    if resp.is_error:
        raise _runtime_error(resp)
    if not resp.content:
        return None
    return resp.json()


async def vfs_request(
    hostname: str,
    path: str,
    admin_key: str,
    *,
    method: str = "GET",
    body: Any = None,
) -> Any:
    """Call the Kudu VFS API of a Standard Logic App.

    PUT and DELETE are sent with ``If-Match: *``.  GET returns decoded JSON.
    """
    url = f"https://{hostname}{path}"
    headers = _runtime_headers(admin_key)
    if method in ("PUT", "DELETE"):
        headers["If-Match"] = "*"
    resp = await _send(method, url, headers=headers, body=body)
    if resp.status_code == 404:
        raise ResourceNotFoundError(f"VFS path not found: {path}")
    if resp.status_code == 412:
        raise ConflictError(
            "Resource was modified by another process. Please retry the operation."
        )
    if resp.status_code == 409:
        raise ConflictError(
            f"Conflict: {resp.text or 'Resource already exists or is in a conflicting state.'}"
        )
    if resp.is_error:
        text = resp.text
        raise ServiceError(
            f"VFS API error: {resp.status_code} {resp.reason_phrase}"
            + (f" - {text}" if text else "")
        )
    if method == "GET" and resp.content:
        return resp.json()
    return None


async def fetch_content_link(url: str) -> Any:
    """Fetch a run input/output content link (SAS-signed, no auth header)."""
    resp = await _send("GET", url, headers={})
    if resp.is_error:
        raise ServiceError(
            f"Failed to fetch content link: {resp.status_code} {resp.reason_phrase}"
        )
    try:
        return resp.json()
    except ValueError:
        return resp.text
