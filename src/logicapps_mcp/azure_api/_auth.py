"""Authentication helpers for Azure ARM API calls."""

from __future__ import annotations

import asyncio
import logging
import os
import threading
import time
from collections.abc import Generator
from contextlib import contextmanager

from azure.core.credentials import AccessToken
from azure.core.exceptions import ClientAuthenticationError
from azure.identity import DefaultAzureCredential

from logicapps_mcp.errors import AuthenticationError
from logicapps_mcp.settings import settings

logger = logging.getLogger(__name__)

# Refresh tokens this many seconds before they expire.
_TOKEN_REFRESH_BUFFER = 300

credential = DefaultAzureCredential()

_token_lock = threading.Lock()
_cached_token: AccessToken | None = None


@contextmanager
def _suppress_stderr() -> Generator[None]:
    """Temporarily redirect OS-level stderr to ``/dev/null``.

    This silences subprocess output (e.g. from ``AzureCliCredential``)
    that bypasses Python's logging system.
    """
    original_fd = os.dup(2)
    devnull = os.open(os.devnull, os.O_WRONLY)
    os.dup2(devnull, 2)
    os.close(devnull)
    try:
        yield
    finally:
        os.dup2(original_fd, 2)
        os.close(original_fd)


def _scope() -> str:
    return f"{settings.endpoints.token_audience}/.default"


def _fetch_token() -> AccessToken:
    """Return a cached token, asking the credential for a new one when stale."""
    global _cached_token
    with _token_lock:
        token = _cached_token
        if token is not None and token.expires_on > time.time() + _TOKEN_REFRESH_BUFFER:
            return token
        kwargs: dict[str, str] = {}
        if settings.tenant_id:
            kwargs["tenant_id"] = settings.tenant_id
        try:
            token = credential.get_token(_scope(), **kwargs)
        except ClientAuthenticationError as exc:
            raise AuthenticationError(
                f"Azure authentication failed. Run 'az login' and retry. ({exc.message})"
            ) from exc
        _cached_token = token
        return token


async def _get_headers() -> dict[str, str]:
    """Return authorization headers for an ARM request.

    Token acquisition may spawn the Azure CLI, so it runs in a worker thread.
    """
    token = await asyncio.to_thread(_fetch_token)
    return {
        "Authorization": f"Bearer {token.token}",
        "Content-Type": "application/json",
    }


def reset_token_cache() -> None:
    """Forget the cached ARM token."""
    global _cached_token
    with _token_lock:
        _cached_token = None


def check_auth() -> bool:
    """Return *True* if the credential can obtain an ARM token."""
    azure_logger = logging.getLogger("azure")
    previous_level = azure_logger.level
    azure_logger.setLevel(logging.CRITICAL)
    try:
        with _suppress_stderr():
            _fetch_token()
        return True
    except AuthenticationError:
        logger.warning("Azure authentication failed; run 'az login'")
        return False
    finally:
        azure_logger.setLevel(previous_level)
