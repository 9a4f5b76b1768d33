"""Shared test fixtures for logicapps-mcp tests."""

from __future__ import annotations

import time
from unittest.mock import patch

import pytest
from azure.core.credentials import AccessToken

from logicapps_mcp.azure_api import _auth, backends


@pytest.fixture()
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _mock_credential():
    """Prevent real Azure credential calls in every test."""
    _auth.reset_token_cache()
    with patch("logicapps_mcp.azure_api._auth.credential") as cred:
        cred.get_token.return_value = AccessToken("fake-token", int(time.time()) + 3600)
        yield cred
    _auth.reset_token_cache()


@pytest.fixture(autouse=True)
def _fresh_resolver(monkeypatch):
    """Give every test an empty process-wide backend resolver."""
    monkeypatch.setattr(backends, "_resolver", None)
    yield
