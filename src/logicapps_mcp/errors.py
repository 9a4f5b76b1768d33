"""Typed errors raised by the Azure API helpers.

Every error carries a machine-readable ``code`` so that callers (and the
agent on the other side of the MCP connection) can branch on the failure
kind without parsing messages.
"""

from __future__ import annotations

from typing import Any


class LogicAppsError(Exception):
    """Base class for all errors surfaced by logicapps-mcp."""

    code = "UnknownError"

    def __init__(self, message: str, *, code: str | None = None, details: Any = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
        self.message = message
        self.details = details


class AuthenticationError(LogicAppsError):
    code = "AuthenticationError"


class AuthorizationError(LogicAppsError):
    code = "AuthorizationError"


class ResourceNotFoundError(LogicAppsError):
    code = "ResourceNotFound"


class InvalidParameterError(LogicAppsError):
    code = "InvalidParameter"


class UnsupportedOperationError(LogicAppsError):
    code = "UnsupportedOperation"


class ConflictError(LogicAppsError):
    code = "ConflictError"


class RateLimitedError(LogicAppsError):
    code = "RateLimited"


class ServiceError(LogicAppsError):
    """Any other backend failure; ``code`` is the ARM error code when known."""

    code = "ServiceError"


def format_error(exc: BaseException) -> dict[str, Any]:
    """Return ``{"error": {"code": ..., "message": ...}}`` for *exc*."""
    if isinstance(exc, LogicAppsError):
        error: dict[str, Any] = {"code": exc.code, "message": exc.message}
        if exc.details is not None:
            error["details"] = exc.details
        return {"error": error}
    return {"error": {"code": "UnknownError", "message": str(exc)}}
