"""Azure Logic Apps MCP server."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("logicapps-mcp")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
