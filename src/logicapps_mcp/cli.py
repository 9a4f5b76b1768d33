"""Command line entry point for logicapps-mcp.

    logicapps-mcp mcp           – run the MCP server on stdio
    logicapps-mcp mcp --http    – run it with the Streamable HTTP transport

Running ``logicapps-mcp`` without a subcommand defaults to ``mcp``.
"""

import logging

import click

from logicapps_mcp import __version__
from logicapps_mcp.settings import settings

logger = logging.getLogger(__name__)


def _setup_logging(level: int = logging.INFO) -> None:
    """Configure the ``logicapps_mcp`` logger on stderr with uvicorn-style colours.

    stdout carries the MCP stdio protocol and must stay clean.
    """
    from uvicorn.logging import DefaultFormatter

    handler = logging.StreamHandler()
    handler.setFormatter(
        DefaultFormatter(fmt="%(levelprefix)s %(name)s - %(message)s", use_colors=None)
    )
    app_logger = logging.getLogger("logicapps_mcp")
    app_logger.handlers = [handler]
    app_logger.setLevel(level)
    app_logger.propagate = False

    # Silence noisy third-party loggers
    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="logicapps-mcp")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Azure Logic Apps MCP server."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(mcp)


@cli.command()
@click.option(
    "--http",
    "use_http",
    is_flag=True,
    default=False,
    help="Use the Streamable HTTP transport instead of stdio.",
)
@click.option(
    "--port",
    default=8080,
    show_default=True,
    help="Port for the HTTP transport.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
def mcp(use_http: bool, port: int, verbose: bool) -> None:
    """Run the MCP server."""
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper())
    _setup_logging(level)

    from logicapps_mcp.azure_api import check_auth, set_cache_ttl
    from logicapps_mcp.mcp_server import mcp as mcp_server

    set_cache_ttl(settings.cache_ttl)
    logger.info("Using %s cloud, cache TTL %ss", settings.endpoints.name, settings.cache_ttl)

    if use_http:
        mcp_server.settings.port = port
        mcp_server.run(transport="streamable-http")
    else:
        if not check_auth():
            logger.warning("Starting without a valid Azure token; tools will report the error")
        mcp_server.run(transport="stdio")
