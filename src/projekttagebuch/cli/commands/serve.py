"""
API server command.

Usage:
    ptb serve                   # Start API server with settings from env
    ptb serve --host 0.0.0.0    # Bind to all interfaces
    ptb serve --port 8080       # Use custom port
    ptb serve --reload          # Enable auto-reload (development)
"""

import click
from loguru import logger


@click.command("serve")
@click.option("--host", default=None, help="Host to bind to (overrides env)")
@click.option("--port", default=None, type=int, help="Port to listen on (overrides env)")
@click.option("--reload", is_flag=True, default=None, help="Enable auto-reload for development")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["critical", "error", "warning", "info", "debug", "trace"]),
    help="uvicorn logging level",
)
def serve_command(
    host: str | None,
    port: int | None,
    reload: bool | None,
    log_level: str | None,
):
    """
    Start the projekttagebuch API server.

    When DIRECTORY__SOURCE_FILE is set the directory resync runs inside the
    server process every DIRECTORY__RESYNC_INTERVAL_MINUTES.
    """
    import uvicorn

    from ...settings import settings

    uvicorn_config = {
        "app": "projekttagebuch.api.main:create_app",
        "factory": True,
        "host": host or settings.api.host,
        "port": port or settings.api.port,
        "log_level": log_level or settings.api.log_level,
        "reload": reload if reload is not None else settings.api.reload,
    }

    logger.info(
        f"Starting projekttagebuch API server at http://{uvicorn_config['host']}:{uvicorn_config['port']}"
    )
    uvicorn.run(**uvicorn_config)


def register_command(cli_group):
    """Register the serve command."""
    cli_group.add_command(serve_command)
