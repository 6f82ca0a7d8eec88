"""Serve command: run the proxy until interrupted."""

import asyncio
import contextlib
import signal
from pathlib import Path
from typing import Annotated

import typer
from click import get_current_context
from rich.console import Console
from structlog import get_logger

from codemie_proxy.cli.options.server_options import (
    validate_log_level,
    validate_port,
    validate_target_url,
)
from codemie_proxy.config.settings import Settings
from codemie_proxy.core.errors import AuthenticationError, ConfigurationError
from codemie_proxy.core.logging import setup_logging
from codemie_proxy.plugins import create_default_registry
from codemie_proxy.server import ProxyServer
from codemie_proxy.services.analytics import Analytics
from codemie_proxy.services.credentials import CredentialStore


console = Console(stderr=True)


def get_config_path_from_context() -> Path | None:
    """Get the --config path given to the root command, if any."""
    try:
        ctx = get_current_context()
    except RuntimeError:
        return None
    root = ctx.find_root()
    if isinstance(root.obj, dict):
        config_path = root.obj.get("config_path")
        return config_path if isinstance(config_path, Path) else None
    return None


async def run_proxy(settings: Settings) -> None:
    """Start a proxy from settings and serve until SIGINT/SIGTERM."""
    logger = get_logger(__name__)
    config = settings.to_proxy_config()

    analytics = Analytics(
        settings.analytics.path,
        enabled=settings.analytics.enabled,
        batch_size=settings.analytics.batch_size,
        session_id=config.session_id,
    )
    server = ProxyServer(
        config,
        registry=create_default_registry(),
        credential_store=CredentialStore(settings.credentials.path),
        analytics=analytics,
    )

    address = await server.start()
    console.print(f"[bold green]CodeMie proxy listening on[/] [cyan]{address.url}[/]")
    console.print(f"Forwarding to [cyan]{config.target_api_url}[/]")

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_requested.set)

    stop_waiter = asyncio.create_task(stop_requested.wait())
    closed_waiter = asyncio.create_task(server.wait_closed())
    try:
        await asyncio.wait(
            {stop_waiter, closed_waiter}, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        stop_waiter.cancel()
        closed_waiter.cancel()
        logger.info("proxy_shutdown_requested")
        await server.stop()
        console.print("CodeMie proxy stopped")


def serve(
    target_url: Annotated[
        str | None,
        typer.Option(
            "--target-url",
            "-t",
            help="Base URL of the upstream LLM API",
            callback=validate_target_url,
            rich_help_panel="Proxy Settings",
        ),
    ] = None,
    provider: Annotated[
        str | None,
        typer.Option(
            "--provider",
            help="Provider identifier; 'ai-run-sso' injects SSO cookies",
            rich_help_panel="Proxy Settings",
        ),
    ] = None,
    integration_id: Annotated[
        str | None,
        typer.Option(
            "--integration-id",
            help="Integration id routed to the SSO provider",
            rich_help_panel="Proxy Settings",
        ),
    ] = None,
    model: Annotated[
        str | None,
        typer.Option("--model", help="Model name", rich_help_panel="Proxy Settings"),
    ] = None,
    client_type: Annotated[
        str | None,
        typer.Option(
            "--client-type",
            help="Client label, e.g. the coding agent name",
            rich_help_panel="Proxy Settings",
        ),
    ] = None,
    session_id: Annotated[
        str | None,
        typer.Option(
            "--session-id",
            help="Session id; generated when omitted",
            rich_help_panel="Proxy Settings",
        ),
    ] = None,
    timeout: Annotated[
        int | None,
        typer.Option(
            "--timeout",
            min=1,
            help="Upstream connect and response header timeout in seconds",
            rich_help_panel="Proxy Settings",
        ),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option(
            "--port",
            "-p",
            help="Port to listen on; a free port is used if it is taken",
            callback=validate_port,
            rich_help_panel="Server Settings",
        ),
    ] = None,
    host: Annotated[
        str | None,
        typer.Option(
            "--host",
            "-h",
            help="Host to bind the server to",
            rich_help_panel="Server Settings",
        ),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            help="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
            callback=validate_log_level,
            rich_help_panel="Server Settings",
        ),
    ] = None,
    json_logs: Annotated[
        bool | None,
        typer.Option(
            "--json-logs/--console-logs",
            help="Render logs as JSON lines",
            rich_help_panel="Server Settings",
        ),
    ] = None,
    analytics: Annotated[
        bool | None,
        typer.Option(
            "--analytics/--no-analytics",
            help="Record request telemetry to the local analytics file",
            rich_help_panel="Plugin Settings",
        ),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to a TOML configuration file",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
            rich_help_panel="Configuration",
        ),
    ] = None,
) -> None:
    """Start the CodeMie proxy and serve until interrupted."""
    try:
        if config is None:
            config = get_config_path_from_context()

        settings = Settings.from_config(
            config_path=config,
            server={"host": host, "port": port},
            logging={"level": log_level, "json_logs": json_logs},
            http={"timeout": timeout},
            analytics={"enabled": analytics},
            proxy={
                "target_api_url": target_url,
                "provider": provider,
                "integration_id": integration_id,
                "model": model,
                "client_type": client_type,
                "session_id": session_id,
            },
        )

        setup_logging(
            json_logs=settings.logging.json_logs,
            log_level_name=settings.logging.level,
            log_file=settings.logging.file,
        )

        get_logger(__name__).debug(
            "configuration_loaded",
            host=settings.server.host,
            port=settings.server.port,
            target=settings.proxy.target_api_url,
            provider=settings.proxy.provider,
            analytics=settings.analytics.enabled,
        )

        asyncio.run(run_proxy(settings))

    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/] {e}")
        raise typer.Exit(1) from e
    except AuthenticationError as e:
        console.print(f"[bold red]Authentication error:[/] {e}")
        raise typer.Exit(1) from e
    except OSError as e:
        console.print(f"[bold red]Server startup failed (port/permission issue):[/] {e}")
        raise typer.Exit(1) from e
