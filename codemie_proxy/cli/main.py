"""Main entry point for the CodeMie proxy CLI."""

from pathlib import Path

import typer
from rich.console import Console

from codemie_proxy._version import __version__

from .commands.plugins import app as plugins_app
from .commands.serve import serve


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        Console().print(f"codemie-proxy {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="codemie-proxy",
    rich_markup_mode="rich",
    no_args_is_help=True,
    pretty_exceptions_enable=False,
)


@app.callback()
def app_main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a TOML configuration file",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
) -> None:
    """CodeMie proxy - local streaming proxy for coding agents."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config


app.command(name="serve")(serve)
app.add_typer(plugins_app)


def main() -> None:
    """Entry point for the ``codemie-proxy`` script."""
    app()


if __name__ == "__main__":
    main()
