"""CLI commands for inspecting proxy plugins."""

import typer
from rich.console import Console
from rich.table import Table

from codemie_proxy.plugins import PluginRegistry, create_default_registry


app = typer.Typer(name="plugins", help="Inspect proxy plugins.")


def build_plugins_table(registry: PluginRegistry) -> Table:
    """Render registered plugins in execution order."""
    table = Table(title="Proxy Plugins")
    table.add_column("Order", justify="right", style="dim")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Version")
    table.add_column("Priority", justify="right")
    table.add_column("Enabled")

    rows = []
    for plugin in registry.get_all():
        config = registry.get_config(plugin.id)
        priority = plugin.priority
        enabled = True
        if config is not None:
            enabled = config.enabled
            if config.priority is not None:
                priority = config.priority
        rows.append((priority, plugin, enabled))

    # Stable sort keeps registration order for equal priorities
    rows.sort(key=lambda row: row[0])
    for position, (priority, plugin, enabled) in enumerate(rows, start=1):
        table.add_row(
            str(position),
            plugin.id,
            plugin.name,
            plugin.version,
            str(priority),
            "[green]yes[/]" if enabled else "[red]no[/]",
        )
    return table


@app.command("list")
def list_plugins() -> None:
    """List built-in plugins with their priority and default state."""
    Console().print(build_plugins_table(create_default_registry()))
