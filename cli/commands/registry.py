"""Registry CLI commands.

Manage which plugins are enabled and their saved settings.
"""

import json
from typing import Any, Optional

import typer

from cli.plughost.output import print_info, print_json, print_registry_entries, print_success, print_warning

registry_app = typer.Typer(
    name="registry",
    help="Manage registered plugins and their settings.",
)


def get_registry():
    """Get the persisted plugin registry."""
    from host import create_registry, get_config

    return create_registry(get_config())


def parse_settings(pairs: list[str]) -> dict[str, Any]:
    """Parse KEY=VALUE pairs; values are read as JSON when possible."""
    settings: dict[str, Any] = {}

    for pair in pairs:
        if "=" not in pair:
            raise typer.BadParameter(f"Expected KEY=VALUE, got '{pair}'")
        key, value = pair.split("=", 1)
        try:
            settings[key.strip()] = json.loads(value)
        except json.JSONDecodeError:
            settings[key.strip()] = value

    return settings


@registry_app.command("list")
def list_entries() -> None:
    """List registered plugins."""
    print_registry_entries(get_registry().get_all())


@registry_app.command("show")
def show(plugin_id: str = typer.Argument(..., help="Plugin id")) -> None:
    """Show one registry entry."""
    entry = get_registry().get(plugin_id)
    if entry is None:
        print_warning(f"Plugin '{plugin_id}' is not registered")
        raise typer.Exit(1)

    print_json(entry.to_storage())


@registry_app.command("register")
def register(
    plugin_id: str = typer.Argument(..., help="Plugin id"),
    settings: Optional[list[str]] = typer.Argument(None, help="Initial settings as KEY=VALUE"),
) -> None:
    """Register a plugin (enabled), replacing any existing entry.

    Example:
        plughost registry register diamond-drill defaultView=panel readOnlyEnforce=true
    """
    get_registry().register(plugin_id, parse_settings(settings or []))
    print_success(f"Registered {plugin_id}")


@registry_app.command("unregister")
def unregister(plugin_id: str = typer.Argument(..., help="Plugin id")) -> None:
    """Remove a plugin from the registry."""
    registry = get_registry()
    if not registry.is_registered(plugin_id):
        print_info(f"Plugin '{plugin_id}' is not registered")
        return

    registry.unregister(plugin_id)
    print_success(f"Unregistered {plugin_id}")


@registry_app.command("enable")
def enable(plugin_id: str = typer.Argument(..., help="Plugin id")) -> None:
    """Enable a registered plugin."""
    registry = get_registry()
    if not registry.is_registered(plugin_id):
        print_warning(f"Plugin '{plugin_id}' is not registered")
        raise typer.Exit(1)

    registry.enable(plugin_id)
    print_success(f"Enabled {plugin_id}")


@registry_app.command("disable")
def disable(plugin_id: str = typer.Argument(..., help="Plugin id")) -> None:
    """Disable a registered plugin."""
    registry = get_registry()
    if not registry.is_registered(plugin_id):
        print_warning(f"Plugin '{plugin_id}' is not registered")
        raise typer.Exit(1)

    registry.disable(plugin_id)
    print_success(f"Disabled {plugin_id}")


@registry_app.command("set")
def set_settings(
    plugin_id: str = typer.Argument(..., help="Plugin id"),
    settings: list[str] = typer.Argument(..., help="Settings to merge as KEY=VALUE"),
) -> None:
    """Merge settings into a registered plugin's entry.

    Example:
        plughost registry set diamond-drill defaultView=modal
    """
    registry = get_registry()
    if not registry.is_registered(plugin_id):
        print_warning(f"Plugin '{plugin_id}' is not registered")
        raise typer.Exit(1)

    registry.update_settings(plugin_id, parse_settings(settings))
    print_success(f"Updated settings for {plugin_id}")


@registry_app.command("clear")
def clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Remove every registry entry."""
    if not yes:
        typer.confirm("Remove all registered plugins?", abort=True)

    get_registry().clear()
    print_success("Registry cleared")
