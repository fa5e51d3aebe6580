"""Rich console output utilities for the plughost CLI."""

import json
from typing import Any

from rich.console import Console
from rich.table import Table

from plugins import PluginManifest, RegistryEntry

console = Console()
error_console = Console(stderr=True)


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    error_console.print(f"[red]✗[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]![/yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]→[/blue] {message}")


def print_json(data: Any) -> None:
    """Print formatted JSON."""
    console.print_json(json.dumps(data, indent=2, default=str))


def print_manifests(manifests: list[PluginManifest], loaded: set[str] | None = None) -> None:
    """Print discovered plugins as a table."""
    if not manifests:
        print_info("No plugins found.")
        return

    loaded = loaded or set()

    table = Table(title="Available Plugins")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Version")
    table.add_column("Type", style="green")
    table.add_column("Capabilities")
    table.add_column("Loaded", justify="center")

    for manifest in sorted(manifests, key=lambda m: m.id):
        table.add_row(
            manifest.id,
            manifest.name,
            manifest.version,
            manifest.type,
            ", ".join(manifest.capabilities) or "-",
            "[green]✓[/green]" if manifest.id in loaded else "",
        )

    console.print(table)


def print_registry_entries(entries: list[RegistryEntry]) -> None:
    """Print registry entries as a table."""
    if not entries:
        print_info("No plugins registered.")
        return

    table = Table(title="Registered Plugins")
    table.add_column("ID", style="cyan")
    table.add_column("Enabled", justify="center")
    table.add_column("Settings")
    table.add_column("Installed", style="dim")

    for entry in sorted(entries, key=lambda e: e.id):
        table.add_row(
            entry.id,
            "[green]yes[/green]" if entry.enabled else "[red]no[/red]",
            json.dumps(entry.settings, default=str) if entry.settings else "-",
            entry.installed_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)
