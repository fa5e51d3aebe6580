"""Plugin CLI commands.

Discover plugins and send them requests from the terminal.
"""

import asyncio
import json
from typing import Any, Optional

import typer

from cli.plughost.output import print_error, print_json, print_manifests, print_success
from plugins.errors import PluginError

plugins_app = typer.Typer(
    name="plugins",
    help="Discover plugins and send them requests.",
)


def get_loader():
    """Get a plugin loader built from configuration."""
    from host import create_loader, get_config

    return create_loader(get_config())


def parse_params(raw: str | None) -> dict[str, Any]:
    """Parse a --params JSON object."""
    if not raw:
        return {}

    try:
        params = json.loads(raw)
    except json.JSONDecodeError as e:
        print_error(f"Invalid --params JSON: {e}")
        raise typer.Exit(1)

    if not isinstance(params, dict):
        print_error("--params must be a JSON object")
        raise typer.Exit(1)

    return params


async def _request(plugin_id: str, action: str, params: dict[str, Any], timeout_ms: int | None) -> Any:
    loader = get_loader()
    await loader.discover()
    try:
        instance = await loader.load(plugin_id)
        return await instance.send(action, params, timeout_ms)
    finally:
        await loader.stop_all()


@plugins_app.command("list")
def list_plugins() -> None:
    """List available plugins.

    Example:
        plughost plugins list
    """
    try:
        manifests = asyncio.run(get_loader().discover())
    except PluginError as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_manifests(manifests)


@plugins_app.command("send")
def send(
    plugin_id: str = typer.Argument(..., help="Plugin id"),
    action: str = typer.Argument(..., help="Action name"),
    params: Optional[str] = typer.Option(None, "--params", "-p", help="Action parameters as a JSON object"),
    timeout: Optional[int] = typer.Option(None, "--timeout", "-t", help="Request timeout in milliseconds"),
) -> None:
    """Load a plugin, send one request, and print the response.

    Examples:
        plughost plugins send diamond-drill get_capabilities
        plughost plugins send diamond-drill browse --params '{"path": "docs"}'
    """
    payload = parse_params(params)

    try:
        data = asyncio.run(_request(plugin_id, action, payload, timeout))
    except PluginError as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_json(data)


@plugins_app.command("ping")
def ping(
    plugin_id: str = typer.Argument(..., help="Plugin id"),
    timeout: Optional[int] = typer.Option(5000, "--timeout", "-t", help="Request timeout in milliseconds"),
) -> None:
    """Check that a plugin answers requests.

    Example:
        plughost plugins ping diamond-drill
    """
    try:
        data = asyncio.run(_request(plugin_id, "ping", {}, timeout))
    except PluginError as e:
        print_error(f"{plugin_id}: {e}")
        raise typer.Exit(1)

    print_success(f"{plugin_id} responded: {json.dumps(data)}")
