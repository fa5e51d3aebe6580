"""CLI command modules for plughost."""

from cli.commands.plugins import plugins_app
from cli.commands.registry import registry_app

__all__ = ["plugins_app", "registry_app"]
