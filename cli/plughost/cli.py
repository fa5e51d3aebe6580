"""plughost CLI.

Main command-line interface for the plugin host.
"""

from pathlib import Path
from typing import Optional

import typer

from cli.commands.plugins import plugins_app
from cli.commands.registry import registry_app
from cli.plughost.output import console
from host.config import reload_config
from host.log import setup_logging

app = typer.Typer(
    name="plughost",
    help="Plugin host - discover, run, and configure editor plugins",
    no_args_is_help=True,
)

app.add_typer(plugins_app, name="plugins")
app.add_typer(registry_app, name="registry")


@app.callback()
def configure(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config.toml (default: nearest in current or parent directories)",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Log level: DEBUG|INFO|WARNING|ERROR",
    ),
) -> None:
    """Load configuration and set up logging for every command."""
    settings = reload_config(config)
    setup_logging(log_level or settings.logging.level, use_rich=settings.logging.rich)


@app.command()
def version() -> None:
    """Show plughost version."""
    from cli.plughost import __version__

    console.print(f"plughost v{__version__}")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
