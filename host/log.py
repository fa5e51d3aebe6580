"""Logging setup for plugin host entry points."""

import logging

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(level: str = "INFO", use_rich: bool = True, console: Console | None = None) -> None:
    """Configure the root logger.

    Library modules only create loggers; entry points call this once.

    Args:
        level: Log level name
        use_rich: Render records through rich instead of plain text
        console: Console for the rich handler (default: stderr)
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    if use_rich:
        handler: logging.Handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    # Keep asyncio debug chatter out of plugin logs
    logging.getLogger("asyncio").setLevel(logging.WARNING)
