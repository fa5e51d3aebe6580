"""plughost CLI.

Command-line interface for the plugin host. Entry point: ``cli.plughost.cli:main``.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
