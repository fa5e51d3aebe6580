"""Plugin host configuration and wiring."""

from .config import Config, get_config, load_config, reload_config
from .factory import create_loader, create_registry

__all__ = ["Config", "create_loader", "create_registry", "get_config", "load_config", "reload_config"]
