"""Configuration management for the plugin host.

Loads configuration from:
1. config.toml (defaults)
2. .env file (via python-dotenv)
3. Environment variables (overrides)
"""

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()


@dataclass
class BridgeConfig:
    """Request/response bridge configuration."""

    request_timeout_ms: int = 30000
    startup_timeout_ms: int = 5000  # Wait for the plugin's init ready frame
    shutdown_grace_ms: int = 1000  # Clean exit window before the process is killed
    max_line_bytes: int = 2 * 1024 * 1024


@dataclass
class MockConfig:
    """Mock transport configuration."""

    latency_ms: float = 50  # Simulated response latency (0 = next loop iteration)


@dataclass
class LoaderConfig:
    """Plugin discovery and loading configuration."""

    transport: str = "auto"  # "auto" | "process" | "mock"
    use_builtin: bool = True  # Include the builtin manifests
    plugin_dirs: list[str] = field(default_factory=list)  # Extra directories (empty = defaults)


@dataclass
class RegistryConfig:
    """Plugin registry persistence configuration."""

    storage_path: str = ""  # JSON file (empty = ~/.plughost/registry.json)
    storage_key: str = "plugin-registry"


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    rich: bool = True  # Use rich console handler


@dataclass
class Config:
    """Main configuration container."""

    bridge: BridgeConfig = field(default_factory=BridgeConfig)
    mock: MockConfig = field(default_factory=MockConfig)
    loader: LoaderConfig = field(default_factory=LoaderConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        return cls(
            bridge=BridgeConfig(**data.get("bridge", {})),
            mock=MockConfig(**data.get("mock", {})),
            loader=LoaderConfig(**data.get("loader", {})),
            registry=RegistryConfig(**data.get("registry", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )

    def registry_path(self) -> Path:
        """Resolved path of the registry storage file."""
        if self.registry.storage_path:
            return Path(self.registry.storage_path).expanduser()
        return Path.home() / ".plughost" / "registry.json"


def find_config_file() -> Path | None:
    """Find config.toml in current or parent directories.

    Returns:
        Path to config.toml or None if not found.
    """
    current = Path.cwd()

    for directory in [current, *current.parents]:
        config_path = directory / "config.toml"
        if config_path.exists():
            return config_path

    return None


def load_config(config_path: Path | str | None = None) -> Config:
    """Load configuration from file and environment.

    Args:
        config_path: Optional explicit path to config.toml

    Returns:
        Config object with merged settings.
    """
    config_data: dict[str, Any] = {}

    if config_path is None:
        config_path = find_config_file()

    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path, "rb") as f:
                config_data = tomllib.load(f)

    # Apply environment variable overrides
    env_overrides = {
        "bridge": {
            "request_timeout_ms": _int_or_none(os.getenv("PLUGHOST_REQUEST_TIMEOUT_MS")),
            "startup_timeout_ms": _int_or_none(os.getenv("PLUGHOST_STARTUP_TIMEOUT_MS")),
        },
        "mock": {
            "latency_ms": _float_or_none(os.getenv("PLUGHOST_MOCK_LATENCY_MS")),
        },
        "loader": {
            "transport": os.getenv("PLUGHOST_TRANSPORT"),
        },
        "registry": {
            "storage_path": os.getenv("PLUGHOST_REGISTRY_PATH"),
        },
        "logging": {
            "level": os.getenv("PLUGHOST_LOG_LEVEL"),
        },
    }

    # Merge env overrides (only non-None values)
    for section, values in env_overrides.items():
        if section not in config_data:
            config_data[section] = {}
        for key, value in values.items():
            if value is not None:
                config_data[section][key] = value

    return Config.from_dict(config_data)


def _int_or_none(value: str | None) -> int | None:
    """Convert string to int, or return None."""
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _float_or_none(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


# Global config instance (lazy loaded)
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance.

    Returns:
        Config object (loaded once, cached).
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config(config_path: Path | str | None = None) -> Config:
    """Force reload of configuration.

    Returns:
        Fresh Config object.
    """
    global _config
    _config = load_config(config_path)
    return _config
