"""Manifest sources for plugin discovery.

A source produces the list of manifests currently available. The loader
asks its source again on every ``discover()``, so a directory source picks
up plugins added or removed since the last scan.

Plugin Structure:
    ~/.plughost/plugins/
    └── my_plugin/
        └── plugin.yaml        # Manifest (see plugins.manifest)
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .errors import ManifestError, ManifestSourceError
from .manifest import BUILTIN_MANIFESTS, PluginManifest

logger = logging.getLogger(__name__)

MANIFEST_FILE = "plugin.yaml"


class ManifestSource(ABC):
    """Produces plugin manifests."""

    @abstractmethod
    async def list_manifests(self) -> list[PluginManifest]:
        """List the manifests currently available.

        Raises:
            ManifestSourceError: If the listing cannot be produced at all
        """
        ...


class StaticManifestSource(ManifestSource):
    """Fixed list of manifests (defaults to the builtin plugins)."""

    def __init__(self, manifests: Iterable[PluginManifest | dict[str, Any]] | None = None) -> None:
        entries = BUILTIN_MANIFESTS if manifests is None else manifests
        self.manifests = [m if isinstance(m, PluginManifest) else PluginManifest(**m) for m in entries]

    async def list_manifests(self) -> list[PluginManifest]:
        return list(self.manifests)


def load_manifest(plugin_path: Path) -> PluginManifest:
    """Load and validate a plugin manifest.

    Args:
        plugin_path: Path to plugin directory

    Returns:
        Validated PluginManifest

    Raises:
        ManifestError: If manifest is missing or invalid
    """
    manifest_path = plugin_path / MANIFEST_FILE

    try:
        with open(manifest_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ManifestError(f"Manifest not found: {manifest_path}")
    except yaml.YAMLError as e:
        raise ManifestError(f"Invalid YAML in manifest: {e}")

    if not isinstance(data, dict):
        raise ManifestError(f"Manifest must be a mapping: {manifest_path}")

    try:
        return PluginManifest(**data)
    except ValidationError as e:
        raise ManifestError(f"Invalid manifest {manifest_path}: {e}")


class DirectoryManifestSource(ManifestSource):
    """Scans directories for ``<plugin>/plugin.yaml``.

    Invalid manifests are logged and skipped so one broken plugin does not
    hide the others.
    """

    def __init__(self, plugin_dirs: Iterable[Path | str]) -> None:
        self.plugin_dirs = [Path(d).expanduser() for d in plugin_dirs]

    def discover_plugin_paths(self) -> list[Path]:
        """Find plugin directories (those containing plugin.yaml)."""
        discovered = []

        for plugin_dir in self.plugin_dirs:
            if not plugin_dir.is_dir():
                logger.debug("Plugin directory does not exist: %s", plugin_dir)
                continue

            for subdir in sorted(plugin_dir.iterdir()):
                if subdir.is_dir() and (subdir / MANIFEST_FILE).exists():
                    discovered.append(subdir)
                    logger.debug("Discovered plugin: %s", subdir.name)

        return discovered

    def scan(self) -> list[PluginManifest]:
        manifests = []

        for plugin_path in self.discover_plugin_paths():
            try:
                manifests.append(load_manifest(plugin_path))
            except ManifestError as e:
                logger.warning("Skipping plugin %s: %s", plugin_path.name, e)

        return manifests

    async def list_manifests(self) -> list[PluginManifest]:
        try:
            return await asyncio.to_thread(self.scan)
        except OSError as e:
            raise ManifestSourceError(f"Failed to scan plugin directories: {e}") from e


class ChainedManifestSource(ManifestSource):
    """Concatenates several sources; a later source wins on duplicate ids."""

    def __init__(self, sources: Iterable[ManifestSource]) -> None:
        self.sources = list(sources)

    async def list_manifests(self) -> list[PluginManifest]:
        by_id: dict[str, PluginManifest] = {}
        for source in self.sources:
            for manifest in await source.list_manifests():
                if manifest.id in by_id:
                    logger.info("Manifest %s overridden by %s", manifest.id, type(source).__name__)
                by_id[manifest.id] = manifest
        return list(by_id.values())
