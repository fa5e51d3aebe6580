"""Plugin registry for installed plugins and their settings.

Tracks which plugins are enabled and what settings the user saved for them.
This is independent of runtime state: a plugin can be registered without
being loaded, and loaded without being registered.

The in-memory map is authoritative for the session. Every mutation is
mirrored to the injected storage under one key as a JSON array; a failed
write is logged and otherwise ignored.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import StorageFailure
from .storage import KeyValueStorage

logger = logging.getLogger(__name__)

STORAGE_KEY = "plugin-registry"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RegistryEntry(BaseModel):
    """Registration record for one plugin."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    enabled: bool = True
    settings: dict[str, Any] = Field(default_factory=dict)
    installed_at: datetime = Field(default_factory=_utcnow, alias="installedAt")

    def to_storage(self) -> dict[str, Any]:
        """Serialize with the storage field names."""
        return self.model_dump(mode="json", by_alias=True)


class PluginRegistry:
    """Persistent record of registered plugins.

    Usage::

        registry = PluginRegistry(storage=JsonFileStorage("~/.plughost/registry.json"))
        registry.register("diamond-drill", {"defaultView": "panel"})
        registry.get_enabled_plugins()   # ["diamond-drill"]
    """

    def __init__(self, storage: KeyValueStorage | None = None, storage_key: str = STORAGE_KEY) -> None:
        """Initialize registry and load persisted entries.

        Args:
            storage: Backing store (None = memory only, nothing persisted)
            storage_key: Key holding the serialized entry list
        """
        self.storage = storage
        self.storage_key = storage_key
        self.entries: dict[str, RegistryEntry] = {}
        self._load()

    def _load(self) -> None:
        if self.storage is None:
            return

        try:
            raw = self.storage.get_item(self.storage_key)
            if not raw:
                return
            data = json.loads(raw)
        except Exception as e:
            logger.warning("Failed to load plugin registry: %s", e)
            return

        if not isinstance(data, list):
            logger.warning("Failed to load plugin registry: expected a list, got %s", type(data).__name__)
            return

        for item in data:
            try:
                entry = RegistryEntry.model_validate(item)
            except ValidationError as e:
                logger.warning("Skipping invalid registry entry %r: %s", item, e)
                continue
            self.entries[entry.id] = entry

    def _save(self) -> None:
        if self.storage is None:
            return

        try:
            payload = json.dumps([entry.to_storage() for entry in self.entries.values()])
            self.storage.set_item(self.storage_key, payload)
        except Exception as e:
            failure = StorageFailure(f"Failed to save plugin registry: {e}")
            logger.warning("%s", failure)

    def register(self, plugin_id: str, settings: dict[str, Any] | None = None) -> RegistryEntry:
        """Register a plugin, replacing any existing entry.

        Args:
            plugin_id: Plugin id
            settings: Initial settings

        Returns:
            The new entry
        """
        entry = RegistryEntry(id=plugin_id, enabled=True, settings=dict(settings or {}))
        self.entries[plugin_id] = entry
        self._save()
        logger.info("Registered plugin: %s", plugin_id)
        return entry

    def unregister(self, plugin_id: str) -> None:
        """Remove a plugin's entry. No-op if not registered."""
        if self.entries.pop(plugin_id, None) is None:
            return
        self._save()
        logger.info("Unregistered plugin: %s", plugin_id)

    def get(self, plugin_id: str) -> RegistryEntry | None:
        return self.entries.get(plugin_id)

    def is_registered(self, plugin_id: str) -> bool:
        return plugin_id in self.entries

    def is_enabled(self, plugin_id: str) -> bool:
        entry = self.entries.get(plugin_id)
        return entry.enabled if entry else False

    def enable(self, plugin_id: str) -> None:
        self._set_enabled(plugin_id, True)

    def disable(self, plugin_id: str) -> None:
        self._set_enabled(plugin_id, False)

    def _set_enabled(self, plugin_id: str, enabled: bool) -> None:
        entry = self.entries.get(plugin_id)
        if entry is None:
            return
        entry.enabled = enabled
        self._save()

    def update_settings(self, plugin_id: str, settings: dict[str, Any]) -> None:
        """Merge settings into a plugin's entry (new keys win).

        No-op if the plugin is not registered.
        """
        entry = self.entries.get(plugin_id)
        if entry is None:
            return
        entry.settings = {**entry.settings, **settings}
        self._save()

    def get_enabled_plugins(self) -> list[str]:
        """Ids of all enabled plugins."""
        return [entry.id for entry in self.entries.values() if entry.enabled]

    def get_all(self) -> list[RegistryEntry]:
        return list(self.entries.values())

    def clear(self) -> None:
        """Remove every entry."""
        self.entries.clear()
        self._save()

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, plugin_id: str) -> bool:
        return plugin_id in self.entries
