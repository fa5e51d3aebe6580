"""Plugin manifest schema.

Defines the structure of plugin.yaml files that describe plugin identity,
type, launch information, and settings.

Example plugin.yaml:
    id: diamond-drill
    name: Diamond Drill
    version: 0.1.0
    type: native
    description: Security-focused file analyzer

    entry:
      native:
        binary: diamond
        args: [--plugin-mode]

    capabilities: [file:analyze, file:browse]
    permissions: [read:files]
"""

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PluginType(str, Enum):
    """Runtime kinds a plugin can declare."""

    NATIVE = "native"
    WASM = "wasm"
    IFRAME = "iframe"
    WORKER = "worker"


class NativeEntry(BaseModel):
    """Launch descriptor for a native plugin process."""

    model_config = ConfigDict(frozen=True)

    binary: str = Field(..., description="Executable name or path")
    args: list[str] = Field(default_factory=list, description="Command line arguments")
    handshake: bool = Field(True, description="Plugin prints an init ready frame after launch")


class EntryPoints(BaseModel):
    """Entry points by plugin type."""

    model_config = ConfigDict(frozen=True)

    native: NativeEntry | None = None
    wasm: str | None = None
    iframe: str | None = None
    worker: str | None = None


class SettingField(BaseModel):
    """Schema for a user-facing plugin setting."""

    model_config = ConfigDict(frozen=True)

    type: str = Field(..., description="Field type: boolean, select, string, number")
    default: Any = Field(None, description="Default value")
    description: str = Field("", description="Field description")
    options: list[Any] = Field(default_factory=list, description="Choices for select fields")


class PluginManifest(BaseModel):
    """Plugin manifest schema (plugin.yaml).

    ``type`` is kept as a plain string so that a manifest with a type this
    host does not know can still be discovered; it is rejected at load time.
    """

    model_config = ConfigDict(frozen=True)

    # Identity
    id: str = Field(..., description="Plugin id (alphanumeric, dashes, underscores)")
    name: str = Field(..., description="Display name")
    version: str = Field(..., description="Semantic version (e.g., 1.0.0)")
    type: str = Field(PluginType.NATIVE.value, description="Plugin type: native|wasm|iframe|worker")
    description: str = Field("", description="Plugin description")
    author: str = Field("", description="Plugin author")

    # Runtime
    capabilities: list[str] = Field(default_factory=list, description="Capabilities offered")
    entry: EntryPoints = Field(default_factory=EntryPoints, description="Entry points by type")
    permissions: list[str] = Field(default_factory=list, description="Permissions requested")

    # Settings schema
    settings: dict[str, SettingField] = Field(default_factory=dict, description="User settings schema")

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Validate plugin id format."""
        if not isinstance(v, str) or not re.fullmatch(r"[a-zA-Z][a-zA-Z0-9_-]*", v):
            raise ValueError("id must start with letter and contain only alphanumeric, dashes, underscores")
        return v

    @field_validator("version", mode="before")
    @classmethod
    def validate_version(cls, v: Any) -> str:
        """Validate semantic version format."""
        v = str(v)
        if not re.match(r"^\d+\.\d+\.\d+", v):
            raise ValueError("version must be semantic (e.g., 1.0.0)")
        return v

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> str:
        if isinstance(v, PluginType):
            return v.value
        return str(v).strip().lower()

    @property
    def plugin_type(self) -> PluginType | None:
        """Parsed type, or None when this host does not know it."""
        try:
            return PluginType(self.type)
        except ValueError:
            return None

    def default_settings(self) -> dict[str, Any]:
        """Default values declared in the settings schema."""
        return {name: field.default for name, field in self.settings.items() if field.default is not None}


DIAMOND_DRILL = PluginManifest(
    id="diamond-drill",
    name="Diamond Drill",
    version="0.1.0",
    type=PluginType.NATIVE,
    description="Security-focused file analyzer with read-only enforcement",
    author="Diamond Forgemaster",
    capabilities=["file:analyze", "file:report", "file:browse", "ui:panel"],
    entry=EntryPoints(
        native=NativeEntry(binary="diamond", args=["--plugin-mode"]),
        wasm="diamond_drill.wasm",
    ),
    permissions=["read:files", "write:reports"],
    settings={
        "defaultView": SettingField(type="select", default="panel", options=["panel", "modal"]),
        "readOnlyEnforce": SettingField(type="boolean", default=True),
    },
)

BUILTIN_MANIFESTS: list[PluginManifest] = [DIAMOND_DRILL]
