"""Canonical Pydantic models shared across all flowplug modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into three groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`OutputConfig`, :class:`PluginsConfig`, and :class:`GlobalConfig`.

**Plugin file models** -- authored by plugin developers or persisted by the
plugin manager inside the project:
    :class:`ConfigFieldSchema`, :class:`PluginDependency`,
    :class:`PluginManifest`, :class:`PluginState`, and
    :class:`PluginStateFile`. These use camelCase JSON aliases with
    ``populate_by_name=True`` so Python code can use snake_case names.

**Result models** -- returned by the validator, loader, hook runner, and
manager so that callers (mostly the CLI) can render them or serialise them
with ``model_dump(mode="json")``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from flowplug.versioning import is_valid_range, is_valid_version

ExtensionPointName = Literal["commands", "agents", "hooks", "services", "templates"]
ConfigValueType = Literal["string", "number", "boolean", "array", "object"]
ManifestErrorCode = Literal["MISSING_FIELD", "INVALID_TYPE", "INVALID_VALUE", "SCHEMA_ERROR"]
LoadPhase = Literal["discovery", "manifest", "dependency", "import", "activation"]
PluginSource = Literal["registry", "local"]
InstallPhase = Literal["downloading", "validating", "activating", "complete"]

EXTENSION_POINTS: tuple[str, ...] = ("commands", "agents", "hooks", "services", "templates")


def utc_now() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


# --- Global config ---


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class PluginsConfig(BaseModel):
    """Plugin runtime settings stored in :class:`GlobalConfig`."""

    enabled: bool = Field(
        default=True, description="Master switch; False skips plugin loading entirely"
    )
    directories: list[str] = Field(
        default_factory=list,
        description="Extra directories scanned for plugin folders",
    )
    registry_url: Optional[str] = Field(
        default=None, description="Package registry used by search and info"
    )
    hook_timeout_seconds: float = Field(
        default=30.0, description="Per-handler timeout for phase hooks"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/flowplug/config.json``.

    Loaded and saved by :func:`~flowplug.config.load_global_config` and
    :func:`~flowplug.config.save_global_config`. Fields here have the
    lowest precedence and can be overridden by project state, environment
    variables, or CLI flags.
    """

    output: OutputConfig = Field(default_factory=OutputConfig)
    plugins: PluginsConfig = Field(default_factory=PluginsConfig)


# --- Plugin manifest ---


class ConfigFieldSchema(BaseModel):
    """Declaration of a single configuration key a plugin accepts."""

    model_config = ConfigDict(frozen=True)

    type: ConfigValueType
    description: str = ""
    default: Any = None
    required: Optional[bool] = None

    @property
    def has_default(self) -> bool:
        """True when the manifest spelled out a ``default`` (even ``null``)."""
        return "default" in self.model_fields_set


class PluginDependency(BaseModel):
    """Another plugin that must be loaded first, with an accepted version range."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(min_length=1)
    version_range: str = Field(alias="versionRange")

    @field_validator("version_range")
    @classmethod
    def _check_range(cls, value: str) -> str:
        if not is_valid_range(value):
            raise ValueError(f"'{value}' is not a valid version range")
        return value


class PluginManifest(BaseModel):
    """Contents of a plugin's ``flowplug-plugin.json``.

    Example::

        {
          "name": "jira-sync",
          "version": "1.2.0",
          "description": "Sync generated tasks to Jira",
          "author": "Platform Team",
          "entryPoint": "plugin.py",
          "flowplugVersion": ">=0.12.0",
          "extensionPoints": ["commands", "hooks"],
          "dependencies": [{"name": "jira-auth", "versionRange": "^1.0.0"}]
        }

    The model is frozen: the host never mutates a plugin's manifest.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(min_length=1, pattern=r"^[A-Za-z0-9@][A-Za-z0-9@/._-]*$")
    version: str
    description: str
    author: str
    entry_point: str = Field(alias="entryPoint", min_length=1)
    flowplug_version: str = Field(alias="flowplugVersion")
    extension_points: list[ExtensionPointName] = Field(alias="extensionPoints")
    dependencies: list[PluginDependency] = Field(default_factory=list)
    config_schema: Optional[dict[str, ConfigFieldSchema]] = Field(
        default=None, alias="configSchema"
    )

    @field_validator("version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        if not is_valid_version(value):
            raise ValueError(f"'{value}' is not a valid version")
        return value

    @field_validator("flowplug_version")
    @classmethod
    def _check_host_range(cls, value: str) -> str:
        if not is_valid_range(value):
            raise ValueError(f"'{value}' is not a valid version range")
        return value

    def to_json_dict(self) -> dict[str, Any]:
        """Serialise back to the on-disk (camelCase) representation."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# --- Persisted plugin state ---


class PluginState(BaseModel):
    """Per-plugin entry in the project's ``.flowplug/plugins.json``."""

    model_config = ConfigDict(populate_by_name=True)

    version: str
    enabled: bool = True
    installed_at: str = Field(default_factory=utc_now, alias="installedAt")
    updated_at: str = Field(default_factory=utc_now, alias="updatedAt")
    source: PluginSource = "registry"
    local_path: Optional[str] = Field(default=None, alias="localPath")
    # Distribution name given to pip; may differ from the manifest name
    # the entry is keyed by.
    package: Optional[str] = None


class PluginStateFile(BaseModel):
    """Root object of ``.flowplug/plugins.json``."""

    model_config = ConfigDict(populate_by_name=True)

    schema_version: int = Field(default=1, alias="schemaVersion")
    plugins: dict[str, PluginState] = Field(default_factory=dict)
    registry_url: Optional[str] = Field(default=None, alias="registryUrl")


# --- Validation results ---


class ManifestError(BaseModel):
    """A single manifest problem, attributed to the offending field."""

    field: str
    message: str
    code: ManifestErrorCode


class ManifestValidationResult(BaseModel):
    """Outcome of :meth:`ManifestValidator.validate`."""

    valid: bool
    manifest: Optional[PluginManifest] = None
    errors: list[ManifestError] = Field(default_factory=list)


class CompatibilityResult(BaseModel):
    """Outcome of a host-version compatibility check."""

    compatible: bool
    required_range: str
    actual_version: str
    message: str


# --- Load results ---


class LoadedPlugin(BaseModel):
    """A plugin that was activated during a load cycle."""

    name: str
    version: str
    manifest: PluginManifest
    path: Optional[str] = None


class SkippedPlugin(BaseModel):
    """A discovered plugin that was deliberately not loaded."""

    name: str
    reason: str


class PluginLoadError(BaseModel):
    """A plugin that failed to load, with the stage it failed in."""

    plugin_name: str
    phase: LoadPhase
    error: str


class PluginLoadResult(BaseModel):
    """Accumulated outcome of one load cycle."""

    loaded: list[LoadedPlugin] = Field(default_factory=list)
    skipped: list[SkippedPlugin] = Field(default_factory=list)
    errors: list[PluginLoadError] = Field(default_factory=list)

    def merge(self, other: PluginLoadResult) -> None:
        """Append *other*'s buckets to this result in place."""
        self.loaded.extend(other.loaded)
        self.skipped.extend(other.skipped)
        self.errors.extend(other.errors)


# --- Hook / extension results ---


class HookError(BaseModel):
    """A hook handler that raised or timed out."""

    plugin_name: str
    error: str


class HookExecutionResult(BaseModel):
    """Outcome of running the hooks registered for one phase and timing."""

    vetoed: bool = False
    veto_reason: Optional[str] = None
    veto_plugin: Optional[str] = None
    executed_hooks: int = 0
    errors: list[HookError] = Field(default_factory=list)


class CommandExecutionResult(BaseModel):
    """Outcome of running a plugin-provided command."""

    success: bool
    plugin_name: Optional[str] = None
    error: Optional[str] = None


class AgentInvocationResult(BaseModel):
    """Outcome of invoking a plugin-provided agent."""

    success: bool
    output: str = ""
    error: Optional[str] = None
    plugin_name: Optional[str] = None


# --- Lifecycle results ---


class InstallResult(BaseModel):
    success: bool
    plugin_name: str
    version: Optional[str] = None
    error: Optional[str] = None


class UninstallResult(BaseModel):
    success: bool
    plugin_name: str
    error: Optional[str] = None


class UpdateResult(BaseModel):
    success: bool
    plugin_name: str
    previous_version: Optional[str] = None
    new_version: Optional[str] = None
    error: Optional[str] = None


class InstallProgress(BaseModel):
    """Progress event passed to an install ``on_progress`` callback."""

    phase: InstallPhase
    message: str
    progress: Optional[int] = None


class PluginInfo(BaseModel):
    """Row of ``flowplug plugin list``."""

    name: str
    version: str
    enabled: bool
    source: PluginSource
    description: str = ""
    extension_points: list[str] = Field(default_factory=list)
    installed_at: Optional[str] = None
    local_path: Optional[str] = None


class PluginDetail(BaseModel):
    """Result of ``info``: an installed plugin or a registry package."""

    name: str
    version: str
    description: str = ""
    author: str = "Unknown"
    installed: bool = False
    enabled: Optional[bool] = None
    source: Optional[PluginSource] = None
    extension_points: list[str] = Field(default_factory=list)
    compatibility_range: str = ""
    dependencies: list[str] = Field(default_factory=list)
    config_schema: Optional[dict[str, Any]] = None


class RegistrySearchHit(BaseModel):
    """One package returned by a registry search."""

    name: str
    description: str = ""
    version: str
    author: str = "Unknown"


class ScaffoldResult(BaseModel):
    success: bool
    created_files: list[str] = Field(default_factory=list)
    error: Optional[str] = None
