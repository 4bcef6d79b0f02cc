"""Plugin lifecycle management -- install, update, enable, configure.

:class:`PluginManager` owns the project's ``.flowplug/plugins.json`` state
file and the per-plugin config files. Packages are installed with pip
(through an injectable process runner so tests never spawn processes),
and every install or update is checked before any state is written:

* the installed package must ship a valid ``flowplug-plugin.json``;
* the manifest's ``flowplugVersion`` range must accept the running host.

A failed install is rolled back with ``pip uninstall`` and leaves the state
file untouched. Search and info against the package registry go through
:mod:`httpx` and degrade to empty results when the registry is unreachable.
"""

from __future__ import annotations

import ast
import asyncio
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Sequence, Union
from urllib.parse import quote

import httpx
from packaging.requirements import InvalidRequirement, Requirement

from flowplug import __version__
from flowplug import config as config_store
from flowplug.exceptions import PluginNotInstalledError
from flowplug.models import (
    InstallProgress,
    InstallResult,
    ManifestError,
    ManifestValidationResult,
    PluginDetail,
    PluginInfo,
    PluginManifest,
    PluginState,
    PluginStateFile,
    RegistrySearchHit,
    ScaffoldResult,
    UninstallResult,
    UpdateResult,
    utc_now,
)
from flowplug.plugins.registry import PluginRegistry
from flowplug.plugins.scaffold import scaffold_plugin
from flowplug.plugins.sources import (
    DISCOVERY_KEYWORD,
    default_dependency_dir,
    distribution_name_for,
    find_installed_plugin_dir,
    locate_manifest_dir,
)
from flowplug.plugins.validator import (
    MANIFEST_FILENAME,
    ManifestValidator,
    merge_config_defaults,
    validate_config_value,
)

logger = logging.getLogger(__name__)

SEARCH_PAGE_SIZE = 20
REGISTRY_TIMEOUT = 10.0


@dataclass(frozen=True)
class ProcessResult:
    code: int
    stdout: str
    stderr: str


ProcessRunner = Callable[[Sequence[str]], Awaitable[ProcessResult]]
ProgressCallback = Callable[[InstallProgress], None]


async def run_process(argv: Sequence[str]) -> ProcessResult:
    """Run *argv* and capture its output. Spawn failures become exit code 127."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
        )
    except OSError as exc:
        return ProcessResult(code=127, stdout="", stderr=str(exc))
    stdout, stderr = await proc.communicate()
    return ProcessResult(
        code=proc.returncode if proc.returncode is not None else 0,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


class PluginManager:
    """Install, remove, and configure plugins for one project.

    Args:
        registry: Live registry; plugins are deregistered from it when they
            are disabled or uninstalled.
        project_dir: Project whose ``.flowplug/`` directory holds the state.
        validator: Manifest validator.
        host_version: Version checked against ``flowplugVersion`` ranges.
        dependency_dir: Where pip installs packages (site-packages).
        runner: Coroutine running a process; defaults to :func:`run_process`.
        python: Interpreter whose pip is used.
        registry_url: Explicit package registry override.
        transport: Optional httpx transport (tests pass a mock transport).
    """

    def __init__(
        self,
        registry: PluginRegistry,
        project_dir: Path,
        validator: Optional[ManifestValidator] = None,
        host_version: str = __version__,
        dependency_dir: Optional[Path] = None,
        runner: Optional[ProcessRunner] = None,
        python: str = sys.executable,
        registry_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._registry = registry
        self._project_dir = Path(project_dir)
        self._validator = validator or ManifestValidator()
        self._host_version = host_version
        self._dependency_dir = dependency_dir or default_dependency_dir()
        self._runner = runner or run_process
        self._python = python
        self._registry_url = registry_url
        self._transport = transport

    # ------------------------------------------------------------------
    # pip
    # ------------------------------------------------------------------

    async def _pip(self, *args: str) -> ProcessResult:
        argv = [self._python, "-m", "pip", *args]
        logger.debug("Running %s", " ".join(argv))
        return await self._runner(argv)

    async def _pip_available(self) -> bool:
        try:
            result = await self._pip("--version")
        except OSError:
            return False
        return result.code == 0

    def _pip_missing_message(self) -> str:
        return (
            f"pip is not available for {self._python}. "
            "Install it with 'python -m ensurepip --upgrade' and try again."
        )

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def _load_state(self) -> PluginStateFile:
        return config_store.load_plugin_state(self._project_dir)

    def _save_state(self, state: PluginStateFile) -> None:
        config_store.save_plugin_state(self._project_dir, state)

    def _require(self, state: PluginStateFile, name: str) -> PluginState:
        entry = state.plugins.get(name)
        if entry is None:
            raise PluginNotInstalledError(f'Plugin "{name}" is not installed')
        return entry

    def _plugin_dir(self, name: str, entry: Optional[PluginState]) -> Optional[Path]:
        if entry is not None and entry.source == "local" and entry.local_path:
            return Path(entry.local_path)
        return find_installed_plugin_dir(name, self._dependency_dir)

    def _read_manifest(self, name: str, entry: Optional[PluginState]) -> Optional[PluginManifest]:
        plugin_dir = self._plugin_dir(name, entry)
        if plugin_dir is None:
            return None
        return self._validator.validate_file(plugin_dir / MANIFEST_FILENAME).manifest

    # ------------------------------------------------------------------
    # Install / uninstall / update
    # ------------------------------------------------------------------

    async def install(
        self,
        name_or_path: str,
        local_path: Optional[Union[str, Path]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> InstallResult:
        """Install a plugin from the package index or from a local directory.

        Local directories are installed by reference (``pip install -e``),
        so edits show up without reinstalling. The state file is only
        written after the installed manifest passed validation and the
        compatibility check; otherwise the package is uninstalled again.

        Args:
            name_or_path: Package name, or a path when installing locally.
            local_path: Explicit local directory (overrides detection).
            on_progress: Receives ``downloading``, ``validating``,
                ``activating`` and ``complete`` events.
        """

        def progress(phase: str, message: str, percent: Optional[int] = None) -> None:
            if on_progress is not None:
                on_progress(InstallProgress(phase=phase, message=message, progress=percent))

        if local_path is None and _looks_like_path(name_or_path):
            local_path = name_or_path
        source_dir = Path(local_path).expanduser().resolve() if local_path is not None else None
        plugin_name = name_or_path if source_dir is None else source_dir.name
        package = name_or_path if source_dir is not None else _requirement_name(name_or_path)

        if not await self._pip_available():
            return InstallResult(success=False, plugin_name=plugin_name, error=self._pip_missing_message())

        manifest_dir: Optional[Path] = None
        if source_dir is not None:
            manifest_dir = locate_manifest_dir(source_dir)
            if manifest_dir is None:
                return InstallResult(
                    success=False,
                    plugin_name=plugin_name,
                    error=f"No {MANIFEST_FILENAME} found in {source_dir}",
                )
            local_manifest = self._validator.validate_file(manifest_dir / MANIFEST_FILENAME).manifest
            if local_manifest is not None:
                plugin_name = local_manifest.name
            package = distribution_name_for(manifest_dir, self._dependency_dir) or plugin_name

        progress("downloading", f"Installing {plugin_name}", 0)
        if source_dir is not None:
            outcome = await self._pip("install", "-e", str(source_dir))
        else:
            outcome = await self._pip("install", name_or_path)
        progress("downloading", f"Installed {plugin_name}", 100)
        if outcome.code != 0:
            return InstallResult(
                success=False,
                plugin_name=plugin_name,
                error=f"pip install failed: {outcome.stderr or outcome.stdout}",
            )

        progress("validating", f"Validating {plugin_name}")
        if manifest_dir is None:
            manifest_dir = find_installed_plugin_dir(package, self._dependency_dir)
        if manifest_dir is None:
            await self._rollback(package)
            return InstallResult(
                success=False,
                plugin_name=plugin_name,
                error=f"Package '{plugin_name}' does not ship a {MANIFEST_FILENAME}",
            )

        validation = self._validator.validate_file(manifest_dir / MANIFEST_FILENAME)
        if not validation.valid or validation.manifest is None:
            logger.error("Invalid manifest for '%s', rolling back installation", plugin_name)
            await self._rollback(package)
            return InstallResult(
                success=False,
                plugin_name=plugin_name,
                error=f"Invalid plugin manifest: {_join_errors(validation.errors)}",
            )

        manifest = validation.manifest
        compat = self._validator.check_compatibility(manifest.flowplug_version, self._host_version)
        if not compat.compatible:
            logger.error("Plugin '%s' is incompatible, rolling back installation", manifest.name)
            await self._rollback(package)
            return InstallResult(
                success=False,
                plugin_name=manifest.name,
                version=manifest.version,
                error=f"Version incompatible: {compat.message}",
            )

        progress("activating", f"Registering {manifest.name}")
        state = self._load_state()
        now = utc_now()
        state.plugins[manifest.name] = PluginState(
            version=manifest.version,
            enabled=True,
            installed_at=now,
            updated_at=now,
            source="local" if source_dir is not None else "registry",
            local_path=str(manifest_dir) if source_dir is not None else None,
            package=package,
        )
        self._save_state(state)
        progress("complete", f"Installed {manifest.name} {manifest.version}")

        logger.info("Installed plugin '%s' v%s", manifest.name, manifest.version)
        return InstallResult(success=True, plugin_name=manifest.name, version=manifest.version)

    async def _rollback(self, name: str) -> None:
        outcome = await self._pip("uninstall", "-y", name)
        if outcome.code != 0:
            logger.warning("Rollback of '%s' failed: %s", name, outcome.stderr or outcome.stdout)

    async def uninstall(self, name: str) -> UninstallResult:
        """Deregister a plugin, uninstall its package, and forget its state and config."""
        if not await self._pip_available():
            return UninstallResult(success=False, plugin_name=name, error=self._pip_missing_message())

        state = self._load_state()
        if name not in state.plugins:
            return UninstallResult(
                success=False, plugin_name=name, error=f'Plugin "{name}" is not installed'
            )

        await self._registry.unregister_plugin(name)

        outcome = await self._pip("uninstall", "-y", state.plugins[name].package or name)
        if outcome.code != 0:
            return UninstallResult(
                success=False,
                plugin_name=name,
                error=f"pip uninstall failed: {outcome.stderr or outcome.stdout}",
            )

        del state.plugins[name]
        self._save_state(state)
        try:
            config_store.delete_plugin_config(self._project_dir, name)
        except OSError as exc:
            logger.warning("Could not remove config of plugin '%s': %s", name, exc)

        logger.info("Uninstalled plugin '%s'", name)
        return UninstallResult(success=True, plugin_name=name)

    async def update(self, name: str) -> UpdateResult:
        """Upgrade a plugin, keeping its stored configuration.

        On failure the recorded version stays as it was; installed files
        are left however pip left them.
        """
        if not await self._pip_available():
            return UpdateResult(success=False, plugin_name=name, error=self._pip_missing_message())

        state = self._load_state()
        entry = state.plugins.get(name)
        if entry is None:
            return UpdateResult(
                success=False, plugin_name=name, error=f'Plugin "{name}" is not installed'
            )

        previous = entry.version
        stored_config = config_store.load_plugin_config(self._project_dir, name)

        if entry.source == "local":
            # Installed by reference: the files on disk are already current.
            logger.debug("Plugin '%s' is installed from %s", name, entry.local_path)
        else:
            outcome = await self._pip("install", "--upgrade", entry.package or name)
            if outcome.code != 0:
                return UpdateResult(
                    success=False,
                    plugin_name=name,
                    previous_version=previous,
                    new_version=previous,
                    error=f"pip update failed: {outcome.stderr or outcome.stdout}",
                )

        plugin_dir = self._plugin_dir(name, entry)
        if plugin_dir is None:
            return UpdateResult(
                success=False,
                plugin_name=name,
                previous_version=previous,
                new_version=previous,
                error=f"Updated package '{name}' does not ship a {MANIFEST_FILENAME}",
            )
        validation = self._validator.validate_file(plugin_dir / MANIFEST_FILENAME)
        if not validation.valid or validation.manifest is None:
            return UpdateResult(
                success=False,
                plugin_name=name,
                previous_version=previous,
                new_version=previous,
                error=f"Updated manifest is invalid: {_join_errors(validation.errors)}",
            )

        manifest = validation.manifest
        compat = self._validator.check_compatibility(manifest.flowplug_version, self._host_version)
        if not compat.compatible:
            return UpdateResult(
                success=False,
                plugin_name=name,
                previous_version=previous,
                new_version=manifest.version,
                error=f"Updated version incompatible: {compat.message}",
            )

        state.plugins[name] = entry.model_copy(
            update={"version": manifest.version, "updated_at": utc_now()}
        )
        self._save_state(state)
        if stored_config:
            config_store.save_plugin_config(self._project_dir, name, stored_config)

        logger.info("Updated plugin '%s' from %s to %s", name, previous, manifest.version)
        return UpdateResult(
            success=True, plugin_name=name, previous_version=previous, new_version=manifest.version
        )

    # ------------------------------------------------------------------
    # Enable / disable / list
    # ------------------------------------------------------------------

    async def enable(self, name: str) -> None:
        """Mark *name* enabled.

        Raises:
            PluginNotInstalledError: If the plugin is not installed.
        """
        state = self._load_state()
        entry = self._require(state, name)
        state.plugins[name] = entry.model_copy(update={"enabled": True, "updated_at": utc_now()})
        self._save_state(state)
        logger.info("Enabled plugin '%s'", name)

    async def disable(self, name: str) -> list[str]:
        """Mark *name* disabled and remove its live extensions.

        Returns:
            Installed plugins that declare a dependency on *name*. They are
            left enabled; the caller decides whether to warn.

        Raises:
            PluginNotInstalledError: If the plugin is not installed.
        """
        state = self._load_state()
        entry = self._require(state, name)

        dependents: list[str] = []
        for other, other_entry in state.plugins.items():
            if other == name:
                continue
            manifest = self._read_manifest(other, other_entry)
            if manifest is not None and any(d.name == name for d in manifest.dependencies):
                dependents.append(other)
        if dependents:
            logger.warning("Plugins depend on '%s': %s", name, ", ".join(dependents))

        await self._registry.unregister_plugin(name)
        state.plugins[name] = entry.model_copy(update={"enabled": False, "updated_at": utc_now()})
        self._save_state(state)
        logger.info("Disabled plugin '%s'", name)
        return dependents

    async def list(self) -> list[PluginInfo]:
        """Installed plugins with their state and manifest metadata."""
        state = self._load_state()
        infos: list[PluginInfo] = []
        for name, entry in state.plugins.items():
            manifest = self._read_manifest(name, entry)
            infos.append(
                PluginInfo(
                    name=name,
                    version=entry.version,
                    enabled=entry.enabled,
                    source=entry.source,
                    description=manifest.description if manifest else "",
                    extension_points=list(manifest.extension_points) if manifest else [],
                    installed_at=entry.installed_at,
                    local_path=entry.local_path,
                )
            )
        return infos

    # ------------------------------------------------------------------
    # Config
    # ------------------------------------------------------------------

    async def get_config(self, name: str, key: Optional[str] = None) -> dict[str, Any]:
        """Stored values merged over schema defaults, or a single key of them."""
        state = self._load_state()
        manifest = self._read_manifest(name, state.plugins.get(name))
        schema = manifest.config_schema if manifest else None
        merged = merge_config_defaults(
            config_store.load_plugin_config(self._project_dir, name), schema
        )
        if key is not None:
            return {key: merged[key]} if key in merged else {}
        return merged

    async def set_config(self, name: str, key: str, value: Any) -> None:
        """Store one config value after checking it against the schema.

        Raises:
            PluginNotInstalledError: If the plugin is not installed.
            ConfigValidationError: If *value* has the wrong type for *key*.
        """
        state = self._load_state()
        entry = self._require(state, name)
        manifest = self._read_manifest(name, entry)
        validate_config_value(key, value, manifest.config_schema if manifest else None)

        stored = config_store.load_plugin_config(self._project_dir, name)
        stored[key] = value
        config_store.save_plugin_config(self._project_dir, name, stored)
        logger.info("Set config for '%s': %s", name, key)

    def get_config_schema(self, name: str) -> Optional[dict[str, Any]]:
        state = self._load_state()
        manifest = self._read_manifest(name, state.plugins.get(name))
        return manifest.config_schema if manifest else None

    # ------------------------------------------------------------------
    # Registry queries
    # ------------------------------------------------------------------

    def _base_url(self, registry_url: Optional[str]) -> str:
        return config_store.resolve_registry_url(
            registry_url or self._registry_url,
            state=self._load_state(),
            global_config=config_store.load_global_config(),
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=REGISTRY_TIMEOUT)

    async def search(self, query: str, registry_url: Optional[str] = None) -> list[RegistrySearchHit]:
        """Search the registry for plugin packages matching *query*.

        Returns:
            Matching packages; empty when the registry fails or is
            unreachable (the failure is logged).
        """
        url = f"{self._base_url(registry_url)}/-/v1/search"
        params = {"text": f"keywords:{DISCOVERY_KEYWORD} {query}".strip(), "size": SEARCH_PAGE_SIZE}
        try:
            async with self._client() as client:
                response = await client.get(url, params=params)
            if response.status_code != 200:
                logger.error("Registry search failed: HTTP %d", response.status_code)
                return []
            data = response.json()
            hits: list[RegistrySearchHit] = []
            for obj in data.get("objects", []):
                pkg = obj.get("package", {})
                hits.append(
                    RegistrySearchHit(
                        name=pkg["name"],
                        description=pkg.get("description") or "",
                        version=pkg.get("version", ""),
                        author=_author_name(pkg.get("author")),
                    )
                )
            return hits
        except (httpx.HTTPError, ValueError, KeyError, AttributeError, TypeError) as exc:
            logger.error(
                "Registry search error: unable to reach %s. Check your network "
                "connection or registry configuration. Details: %s",
                url,
                exc,
            )
            return []

    async def info(self, name: str, registry_url: Optional[str] = None) -> Optional[PluginDetail]:
        """Details of an installed plugin, or of a package in the registry.

        Returns:
            ``None`` when the plugin is neither installed nor found in the
            registry, or the registry is unreachable.
        """
        state = self._load_state()
        entry = state.plugins.get(name)
        if entry is not None:
            manifest = self._read_manifest(name, entry)
            if manifest is None:
                return None
            return PluginDetail(
                name=name,
                version=manifest.version,
                description=manifest.description,
                author=manifest.author or "Unknown",
                installed=True,
                enabled=entry.enabled,
                source=entry.source,
                extension_points=list(manifest.extension_points),
                compatibility_range=manifest.flowplug_version,
                dependencies=[d.name for d in manifest.dependencies],
                config_schema=(
                    {k: v.model_dump(exclude_unset=True) for k, v in manifest.config_schema.items()}
                    if manifest.config_schema
                    else None
                ),
            )

        url = f"{self._base_url(registry_url)}/{quote(name, safe='@')}"
        try:
            async with self._client() as client:
                response = await client.get(url)
            if response.status_code != 200:
                logger.warning("Failed to fetch plugin info for '%s': HTTP %d", name, response.status_code)
                return None
            data = response.json()
            latest = (data.get("dist-tags") or {}).get("latest") or data.get("version", "")
            version_data = (data.get("versions") or {}).get(latest) or data
            meta = version_data.get(DISCOVERY_KEYWORD) or data.get(DISCOVERY_KEYWORD) or {}
            return PluginDetail(
                name=data.get("name", name),
                version=latest,
                description=version_data.get("description") or data.get("description") or "",
                author=_author_name(version_data.get("author") or data.get("author")),
                installed=False,
                extension_points=list(meta.get("extensionPoints", [])),
                compatibility_range=meta.get("flowplugVersion", ""),
                config_schema=meta.get("configSchema"),
            )
        except (httpx.HTTPError, ValueError, AttributeError, TypeError) as exc:
            logger.error(
                "Registry info error: unable to fetch details of '%s'. Check your "
                "network connection or registry configuration. Details: %s",
                name,
                exc,
            )
            return None

    # ------------------------------------------------------------------
    # Developer tooling
    # ------------------------------------------------------------------

    async def scaffold(self, name: str, target_dir: Union[str, Path]) -> ScaffoldResult:
        return scaffold_plugin(name, target_dir)

    async def validate(self, path: Union[str, Path]) -> ManifestValidationResult:
        """Check a plugin directory without importing its code.

        Validates the manifest, checks that the entry point exists, and
        inspects its syntax tree for a top-level ``activate`` (and, if
        present, that ``deactivate`` is a function).
        """
        return validate_plugin_dir(Path(path), self._validator)


# --- helpers ---


def validate_plugin_dir(path: Path, validator: ManifestValidator) -> ManifestValidationResult:
    """Static validation of the plugin at *path* (see :meth:`PluginManager.validate`)."""
    if path.is_file() and path.name == MANIFEST_FILENAME:
        path = path.parent
    plugin_dir = locate_manifest_dir(path) if path.is_dir() else None
    if plugin_dir is None:
        return ManifestValidationResult(
            valid=False,
            errors=[
                ManifestError(
                    field="manifest",
                    message=f"No {MANIFEST_FILENAME} found in {path}",
                    code="SCHEMA_ERROR",
                )
            ],
        )

    result = validator.validate_file(plugin_dir / MANIFEST_FILENAME)
    if not result.valid or result.manifest is None:
        return result

    manifest = result.manifest
    entry = plugin_dir / manifest.entry_point
    errors: list[ManifestError] = []
    if not entry.is_file():
        errors.append(
            ManifestError(
                field="entryPoint",
                message=f"Entry point file not found: {entry}",
                code="INVALID_VALUE",
            )
        )
    else:
        errors.extend(_check_entry_point(entry))

    return ManifestValidationResult(valid=not errors, manifest=manifest, errors=errors)


def _check_entry_point(entry: Path) -> list[ManifestError]:
    try:
        tree = ast.parse(entry.read_text(encoding="utf-8"), filename=str(entry))
    except (OSError, SyntaxError, ValueError) as exc:
        return [
            ManifestError(
                field="entryPoint",
                message=f"Entry point cannot be parsed: {exc}",
                code="SCHEMA_ERROR",
            )
        ]

    definitions = _top_level_definitions(tree)
    errors: list[ManifestError] = []
    if "activate" not in definitions:
        errors.append(
            ManifestError(
                field="activate",
                message="Entry point must define an 'activate(context)' function",
                code="MISSING_FIELD",
            )
        )
    elif definitions["activate"] == "constant":
        errors.append(
            ManifestError(
                field="activate", message="'activate' must be a function", code="INVALID_TYPE"
            )
        )
    if definitions.get("deactivate") == "constant":
        errors.append(
            ManifestError(
                field="deactivate", message="'deactivate' must be a function", code="INVALID_TYPE"
            )
        )
    return errors


def _top_level_definitions(tree: ast.Module) -> dict[str, str]:
    """Map top-level names to how they are bound: function, constant, or other."""
    found: dict[str, str] = {}
    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            found[node.name] = "function"
        elif isinstance(node, (ast.Assign, ast.AnnAssign)):
            targets = node.targets if isinstance(node, ast.Assign) else [node.target]
            kind = "constant" if isinstance(node.value, ast.Constant) else "other"
            for target in targets:
                if isinstance(target, ast.Name):
                    found[target.id] = kind
        elif isinstance(node, (ast.Import, ast.ImportFrom)):
            for alias in node.names:
                found[(alias.asname or alias.name).split(".")[0]] = "other"
    return found


def _looks_like_path(value: str) -> bool:
    if value.startswith((".", "/", "~")) or "\\" in value:
        return True
    return Path(value).is_dir()


def _requirement_name(value: str) -> str:
    """Distribution name of a pip requirement such as ``jira-sync>=1.2``."""
    try:
        return Requirement(value).name
    except InvalidRequirement:
        return value


def _join_errors(errors: Sequence[ManifestError]) -> str:
    return ", ".join(f"{e.field}: {e.message}" for e in errors)


def _author_name(author: Any) -> str:
    if isinstance(author, str) and author:
        return author
    if isinstance(author, dict) and author.get("name"):
        return str(author["name"])
    return "Unknown"
