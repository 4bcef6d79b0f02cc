"""Dependency-aware plugin loading with hot reload.

One call to :meth:`PluginLoader.load_plugins` runs a full load cycle:

1. **Discover** manifests (see :mod:`flowplug.plugins.sources`) and filter
   them by the enabled set.
2. **Validate** each manifest and gate it on the host version. Invalid
   manifests become ``manifest`` errors; incompatible ones are skipped.
3. **Resolve dependencies**: every declared dependency must be present
   and satisfy its version range. Failing plugins (and, transitively, their
   dependents) become ``dependency`` errors.
4. **Order** the survivors topologically. Plugins caught in a dependency
   cycle are reported with the cycle spelled out.
5. **Activate** in order: import the entry point under a fresh module name,
   check it satisfies :class:`~flowplug.plugins.types.PluginModule`, build
   a context, and call ``activate``. Failures become ``import`` or
   ``activation`` errors and never stop the batch.

Every stage records failures in the returned
:class:`~flowplug.models.PluginLoadResult` instead of raising.
"""

from __future__ import annotations

import heapq
import importlib.util
import inspect
import itertools
import logging
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Mapping, Optional

from flowplug.models import (
    LoadedPlugin,
    PluginLoadError,
    PluginLoadResult,
    PluginManifest,
    SkippedPlugin,
)
from flowplug.plugins.context import PluginContext, PluginLogger, create_plugin_context
from flowplug.plugins.registry import PluginRegistry
from flowplug.plugins.sources import PluginCandidate, discover
from flowplug.plugins.types import check_plugin_module
from flowplug.plugins.validator import ManifestValidator, merge_config_defaults
from flowplug.versioning import satisfies

logger = logging.getLogger(__name__)

RELOAD_WARNING_THRESHOLD = 10
"""Reloads of one plugin after which a module-cache growth warning is logged."""

MODULE_PREFIX = "flowplug_plugin_"

ContextFactory = Callable[..., PluginContext]


@dataclass
class PluginLoadConfig:
    """Inputs of one load cycle.

    Attributes:
        plugin_dirs: Directories whose subdirectories are plugins.
        plugin_paths: Directories that are themselves plugins.
        dependency_dir: Site-packages style directory scanned for
            keyword-tagged distributions.
        host_version: The running flowplug version.
        enabled_plugins: When non-empty, only these names are loaded.
        dev_mode: Log activation failures with tracebacks.
        plugin_configs: Stored config values per plugin name; schema
            defaults are merged in before activation.
        project_config: Project config exposed read-only to plugins.
    """

    host_version: str
    plugin_dirs: list[Path] = field(default_factory=list)
    plugin_paths: list[Path] = field(default_factory=list)
    dependency_dir: Optional[Path] = None
    enabled_plugins: set[str] = field(default_factory=set)
    dev_mode: bool = False
    plugin_configs: dict[str, dict[str, Any]] = field(default_factory=dict)
    project_config: Optional[dict[str, Any]] = None


@dataclass
class _Pending:
    """A validated, compatible plugin awaiting ordering and activation."""

    index: int
    candidate: PluginCandidate
    manifest: PluginManifest

    @property
    def name(self) -> str:
        return self.manifest.name


class PluginLoader:
    """Loads plugins into a :class:`PluginRegistry`.

    Args:
        registry: Registry that receives plugins and their extensions.
        validator: Manifest validator.
        context_factory: Builds the context passed to ``activate``;
            called with keyword arguments (see
            :func:`~flowplug.plugins.context.create_plugin_context`).
        plugin_logger: Sink for ``context.log`` lines.
    """

    def __init__(
        self,
        registry: PluginRegistry,
        validator: Optional[ManifestValidator] = None,
        context_factory: ContextFactory = create_plugin_context,
        plugin_logger: Optional[PluginLogger] = None,
    ) -> None:
        self._registry = registry
        self._validator = validator or ManifestValidator()
        self._context_factory = context_factory
        self._plugin_logger = plugin_logger

        self._generation = itertools.count(1)
        self._module_names: dict[str, str] = {}
        self._plugin_dirs: dict[str, Path] = {}
        self._reload_counts: dict[str, int] = {}
        self._last_config: Optional[PluginLoadConfig] = None

    # ------------------------------------------------------------------
    # Load cycle
    # ------------------------------------------------------------------

    async def load_plugins(self, config: PluginLoadConfig) -> PluginLoadResult:
        """Run discovery, validation, ordering, and activation.

        Returns:
            The loaded, skipped, and failed plugins of this cycle.
        """
        self._last_config = config
        result = PluginLoadResult()

        logger.info("Starting plugin discovery")
        report = discover(config.plugin_dirs, config.plugin_paths, config.dependency_dir)
        logger.info("Discovered %d plugin(s)", len(report.candidates))

        enabled = config.enabled_plugins
        for identifier, message in report.failures:
            if enabled and identifier not in enabled:
                continue
            result.errors.append(
                PluginLoadError(plugin_name=identifier, phase="discovery", error=message)
            )

        candidates = report.candidates
        if enabled:
            candidates = [c for c in candidates if c.name in enabled]
            for c in report.candidates:
                if c not in candidates:
                    logger.debug("Plugin '%s' not in enabled set, skipping", c.display_name)

        pending = self._validate(candidates, config, result)
        pending = self._check_dependencies(pending, result)
        ordered = self._order(pending, result)

        for item in ordered:
            await self._activate(item, config, result)

        logger.info(
            "Plugin loading complete: %d loaded, %d skipped, %d errors",
            len(result.loaded),
            len(result.skipped),
            len(result.errors),
        )
        return result

    def _validate(
        self,
        candidates: list[PluginCandidate],
        config: PluginLoadConfig,
        result: PluginLoadResult,
    ) -> list[_Pending]:
        pending: list[_Pending] = []
        seen: dict[str, PluginCandidate] = {}
        for index, candidate in enumerate(candidates):
            validation = self._validator.validate(candidate.raw_manifest)
            if not validation.valid or validation.manifest is None:
                details = "; ".join(f"{e.field}: {e.message}" for e in validation.errors)
                logger.error("Invalid manifest in %s: %s", candidate.manifest_path, details)
                result.errors.append(
                    PluginLoadError(
                        plugin_name=candidate.display_name,
                        phase="manifest",
                        error=f"Invalid manifest: {details}",
                    )
                )
                continue

            manifest = validation.manifest
            compat = self._validator.check_compatibility(
                manifest.flowplug_version, config.host_version
            )
            if not compat.compatible:
                logger.warning("Plugin '%s' skipped: %s", manifest.name, compat.message)
                result.skipped.append(
                    SkippedPlugin(name=manifest.name, reason=f"Version mismatch: {compat.message}")
                )
                continue

            first = seen.get(manifest.name)
            if first is not None:
                reason = (
                    f"Duplicate plugin name; already discovered at {first.directory}"
                )
                logger.warning("Plugin '%s' at %s skipped: %s", manifest.name, candidate.directory, reason)
                result.skipped.append(SkippedPlugin(name=manifest.name, reason=reason))
                continue

            if self._registry.has_plugin(manifest.name):
                result.skipped.append(
                    SkippedPlugin(name=manifest.name, reason="Plugin is already loaded")
                )
                continue

            seen[manifest.name] = candidate
            pending.append(_Pending(index=index, candidate=candidate, manifest=manifest))
        return pending

    def _available_versions(self, pending: list[_Pending]) -> dict[str, str]:
        versions = {p.name: p.version for p in self._registry.get_all_plugins()}
        versions.update({item.name: item.manifest.version for item in pending})
        return versions

    def _check_dependencies(
        self, pending: list[_Pending], result: PluginLoadResult
    ) -> list[_Pending]:
        """Drop plugins whose dependencies are missing or out of range.

        Exclusion is transitive: a plugin depending on an excluded plugin is
        excluded as well, until nothing changes.
        """
        available = self._available_versions(pending)
        remaining = {item.name: item for item in pending}

        changed = True
        while changed:
            changed = False
            for name, item in list(remaining.items()):
                problem = self._dependency_problem(item.manifest, available, remaining)
                if problem is None:
                    continue
                logger.error("Plugin '%s' dependency error: %s", name, problem)
                result.errors.append(
                    PluginLoadError(plugin_name=name, phase="dependency", error=problem)
                )
                del remaining[name]
                available.pop(name, None)
                changed = True

        return [item for item in pending if item.name in remaining]

    def _dependency_problem(
        self,
        manifest: PluginManifest,
        available: Mapping[str, str],
        remaining: Mapping[str, _Pending],
    ) -> Optional[str]:
        for dep in manifest.dependencies:
            version = available.get(dep.name)
            if version is None:
                return f'Missing dependency: "{dep.name}" is not available'
            if not satisfies(version, dep.version_range):
                return (
                    f'Dependency "{dep.name}" version {version} does not satisfy '
                    f'range "{dep.version_range}" required by "{manifest.name}"'
                )
        return None

    def _order(self, pending: list[_Pending], result: PluginLoadResult) -> list[_Pending]:
        """Topologically sort *pending* (Kahn's algorithm).

        Ties are broken by discovery order so the result is deterministic.
        Nodes that never reach in-degree zero are in or behind a cycle.
        """
        by_name = {item.name: item for item in pending}
        indegree = {name: 0 for name in by_name}
        dependents: dict[str, list[str]] = {name: [] for name in by_name}
        for item in pending:
            for dep in item.manifest.dependencies:
                # Dependencies already in the registry impose no ordering.
                if dep.name in by_name:
                    indegree[item.name] += 1
                    dependents[dep.name].append(item.name)

        heap = [(by_name[n].index, n) for n, degree in indegree.items() if degree == 0]
        heapq.heapify(heap)
        ordered: list[_Pending] = []
        while heap:
            _, name = heapq.heappop(heap)
            ordered.append(by_name[name])
            for child in dependents[name]:
                indegree[child] -= 1
                if indegree[child] == 0:
                    heapq.heappush(heap, (by_name[child].index, child))

        leftover = [item.name for item in pending if indegree[item.name] > 0]
        if leftover:
            self._report_cycles(leftover, by_name, result)
        return ordered

    def _report_cycles(
        self, leftover: list[str], by_name: Mapping[str, _Pending], result: PluginLoadResult
    ) -> None:
        members = set(leftover)
        graph = {
            name: [d.name for d in by_name[name].manifest.dependencies if d.name in members]
            for name in leftover
        }
        in_cycle: set[str] = set()
        for component in _strongly_connected(graph):
            if len(component) == 1 and component[0] not in graph[component[0]]:
                continue
            path = _cycle_path(component, graph)
            message = f"Circular dependency detected: {' -> '.join(path)}"
            for name in component:
                in_cycle.add(name)
                logger.error("Plugin '%s': %s", name, message)
                result.errors.append(
                    PluginLoadError(plugin_name=name, phase="dependency", error=message)
                )
        for name in leftover:
            if name in in_cycle:
                continue
            message = "Depends on a plugin that is part of a circular dependency"
            logger.error("Plugin '%s': %s", name, message)
            result.errors.append(
                PluginLoadError(plugin_name=name, phase="dependency", error=message)
            )

    # ------------------------------------------------------------------
    # Activation
    # ------------------------------------------------------------------

    async def _activate(
        self, item: _Pending, config: PluginLoadConfig, result: PluginLoadResult
    ) -> None:
        manifest = item.manifest
        name = manifest.name
        entry = (item.candidate.directory / manifest.entry_point).resolve()

        if not entry.is_file():
            message = f"Entry point not found: {entry}"
            logger.error("Failed to import '%s': %s", name, message)
            result.errors.append(PluginLoadError(plugin_name=name, phase="import", error=message))
            return

        module_name = f"{MODULE_PREFIX}{_safe_name(name)}_{next(self._generation)}"
        try:
            module = _import_from_path(module_name, entry)
        except Exception as exc:
            sys.modules.pop(module_name, None)
            logger.error("Failed to import '%s': %s", name, exc, exc_info=config.dev_mode)
            result.errors.append(
                PluginLoadError(
                    plugin_name=name, phase="import", error=f"Failed to import {entry}: {exc}"
                )
            )
            return

        problem = check_plugin_module(module)
        if problem is not None:
            sys.modules.pop(module_name, None)
            logger.error("Plugin '%s' rejected: %s", name, problem)
            result.errors.append(PluginLoadError(plugin_name=name, phase="import", error=problem))
            return

        plugin_config = merge_config_defaults(
            config.plugin_configs.get(name, {}), manifest.config_schema
        )
        try:
            context = self._context_factory(
                plugin_name=name,
                plugin_version=manifest.version,
                config=plugin_config,
                host_version=config.host_version,
                registry=self._registry,
                project_config=config.project_config,
                logger=self._plugin_logger,
            )
            outcome = module.activate(context)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as exc:
            await self._registry.unregister_plugin(name)
            sys.modules.pop(module_name, None)
            logger.error("Plugin '%s' activation failed: %s", name, exc, exc_info=config.dev_mode)
            result.errors.append(
                PluginLoadError(
                    plugin_name=name,
                    phase="activation",
                    error=f"Plugin activation failed: {exc}",
                )
            )
            return

        loaded = LoadedPlugin(
            name=name,
            version=manifest.version,
            manifest=manifest,
            path=str(item.candidate.directory),
        )
        self._registry.register_plugin(loaded, module)
        self._module_names[name] = module_name
        self._plugin_dirs[name] = item.candidate.directory
        result.loaded.append(loaded)
        logger.info("Loaded plugin '%s' v%s", name, manifest.version)

    # ------------------------------------------------------------------
    # Unload / reload
    # ------------------------------------------------------------------

    async def unload_plugin(self, name: str) -> None:
        """Deactivate and remove a plugin, disposing its services.

        Errors raised by the plugin's ``deactivate`` are logged, not raised.
        """
        record = self._registry.get_plugin(name)
        if record is not None:
            deactivate = getattr(record.module, "deactivate", None)
            if callable(deactivate):
                try:
                    outcome = deactivate()
                    if inspect.isawaitable(outcome):
                        await outcome
                except Exception as exc:
                    logger.warning("Plugin '%s' deactivate failed: %s", name, exc)

        await self._registry.unregister_plugin(name)
        module_name = self._module_names.pop(name, None)
        if module_name is not None:
            sys.modules.pop(module_name, None)
        logger.info("Unloaded plugin '%s'", name)

    async def reload_plugin(self, name: str) -> PluginLoadResult:
        """Unload *name* and load it again from the same directory.

        The entry point is imported under a new module name, so edited code
        is always picked up.
        """
        plugin_dir = self._plugin_dirs.get(name)
        if plugin_dir is None or self._last_config is None:
            return PluginLoadResult(
                errors=[
                    PluginLoadError(
                        plugin_name=name,
                        phase="discovery",
                        error="Plugin not found or no previous load configuration available",
                    )
                ]
            )

        count = self._reload_counts.get(name, 0) + 1
        self._reload_counts[name] = count
        if count > RELOAD_WARNING_THRESHOLD:
            logger.warning(
                "Plugin '%s' has been reloaded %d times. Every reload imports a new "
                "module object, so memory use grows with each reload.",
                name,
                count,
            )

        previous = self._last_config
        await self.unload_plugin(name)
        single = PluginLoadConfig(
            host_version=previous.host_version,
            plugin_paths=[plugin_dir],
            enabled_plugins={name},
            dev_mode=previous.dev_mode,
            plugin_configs=previous.plugin_configs,
            project_config=previous.project_config,
        )
        outcome = await self.load_plugins(single)
        # Keep the full configuration for later reloads of other plugins.
        self._last_config = previous
        return outcome

    def get_reload_count(self, name: str) -> int:
        return self._reload_counts.get(name, 0)

    def get_plugin_dir(self, name: str) -> Optional[Path]:
        return self._plugin_dirs.get(name)


# --- helpers ---


def _safe_name(name: str) -> str:
    return re.sub(r"\W", "_", name)


def _import_from_path(module_name: str, path: Path) -> ModuleType:
    search = [str(path.parent)] if path.name == "__init__.py" else None
    spec = importlib.util.spec_from_file_location(
        module_name, path, submodule_search_locations=search
    )
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot load module from {path}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module


def _strongly_connected(graph: Mapping[str, list[str]]) -> list[list[str]]:
    """Tarjan's algorithm; components are returned in discovery order."""
    index_of: dict[str, int] = {}
    lowlink: dict[str, int] = {}
    on_stack: set[str] = set()
    stack: list[str] = []
    components: list[list[str]] = []
    counter = itertools.count()

    def visit(node: str) -> None:
        index_of[node] = lowlink[node] = next(counter)
        stack.append(node)
        on_stack.add(node)
        for succ in graph[node]:
            if succ not in index_of:
                visit(succ)
                lowlink[node] = min(lowlink[node], lowlink[succ])
            elif succ in on_stack:
                lowlink[node] = min(lowlink[node], index_of[succ])
        if lowlink[node] == index_of[node]:
            component: list[str] = []
            while True:
                member = stack.pop()
                on_stack.discard(member)
                component.append(member)
                if member == node:
                    break
            components.append(list(reversed(component)))

    for node in graph:
        if node not in index_of:
            visit(node)
    return components


def _cycle_path(component: list[str], graph: Mapping[str, list[str]]) -> list[str]:
    """Walk one cycle inside a strongly connected *component*."""
    members = set(component)
    start = component[0]
    path = [start]
    visited = {start}
    node = start
    while True:
        succ = next(s for s in graph[node] if s in members)
        if succ in visited:
            return path[path.index(succ):] + [succ]
        path.append(succ)
        visited.add(succ)
        node = succ
