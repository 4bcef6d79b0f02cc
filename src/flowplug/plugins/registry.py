"""In-memory registry of loaded plugins and everything they contribute.

:class:`PluginRegistry` is the single owner of extension state. It is
constructed once per host process and passed explicitly to the loader,
the plugin contexts, the manager, and the extension facades.

It enforces naming rules (no plugin may take a reserved host name or a name
owned by a different plugin), keeps hooks in phase/timing buckets, and hosts
a small lazy dependency-injection container for plugin services.
"""

from __future__ import annotations

import inspect
import itertools
import logging
from dataclasses import dataclass
from types import ModuleType
from typing import Any, Iterable, Optional

from flowplug.exceptions import (
    CircularServiceDependencyError,
    PluginConflictError,
    ServiceNotFoundError,
    ServiceResolutionError,
)
from flowplug.models import LoadedPlugin, utc_now
from flowplug.plugins.types import (
    HOOK_PRIORITY_ORDER,
    WILDCARD_PHASE,
    AgentRegistration,
    CommandRegistration,
    HookRegistration,
    RegisteredAgent,
    RegisteredCommand,
    RegisteredHook,
    RegisteredPlugin,
    RegisteredService,
    RegisteredTemplate,
    ServiceRegistration,
    TemplateRegistration,
)

logger = logging.getLogger(__name__)

CORE_COMMANDS: frozenset[str] = frozenset(
    {"init", "start", "status", "list", "abort", "mcp", "help", "plugin"}
)
"""Top-level command names owned by the host."""

CORE_AGENTS: frozenset[str] = frozenset({"claude", "gemini", "codex"})
"""Built-in agent names."""

CORE_SERVICES: frozenset[str] = frozenset(
    {
        "AgentInvoker",
        "PhaseExecutor",
        "StateManager",
        "FlowController",
        "GitStatusChecker",
        "PRStatusFetcher",
        "TemplateService",
    }
)
"""Host service names plugins may not shadow."""


@dataclass
class _ServiceEntry:
    plugin_name: str
    registration: ServiceRegistration
    instance: Any = None
    instantiated: bool = False


class PluginRegistry:
    """Central store for plugins, their extensions, and their services.

    Args:
        core_commands: Reserved command names.
        core_agents: Reserved agent names.
        core_services: Reserved service names.
    """

    def __init__(
        self,
        core_commands: Iterable[str] = CORE_COMMANDS,
        core_agents: Iterable[str] = CORE_AGENTS,
        core_services: Iterable[str] = CORE_SERVICES,
    ) -> None:
        self._core_commands = frozenset(core_commands)
        self._core_agents = frozenset(core_agents)
        self._core_services = frozenset(core_services)

        self._plugins: dict[str, RegisteredPlugin] = {}
        self._commands: dict[str, RegisteredCommand] = {}
        self._agents: dict[str, RegisteredAgent] = {}
        self._hooks: dict[tuple[str, str], list[RegisteredHook]] = {}
        self._services: dict[str, _ServiceEntry] = {}
        self._templates: list[RegisteredTemplate] = []

        self._hook_sequence = itertools.count()
        # Service names in the order their factories completed.
        self._instantiation_order: list[str] = []
        # Instantiated services displaced by re-registration, awaiting disposal
        # when their plugin is unregistered.
        self._replaced: list[_ServiceEntry] = []

    # ------------------------------------------------------------------
    # Plugins
    # ------------------------------------------------------------------

    def register_plugin(self, plugin: LoadedPlugin, module: ModuleType) -> RegisteredPlugin:
        """Record *plugin* as active. Re-registering a name overwrites it."""
        record = RegisteredPlugin(
            name=plugin.name,
            version=plugin.version,
            manifest=plugin.manifest,
            module=module,
            activated_at=utc_now(),
            path=plugin.path,
        )
        self._plugins[plugin.name] = record
        return record

    async def unregister_plugin(self, name: str) -> None:
        """Remove a plugin and everything attributed to it.

        Instantiated services owned by the plugin are disposed in reverse
        creation order, followed by instances the plugin replaced by
        registering the same service name again. A disposer that raises is logged and the remaining
        disposers still run. Unknown names are a no-op.
        """
        owned = [svc for svc, entry in self._services.items() if entry.plugin_name == name]
        to_dispose = [
            svc
            for svc in reversed(self._instantiation_order)
            if svc in owned and self._services[svc].instantiated
        ]
        entries = {svc: self._services.pop(svc) for svc in owned}
        self._instantiation_order = [
            svc for svc in self._instantiation_order if svc not in entries
        ]

        replaced = [entry for entry in self._replaced if entry.plugin_name == name]
        self._replaced = [entry for entry in self._replaced if entry.plugin_name != name]
        disposals = [entries[svc] for svc in to_dispose] + list(reversed(replaced))

        for entry in disposals:
            dispose = entry.registration.dispose
            if dispose is None:
                continue
            try:
                result = dispose()
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.warning(
                    "Disposing service '%s' of plugin '%s' failed: %s",
                    entry.registration.name,
                    name,
                    exc,
                )

        self._commands = {k: v for k, v in self._commands.items() if v.plugin_name != name}
        self._agents = {k: v for k, v in self._agents.items() if v.plugin_name != name}
        for key, bucket in self._hooks.items():
            self._hooks[key] = [hook for hook in bucket if hook.plugin_name != name]
        self._templates = [tpl for tpl in self._templates if tpl.plugin_name != name]

        if self._plugins.pop(name, None) is not None:
            logger.debug("Unregistered plugin '%s'", name)

    def get_plugin(self, name: str) -> Optional[RegisteredPlugin]:
        return self._plugins.get(name)

    def get_all_plugins(self) -> list[RegisteredPlugin]:
        return list(self._plugins.values())

    def has_plugin(self, name: str) -> bool:
        return name in self._plugins

    # ------------------------------------------------------------------
    # Commands and agents
    # ------------------------------------------------------------------

    def register_command(self, plugin_name: str, registration: CommandRegistration) -> None:
        """Register a plugin command.

        Raises:
            PluginConflictError: If the name is reserved by the host or
                owned by a different plugin.
        """
        name = registration.name
        if name in self._core_commands:
            raise PluginConflictError(
                f'Command "{name}" conflicts with core command. '
                f"Core commands: {', '.join(sorted(self._core_commands))}"
            )
        existing = self._commands.get(name)
        if existing is not None and existing.plugin_name != plugin_name:
            raise PluginConflictError(
                f'Command "{name}" conflicts with command from plugin "{existing.plugin_name}"'
            )
        self._commands[name] = RegisteredCommand(plugin_name=plugin_name, registration=registration)

    def get_command(self, name: str) -> Optional[RegisteredCommand]:
        return self._commands.get(name)

    def get_all_commands(self) -> list[RegisteredCommand]:
        return list(self._commands.values())

    def register_agent(self, plugin_name: str, registration: AgentRegistration) -> None:
        """Register a plugin agent.

        Raises:
            PluginConflictError: If the name is a built-in agent or owned by
                a different plugin.
        """
        name = registration.name
        if name in self._core_agents:
            raise PluginConflictError(
                f'Agent "{name}" conflicts with core agent. '
                f"Core agents: {', '.join(sorted(self._core_agents))}"
            )
        existing = self._agents.get(name)
        if existing is not None and existing.plugin_name != plugin_name:
            raise PluginConflictError(
                f'Agent "{name}" conflicts with agent from plugin "{existing.plugin_name}"'
            )
        self._agents[name] = RegisteredAgent(plugin_name=plugin_name, registration=registration)

    def get_agent(self, name: str) -> Optional[RegisteredAgent]:
        return self._agents.get(name)

    def get_all_agents(self) -> list[RegisteredAgent]:
        return list(self._agents.values())

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def register_hook(self, plugin_name: str, registration: HookRegistration) -> None:
        key = (registration.phase, registration.timing)
        hook = RegisteredHook(
            plugin_name=plugin_name,
            registration=registration,
            sequence=next(self._hook_sequence),
        )
        self._hooks.setdefault(key, []).append(hook)

    def get_hooks(self, phase: str, timing: str) -> list[RegisteredHook]:
        """Return the hooks to run for *phase* and *timing*, in execution order.

        A concrete phase matches its own hooks plus the wildcard ones. Asking
        for ``"*"`` returns every hook with that timing. Hooks are ordered
        by priority, then by registration order.
        """
        if phase == WILDCARD_PHASE:
            matched = [
                hook
                for (_, hook_timing), bucket in self._hooks.items()
                if hook_timing == timing
                for hook in bucket
            ]
        else:
            matched = list(self._hooks.get((phase, timing), []))
            matched.extend(self._hooks.get((WILDCARD_PHASE, timing), []))
        return sorted(
            matched,
            key=lambda h: (HOOK_PRIORITY_ORDER[h.registration.priority], h.sequence),
        )

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    def register_service(self, plugin_name: str, registration: ServiceRegistration) -> None:
        """Register a lazily-built service. The factory is not called here.

        A plugin may register one of its own service names again; an
        instance already built from the old registration is kept for
        disposal when the plugin is unregistered.

        Raises:
            PluginConflictError: If the name is a host service or owned by a
                different plugin.
        """
        name = registration.name
        if name in self._core_services:
            raise PluginConflictError(
                f'Service "{name}" conflicts with core service. '
                f"Core services: {', '.join(sorted(self._core_services))}"
            )
        existing = self._services.get(name)
        if existing is not None and existing.plugin_name != plugin_name:
            raise PluginConflictError(
                f'Service "{name}" conflicts with service from plugin "{existing.plugin_name}"'
            )
        if existing is not None:
            self._instantiation_order = [s for s in self._instantiation_order if s != name]
            if existing.instantiated:
                self._replaced.append(existing)
        self._services[name] = _ServiceEntry(plugin_name=plugin_name, registration=registration)

    def has_service(self, name: str) -> bool:
        return name in self._services

    def get_service_registration(self, name: str) -> Optional[RegisteredService]:
        entry = self._services.get(name)
        if entry is None:
            return None
        return RegisteredService(plugin_name=entry.plugin_name, registration=entry.registration)

    def resolve_service(self, name: str) -> Any:
        """Return the instance of service *name*, building it on first use.

        Dependencies are resolved depth-first before the factory runs; the
        factory receives them as a mapping of name to instance. Each factory
        runs at most once.

        Raises:
            ServiceNotFoundError: If *name* is not registered.
            ServiceResolutionError: If a declared dependency is not
                registered.
            CircularServiceDependencyError: If the dependency chain loops
                back on itself.
        """
        if name not in self._services:
            raise ServiceNotFoundError(f'Service "{name}" not found')
        return self._resolve(name, [])

    def _resolve(self, name: str, stack: list[str]) -> Any:
        if name in stack:
            raise CircularServiceDependencyError([*stack[stack.index(name):], name])
        entry = self._services[name]
        if entry.instantiated:
            return entry.instance

        stack.append(name)
        try:
            resolved: dict[str, Any] = {}
            for dep in entry.registration.dependencies:
                if dep not in self._services:
                    raise ServiceResolutionError(
                        f'Dependency "{dep}" not found for service "{name}"'
                    )
                resolved[dep] = self._resolve(dep, stack)
            instance = entry.registration.factory(resolved)
        finally:
            stack.pop()

        entry.instance = instance
        entry.instantiated = True
        self._instantiation_order.append(name)
        logger.debug("Instantiated service '%s' from plugin '%s'", name, entry.plugin_name)
        return instance

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def register_template(self, plugin_name: str, registration: TemplateRegistration) -> None:
        """Register a template as ``<plugin_name>/<template name>``."""
        self._templates.append(
            RegisteredTemplate(
                plugin_name=plugin_name,
                namespaced_name=f"{plugin_name}/{registration.name}",
                registration=registration,
            )
        )

    def get_templates(self, category: str) -> list[RegisteredTemplate]:
        return [tpl for tpl in self._templates if tpl.registration.category == category]

    def get_all_templates(self) -> list[RegisteredTemplate]:
        return list(self._templates)
