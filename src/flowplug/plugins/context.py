"""The scoped API object a plugin's ``activate`` receives.

Each plugin gets its own :class:`PluginContext`. The context is the only
bridge between plugin code and the host: it registers extensions on the
plugin's behalf (so attribution can't be forged), resolves services, logs
with a ``[plugin:<name>]`` prefix, and exposes read-only host information.

The context is sealed: it has no ``__dict__``, attributes cannot be
assigned, and the configuration it exposes is recursively frozen.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Callable, Mapping, NamedTuple, Optional

from flowplug.plugins.registry import PluginRegistry
from flowplug.plugins.types import (
    AgentRegistration,
    CommandRegistration,
    HookRegistration,
    ServiceRegistration,
    TemplateRegistration,
)

PluginLogger = Callable[[str, str], None]
"""``(level, message)`` sink for plugin-attributed log lines."""


def freeze(value: Any) -> Any:
    """Return a deeply read-only copy of a JSON-like value.

    Dicts become :class:`~types.MappingProxyType`, lists and tuples become
    tuples, and sets become frozensets. Scalars are returned unchanged.
    """
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(freeze(item) for item in value)
    return value


class _HostCalls(NamedTuple):
    """Registry operations pre-bound to one plugin's name.

    The context holds these closures instead of the registry itself, so
    plugin code has no attribute through which to register extensions
    under another plugin's name.
    """

    register_command: Callable[[CommandRegistration], None]
    register_agent: Callable[[AgentRegistration], None]
    register_hook: Callable[[HookRegistration], None]
    register_service: Callable[[ServiceRegistration], None]
    register_template: Callable[[TemplateRegistration], None]
    resolve_service: Callable[[str], Any]
    has_service: Callable[[str], bool]


def _bind(registry: PluginRegistry, plugin_name: str) -> _HostCalls:
    def register_command(registration: CommandRegistration) -> None:
        registry.register_command(plugin_name, registration)

    def register_agent(registration: AgentRegistration) -> None:
        registry.register_agent(plugin_name, registration)

    def register_hook(registration: HookRegistration) -> None:
        registry.register_hook(plugin_name, registration)

    def register_service(registration: ServiceRegistration) -> None:
        registry.register_service(plugin_name, registration)

    def register_template(registration: TemplateRegistration) -> None:
        registry.register_template(plugin_name, registration)

    def resolve_service(name: str) -> Any:
        return registry.resolve_service(name)

    def has_service(name: str) -> bool:
        return registry.has_service(name)

    return _HostCalls(
        register_command,
        register_agent,
        register_hook,
        register_service,
        register_template,
        resolve_service,
        has_service,
    )


class PluginContext:
    """Capability-scoped facade handed to ``activate(context)``.

    Attributes:
        plugin_name: The plugin's manifest name.
        plugin_version: The plugin's manifest version.
        config: The plugin's configuration with schema defaults applied.
            Read-only; item assignment raises ``TypeError``.
    """

    __slots__ = (
        "_PluginContext__name",
        "_PluginContext__version",
        "_PluginContext__config",
        "_PluginContext__host_version",
        "_PluginContext__project_config",
        "_PluginContext__host",
        "_PluginContext__logger",
    )

    def __init__(
        self,
        plugin_name: str,
        plugin_version: str,
        config: Mapping[str, Any],
        host_version: str,
        registry: PluginRegistry,
        project_config: Optional[Mapping[str, Any]] = None,
        logger: Optional[PluginLogger] = None,
    ) -> None:
        set_ = object.__setattr__
        set_(self, "_PluginContext__name", plugin_name)
        set_(self, "_PluginContext__version", plugin_version)
        set_(self, "_PluginContext__config", freeze(dict(config)))
        set_(self, "_PluginContext__host_version", host_version)
        set_(
            self,
            "_PluginContext__project_config",
            freeze(dict(project_config)) if project_config is not None else None,
        )
        set_(self, "_PluginContext__host", _bind(registry, plugin_name))
        set_(self, "_PluginContext__logger", logger)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"PluginContext is read-only; cannot set '{name}'")

    def __delattr__(self, name: str) -> None:
        raise AttributeError(f"PluginContext is read-only; cannot delete '{name}'")

    def __repr__(self) -> str:
        return f"PluginContext(plugin_name={self.__name!r}, plugin_version={self.__version!r})"

    # --- identity and config ---

    @property
    def plugin_name(self) -> str:
        return self.__name

    @property
    def plugin_version(self) -> str:
        return self.__version

    @property
    def config(self) -> Mapping[str, Any]:
        return self.__config

    # --- registration ---

    def register_command(self, registration: CommandRegistration) -> None:
        self.__host.register_command(registration)

    def register_agent(self, registration: AgentRegistration) -> None:
        self.__host.register_agent(registration)

    def register_hook(self, registration: HookRegistration) -> None:
        self.__host.register_hook(registration)

    def register_service(self, registration: ServiceRegistration) -> None:
        self.__host.register_service(registration)

    def register_template(self, registration: TemplateRegistration) -> None:
        self.__host.register_template(registration)

    # --- services ---

    def get_service(self, name: str) -> Any:
        """Resolve a service by name (see :meth:`PluginRegistry.resolve_service`)."""
        return self.__host.resolve_service(name)

    def has_service(self, name: str) -> bool:
        return self.__host.has_service(name)

    # --- utilities ---

    def log(self, level: str, message: str) -> None:
        """Emit *message* prefixed with ``[plugin:<name>]``.

        Does nothing when the host did not supply a logger.
        """
        if self.__logger is None:
            return
        self.__logger(level, f"[plugin:{self.__name}] {message}")

    def get_cli_version(self) -> str:
        return self.__host_version

    def get_project_config(self) -> Optional[Mapping[str, Any]]:
        return self.__project_config


def create_plugin_context(
    *,
    plugin_name: str,
    plugin_version: str,
    config: Mapping[str, Any],
    host_version: str,
    registry: PluginRegistry,
    project_config: Optional[Mapping[str, Any]] = None,
    logger: Optional[PluginLogger] = None,
) -> PluginContext:
    """Build the context for one plugin. This is the loader's default factory."""
    return PluginContext(
        plugin_name=plugin_name,
        plugin_version=plugin_version,
        config=config,
        host_version=host_version,
        registry=registry,
        project_config=project_config,
        logger=logger,
    )
