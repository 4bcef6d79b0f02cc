"""The flowplug extension runtime -- discovery, loading, and lifecycle.

Third-party packages extend flowplug by shipping a ``flowplug-plugin.json``
manifest next to an entry-point module that defines ``activate(context)``.
At startup :func:`bootstrap_plugins` discovers those plugins, validates and
version-gates their manifests, orders them by dependency and activates
them. Everything a plugin contributes ends up in the :class:`PluginRegistry`.

Key classes:

* :class:`ManifestValidator` -- schema and compatibility checks.
* :class:`PluginRegistry` -- commands, agents, hooks, services, templates.
* :class:`PluginLoader` -- dependency-ordered loading and hot reload.
* :class:`PluginContext` -- the scoped API handed to ``activate``.
* :class:`HookRunner` -- runs phase hooks with veto support.
* :class:`PluginManager` -- install, update, enable, configure.

Example::

    from flowplug.plugins import bootstrap_plugins

    runtime = await bootstrap_plugins(Path.cwd())
    result = await runtime.hooks.run_pre_phase_hooks("design", hook_context)
"""

from flowplug.plugins.bootstrap import PluginRuntime, bootstrap_plugins
from flowplug.plugins.context import PluginContext, create_plugin_context
from flowplug.plugins.extensions import AgentExtension, CommandExtension, TemplateExtension
from flowplug.plugins.hooks import HookRunner
from flowplug.plugins.loader import PluginLoadConfig, PluginLoader
from flowplug.plugins.manager import PluginManager
from flowplug.plugins.registry import PluginRegistry
from flowplug.plugins.validator import ManifestValidator

__all__ = [
    "AgentExtension",
    "CommandExtension",
    "HookRunner",
    "ManifestValidator",
    "PluginContext",
    "PluginLoadConfig",
    "PluginLoader",
    "PluginManager",
    "PluginRegistry",
    "PluginRuntime",
    "TemplateExtension",
    "bootstrap_plugins",
    "create_plugin_context",
]
