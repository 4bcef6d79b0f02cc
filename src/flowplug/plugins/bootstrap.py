"""Startup wiring for the plugin runtime.

:func:`bootstrap_plugins` is what the host calls once per process: it reads
the global switch and the project's plugin state, decides which plugins to
load, runs one load cycle and hands back a :class:`PluginRuntime` with the
registry, loader and the facades the rest of the CLI queries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from flowplug import __version__
from flowplug import config as config_store
from flowplug.models import GlobalConfig, PluginLoadResult, SkippedPlugin
from flowplug.plugins.extensions import AgentExtension, CommandExtension, TemplateExtension
from flowplug.plugins.hooks import HookRunner
from flowplug.plugins.loader import PluginLoadConfig, PluginLoader
from flowplug.plugins.registry import PluginRegistry
from flowplug.plugins.sources import default_dependency_dir
from flowplug.plugins.validator import ManifestValidator

logger = logging.getLogger(__name__)
runtime_logger = logging.getLogger("flowplug.plugins.runtime")

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def log_plugin_message(level: str, message: str) -> None:
    """Forward a ``context.log`` line to the ``flowplug.plugins.runtime`` logger."""
    runtime_logger.log(_LEVELS.get(level.lower(), logging.INFO), message)


@dataclass
class PluginRuntime:
    """Everything produced by :func:`bootstrap_plugins`."""

    registry: PluginRegistry
    loader: PluginLoader
    hooks: HookRunner
    commands: CommandExtension
    agents: AgentExtension
    templates: TemplateExtension
    result: PluginLoadResult = field(default_factory=PluginLoadResult)


def create_runtime(hook_timeout: float = 30.0) -> PluginRuntime:
    """Build an empty runtime (no plugins loaded)."""
    registry = PluginRegistry()
    loader = PluginLoader(registry, ManifestValidator(), plugin_logger=log_plugin_message)
    return PluginRuntime(
        registry=registry,
        loader=loader,
        hooks=HookRunner(registry, timeout=hook_timeout),
        commands=CommandExtension(registry),
        agents=AgentExtension(registry),
        templates=TemplateExtension(registry),
    )


async def bootstrap_plugins(
    project_dir: Path,
    global_config: Optional[GlobalConfig] = None,
    host_version: str = __version__,
    dependency_dir: Optional[Path] = None,
    plugin_dirs: Iterable[Path] = (),
    dev_mode: bool = False,
) -> PluginRuntime:
    """Load the project's plugins and return the live runtime.

    Which plugins load is decided from the project's state file:

    * global ``plugins.enabled`` is false: nothing is loaded;
    * the state file lists no plugins: everything discovered is loaded;
    * otherwise only plugins marked enabled are loaded (none, if all are
      disabled). Disabled plugins are reported as skipped.

    Plugins installed from a local directory are loaded from the path
    recorded in the state file.

    Args:
        project_dir: Project whose ``.flowplug/`` state drives loading.
        global_config: User config; loaded from disk when omitted.
        host_version: Version plugins are gated against.
        dependency_dir: Site-packages directory to scan.
        plugin_dirs: Extra plugin directories, added to the configured ones.
        dev_mode: Log load failures with tracebacks.
    """
    global_config = global_config or config_store.load_global_config()
    runtime = create_runtime(hook_timeout=global_config.plugins.hook_timeout_seconds)

    if not global_config.plugins.enabled:
        logger.info("Plugins are disabled in the global configuration")
        return runtime

    state = config_store.load_plugin_state(project_dir)
    enabled = {name for name, entry in state.plugins.items() if entry.enabled}
    disabled = sorted(set(state.plugins) - enabled)

    if state.plugins and not enabled:
        logger.info("All installed plugins are disabled")
        runtime.result.skipped.extend(
            SkippedPlugin(name=name, reason="Plugin is disabled") for name in disabled
        )
        return runtime

    local_paths = [
        Path(entry.local_path)
        for name, entry in state.plugins.items()
        if entry.enabled and entry.source == "local" and entry.local_path
    ]
    directories = [Path(d).expanduser() for d in global_config.plugins.directories]
    directories.extend(Path(d) for d in plugin_dirs)

    load_config = PluginLoadConfig(
        host_version=host_version,
        plugin_dirs=directories,
        plugin_paths=local_paths,
        dependency_dir=dependency_dir or default_dependency_dir(),
        enabled_plugins=enabled,
        dev_mode=dev_mode,
        plugin_configs={
            name: config_store.load_plugin_config(project_dir, name) for name in enabled
        },
        project_config=config_store.load_project_config(project_dir),
    )
    result = await runtime.loader.load_plugins(load_config)
    result.skipped.extend(SkippedPlugin(name=name, reason="Plugin is disabled") for name in disabled)
    runtime.result.merge(result)

    logger.info(
        "Plugins: %d loaded, %d skipped, %d failed",
        len(runtime.result.loaded),
        len(runtime.result.skipped),
        len(runtime.result.errors),
    )
    for failure in runtime.result.errors:
        logger.warning("Plugin '%s' failed (%s): %s", failure.plugin_name, failure.phase, failure.error)
    return runtime
