"""Plugin commands -- install, configure, and develop flowplug plugins.

Provides the ``flowplug plugin`` sub-command group. Lifecycle commands
(``install``, ``uninstall``, ``update``, ``enable``, ``disable``) and
configuration commands operate on the project selected with
``--project-dir`` (or ``FLOWPLUG_PROJECT_DIR``, or the working directory).
``search`` and ``info`` query the package registry. ``create`` and
``validate`` are plugin-author tools, and ``run`` loads the project's
plugins and executes a plugin-contributed command.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Coroutine, NoReturn, Optional

import typer

from flowplug.exceptions import FlowplugError
from flowplug.exit_codes import (
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_PLUGIN_ERROR,
)
from flowplug.models import PluginDetail
from flowplug.output import debug, error, get_output, info, success, suggest, warning


plugin_app = typer.Typer(no_args_is_help=True)
config_app = typer.Typer(no_args_is_help=True)
plugin_app.add_typer(config_app, name="config", help="Read and write plugin configuration.")


def _project_dir(ctx: typer.Context) -> Path:
    from flowplug.config import resolve_project_dir

    obj = ctx.find_root().obj or {}
    return resolve_project_dir(obj.get("project_dir"))


def create_manager(project_dir: Path, registry_url: Optional[str] = None) -> Any:
    """Build the :class:`~flowplug.plugins.manager.PluginManager` for *project_dir*."""
    from flowplug.plugins.manager import PluginManager
    from flowplug.plugins.registry import PluginRegistry

    return PluginManager(PluginRegistry(), project_dir, registry_url=registry_url)


def _fail(message: str, code: int) -> NoReturn:
    error(message)
    raise typer.Exit(code=code)


def _run(coro: Coroutine[Any, Any, Any]) -> Any:
    """Run *coro*, reporting :class:`FlowplugError` as a clean exit."""
    try:
        return asyncio.run(coro)
    except FlowplugError as exc:
        _fail(str(exc), exc.exit_code)


# ------------------------------------------------------------------ #
# Lifecycle
# ------------------------------------------------------------------ #


@plugin_app.command("install")
def install_command(
    ctx: typer.Context,
    name: str = typer.Argument(help="Package name, or a path to a plugin directory."),
    local: Optional[Path] = typer.Option(
        None, "--local", "-l", help="Install from a local directory by reference."
    ),
) -> None:
    """Install a plugin from the package index or a local directory.

    Example::

        flowplug plugin install flowplug-jira-sync
        flowplug plugin install ./my-plugin
    """
    manager = create_manager(_project_dir(ctx))
    result = _run(manager.install(name, local_path=local, on_progress=get_output().install_progress))
    if not result.success:
        _fail(f"Failed to install {result.plugin_name}: {result.error}", EXIT_PLUGIN_ERROR)
    success(f"Installed {result.plugin_name} {result.version}")


@plugin_app.command("uninstall")
def uninstall_command(
    ctx: typer.Context,
    name: str = typer.Argument(help="Installed plugin name."),
) -> None:
    """Uninstall a plugin and remove its configuration."""
    manager = create_manager(_project_dir(ctx))
    result = _run(manager.uninstall(name))
    if not result.success:
        _fail(f"Failed to uninstall {name}: {result.error}", EXIT_PLUGIN_ERROR)
    success(f"Uninstalled {name}")


@plugin_app.command("update")
def update_command(
    ctx: typer.Context,
    name: str = typer.Argument(help="Installed plugin name."),
) -> None:
    """Update a plugin to its latest version, keeping its configuration."""
    manager = create_manager(_project_dir(ctx))
    result = _run(manager.update(name))
    if not result.success:
        _fail(f"Failed to update {name}: {result.error}", EXIT_PLUGIN_ERROR)
    if result.previous_version == result.new_version:
        info(f"{name} is already at {result.new_version}")
    else:
        success(f"Updated {name} from {result.previous_version} to {result.new_version}")


@plugin_app.command("enable")
def enable_command(
    ctx: typer.Context,
    name: str = typer.Argument(help="Installed plugin name."),
) -> None:
    """Enable an installed plugin."""
    manager = create_manager(_project_dir(ctx))
    _run(manager.enable(name))
    success(f"Enabled {name}")


@plugin_app.command("disable")
def disable_command(
    ctx: typer.Context,
    name: str = typer.Argument(help="Installed plugin name."),
) -> None:
    """Disable an installed plugin without uninstalling it."""
    manager = create_manager(_project_dir(ctx))
    dependents = _run(manager.disable(name))
    if dependents:
        warning(f"These plugins depend on {name} and may stop working: {', '.join(dependents)}")
    success(f"Disabled {name}")


# ------------------------------------------------------------------ #
# Queries
# ------------------------------------------------------------------ #


@plugin_app.command("list")
def list_command(ctx: typer.Context) -> None:
    """List installed plugins."""
    manager = create_manager(_project_dir(ctx))
    get_output().plugin_list(_run(manager.list()))


@plugin_app.command("search")
def search_command(
    ctx: typer.Context,
    query: str = typer.Argument("", help="Search terms."),
    registry: Optional[str] = typer.Option(None, "--registry", help="Registry base URL."),
) -> None:
    """Search the package registry for plugins."""
    manager = create_manager(_project_dir(ctx), registry_url=registry)
    get_output().search_hits(_run(manager.search(query)))


@plugin_app.command("info")
def info_command(
    ctx: typer.Context,
    name: str = typer.Argument(help="Plugin or package name."),
    registry: Optional[str] = typer.Option(None, "--registry", help="Registry base URL."),
) -> None:
    """Show details of an installed plugin or a registry package."""
    manager = create_manager(_project_dir(ctx), registry_url=registry)
    detail: Optional[PluginDetail] = _run(manager.info(name))
    if detail is None:
        _fail(f"Plugin '{name}' not found", EXIT_NOT_FOUND)
    get_output().plugin_detail(detail)


# ------------------------------------------------------------------ #
# Configuration
# ------------------------------------------------------------------ #


@config_app.command("get")
def config_get(
    ctx: typer.Context,
    name: str = typer.Argument(help="Installed plugin name."),
    key: Optional[str] = typer.Argument(None, help="Single key to show."),
) -> None:
    """Show a plugin's configuration, with schema defaults filled in."""
    manager = create_manager(_project_dir(ctx))
    values = _run(manager.get_config(name, key))
    if key is not None and key not in values:
        _fail(f"Config key '{key}' is not set for {name}", EXIT_NOT_FOUND)
    get_output().mapping(values, title=name)


@config_app.command("set")
def config_set(
    ctx: typer.Context,
    name: str = typer.Argument(help="Installed plugin name."),
    key: str = typer.Argument(help="Config key."),
    value: str = typer.Argument(help="Value; decoded as JSON unless the key is a string."),
) -> None:
    """Set one configuration value.

    The value is converted to the type the plugin's schema declares and
    rejected if it does not match.

    Example::

        flowplug plugin config set jira-sync project '"CORE"'
        flowplug plugin config set jira-sync batchSize 50
    """
    from flowplug.plugins.validator import coerce_config_value

    manager = create_manager(_project_dir(ctx))
    schema = manager.get_config_schema(name) or {}
    coerced = coerce_config_value(value, schema.get(key))
    _run(manager.set_config(name, key, coerced))
    success(f"Set {key} for {name}")


# ------------------------------------------------------------------ #
# Plugin development
# ------------------------------------------------------------------ #


@plugin_app.command("create")
def create_command(
    ctx: typer.Context,
    name: str = typer.Argument(help="Name of the new plugin."),
    directory: Path = typer.Option(
        Path("."), "--dir", "-d", help="Directory to create the project in."
    ),
) -> None:
    """Scaffold a new plugin project."""
    manager = create_manager(_project_dir(ctx))
    result = _run(manager.scaffold(name, directory))
    if not result.success:
        _fail(result.error or f"Could not create plugin {name}", EXIT_INVALID_USAGE)
    for path in result.created_files:
        info(f"  created {path}")
    success(f"Created plugin {name}")
    suggest(f"Run 'flowplug plugin validate {Path(result.created_files[0]).parent.parent}' to check it.")


@plugin_app.command("validate")
def validate_command(
    ctx: typer.Context,
    path: Path = typer.Argument(Path("."), help="Plugin directory."),
) -> None:
    """Check a plugin's manifest and entry point without running it."""
    manager = create_manager(_project_dir(ctx))
    result = _run(manager.validate(path))
    if not result.valid:
        get_output().manifest_errors(result.errors)
        raise typer.Exit(code=EXIT_GENERIC_FAILURE)
    assert result.manifest is not None
    success(f"{result.manifest.name} {result.manifest.version} is valid")


@plugin_app.command(
    "run",
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)
def run_command(
    ctx: typer.Context,
    command: str = typer.Argument(help="Plugin command name."),
) -> None:
    """Load the project's plugins and run one of their commands.

    Arguments after the command name are passed to it; ``--key value`` and
    ``--flag`` become options.
    """
    from flowplug.plugins.bootstrap import bootstrap_plugins
    from flowplug.plugins.types import CommandArgs

    project_dir = _project_dir(ctx)
    positional, options = _split_args(list(ctx.args))

    async def _load_and_execute() -> Any:
        runtime = await bootstrap_plugins(project_dir, dev_mode=get_output().is_verbose)
        get_output().load_failures(runtime.result.errors)
        debug(f"Loaded plugins: {', '.join(p.name for p in runtime.result.loaded) or 'none'}")
        return await runtime.commands.execute_command(
            command, CommandArgs(positional=tuple(positional), options=options)
        )

    result = _run(_load_and_execute())
    if not result.success:
        _fail(result.error or f"Command {command} failed", EXIT_PLUGIN_ERROR)


def _split_args(args: list[str]) -> tuple[list[str], dict[str, Any]]:
    positional: list[str] = []
    options: dict[str, Any] = {}
    i = 0
    while i < len(args):
        arg = args[i]
        if arg.startswith("--") and len(arg) > 2:
            key, sep, value = arg[2:].partition("=")
            if sep:
                options[key] = value
            elif i + 1 < len(args) and not args[i + 1].startswith("--"):
                options[key] = args[i + 1]
                i += 1
            else:
                options[key] = True
        else:
            positional.append(arg)
        i += 1
    return positional, options
