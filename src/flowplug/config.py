"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for flowplug:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.flowplug/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Global config** -- A single :class:`~flowplug.models.GlobalConfig`
  JSON file storing defaults (output format, plugin settings).
* **Project state** -- Each project keeps a ``.flowplug/`` directory with
  ``plugins.json`` (installed plugins, see
  :class:`~flowplug.models.PluginStateFile`) and one
  ``plugins/<name>/config.json`` per plugin.
* **Precedence resolution** -- :func:`resolve_project_dir` and
  :func:`resolve_registry_url` merge CLI flags, environment variables,
  project state, and global config.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import shutil
import tempfile
from pathlib import Path
from typing import Any, Optional

from flowplug.exceptions import ConfigError
from flowplug.models import GlobalConfig, PluginStateFile

_APP_NAME = "flowplug"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "flowplug.json"
_STATE_DIRNAME = ".flowplug"
_STATE_FILENAME = "plugins.json"

PROJECT_DIR_ENV = "FLOWPLUG_PROJECT_DIR"
REGISTRY_URL_ENV = "FLOWPLUG_REGISTRY_URL"
DEFAULT_REGISTRY_URL = "https://plugins.flowplug.dev"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/flowplug/`` (default ``~/.config/flowplug/``).
    On macOS/Windows: ``~/.flowplug/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/flowplug/`` (default ``~/.local/share/flowplug/``).
    On macOS/Windows: ``~/.flowplug/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. On any failure the
    temp file is removed and the original file is left as it was.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


def write_json(path: Path, data: Any) -> None:
    """Serialise *data* as indented JSON and write it atomically to *path*."""
    _atomic_write(path, json.dumps(data, indent=2) + "\n")


def _read_json(path: Path, what: str) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Invalid {what} at {path}: {exc}") from exc


# --- Global config ---


def _global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the XDG config directory.

    Returns:
        The deserialised :class:`~flowplug.models.GlobalConfig`. If the
        file does not exist, a default instance is returned.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    data = _read_json(path, "global config")
    try:
        return GlobalConfig.model_validate(data)
    except ValueError as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk."""
    write_json(_global_config_path(), config.model_dump(mode="json"))


# --- Project directory and project config ---


def resolve_project_dir(cli_project_dir: Optional[str] = None) -> Path:
    """Resolve the project directory.

    Precedence (high to low):
        1. ``--project-dir`` CLI flag
        2. ``FLOWPLUG_PROJECT_DIR`` environment variable
        3. Current working directory

    Returns:
        Absolute path to the project directory.
    """
    if cli_project_dir:
        return Path(cli_project_dir).expanduser().resolve()
    env_dir = os.environ.get(PROJECT_DIR_ENV)
    if env_dir:
        return Path(env_dir).expanduser().resolve()
    return Path.cwd().resolve()


def load_project_config(project_dir: Optional[Path] = None) -> Optional[dict[str, Any]]:
    """Load project-local configuration from ``<project>/flowplug.json``.

    Plugins can read (but never write) this through
    :meth:`PluginContext.get_project_config`.

    Returns:
        The parsed JSON object, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but is not a JSON object.
    """
    base = project_dir if project_dir is not None else Path.cwd()
    path = base / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    data = _read_json(path, "project config")
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid project config at {path}: expected a JSON object")
    return data


# --- Plugin state ---


def get_state_dir(project_dir: Path) -> Path:
    """Return ``<project>/.flowplug`` (not created)."""
    return project_dir / _STATE_DIRNAME


def get_state_path(project_dir: Path) -> Path:
    """Return the path of the project's ``plugins.json`` state file."""
    return get_state_dir(project_dir) / _STATE_FILENAME


def get_plugin_config_dir(project_dir: Path, plugin_name: str) -> Path:
    """Return the directory holding one plugin's ``config.json``.

    Scoped package names (``@team/name``) map to nested directories.
    """
    return get_state_dir(project_dir) / "plugins" / plugin_name


def load_plugin_state(project_dir: Path) -> PluginStateFile:
    """Load ``.flowplug/plugins.json``.

    Returns:
        The state file, or an empty :class:`PluginStateFile` when the
        project has none yet.

    Raises:
        ConfigError: If the file exists but is malformed.
    """
    path = get_state_path(project_dir)
    if not path.is_file():
        return PluginStateFile()
    data = _read_json(path, "plugin state")
    try:
        return PluginStateFile.model_validate(data)
    except ValueError as exc:
        raise ConfigError(f"Invalid plugin state at {path}: {exc}") from exc


def save_plugin_state(project_dir: Path, state: PluginStateFile) -> None:
    """Persist the plugin state file atomically."""
    data = state.model_dump(mode="json", by_alias=True, exclude_none=True)
    write_json(get_state_path(project_dir), data)


def load_plugin_config(project_dir: Path, plugin_name: str) -> dict[str, Any]:
    """Load the stored (override) values for one plugin.

    Returns:
        The stored key/value map; empty if nothing was ever stored.

    Raises:
        ConfigError: If the file exists but is not a JSON object.
    """
    path = get_plugin_config_dir(project_dir, plugin_name) / _CONFIG_FILENAME
    if not path.is_file():
        return {}
    data = _read_json(path, f"config for plugin '{plugin_name}'")
    if not isinstance(data, dict):
        raise ConfigError(
            f"Invalid config for plugin '{plugin_name}' at {path}: expected a JSON object"
        )
    return data


def save_plugin_config(project_dir: Path, plugin_name: str, values: dict[str, Any]) -> None:
    """Persist one plugin's stored values atomically."""
    path = get_plugin_config_dir(project_dir, plugin_name) / _CONFIG_FILENAME
    write_json(path, values)


def delete_plugin_config(project_dir: Path, plugin_name: str) -> None:
    """Remove a plugin's config directory if it exists."""
    path = get_plugin_config_dir(project_dir, plugin_name)
    if path.is_dir():
        shutil.rmtree(path)


# --- Precedence resolution ---


def resolve_registry_url(
    cli_registry_url: Optional[str] = None,
    state: Optional[PluginStateFile] = None,
    global_config: Optional[GlobalConfig] = None,
) -> str:
    """Resolve the package registry base URL.

    Precedence (high to low):
        1. Explicit option (``--registry``)
        2. ``registryUrl`` in the project's plugin state file
        3. ``FLOWPLUG_REGISTRY_URL`` environment variable
        4. ``plugins.registry_url`` in the global config
        5. :data:`DEFAULT_REGISTRY_URL`

    Returns:
        The base URL without a trailing slash.
    """
    candidates = [
        cli_registry_url,
        state.registry_url if state is not None else None,
        os.environ.get(REGISTRY_URL_ENV),
        global_config.plugins.registry_url if global_config is not None else None,
        DEFAULT_REGISTRY_URL,
    ]
    for candidate in candidates:
        if candidate:
            return candidate.rstrip("/")
    return DEFAULT_REGISTRY_URL
