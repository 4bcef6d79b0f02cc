"""Shared test fixtures for flowplug.

Provides isolated config environments, output state management, a CLI
runner, and a factory that writes plugin directories (manifest plus entry
point) to disk. These fixtures are discovered by pytest automatically.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from flowplug.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time. When Typer's CliRunner redirects those streams and the
    test finishes, the cached references become stale. Resetting forces a
    fresh manager on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points the XDG directories at subdirectories of tmp_path, clears all
    FLOWPLUG_* environment variables and changes the working directory to
    tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("flowplug.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    for var in ["FLOWPLUG_PROJECT_DIR", "FLOWPLUG_REGISTRY_URL"]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def project_dir(isolated_config: Path) -> Path:
    """An empty project directory inside the isolated environment."""
    path = isolated_config / "project"
    path.mkdir()
    return path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a quiet, plain-format output manager."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def json_output() -> OutputManager:
    """Install a JSON-format output manager."""
    output = OutputManager(format=OutputFormat.JSON)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()


# ---------------------------------------------------------------------------
# Plugin directories on disk
# ---------------------------------------------------------------------------

DEFAULT_ENTRY = '''
from flowplug.plugins.types import CommandRegistration


def activate(context):
    context.register_command(
        CommandRegistration(
            name=context.plugin_name + "-cmd",
            description="registered by " + context.plugin_name,
            handler=lambda args: None,
        )
    )
'''


def manifest_dict(
    name: str,
    version: str = "1.0.0",
    dependencies: Optional[list[dict[str, str]]] = None,
    flowplug_version: str = ">=0.1.0",
    extension_points: Optional[list[str]] = None,
    config_schema: Optional[dict[str, Any]] = None,
    entry_point: str = "plugin.py",
    **extra: Any,
) -> dict[str, Any]:
    """Build a manifest dict with sensible defaults."""
    data: dict[str, Any] = {
        "name": name,
        "version": version,
        "description": f"The {name} plugin",
        "author": "Test Author",
        "entryPoint": entry_point,
        "flowplugVersion": flowplug_version,
        "extensionPoints": extension_points if extension_points is not None else ["commands"],
    }
    if dependencies is not None:
        data["dependencies"] = dependencies
    if config_schema is not None:
        data["configSchema"] = config_schema
    data.update(extra)
    return data


PluginFactory = Callable[..., Path]


@pytest.fixture
def make_plugin(tmp_path: Path) -> PluginFactory:
    """Factory writing ``<root>/<dirname>/`` with a manifest and an entry point.

    Keyword arguments other than ``root``, ``dirname``, ``code`` and
    ``manifest`` are passed to :func:`manifest_dict`. ``manifest`` replaces
    the generated manifest entirely (any JSON value is allowed).
    """

    def _make(
        name: str,
        root: Optional[Path] = None,
        dirname: Optional[str] = None,
        code: str = DEFAULT_ENTRY,
        manifest: Any = None,
        **kwargs: Any,
    ) -> Path:
        base = root if root is not None else tmp_path / "plugins"
        plugin_dir = base / (dirname or name.replace("/", "_").replace("@", ""))
        plugin_dir.mkdir(parents=True, exist_ok=True)
        data = manifest if manifest is not None else manifest_dict(name, **kwargs)
        (plugin_dir / "flowplug-plugin.json").write_text(json.dumps(data), encoding="utf-8")
        entry = data.get("entryPoint", "plugin.py") if isinstance(data, dict) else "plugin.py"
        if code is not None:
            (plugin_dir / entry).write_text(code, encoding="utf-8")
        return plugin_dir

    return _make


@pytest.fixture
def manifest_data() -> Callable[..., dict[str, Any]]:
    """The :func:`manifest_dict` builder, for tests that need raw manifests."""
    return manifest_dict
