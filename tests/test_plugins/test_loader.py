"""Tests for flowplug.plugins.loader -- the load cycle, ordering, and reload."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import pytest

from flowplug.plugins.context import create_plugin_context
from flowplug.plugins.loader import PluginLoadConfig, PluginLoader
from flowplug.plugins.registry import PluginRegistry


def _dep(name: str, version_range: str = ">=0.0.1") -> dict[str, str]:
    return {"name": name, "versionRange": version_range}


@pytest.fixture()
def registry() -> PluginRegistry:
    return PluginRegistry()


@pytest.fixture()
def loader(registry) -> PluginLoader:
    return PluginLoader(registry)


@pytest.fixture()
def plugins_root(tmp_path: Path) -> Path:
    return tmp_path / "plugins"


@pytest.fixture()
def load(loader, plugins_root):
    def _load(**kwargs):
        config = PluginLoadConfig(host_version="0.12.0", plugin_dirs=[plugins_root], **kwargs)
        return asyncio.run(loader.load_plugins(config))

    return _load


def _errors(result) -> dict[str, tuple[str, str]]:
    return {e.plugin_name: (e.phase, e.error) for e in result.errors}


class TestLoadCycle:
    def test_loads_valid_plugins(self, make_plugin, load, registry) -> None:
        make_plugin("alpha")
        make_plugin("beta")
        result = load()
        assert [p.name for p in result.loaded] == ["alpha", "beta"]
        assert result.errors == []
        assert registry.has_plugin("alpha")
        assert registry.get_command("beta-cmd").plugin_name == "beta"
        assert result.loaded[0].path.endswith("alpha")

    def test_empty_directory(self, load) -> None:
        result = load()
        assert result.loaded == [] and result.skipped == [] and result.errors == []

    def test_enabled_filter(self, make_plugin, load, registry) -> None:
        make_plugin("alpha")
        make_plugin("beta")
        result = load(enabled_plugins={"beta"})
        assert [p.name for p in result.loaded] == ["beta"]
        assert not registry.has_plugin("alpha")

    def test_async_activate(self, make_plugin, load, registry) -> None:
        make_plugin(
            "async-plugin",
            code=(
                "from flowplug.plugins.types import CommandRegistration\n"
                "async def activate(context):\n"
                "    context.register_command(CommandRegistration('later', 'x', lambda a: None))\n"
            ),
        )
        result = load()
        assert [p.name for p in result.loaded] == ["async-plugin"]
        assert registry.get_command("later") is not None

    def test_package_entry_point_with_relative_import(self, make_plugin, load, registry) -> None:
        plugin_dir = make_plugin(
            "packaged",
            entry_point="__init__.py",
            code=(
                "from flowplug.plugins.types import CommandRegistration\n"
                "from . import helper\n"
                "def activate(context):\n"
                "    context.register_command(CommandRegistration(helper.NAME, 'x', lambda a: None))\n"
            ),
        )
        (plugin_dir / "helper.py").write_text("NAME = 'from-helper'\n", encoding="utf-8")
        result = load()
        assert result.errors == []
        assert registry.get_command("from-helper") is not None


class TestValidationStage:
    def test_invalid_manifest(self, make_plugin, load) -> None:
        make_plugin("broken", manifest={"name": "broken"})
        make_plugin("fine")
        result = load()
        phase, error = _errors(result)["broken"]
        assert phase == "manifest"
        assert error.startswith("Invalid manifest: ")
        assert "version: Required field 'version' is missing" in error
        assert [p.name for p in result.loaded] == ["fine"]

    def test_incompatible_host_is_skipped(self, make_plugin, load) -> None:
        make_plugin("future", flowplug_version=">=9.0.0")
        result = load()
        assert result.loaded == []
        assert result.errors == []
        assert result.skipped[0].name == "future"
        assert result.skipped[0].reason == (
            "Version mismatch: flowplug 0.12.0 does not satisfy required range >=9.0.0"
        )

    def test_duplicate_name(self, make_plugin, load) -> None:
        make_plugin("twin", dirname="a-twin")
        make_plugin("twin", dirname="b-twin")
        result = load()
        assert [p.name for p in result.loaded] == ["twin"]
        assert result.loaded[0].path.endswith("a-twin")
        assert result.skipped[0].reason.startswith("Duplicate plugin name; already discovered at ")

    def test_already_loaded(self, make_plugin, load) -> None:
        make_plugin("alpha")
        load()
        result = load()
        assert result.loaded == []
        assert result.skipped[0].reason == "Plugin is already loaded"


class TestDependencies:
    def test_topological_order(self, make_plugin, load) -> None:
        make_plugin("app", dependencies=[_dep("lib"), _dep("core")])
        make_plugin("core")
        make_plugin("lib", dependencies=[_dep("core")])
        result = load()
        assert [p.name for p in result.loaded] == ["core", "lib", "app"]

    def test_independent_plugins_keep_discovery_order(self, make_plugin, load) -> None:
        for name in ["c-plugin", "a-plugin", "b-plugin"]:
            make_plugin(name)
        result = load()
        assert [p.name for p in result.loaded] == ["a-plugin", "b-plugin", "c-plugin"]

    def test_missing_dependency(self, make_plugin, load, registry) -> None:
        make_plugin("a", dependencies=[_dep("b")])
        result = load()
        assert _errors(result)["a"] == ("dependency", 'Missing dependency: "b" is not available')
        assert not registry.has_plugin("a")

    def test_missing_dependency_is_transitive(self, make_plugin, load) -> None:
        make_plugin("a", dependencies=[_dep("ghost")])
        make_plugin("b", dependencies=[_dep("a")])
        make_plugin("c")
        result = load()
        errors = _errors(result)
        assert errors["a"][0] == "dependency"
        assert errors["b"] == ("dependency", 'Missing dependency: "a" is not available')
        assert [p.name for p in result.loaded] == ["c"]

    def test_version_range_mismatch(self, make_plugin, load) -> None:
        make_plugin("a", dependencies=[_dep("b", "^2.0.0")])
        make_plugin("b", version="1.4.0")
        result = load()
        assert _errors(result)["a"] == (
            "dependency",
            'Dependency "b" version 1.4.0 does not satisfy range "^2.0.0" required by "a"',
        )
        assert [p.name for p in result.loaded] == ["b"]

    def test_dependency_already_in_registry(self, make_plugin, load, plugins_root, tmp_path) -> None:
        make_plugin("base")
        load()
        make_plugin("addon", root=tmp_path / "more", dependencies=[_dep("base", "^1.0.0")])
        result = load(plugin_paths=[tmp_path / "more" / "addon"])
        assert "addon" in [p.name for p in result.loaded]

    def test_cycle(self, make_plugin, load, registry) -> None:
        make_plugin("a", dependencies=[_dep("b")])
        make_plugin("b", dependencies=[_dep("c")])
        make_plugin("c", dependencies=[_dep("a")])
        make_plugin("d", dependencies=[_dep("a")])
        make_plugin("e")
        result = load()

        errors = _errors(result)
        for name in ["a", "b", "c"]:
            assert errors[name] == ("dependency", "Circular dependency detected: a -> b -> c -> a")
        assert errors["d"] == ("dependency", "Depends on a plugin that is part of a circular dependency")
        assert [p.name for p in result.loaded] == ["e"]
        assert not registry.has_plugin("a")

    def test_self_dependency(self, make_plugin, load) -> None:
        make_plugin("selfish", dependencies=[_dep("selfish")])
        result = load()
        assert _errors(result)["selfish"] == (
            "dependency",
            "Circular dependency detected: selfish -> selfish",
        )


class TestImportAndActivation:
    def test_entry_point_missing(self, make_plugin, load) -> None:
        make_plugin("ghost", code=None)
        phase, error = _errors(load())["ghost"]
        assert phase == "import"
        assert error.startswith("Entry point not found: ")

    def test_syntax_error(self, make_plugin, load) -> None:
        make_plugin("bad-syntax", code="def activate(:\n")
        phase, error = _errors(load())["bad-syntax"]
        assert phase == "import"
        assert error.startswith("Failed to import ")

    def test_missing_activate(self, make_plugin, load) -> None:
        make_plugin("lazy", code="VALUE = 1\n")
        assert _errors(load())["lazy"] == (
            "import",
            "entry point does not define an 'activate' function",
        )

    def test_activation_failure_rolls_back(self, make_plugin, load, registry) -> None:
        make_plugin(
            "half",
            code=(
                "from flowplug.plugins.types import CommandRegistration\n"
                "def activate(context):\n"
                "    context.register_command(CommandRegistration('half-cmd', 'x', lambda a: None))\n"
                "    raise RuntimeError('boom')\n"
            ),
        )
        make_plugin("whole")
        result = load()
        assert _errors(result)["half"] == ("activation", "Plugin activation failed: boom")
        assert registry.get_command("half-cmd") is None
        assert not registry.has_plugin("half")
        assert [p.name for p in result.loaded] == ["whole"]
        assert not any(name.startswith("flowplug_plugin_half_") for name in sys.modules)

    def test_conflict_fails_activation(self, make_plugin, load) -> None:
        make_plugin(
            "grabby",
            code=(
                "from flowplug.plugins.types import CommandRegistration\n"
                "def activate(context):\n"
                "    context.register_command(CommandRegistration('init', 'x', lambda a: None))\n"
            ),
        )
        phase, error = _errors(load())["grabby"]
        assert phase == "activation"
        assert 'Command "init" conflicts with core command' in error

    def test_config_defaults_and_project_config(self, make_plugin, registry, plugins_root) -> None:
        captured: dict = {}

        def factory(**kwargs):
            captured.update(kwargs)
            return create_plugin_context(**kwargs)

        loader = PluginLoader(registry, context_factory=factory)
        make_plugin(
            "configured",
            config_schema={
                "retries": {"type": "number", "default": 3},
                "project": {"type": "string"},
            },
        )
        config = PluginLoadConfig(
            host_version="0.12.0",
            plugin_dirs=[plugins_root],
            plugin_configs={"configured": {"project": "CORE"}},
            project_config={"agent": "claude"},
        )
        result = asyncio.run(loader.load_plugins(config))
        assert result.errors == []
        assert captured["config"] == {"retries": 3, "project": "CORE"}
        assert captured["project_config"] == {"agent": "claude"}
        assert captured["host_version"] == "0.12.0"


class TestUnloadAndReload:
    def test_unload_calls_deactivate(self, make_plugin, load, loader, registry, tmp_path) -> None:
        marker = tmp_path / "deactivated"
        make_plugin(
            "tidy",
            code=(
                "from pathlib import Path\n"
                "def activate(context):\n"
                "    pass\n"
                "def deactivate():\n"
                f"    Path({str(marker)!r}).write_text('yes')\n"
            ),
        )
        load()
        asyncio.run(loader.unload_plugin("tidy"))
        assert marker.read_text() == "yes"
        assert not registry.has_plugin("tidy")

    def test_failing_deactivate_still_unloads(self, make_plugin, load, loader, registry) -> None:
        make_plugin(
            "grumpy",
            code="def activate(context):\n    pass\ndef deactivate():\n    raise RuntimeError('no')\n",
        )
        load()
        asyncio.run(loader.unload_plugin("grumpy"))
        assert not registry.has_plugin("grumpy")

    def test_reload_picks_up_changes(self, make_plugin, load, loader, registry) -> None:
        template = (
            "from flowplug.plugins.types import CommandRegistration\n"
            "def activate(context):\n"
            "    context.register_command(CommandRegistration('hot', {desc!r}, lambda a: None))\n"
        )
        plugin_dir = make_plugin("hot", code=template.format(desc="v1"))
        load()
        assert registry.get_command("hot").registration.description == "v1"

        (plugin_dir / "plugin.py").write_text(template.format(desc="second version"), encoding="utf-8")
        result = asyncio.run(loader.reload_plugin("hot"))

        assert [p.name for p in result.loaded] == ["hot"]
        assert registry.get_command("hot").registration.description == "second version"
        assert loader.get_reload_count("hot") == 1
        assert loader.get_plugin_dir("hot") == plugin_dir.resolve()

    def test_reload_unknown(self, loader) -> None:
        result = asyncio.run(loader.reload_plugin("nobody"))
        assert result.errors[0].phase == "discovery"
        assert result.errors[0].plugin_name == "nobody"

    def test_reload_warning_threshold(self, make_plugin, load, loader, monkeypatch, caplog) -> None:
        monkeypatch.setattr("flowplug.plugins.loader.RELOAD_WARNING_THRESHOLD", 1)
        make_plugin("busy")
        load()
        with caplog.at_level(logging.WARNING, logger="flowplug.plugins.loader"):
            asyncio.run(loader.reload_plugin("busy"))
            assert "reloaded" not in caplog.text
            asyncio.run(loader.reload_plugin("busy"))
        assert "has been reloaded 2 times" in caplog.text
