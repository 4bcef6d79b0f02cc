"""Tests for the bundled example plugin, loaded through the real loader."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from flowplug import __version__
from flowplug.plugins.extensions import CommandExtension
from flowplug.plugins.hooks import HookRunner
from flowplug.plugins.loader import PluginLoadConfig, PluginLoader
from flowplug.plugins.registry import PluginRegistry
from flowplug.plugins.types import CommandArgs, HookContext

EXAMPLE_DIR = Path(__file__).resolve().parents[2] / "plugins" / "example_plugin"


@pytest.fixture()
def loaded():
    registry = PluginRegistry()
    messages: list[tuple[str, str]] = []
    loader = PluginLoader(registry, plugin_logger=lambda level, message: messages.append((level, message)))
    config = PluginLoadConfig(
        host_version=__version__,
        plugin_paths=[EXAMPLE_DIR],
        plugin_configs={"example-phase-timer": {"warnAfterSeconds": 0}},
    )
    result = asyncio.run(loader.load_plugins(config))
    return registry, result, messages


class TestExamplePlugin:
    def test_loads(self, loaded) -> None:
        registry, result, _ = loaded
        assert result.errors == []
        assert [p.name for p in result.loaded] == ["example-phase-timer"]
        assert registry.has_service("example-phase-timer.timer")

    def test_times_a_phase(self, loaded, capsys) -> None:
        registry, _, messages = loaded
        hooks = HookRunner(registry)

        async def run_phase() -> None:
            pre = await hooks.run_pre_phase_hooks("design", HookContext(phase="design", timing="pre", feature="checkout"))
            assert pre.vetoed is False
            assert pre.executed_hooks == 1
            post = await hooks.run_post_phase_hooks(
                "design", HookContext(phase="design", timing="post", feature="checkout")
            )
            assert post.errors == []

        asyncio.run(run_phase())

        assert ("info", "[plugin:example-phase-timer] checkout: design started") in messages
        assert any(level == "warn" and "design took" in message for level, message in messages)

        result = asyncio.run(
            CommandExtension(registry).execute_command("phase-times", CommandArgs(positional=(), options={}))
        )
        assert result.success is True
        assert capsys.readouterr().out.startswith("design\t")

    def test_unregister_disposes_timer(self, loaded) -> None:
        registry, _, _ = loaded
        timer = registry.resolve_service("example-phase-timer.timer")
        timer.durations["tasks"] = 1.0
        asyncio.run(registry.unregister_plugin("example-phase-timer"))
        assert timer.durations == {}
        assert not registry.has_plugin("example-phase-timer")
