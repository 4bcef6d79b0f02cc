"""Tests for the output formatting system.

Covers:
- OutputFormat resolution (auto -> rich/plain based on TTY)
- NO_COLOR / TERM=dumb color disabling
- stdout vs stderr discipline, quiet and verbose rules
- Plugin lists, search hits, details and config in JSON and plain modes
- Global instance management
"""

from __future__ import annotations

import json

import pytest

from flowplug import output as output_module
from flowplug.models import (
    InstallProgress,
    ManifestError,
    PluginDetail,
    PluginInfo,
    PluginLoadError,
    RegistrySearchHit,
)
from flowplug.output import (
    OutputFormat,
    OutputManager,
    _should_disable_color,
    get_output,
    reset_output,
    set_output,
)


@pytest.fixture()
def non_tty(monkeypatch):
    monkeypatch.setattr("flowplug.output._is_tty", lambda: False)


@pytest.fixture()
def tty(monkeypatch):
    monkeypatch.setattr("flowplug.output._is_tty", lambda: True)


class TestOutputFormatResolution:
    def test_auto_resolves_to_plain_when_not_tty(self, non_tty):
        assert OutputManager(format=OutputFormat.AUTO).format == OutputFormat.PLAIN

    def test_auto_resolves_to_rich_when_tty(self, tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.delenv("TERM", raising=False)
        assert OutputManager(format=OutputFormat.AUTO).format == OutputFormat.RICH

    def test_auto_is_plain_when_color_disabled(self, tty):
        assert OutputManager(format=OutputFormat.AUTO, no_color=True).format == OutputFormat.PLAIN

    def test_explicit_format_kept(self, tty):
        assert OutputManager(format=OutputFormat.JSON).format == OutputFormat.JSON


class TestColorDisabling:
    def test_no_color_env(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "")
        assert _should_disable_color() is True

    def test_term_dumb(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "dumb")
        assert _should_disable_color() is True

    def test_enabled_by_default(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm-256color")
        assert _should_disable_color() is False


class TestStreams:
    def test_data_goes_to_stdout(self, capsys):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.mapping({"retries": 3})
        captured = capsys.readouterr()
        assert captured.out == "retries\t3\n"
        assert captured.err == ""

    def test_diagnostics_go_to_stderr(self, capsys):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.info("hello")
        mgr.warning("careful")
        mgr.error("broken")
        captured = capsys.readouterr()
        assert captured.out == ""
        assert "hello" in captured.err
        assert "Warning: careful" in captured.err
        assert "Error: broken" in captured.err

    def test_quiet_suppresses_info_but_not_errors(self, capsys):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
        mgr.info("hidden")
        mgr.success("hidden too")
        mgr.suggest("hidden as well")
        mgr.error("shown")
        captured = capsys.readouterr()
        assert "hidden" not in captured.err
        assert "Error: shown" in captured.err

    def test_debug_requires_verbose(self, capsys):
        OutputManager(format=OutputFormat.PLAIN, no_color=True).debug("quiet")
        OutputManager(format=OutputFormat.PLAIN, no_color=True, verbose=True).debug("loud")
        err = capsys.readouterr().err
        assert "quiet" not in err
        assert "[debug] loud" in err


class TestPluginRendering:
    def test_plugin_list_plain(self, capsys):
        plugins = [
            PluginInfo(name="jira-sync", version="1.0.0", enabled=False, source="local",
                       description="Sync", extension_points=["commands", "hooks"]),
        ]
        OutputManager(format=OutputFormat.PLAIN, no_color=True).plugin_list(plugins)
        assert capsys.readouterr().out.splitlines() == [
            "Name\tVersion\tStatus\tSource\tExtension points\tDescription",
            "jira-sync\t1.0.0\tdisabled\tlocal\tcommands, hooks\tSync",
        ]

    def test_empty_plugin_list_hints_on_stderr(self, capsys):
        OutputManager(format=OutputFormat.JSON, no_color=True).plugin_list([])
        captured = capsys.readouterr()
        assert captured.out == ""
        assert "No plugins installed." in captured.err
        assert "flowplug plugin search" in captured.err

    def test_search_hits_json(self, capsys):
        hits = [RegistrySearchHit(name="jira-sync", version="1.2.0", author="Platform", description="Sync")]
        OutputManager(format=OutputFormat.JSON).search_hits(hits)
        assert json.loads(capsys.readouterr().out) == [
            {"Name": "jira-sync", "Version": "1.2.0", "Author": "Platform", "Description": "Sync"}
        ]

    def test_detail_json_keeps_every_field(self, capsys):
        OutputManager(format=OutputFormat.JSON).plugin_detail(PluginDetail(name="jira-sync", version="1.0.0"))
        data = json.loads(capsys.readouterr().out)
        assert data["name"] == "jira-sync"
        assert data["author"] == "Unknown"
        assert data["enabled"] is None

    def test_detail_plain_drops_unset_fields(self, capsys):
        detail = PluginDetail(
            name="jira-sync", version="1.0.0", installed=True, extension_points=["commands"]
        )
        OutputManager(format=OutputFormat.PLAIN, no_color=True).plugin_detail(detail)
        lines = capsys.readouterr().out.splitlines()
        assert "installed\ttrue" in lines
        assert 'extension_points\t["commands"]' in lines
        assert not any(line.startswith(("enabled", "dependencies")) for line in lines)

    def test_config_mapping_json(self, capsys):
        OutputManager(format=OutputFormat.JSON).mapping({"retries": 3, "labels": ["a"]})
        assert json.loads(capsys.readouterr().out) == {"retries": 3, "labels": ["a"]}

    def test_manifest_errors(self, capsys):
        errors = [ManifestError(field="version", message="Required field 'version' is missing", code="MISSING_FIELD")]
        OutputManager(format=OutputFormat.PLAIN, no_color=True).manifest_errors(errors)
        assert "Error: version: Required field 'version' is missing [MISSING_FIELD]" in capsys.readouterr().err

    def test_load_failures_are_warnings(self, capsys):
        failures = [PluginLoadError(plugin_name="broken", phase="import", error="Failed to import x")]
        OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True).load_failures(failures)
        assert "Warning: Plugin broken failed to load (import): Failed to import x" in capsys.readouterr().err

    def test_install_progress_only_on_tty(self, capsys, monkeypatch):
        event = InstallProgress(phase="downloading", message="Installing jira-sync", progress=0)
        monkeypatch.setattr("flowplug.output._is_tty", lambda: False)
        OutputManager(format=OutputFormat.PLAIN, no_color=True).install_progress(event)
        assert capsys.readouterr().err == ""
        monkeypatch.setattr("flowplug.output._is_tty", lambda: True)
        OutputManager(format=OutputFormat.PLAIN, no_color=True).install_progress(event)
        assert capsys.readouterr().err == "[downloading] Installing jira-sync (0%)\n"


class TestGlobalInstance:
    def test_lazy_default(self):
        reset_output()
        assert isinstance(get_output(), OutputManager)

    def test_set_and_convenience_functions(self, capsys):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        set_output(mgr)
        assert get_output() is mgr
        output_module.success("via module")
        output_module.error("via module")
        captured = capsys.readouterr()
        assert captured.out == ""
        assert "via module" in captured.err
        assert "Error: via module" in captured.err
