"""Console rendering for the ``flowplug`` CLI.

Plugin data (installed plugins, search hits, plugin details, configuration
values) is written to **stdout**; install progress, status lines, warnings
and errors go to **stderr**, so ``flowplug --json plugin list | jq`` never
sees a diagnostic.

The renderers take flowplug's result models directly and pick a layout
for the active :class:`OutputFormat`:

* ``json`` -- one JSON document per command.
* ``plain`` -- tab-separated lines for ``cut`` and ``awk``.
* ``rich`` -- tables and colour, chosen automatically for an interactive
  terminal unless ``NO_COLOR``, ``TERM=dumb`` or ``--no-color`` is set.

:func:`~flowplug.app.main_callback` installs the process-wide
:class:`OutputManager` with :func:`set_output`; command code reaches it
through :func:`get_output` or the module-level shortcuts.
"""

from __future__ import annotations

import json
import os
import sys
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

from rich.console import Console
from rich.table import Table

from flowplug.models import (
    InstallProgress,
    ManifestError,
    PluginDetail,
    PluginInfo,
    PluginLoadError,
    RegistrySearchHit,
)


class OutputFormat(str, Enum):
    """Output formats. ``AUTO`` becomes ``RICH`` on a colour TTY, else ``PLAIN``."""

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


PLUGIN_LIST_HEADERS = ["Name", "Version", "Status", "Source", "Extension points", "Description"]
SEARCH_HEADERS = ["Name", "Version", "Author", "Description"]


class OutputManager:
    """Renders plugin results and diagnostics for one CLI invocation.

    Args:
        format: Desired output format; ``AUTO`` is resolved here.
        no_color: Disable colour and Rich markup.
        quiet: Hide informational, success and progress messages.
        verbose: Show debug messages.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose

        if format == OutputFormat.AUTO:
            format = OutputFormat.RICH if _is_tty() and not self._no_color else OutputFormat.PLAIN
        self._format = format

        self._stdout = Console(
            file=sys.stdout,
            no_color=self._no_color,
            force_terminal=(format == OutputFormat.RICH),
        )
        self._stderr = Console(file=sys.stderr, no_color=self._no_color, stderr=True)

    @property
    def format(self) -> OutputFormat:
        return self._format

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    # --- plugin data (stdout) ---

    def plugin_list(self, plugins: Sequence[PluginInfo]) -> None:
        """Table of installed plugins; a hint on stderr when there are none."""
        if not plugins:
            self.info("No plugins installed.")
            self.suggest("Run 'flowplug plugin search <query>' to find plugins.")
            return
        rows = [
            [
                p.name,
                p.version,
                "enabled" if p.enabled else "disabled",
                p.source,
                ", ".join(p.extension_points),
                p.description,
            ]
            for p in plugins
        ]
        self.table(PLUGIN_LIST_HEADERS, rows, title="Installed plugins")

    def search_hits(self, hits: Sequence[RegistrySearchHit]) -> None:
        if not hits:
            self.info("No plugins found.")
            return
        rows = [[h.name, h.version, h.author, h.description] for h in hits]
        self.table(SEARCH_HEADERS, rows, title="Plugins")

    def plugin_detail(self, detail: PluginDetail) -> None:
        """Every field of *detail*; unset fields are left out of plain and rich output."""
        data = detail.model_dump(mode="json")
        if self._format == OutputFormat.JSON:
            self._write_json(data)
            return
        fields = {key: value for key, value in data.items() if value not in (None, [], "")}
        self.mapping(fields, title=detail.name)

    def mapping(self, values: Mapping[str, Any], title: Optional[str] = None) -> None:
        """Key/value pairs such as a plugin's configuration."""
        if self._format == OutputFormat.JSON:
            self._write_json(dict(values))
        elif self._format == OutputFormat.PLAIN:
            for key, value in values.items():
                self._write(f"{key}\t{_cell(value)}")
        else:
            grid = Table(title=title, show_header=False, box=None, padding=(0, 2))
            grid.add_column(style="bold cyan")
            grid.add_column()
            for key, value in values.items():
                grid.add_row(key, _cell(value))
            self._stdout.print(grid)

    def table(self, headers: list[str], rows: list[list[str]], title: Optional[str] = None) -> None:
        """Rows as a Rich table, tab-separated lines, or a JSON array of objects."""
        if self._format == OutputFormat.JSON:
            self._write_json([dict(zip(headers, row)) for row in rows])
        elif self._format == OutputFormat.PLAIN:
            self._write("\t".join(headers))
            for row in rows:
                self._write("\t".join(row))
        else:
            table = Table(title=title, header_style="bold cyan")
            for header in headers:
                table.add_column(header)
            for row in rows:
                table.add_row(*row)
            self._stdout.print(table)

    # --- plugin diagnostics (stderr) ---

    def install_progress(self, event: InstallProgress) -> None:
        suffix = f" ({event.progress}%)" if event.progress is not None else ""
        self.progress(f"[{event.phase}] {event.message}{suffix}")

    def manifest_errors(self, errors: Sequence[ManifestError]) -> None:
        for problem in errors:
            self.error(f"{problem.field}: {problem.message} [{problem.code}]")

    def load_failures(self, failures: Sequence[PluginLoadError]) -> None:
        for failure in failures:
            self.warning(
                f"Plugin {failure.plugin_name} failed to load ({failure.phase}): {failure.error}"
            )

    # --- general diagnostics (stderr) ---

    def info(self, message: str) -> None:
        if not self._quiet:
            self._diag(message, message)

    def success(self, message: str) -> None:
        if not self._quiet:
            self._diag(message, f"[green]{message}[/green]")

    def warning(self, message: str) -> None:
        """Shown even with ``--quiet``."""
        self._diag(f"Warning: {message}", f"[yellow]Warning:[/yellow] {message}")

    def error(self, message: str) -> None:
        """Always shown."""
        self._diag(f"Error: {message}", f"[bold red]Error:[/bold red] {message}")

    def suggest(self, message: str) -> None:
        if not self._quiet:
            hint = f"→ {message}"
            self._diag(hint, f"[dim]{hint}[/dim]")

    def debug(self, message: str) -> None:
        if self._verbose:
            self._diag(f"[debug] {message}", f"[dim]\\[debug] {message}[/dim]")

    def progress(self, message: str) -> None:
        """Only shown on an interactive terminal."""
        if not self._quiet and _is_tty():
            self._diag(message, f"[dim]{message}[/dim]")

    # --- internals ---

    def _write(self, text: str) -> None:
        print(text, file=sys.stdout, flush=True)

    def _write_json(self, data: Any) -> None:
        self._write(json.dumps(data, indent=2, ensure_ascii=False, default=str))

    def _diag(self, plain: str, markup: str) -> None:
        if self._no_color:
            print(plain, file=sys.stderr, flush=True)
        else:
            self._stderr.print(markup)


def _cell(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    """True when ``NO_COLOR`` is set (any value) or ``TERM=dumb``."""
    if os.environ.get("NO_COLOR") is not None:
        return True
    return os.environ.get("TERM") == "dumb"


_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the process-wide manager, creating a default one on first use."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    """Forget the process-wide manager (the test suite does this between tests)."""
    global _output
    _output = None


def info(message: str) -> None:
    get_output().info(message)


def success(message: str) -> None:
    get_output().success(message)


def warning(message: str) -> None:
    get_output().warning(message)


def error(message: str) -> None:
    get_output().error(message)


def suggest(message: str) -> None:
    get_output().suggest(message)


def debug(message: str) -> None:
    get_output().debug(message)
