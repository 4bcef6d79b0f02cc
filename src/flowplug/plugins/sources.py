"""Locating plugin candidates on disk.

Plugins come from three places:

* **Plugin directories** -- every immediate subdirectory that contains a
  ``flowplug-plugin.json`` is a candidate.
* **Explicit plugin paths** -- a directory that *is* a plugin (used for
  locally installed plugins and for reloading one plugin).
* **The dependency directory** -- a site-packages style directory. Installed
  distributions whose metadata ``Keywords`` include ``flowplug-plugin``
  are candidates; the manifest is found among the distribution's recorded
  files. A plain ``<dependency_dir>/<name>/flowplug-plugin.json`` layout is
  recognised as well.

Discovery only reads manifests; it never imports plugin code.
"""

from __future__ import annotations

import importlib.metadata
import json
import logging
import sysconfig
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

from packaging.utils import canonicalize_name

from flowplug.plugins.validator import MANIFEST_FILENAME

logger = logging.getLogger(__name__)

DISCOVERY_KEYWORD = "flowplug-plugin"
"""Tag that marks a distribution as a flowplug plugin."""


@dataclass
class PluginCandidate:
    """A manifest found during discovery, not yet validated."""

    directory: Path
    manifest_path: Path
    raw_manifest: Any
    origin: str
    name: Optional[str] = None

    def __post_init__(self) -> None:
        if self.name is None and isinstance(self.raw_manifest, dict):
            value = self.raw_manifest.get("name")
            if isinstance(value, str):
                self.name = value

    @property
    def display_name(self) -> str:
        return self.name or self.directory.name


@dataclass
class DiscoveryReport:
    candidates: list[PluginCandidate] = field(default_factory=list)
    # (identifier, message) for manifests that exist but could not be read.
    failures: list[tuple[str, str]] = field(default_factory=list)


def default_dependency_dir() -> Path:
    """The running interpreter's pure-Python site-packages directory."""
    return Path(sysconfig.get_paths()["purelib"])


def discover(
    plugin_dirs: Iterable[Path] = (),
    plugin_paths: Iterable[Path] = (),
    dependency_dir: Optional[Path] = None,
) -> DiscoveryReport:
    """Collect plugin candidates from every configured source.

    Missing or unreadable directories are logged and skipped. A manifest
    that exists but is not valid JSON is reported in
    :attr:`DiscoveryReport.failures`.
    """
    report = DiscoveryReport()
    for path in plugin_paths:
        _add_candidate(report, Path(path), origin="path")
    for directory in plugin_dirs:
        for child in _iter_subdirs(Path(directory)):
            if (child / MANIFEST_FILENAME).is_file():
                _add_candidate(report, child, origin="directory")
    if dependency_dir is not None:
        _scan_dependency_dir(report, Path(dependency_dir))
    return report


def locate_manifest_dir(path: Path) -> Optional[Path]:
    """Return the plugin directory for a user-supplied *path*.

    *path* may be the plugin directory itself or a project root whose
    package directory holds the manifest (the layout ``flowplug plugin
    create`` generates).
    """
    if (path / MANIFEST_FILENAME).is_file():
        return path
    for child in _iter_subdirs(path):
        if (child / MANIFEST_FILENAME).is_file():
            return child
    return None


def find_installed_plugin_dir(name: str, dependency_dir: Path) -> Optional[Path]:
    """Return the directory holding the manifest of installed plugin *name*.

    Matches the manifest ``name`` first and falls back to the distribution
    name (both compared after PEP 503 normalisation).
    """
    wanted = canonicalize_name(name)
    report = DiscoveryReport()
    _scan_dependency_dir(report, dependency_dir)
    for candidate in report.candidates:
        if candidate.name and canonicalize_name(candidate.name) == wanted:
            return candidate.directory
    for dist in _keyword_distributions(dependency_dir):
        if canonicalize_name(dist.metadata.get("Name", "")) == wanted:
            manifest = _dist_manifest_path(dist)
            if manifest is not None:
                return manifest.parent
    return None


def distribution_name_for(plugin_dir: Path, dependency_dir: Path) -> Optional[str]:
    """Return the name of the installed distribution that ships *plugin_dir*.

    Only keyword-tagged distributions whose recorded files include the
    manifest are considered. Editable installs usually record no package
    files, so they are not found here.
    """
    if not dependency_dir.is_dir():
        return None
    target = Path(plugin_dir).resolve()
    for dist in _keyword_distributions(dependency_dir):
        manifest = _dist_manifest_path(dist)
        if manifest is not None and manifest.parent.resolve() == target:
            return dist.metadata.get("Name")
    return None


# --- internals ---


def _iter_subdirs(directory: Path) -> Iterator[Path]:
    try:
        children = sorted(directory.iterdir())
    except FileNotFoundError:
        logger.debug("Plugin directory %s does not exist, skipping", directory)
        return
    except OSError as exc:
        logger.warning("Cannot read plugin directory %s: %s", directory, exc)
        return
    for child in children:
        if child.is_dir():
            yield child


def _add_candidate(report: DiscoveryReport, directory: Path, origin: str) -> None:
    manifest_path = directory / MANIFEST_FILENAME
    if not manifest_path.is_file():
        report.failures.append(
            (directory.name, f"No {MANIFEST_FILENAME} found in {directory}")
        )
        return
    try:
        raw = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Cannot read plugin manifest %s: %s", manifest_path, exc)
        report.failures.append(
            (directory.name, f"Failed to read manifest {manifest_path}: {exc}")
        )
        return
    report.candidates.append(
        PluginCandidate(
            directory=directory.resolve(),
            manifest_path=manifest_path.resolve(),
            raw_manifest=raw,
            origin=origin,
        )
    )


def _keyword_distributions(dependency_dir: Path) -> Iterator[importlib.metadata.Distribution]:
    for dist in importlib.metadata.distributions(path=[str(dependency_dir)]):
        keywords = dist.metadata.get("Keywords") or ""
        tags = {tag.strip() for tag in keywords.replace(",", " ").split()}
        if DISCOVERY_KEYWORD in tags:
            yield dist


def _dist_manifest_path(dist: importlib.metadata.Distribution) -> Optional[Path]:
    for file in dist.files or ():
        if file.name == MANIFEST_FILENAME:
            return Path(str(dist.locate_file(file)))
    return None


def _scan_dependency_dir(report: DiscoveryReport, dependency_dir: Path) -> None:
    if not dependency_dir.is_dir():
        logger.debug("Dependency directory %s does not exist, skipping", dependency_dir)
        return

    seen: set[Path] = set()
    try:
        for dist in _keyword_distributions(dependency_dir):
            manifest = _dist_manifest_path(dist)
            if manifest is None:
                logger.warning(
                    "Distribution '%s' is tagged %s but ships no %s",
                    dist.metadata.get("Name"),
                    DISCOVERY_KEYWORD,
                    MANIFEST_FILENAME,
                )
                continue
            if manifest.parent.resolve() in seen:
                continue
            seen.add(manifest.parent.resolve())
            _add_candidate(report, manifest.parent, origin="installed")
    except OSError as exc:
        logger.warning("Cannot scan dependency directory %s: %s", dependency_dir, exc)
        return

    for child in _iter_subdirs(dependency_dir):
        if child.resolve() in seen or child.name.endswith((".dist-info", ".egg-info")):
            continue
        if (child / MANIFEST_FILENAME).is_file():
            seen.add(child.resolve())
            _add_candidate(report, child, origin="installed")
