"""Generate a new plugin project (``flowplug plugin create``).

The generated layout is an installable package::

    <target>/<name>/
        pyproject.toml              # tagged with the discovery keyword
        mypy.ini                    # strict type checking
        <module>/
            __init__.py             # activate()/deactivate() stubs
            flowplug-plugin.json    # manifest, shipped as package data

Templates live in ``plugins/templates/`` and are rendered with Jinja2.
The manifest itself is produced with :mod:`json` from a
:class:`~flowplug.models.PluginManifest` so it is valid by construction.
"""

from __future__ import annotations

import json
import keyword
import re
from pathlib import Path
from typing import Union

from jinja2 import Environment, FileSystemLoader, select_autoescape
from pydantic import ValidationError

from flowplug import __version__
from flowplug.models import PluginManifest, ScaffoldResult
from flowplug.plugins.sources import DISCOVERY_KEYWORD
from flowplug.plugins.validator import MANIFEST_FILENAME

TEMPLATE_DIR = Path(__file__).parent / "templates"
"""Path to the Jinja2 template directory (``plugins/templates/``)."""

PLACEHOLDER_VERSION = "0.1.0"


def _create_jinja_env() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(disabled_extensions=("py.j2", "toml.j2", "ini.j2")),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


def module_name_for(name: str) -> str:
    """Derive an importable module name from a plugin name.

    ``@team/code-stats`` becomes ``code_stats``.
    """
    base = name.rsplit("/", 1)[-1].lstrip("@")
    module = re.sub(r"\W", "_", base).strip("_").lower() or "plugin"
    if module[0].isdigit() or keyword.iskeyword(module):
        module = f"plugin_{module}"
    return module


def scaffold_plugin(name: str, target_dir: Union[str, Path]) -> ScaffoldResult:
    """Create a plugin project called *name* under *target_dir*.

    Returns:
        A :class:`ScaffoldResult` listing the absolute paths created.
        Invalid names and filesystem errors are reported in ``error``
        rather than raised.
    """
    module = module_name_for(name)
    try:
        manifest = PluginManifest(
            name=name,
            version=PLACEHOLDER_VERSION,
            description=f"A flowplug plugin: {name}",
            author="",
            entry_point="__init__.py",
            flowplug_version=f">={__version__}",
            extension_points=[],
        )
    except ValidationError as exc:
        return ScaffoldResult(success=False, error=f"Invalid plugin name '{name}': {exc.errors()[0]['msg']}")

    project_dir = Path(target_dir).resolve() / name.rsplit("/", 1)[-1].lstrip("@")
    package_dir = project_dir / module
    if project_dir.exists() and any(project_dir.iterdir()):
        return ScaffoldResult(
            success=False, error=f"Directory {project_dir} already exists and is not empty"
        )

    env = _create_jinja_env()
    context = {
        "name": name,
        "module": module,
        "version": PLACEHOLDER_VERSION,
        "description": manifest.description,
        "keyword": DISCOVERY_KEYWORD,
        "host_version": __version__,
        "manifest_filename": MANIFEST_FILENAME,
    }
    files = {
        package_dir / MANIFEST_FILENAME: json.dumps(manifest.to_json_dict(), indent=2) + "\n",
        project_dir / "pyproject.toml": env.get_template("pyproject.toml.j2").render(context),
        project_dir / "mypy.ini": env.get_template("mypy.ini.j2").render(context),
        package_dir / "__init__.py": env.get_template("__init__.py.j2").render(context),
    }

    created: list[str] = []
    try:
        package_dir.mkdir(parents=True, exist_ok=True)
        for path, content in files.items():
            path.write_text(content, encoding="utf-8")
            created.append(str(path))
    except OSError as exc:
        return ScaffoldResult(
            success=False,
            created_files=created,
            error=f"Failed to create plugin project at {project_dir}: {exc}",
        )
    return ScaffoldResult(success=True, created_files=created)
