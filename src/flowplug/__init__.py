"""flowplug -- plugin extension runtime for the flowplug orchestration CLI.

This package discovers third-party plugins, validates and version-gates
their manifests, loads them in dependency order, and exposes a
capability-scoped API to each plugin's activation code. Plugins contribute
*commands*, *agents*, *hooks*, *services* and *templates*; the host queries
the central registry for them.

Typical workflow::

    flowplug plugin create my-plugin      # scaffold a plugin project
    flowplug plugin validate ./my-plugin  # check manifest and entry point
    flowplug plugin install ./my-plugin   # install by reference

Modules:
    app: Typer application factory and CLI entry point.
    models: Pydantic models shared across the entire package.
    config: XDG-aware configuration and per-project plugin state.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
    plugins: The extension runtime (validator, registry, loader, manager).
"""

__version__ = "0.12.0"
