"""Exception hierarchy for flowplug.

All exceptions inherit from :class:`FlowplugError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`flowplug.exit_codes`.
The top-level error handler in :func:`flowplug.app.main` catches
``FlowplugError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    FlowplugError (exit 1)
    +-- InvalidUsageError                    (exit 2)
    +-- NotFoundError                        (exit 4)
    +-- ConfigError                          (exit 1)
    |   +-- ConfigValidationError
    +-- PluginError                          (exit 10)
        +-- PluginConflictError
        +-- PluginNotInstalledError          (exit 4)
        +-- ServiceResolutionError
            +-- ServiceNotFoundError
            +-- CircularServiceDependencyError

Per-plugin failures during discovery, loading and hook execution are *not*
raised; they are collected into structured result models so that one bad
plugin never prevents the others from loading. The exceptions below are
reserved for direct API misuse (resolving an unknown service, registering
a conflicting name) and for failed lifecycle requests.
"""

from flowplug.exit_codes import (
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_PLUGIN_ERROR,
)


class FlowplugError(Exception):
    """Base exception for all flowplug errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`flowplug.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(FlowplugError):
    """Raised for invalid CLI arguments or missing required parameters."""

    exit_code = EXIT_INVALID_USAGE


class NotFoundError(FlowplugError):
    """Raised when a requested plugin, command or template does not exist."""

    exit_code = EXIT_NOT_FOUND


class ConfigError(FlowplugError):
    """Raised for configuration problems (unreadable state file, invalid JSON)."""

    exit_code = EXIT_GENERIC_FAILURE


class ConfigValidationError(ConfigError):
    """Raised when a plugin config value does not match the manifest's config schema."""


class PluginError(FlowplugError):
    """Raised when a plugin fails to install, load, or register an extension."""

    exit_code = EXIT_PLUGIN_ERROR


class PluginConflictError(PluginError):
    """Raised when a registration collides with a reserved or foreign name.

    Command, agent and service names are global. A name reserved by the
    host, or already owned by a different plugin, cannot be registered.
    """


class PluginNotInstalledError(PluginError):
    """Raised when a lifecycle operation targets a plugin that is not installed."""

    exit_code = EXIT_NOT_FOUND


class ServiceResolutionError(PluginError):
    """Raised when a service (or one of its dependencies) cannot be resolved."""


class ServiceNotFoundError(ServiceResolutionError):
    """Raised when resolving a service name that was never registered."""


class CircularServiceDependencyError(ServiceResolutionError):
    """Raised when a service transitively depends on itself.

    Attributes:
        cycle: The resolution path that closed the loop, ending with the
            repeated service name (e.g. ``["a", "b", "a"]``).
    """

    def __init__(self, cycle: list[str]):
        self.cycle = list(cycle)
        super().__init__(f"Circular dependency detected: {' -> '.join(self.cycle)}")
