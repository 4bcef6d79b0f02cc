"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~flowplug.exceptions.FlowplugError` subclass.
Shell wrappers can inspect the exit code to tell a missing plugin apart
from a plugin that failed to load without parsing stderr.

Example::

    $ flowplug plugin enable no-such-plugin
    $ echo $?
    4   # EXIT_NOT_FOUND -- the plugin is not installed
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_NOT_FOUND = 4
"""The requested plugin, service or command does not exist."""

EXIT_PLUGIN_ERROR = 10
"""A plugin failed to install, load, activate, or register an extension."""
