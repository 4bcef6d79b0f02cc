"""Built-in CLI sub-commands for flowplug.

* :mod:`~flowplug.commands.plugin` -- the ``flowplug plugin`` group:
  lifecycle, configuration, registry queries, and plugin-author tools.

Each module exports a :class:`typer.Typer` sub-application that
:mod:`flowplug.app` attaches to the root command.
"""
