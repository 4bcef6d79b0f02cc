"""Facades the rest of the host uses to consume plugin extensions.

The registry stores registrations; these classes run them. Each call is
isolated: a plugin handler or agent that raises produces a failed result
attributed to its plugin instead of propagating into the host.
"""

from __future__ import annotations

import inspect
import logging
from typing import Optional

from flowplug.models import AgentInvocationResult, CommandExecutionResult
from flowplug.plugins.registry import PluginRegistry
from flowplug.plugins.types import (
    AgentCapability,
    AgentInvokeOptions,
    CommandArgs,
    RegisteredAgent,
    RegisteredCommand,
    RegisteredTemplate,
)

logger = logging.getLogger(__name__)


class CommandExtension:
    """Runs commands contributed by plugins."""

    def __init__(self, registry: PluginRegistry) -> None:
        self._registry = registry

    def get_command(self, name: str) -> Optional[RegisteredCommand]:
        return self._registry.get_command(name)

    def get_all_commands(self) -> list[RegisteredCommand]:
        return self._registry.get_all_commands()

    async def execute_command(self, name: str, args: CommandArgs) -> CommandExecutionResult:
        """Run command *name* with *args*.

        Returns:
            A failed result if the command is unknown or its handler
            raised; otherwise a successful one naming the owning plugin.
        """
        command = self._registry.get_command(name)
        if command is None:
            return CommandExecutionResult(success=False, error=f'Command "{name}" not found')

        try:
            outcome = command.registration.handler(args)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            logger.error("[plugin:%s] Command '%s' failed: %s", command.plugin_name, name, message)
            return CommandExecutionResult(
                success=False, plugin_name=command.plugin_name, error=message
            )
        return CommandExecutionResult(success=True, plugin_name=command.plugin_name)


class AgentExtension:
    """Invokes agents contributed by plugins."""

    def __init__(self, registry: PluginRegistry) -> None:
        self._registry = registry

    def get_agent(self, name: str) -> Optional[RegisteredAgent]:
        return self._registry.get_agent(name)

    def get_all_agents(self) -> list[RegisteredAgent]:
        return self._registry.get_all_agents()

    def get_agent_capabilities(self, name: str) -> list[AgentCapability]:
        """Capabilities declared by agent *name*; empty for unknown agents."""
        agent = self._registry.get_agent(name)
        if agent is None:
            return []
        return list(agent.registration.adapter.get_capabilities())

    async def invoke_agent(self, name: str, options: AgentInvokeOptions) -> AgentInvocationResult:
        agent = self._registry.get_agent(name)
        if agent is None:
            return AgentInvocationResult(success=False, error=f'Agent "{name}" not found')

        try:
            outcome = await agent.registration.adapter.invoke(options)
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            logger.error(
                "[plugin:%s] Agent '%s' invocation failed: %s", agent.plugin_name, name, message
            )
            return AgentInvocationResult(
                success=False, plugin_name=agent.plugin_name, error=message
            )
        return AgentInvocationResult(
            success=outcome.success,
            output=outcome.output,
            error=outcome.error,
            plugin_name=agent.plugin_name,
        )


class TemplateExtension:
    """Lookups over plugin templates."""

    def __init__(self, registry: PluginRegistry) -> None:
        self._registry = registry

    def get_templates(self, category: str) -> list[RegisteredTemplate]:
        return self._registry.get_templates(category)

    def get_all_templates(self) -> list[RegisteredTemplate]:
        return self._registry.get_all_templates()

    def get_template(self, namespaced_name: str) -> Optional[RegisteredTemplate]:
        """Find a template by ``<plugin>/<name>``."""
        for template in self._registry.get_all_templates():
            if template.namespaced_name == namespaced_name:
                return template
        return None

    def get_spec_templates(self, sub_type: Optional[str] = None) -> list[RegisteredTemplate]:
        """Spec templates, optionally limited to one document type."""
        templates = self._registry.get_templates("spec")
        if sub_type is None:
            return templates
        return [t for t in templates if t.registration.sub_type == sub_type]
