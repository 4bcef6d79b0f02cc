"""Runner for workflow phase hooks registered by plugins.

:class:`HookRunner` executes the hooks the registry returns for a phase,
in priority order, one at a time:

* **Pre-phase hooks** may veto the phase by returning
  ``HookResult.veto(reason)``; the first veto stops the chain.
* **Post-phase hooks** always all run; a veto returned there is ignored.

Handlers receive a read-only :class:`~flowplug.plugins.types.HookContext`.
A handler that raises or exceeds the per-handler timeout is recorded in
the result with its plugin's name, and the chain continues.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Optional

from flowplug.models import HookError, HookExecutionResult
from flowplug.plugins.registry import PluginRegistry
from flowplug.plugins.types import HookContext, HookRegistration, RegisteredHook

logger = logging.getLogger(__name__)

DEFAULT_HOOK_TIMEOUT = 30.0
"""Seconds a single hook handler may run."""


class HookRunner:
    """Executes pre/post phase hooks with veto support and error isolation.

    Args:
        registry: Source of the registered hooks.
        timeout: Per-handler timeout in seconds.
    """

    def __init__(self, registry: PluginRegistry, timeout: float = DEFAULT_HOOK_TIMEOUT) -> None:
        self._registry = registry
        self._timeout = timeout

    def register_hook(self, plugin_name: str, registration: HookRegistration) -> None:
        self._registry.register_hook(plugin_name, registration)

    async def run_pre_phase_hooks(self, phase: str, context: HookContext) -> HookExecutionResult:
        """Run the ``pre`` hooks of *phase*, stopping at the first veto."""
        return await self._run(phase, "pre", context, honour_veto=True)

    async def run_post_phase_hooks(self, phase: str, context: HookContext) -> HookExecutionResult:
        """Run every ``post`` hook of *phase*."""
        return await self._run(phase, "post", context, honour_veto=False)

    async def _run(
        self, phase: str, timing: str, context: HookContext, honour_veto: bool
    ) -> HookExecutionResult:
        result = HookExecutionResult()
        for hook in self._registry.get_hooks(phase, timing):
            try:
                outcome = await self._call(hook, context)
            except Exception as exc:
                message = _describe(exc, hook, self._timeout)
                logger.error(
                    "[plugin:%s] %s-phase hook failed: %s", hook.plugin_name, timing, message
                )
                result.errors.append(HookError(plugin_name=hook.plugin_name, error=message))
                result.executed_hooks += 1
                continue

            result.executed_hooks += 1
            reason = _veto_reason(outcome)
            if reason is None:
                continue
            if honour_veto:
                logger.info("[plugin:%s] vetoed phase %s: %s", hook.plugin_name, phase, reason)
                result.vetoed = True
                result.veto_reason = reason
                result.veto_plugin = hook.plugin_name
                return result
            logger.debug(
                "[plugin:%s] veto from post-phase hook ignored", hook.plugin_name
            )
        return result

    async def _call(self, hook: RegisteredHook, context: HookContext) -> Any:
        outcome = hook.registration.handler(context)
        if inspect.isawaitable(outcome):
            return await asyncio.wait_for(outcome, timeout=self._timeout)
        return outcome


def _veto_reason(outcome: Any) -> Optional[str]:
    """Return the veto reason carried by a handler result, if any."""
    if outcome is None:
        return None
    if isinstance(outcome, dict):
        action, reason = outcome.get("action"), outcome.get("reason")
    else:
        action, reason = getattr(outcome, "action", None), getattr(outcome, "reason", None)
    if action != "veto":
        return None
    return reason or "Vetoed without a reason"


def _describe(exc: Exception, hook: RegisteredHook, timeout: float) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return f'Hook from plugin "{hook.plugin_name}" timed out after {timeout:g}s'
    return str(exc) or type(exc).__name__
