"""Example plugin that times workflow phases.

Registers a ``phase-timer`` service, a pre and post hook on every phase,
and a ``phase-times`` command that prints what was measured.
"""

from __future__ import annotations

import time
from typing import Any, Mapping, Optional

from flowplug.plugins.context import PluginContext
from flowplug.plugins.types import (
    CommandArgs,
    CommandRegistration,
    HookContext,
    HookRegistration,
    HookResult,
    ServiceRegistration,
)

SERVICE_NAME = "example-phase-timer.timer"


class PhaseTimer:
    """Records how long each phase took."""

    def __init__(self) -> None:
        self._started: dict[str, float] = {}
        self.durations: dict[str, float] = {}

    def start(self, phase: str) -> None:
        self._started[phase] = time.monotonic()

    def stop(self, phase: str) -> Optional[float]:
        started = self._started.pop(phase, None)
        if started is None:
            return None
        elapsed = time.monotonic() - started
        self.durations[phase] = elapsed
        return elapsed

    def reset(self) -> None:
        self._started.clear()
        self.durations.clear()


def activate(context: PluginContext) -> None:
    warn_after = float(context.config["warnAfterSeconds"])
    quiet = bool(context.config["quiet"])

    timers: list[PhaseTimer] = []

    def make_timer(deps: Mapping[str, Any]) -> PhaseTimer:
        timers.append(PhaseTimer())
        return timers[-1]

    def dispose_timer() -> None:
        for timer in timers:
            timer.reset()

    context.register_service(
        ServiceRegistration(
            name=SERVICE_NAME,
            factory=make_timer,
            dispose=dispose_timer,
        )
    )

    def before(hook: HookContext) -> HookResult:
        context.get_service(SERVICE_NAME).start(hook.phase)
        if not quiet:
            context.log("info", f"{hook.feature}: {hook.phase} started")
        return HookResult.proceed()

    def after(hook: HookContext) -> None:
        elapsed = context.get_service(SERVICE_NAME).stop(hook.phase)
        if elapsed is None:
            return
        if elapsed > warn_after:
            context.log("warn", f"{hook.phase} took {elapsed:.0f}s (limit {warn_after:.0f}s)")
        elif not quiet:
            context.log("info", f"{hook.feature}: {hook.phase} finished in {elapsed:.1f}s")

    context.register_hook(HookRegistration(phase="*", timing="pre", priority="earliest", handler=before))
    context.register_hook(HookRegistration(phase="*", timing="post", priority="latest", handler=after))

    def show_times(args: CommandArgs) -> None:
        durations = context.get_service(SERVICE_NAME).durations
        if not durations:
            print("No phases timed yet.")
        for phase, seconds in durations.items():
            print(f"{phase}\t{seconds:.1f}s")

    context.register_command(
        CommandRegistration(
            name="phase-times",
            description="Show how long each workflow phase took",
            handler=show_times,
        )
    )


def deactivate() -> None:
    pass
