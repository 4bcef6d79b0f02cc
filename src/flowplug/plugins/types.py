"""Extension-point registration records and the plugin module contract.

Plugins never construct registry internals directly: they build one of the
registration dataclasses below and hand it to the matching
``PluginContext.register_*`` method, which attributes it to the plugin and
stores it in the :class:`~flowplug.plugins.registry.PluginRegistry`.

Example::

    from flowplug.plugins.types import CommandRegistration, HookRegistration

    def activate(context):
        context.register_command(
            CommandRegistration(name="stats", description="Show stats", handler=show)
        )
        context.register_hook(
            HookRegistration(phase="*", timing="pre", priority="early", handler=check)
        )

Handlers and factories may be plain functions or coroutine functions; the
host awaits whatever awaitable they return.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from types import ModuleType
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Literal,
    Mapping,
    Optional,
    Protocol,
    Union,
    runtime_checkable,
)

from flowplug.models import PluginManifest

if TYPE_CHECKING:
    from flowplug.plugins.context import PluginContext

WorkflowPhase = Literal["requirements", "design", "tasks", "implementation"]
HookTiming = Literal["pre", "post"]
HookPriority = Literal["earliest", "early", "normal", "late", "latest"]
TemplateCategory = Literal["stack", "spec", "steering"]
SpecTemplateType = Literal["requirements", "design", "tasks"]
AgentCapability = Literal[
    "code-generation", "code-review", "testing", "documentation", "refactoring"
]

WILDCARD_PHASE = "*"

WORKFLOW_PHASES: tuple[str, ...] = ("requirements", "design", "tasks", "implementation")
HOOK_TIMINGS: tuple[str, ...] = ("pre", "post")
TEMPLATE_CATEGORIES: tuple[str, ...] = ("stack", "spec", "steering")

HOOK_PRIORITY_ORDER: dict[str, int] = {
    "earliest": 0,
    "early": 1,
    "normal": 2,
    "late": 3,
    "latest": 4,
}
"""Sort key for hook priorities; lower runs first."""

MaybeAwaitable = Union[Any, Awaitable[Any]]


# --- Commands ---


@dataclass(frozen=True)
class ArgumentDefinition:
    name: str
    description: str = ""
    required: bool = False


@dataclass(frozen=True)
class OptionDefinition:
    name: str
    description: str = ""
    type: Literal["string", "boolean", "number"] = "string"
    default: Optional[Union[str, bool, int, float]] = None
    alias: Optional[str] = None


@dataclass(frozen=True)
class CommandArgs:
    """Arguments handed to a plugin command handler."""

    positional: tuple[str, ...]
    options: Mapping[str, Union[str, bool, int, float]]
    context: Optional[PluginContext] = None


CommandHandler = Callable[[CommandArgs], MaybeAwaitable]


@dataclass(frozen=True)
class CommandRegistration:
    """A top-level command contributed by a plugin."""

    name: str
    description: str
    handler: CommandHandler
    args: tuple[ArgumentDefinition, ...] = ()
    options: tuple[OptionDefinition, ...] = ()


# --- Agents ---


@dataclass(frozen=True)
class AgentInvokeOptions:
    prompt: str
    working_directory: str
    model: Optional[str] = None
    on_output: Optional[Callable[[str], None]] = None
    on_error: Optional[Callable[[str], None]] = None
    timeout: Optional[float] = None


@dataclass(frozen=True)
class AgentResult:
    success: bool
    output: str = ""
    error: Optional[str] = None


class AgentAdapter(ABC):
    """Base class for custom AI agents contributed by plugins.

    Subclasses must implement :meth:`invoke` and :meth:`get_capabilities`.
    :meth:`configure` is optional and receives the plugin's frozen config.
    """

    @abstractmethod
    async def invoke(self, options: AgentInvokeOptions) -> AgentResult:
        """Run the agent with *options* and return its result."""

    @abstractmethod
    def get_capabilities(self) -> list[AgentCapability]:
        """Return the capabilities this agent declares."""

    def configure(self, config: Mapping[str, Any]) -> None:
        """Apply plugin configuration. The default implementation ignores it."""


@dataclass(frozen=True)
class AgentRegistration:
    name: str
    description: str
    adapter: AgentAdapter


# --- Hooks ---


@dataclass(frozen=True)
class HookContext:
    """Read-only view of the workflow handed to hook handlers.

    Attributes:
        phase: The concrete workflow phase being entered or left.
        timing: ``"pre"`` before the phase runs, ``"post"`` after.
        feature: Name of the feature being worked on.
        spec_metadata: Metadata of the feature's spec documents.
        flow_state: Snapshot of the workflow state machine.
    """

    phase: WorkflowPhase
    timing: HookTiming
    feature: str
    spec_metadata: Mapping[str, Any] = field(default_factory=dict)
    flow_state: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class HookResult:
    """What a hook handler returns. ``veto`` stops a pre-phase hook chain."""

    action: Literal["continue", "veto"] = "continue"
    reason: Optional[str] = None

    @classmethod
    def proceed(cls) -> HookResult:
        return cls(action="continue")

    @classmethod
    def veto(cls, reason: str) -> HookResult:
        return cls(action="veto", reason=reason)


HookHandler = Callable[[HookContext], MaybeAwaitable]


@dataclass(frozen=True)
class HookRegistration:
    """A handler bound to a workflow phase (or ``"*"`` for every phase)."""

    phase: Union[WorkflowPhase, Literal["*"]]
    timing: HookTiming
    handler: HookHandler
    priority: HookPriority = "normal"

    def __post_init__(self) -> None:
        if self.phase != WILDCARD_PHASE and self.phase not in WORKFLOW_PHASES:
            raise ValueError(f"Unknown workflow phase: {self.phase!r}")
        if self.timing not in HOOK_TIMINGS:
            raise ValueError(f"Unknown hook timing: {self.timing!r}")
        if self.priority not in HOOK_PRIORITY_ORDER:
            raise ValueError(f"Unknown hook priority: {self.priority!r}")


# --- Services ---


ServiceFactory = Callable[[Mapping[str, Any]], Any]
ServiceDisposer = Callable[[], MaybeAwaitable]


@dataclass(frozen=True)
class ServiceRegistration:
    """A lazily-constructed service.

    ``factory`` receives a mapping of the resolved ``dependencies`` and is
    called at most once. ``dispose`` runs on unregister, only if the
    service was ever instantiated.
    """

    name: str
    factory: ServiceFactory
    dependencies: tuple[str, ...] = ()
    dispose: Optional[ServiceDisposer] = None


# --- Templates ---


@dataclass(frozen=True)
class TemplateRegistration:
    category: TemplateCategory
    name: str
    description: str
    source_path: str
    sub_type: Optional[SpecTemplateType] = None

    def __post_init__(self) -> None:
        if self.category not in TEMPLATE_CATEGORIES:
            raise ValueError(f"Unknown template category: {self.category!r}")


# --- Attributed records stored by the registry ---


@dataclass(frozen=True)
class RegisteredCommand:
    plugin_name: str
    registration: CommandRegistration


@dataclass(frozen=True)
class RegisteredAgent:
    plugin_name: str
    registration: AgentRegistration


@dataclass(frozen=True)
class RegisteredHook:
    plugin_name: str
    registration: HookRegistration
    sequence: int


@dataclass(frozen=True)
class RegisteredService:
    plugin_name: str
    registration: ServiceRegistration


@dataclass(frozen=True)
class RegisteredTemplate:
    plugin_name: str
    namespaced_name: str
    registration: TemplateRegistration


@dataclass
class RegisteredPlugin:
    """A plugin whose ``activate`` completed, owned by the registry."""

    name: str
    version: str
    manifest: PluginManifest
    module: ModuleType
    activated_at: str
    path: Optional[str] = None


# --- Plugin module contract ---


@runtime_checkable
class PluginModule(Protocol):
    """Interface every plugin entry-point module must satisfy.

    ``activate`` is required. ``deactivate`` is optional; when present it is
    called before the plugin is unloaded.
    """

    def activate(self, context: PluginContext) -> MaybeAwaitable: ...


def check_plugin_module(module: ModuleType) -> Optional[str]:
    """Return a reason *module* does not satisfy :class:`PluginModule`, or ``None``."""
    activate = getattr(module, "activate", None)
    if activate is None:
        return "entry point does not define an 'activate' function"
    if not callable(activate):
        return "'activate' exported by the entry point is not callable"
    deactivate = getattr(module, "deactivate", None)
    if deactivate is not None and not callable(deactivate):
        return "'deactivate' exported by the entry point is not callable"
    return None
