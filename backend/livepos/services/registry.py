"""Command registry.

Handler modules declare their commands with the ``command`` decorator::

    @command("category:create", Capability.ADMIN_ONLY, CategoryCreatePayload)
    def create_category(ctx: CommandContext, payload: CategoryCreatePayload) -> CommandResult:
        ...

The dispatcher looks commands up here by event name. A handler receives the
validated payload and returns a ``CommandResult``; it must raise before it
touches the state when the command cannot be applied.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel

from livepos.core.rbac import Caller, Capability

if TYPE_CHECKING:
    from livepos.schemas.state import State
    from livepos.services.audit_service import AuditLog
    from livepos.services.metrics_service import MetricsAggregator
    from livepos.services.state_store import StateStore


@dataclass
class CommandContext:
    """Everything a handler may touch while it runs."""

    store: "StateStore"
    caller: Caller
    now: datetime

    @property
    def state(self) -> "State":
        return self.store.state

    @property
    def metrics(self) -> "MetricsAggregator":
        return self.store.metrics

    @property
    def audit(self) -> "AuditLog":
        return self.store.audit


@dataclass
class CommandResult:
    """What a handler hands back to the dispatcher.

    Attributes:
        reply: Extra keys merged into the ``{ok: true}`` reply.
        audit: Payload of the audit entry (mutating commands only).
        events: Extra (event, data) broadcasts sent after the snapshot.
    """

    reply: Dict[str, Any] = field(default_factory=dict)
    audit: Optional[Dict[str, Any]] = None
    events: List[Tuple[str, Dict[str, Any]]] = field(default_factory=list)


Handler = Callable[[CommandContext, Any], CommandResult]


@dataclass(frozen=True)
class CommandSpec:
    name: str
    capability: Capability
    payload_model: Type[BaseModel]
    handler: Handler
    mutates: bool


class CommandRegistry:
    """Name -> CommandSpec table."""

    def __init__(self):
        self._commands: Dict[str, CommandSpec] = {}

    def register(
        self,
        name: str,
        capability: Capability,
        payload_model: Type[BaseModel],
        mutates: bool = True,
    ) -> Callable[[Handler], Handler]:
        def decorator(func: Handler) -> Handler:
            if name in self._commands:
                raise ValueError(f"Command {name} registered twice")
            self._commands[name] = CommandSpec(name, capability, payload_model, func, mutates)
            return func
        return decorator

    def get(self, name: str) -> Optional[CommandSpec]:
        return self._commands.get(name)

    def names(self) -> List[str]:
        return sorted(self._commands)

    def __contains__(self, name: str) -> bool:
        return name in self._commands

    def __len__(self) -> int:
        return len(self._commands)


registry = CommandRegistry()
command = registry.register
