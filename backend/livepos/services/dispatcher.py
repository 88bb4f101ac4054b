"""Command dispatcher and authorization gate.

``Dispatcher.dispatch`` is synchronous and runs one command to completion:
lookup, authorization, payload validation, handler, then (for mutating
commands) audit entry, persistence and snapshot broadcast. Nothing in it
awaits, so on a single event loop commands never interleave.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Protocol

from pydantic import ValidationError as PydanticValidationError

from livepos.core.clock import utc_now
from livepos.core.errors import PersistenceError, PosError, ValidationError, from_pydantic
from livepos.core.rbac import Caller, authorize
from livepos.services.registry import (
    CommandContext,
    CommandRegistry,
    CommandResult,
    CommandSpec,
    registry as default_registry,
)
from livepos.services.state_store import StateStore

# Handler modules register their commands on import
from livepos.services import (  # noqa: F401
    catalog_service,
    customer_service,
    inventory_service,
    order_service,
    promo_service,
    receipt_service,
    report_service,
    revenue_service,
    staff_service,
)

logger = logging.getLogger(__name__)

SNAPSHOT_EVENT = "state:snapshot"


class Publisher(Protocol):
    connection_count: int

    def broadcast(self, event: str, data: Any) -> int:
        ...


class Dispatcher:
    """Runs commands against the store on behalf of verified callers."""

    def __init__(
        self,
        store: StateStore,
        publisher: Optional[Publisher] = None,
        registry: CommandRegistry = default_registry,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.publisher = publisher
        self.registry = registry
        self.clock = clock

    def dispatch(self, event: str, payload: Any, caller: Optional[Caller]) -> Dict[str, Any]:
        """Run ``event`` and return the reply for the caller: ``{"ok": ..., ...}``."""
        spec = self.registry.get(event)
        if spec is None:
            return {"ok": False, "error": f"Unknown command: {event}"}

        try:
            authorize(spec.capability, caller, self.store.state)
            data = self._validate(spec, payload)
            ctx = CommandContext(store=self.store, caller=caller, now=self.clock())
            result = spec.handler(ctx, data)
        except PosError as e:
            logger.debug(f"{event} rejected for {caller!r}: {e.message}")
            return {"ok": False, "error": e.message}
        except Exception:
            logger.exception(f"Unhandled error while running {event}")
            return {"ok": False, "error": "Internal server error"}

        if spec.mutates:
            try:
                self._commit(spec, ctx, result)
            except PersistenceError as e:
                logger.error(f"{event} applied in memory but not persisted: {e.message}")
                return {"ok": False, "error": e.message}
            except Exception:
                logger.exception(f"Unhandled error while committing {event}")
                return {"ok": False, "error": "Internal server error"}

        logger.debug(f"{event} ok for {caller!r}")
        return {"ok": True, **result.reply}

    def snapshot(self) -> Dict[str, Any]:
        return self.store.public_snapshot()

    def _validate(self, spec: CommandSpec, payload: Any):
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise ValidationError("Payload must be an object")
        try:
            return spec.payload_model.model_validate(payload)
        except PydanticValidationError as e:
            raise from_pydantic(e) from e

    def _commit(self, spec: CommandSpec, ctx: CommandContext, result: CommandResult) -> None:
        ctx.audit.record(spec.name, ctx.caller, result.audit, now=ctx.now)
        self.store.commit()

        if self.publisher is None or not self.publisher.connection_count:
            return
        self.publisher.broadcast(SNAPSHOT_EVENT, self.snapshot())
        for event, data in result.events:
            self.publisher.broadcast(event, data)
