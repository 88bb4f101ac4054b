"""Canonical state store.

Owns the single ``State`` object for the process. Only the dispatcher
pipeline reads and writes it; everything else gets a snapshot.
"""

import logging
from typing import Any, Dict, Optional

from livepos.core.clock import get_zone
from livepos.db.persistence import StateRepository
from livepos.schemas.state import State
from livepos.services.audit_service import AuditLog
from livepos.services.metrics_service import MetricsAggregator

logger = logging.getLogger(__name__)


class StateStore:
    """Holds the state plus the audit log and metrics aggregator bound to it."""

    def __init__(self, repository: StateRepository, timezone: str = "UTC"):
        self.repository = repository
        self.tz = get_zone(timezone)
        self._state: Optional[State] = None
        self._audit: Optional[AuditLog] = None
        self._metrics: Optional[MetricsAggregator] = None

    def load(self) -> State:
        state = self.repository.load()
        self._bind(state)
        logger.info(
            f"State loaded: {len(state.orders)} orders, {len(state.menu)} menu items, "
            f"{len(state.staff)} staff"
        )
        return state

    def _bind(self, state: State) -> None:
        self._state = state
        self._audit = AuditLog(state)
        self._metrics = MetricsAggregator(state.metrics, self.tz)

    @property
    def loaded(self) -> bool:
        return self._state is not None

    @property
    def state(self) -> State:
        if self._state is None:
            raise RuntimeError("State store used before load()")
        return self._state

    @property
    def audit(self) -> AuditLog:
        if self._audit is None:
            raise RuntimeError("State store used before load()")
        return self._audit

    @property
    def metrics(self) -> MetricsAggregator:
        if self._metrics is None:
            raise RuntimeError("State store used before load()")
        return self._metrics

    def commit(self) -> None:
        """Persist the current state. Raises PersistenceError."""
        self.repository.save(self.state)

    def public_snapshot(self) -> Dict[str, Any]:
        """JSON-ready state with password hashes removed."""
        doc = self.state.to_document()
        for account in doc.get("staff", []):
            account.pop("passwordHash", None)
        return doc
