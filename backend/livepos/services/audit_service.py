"""Audit logging service.

Every accepted mutation leaves one entry at the front of ``state.logs``. The
list is bounded: once it grows past ``MAX_LOG_ENTRIES`` the oldest entries
are dropped. Entries are for operators only; nothing reads them back to make
a decision.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from livepos.core.clock import new_id, to_iso, utc_now
from livepos.core.rbac import Caller
from livepos.schemas.state import LogEntry, State

logger = logging.getLogger("audit")

MAX_LOG_ENTRIES = 5000


class AuditLog:
    """Bounded, newest-first audit trail stored inside the state."""

    def __init__(self, state: State, max_entries: int = MAX_LOG_ENTRIES):
        self.state = state
        self.max_entries = max_entries

    def record(
        self,
        command_type: str,
        caller: Caller,
        payload: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> LogEntry:
        """Prepend an entry for ``command_type`` and trim the tail.

        Args:
            command_type: The command that was applied (e.g. order:create).
            caller: Who issued it.
            payload: Business-relevant details (ids, amounts, changed fields).
            now: Timestamp of the mutation; defaults to the current time.
        """
        entry = LogEntry(
            id=new_id(),
            timestamp=to_iso(now or utc_now()),
            type=command_type,
            actor=caller.actor(),
            payload=payload or {},
        )
        logs = self.state.logs
        logs.insert(0, entry)
        if len(logs) > self.max_entries:
            del logs[self.max_entries:]
        logger.debug(f"{command_type} by {caller.display_name}")
        return entry

