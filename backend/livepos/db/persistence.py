"""JSON file persistence for the canonical state.

One document on disk, replaced atomically on every save: the new content is
written to a temp file in the same directory, fsynced and renamed over the
target, so a reader (or a restart after a crash) only ever sees a complete
file. The previous file is copied into the backup directory first.
"""

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from livepos.core.clock import new_id, to_iso, utc_now
from livepos.core.errors import PersistenceError
from livepos.db.migrations import migrate
from livepos.schemas.state import Category, MenuItem, State

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "data-"


def initial_state() -> State:
    """Seed state written on first start."""
    now = to_iso(utc_now())
    return State(
        categories=[
            Category(id="cat-soft", name="Soft Drinks", sort_order=1),
            Category(id="cat-main", name="Main", sort_order=2),
        ],
        menu=[
            MenuItem(id="item-cola", name="Cola", price=6, category_id="cat-soft", created_at=now),
        ],
    )


class StateRepository:
    """Loads and atomically saves the state document."""

    def __init__(self, data_file: Path, backup_dir: Path, backup_retention: int = 200):
        self.data_file = Path(data_file)
        self.backup_dir = Path(backup_dir)
        self.backup_retention = backup_retention

    def load(self) -> State:
        """Return the stored state, migrated to the current schema.

        A missing file is initialized with the seed state and written at once.
        """
        self._ensure_dirs()
        if not self.data_file.exists():
            state = initial_state()
            self._atomic_write(state)
            logger.info(f"Initialized new state file at {self.data_file}")
            return state

        try:
            raw = self.data_file.read_text(encoding="utf-8")
            doc = json.loads(raw)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Could not read state file {self.data_file}: {e}") from e

        if not isinstance(doc, dict):
            raise PersistenceError(f"State file {self.data_file} does not hold a JSON object")

        doc = migrate(doc)
        try:
            return State.model_validate(doc)
        except PydanticValidationError as e:
            raise PersistenceError(f"State file {self.data_file} failed validation: {e}") from e

    def save(self, state: State) -> None:
        """Back up the current file, then atomically replace it."""
        self._ensure_dirs()
        self._backup_if_exists()
        self._atomic_write(state)

    def list_backups(self) -> List[Path]:
        """Backups, oldest first."""
        if not self.backup_dir.exists():
            return []
        return sorted(self.backup_dir.glob(f"{BACKUP_PREFIX}*.json"))

    def _ensure_dirs(self) -> None:
        try:
            self.data_file.parent.mkdir(parents=True, exist_ok=True)
            self.backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Could not create data directories: {e}") from e

    def _atomic_write(self, state: State) -> None:
        content = json.dumps(state.to_document(), indent=2, ensure_ascii=False)
        tmp_path: Optional[Path] = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                delete=False,
                encoding="utf-8",
                dir=str(self.data_file.parent),
                prefix=f".{self.data_file.name}.",
                suffix=".tmp",
            ) as tmp:
                tmp_path = Path(tmp.name)
                tmp.write(content)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_path, self.data_file)
        except OSError as e:
            logger.error(f"Atomic write of {self.data_file} failed", exc_info=True)
            if tmp_path is not None and tmp_path.exists():
                try:
                    tmp_path.unlink()
                except OSError:
                    logger.warning(f"Could not remove temp file {tmp_path}")
            raise PersistenceError(f"Failed to save state: {e}") from e

    def _backup_if_exists(self) -> None:
        if not self.data_file.exists():
            return
        stamp = utc_now().strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        backup_path = self.backup_dir / f"{BACKUP_PREFIX}{stamp}.json"
        if backup_path.exists():
            backup_path = self.backup_dir / f"{BACKUP_PREFIX}{stamp}-{new_id()[:8]}.json"
        try:
            shutil.copyfile(self.data_file, backup_path)
        except OSError as e:
            logger.warning(f"State backup to {backup_path} failed: {e}")
            return
        self._prune_backups()

    def _prune_backups(self) -> None:
        backups = self.list_backups()
        excess = len(backups) - self.backup_retention
        for old in backups[:max(excess, 0)]:
            try:
                old.unlink()
            except OSError as e:
                logger.warning(f"Could not prune backup {old}: {e}")

