"""Fragment ID allocation.

New markers get sequential IDs from a counter persisted in
``<cms_folder>/state.json``. Fixed-length random IDs are the legacy scheme;
they are still generated on request but never by the marker rewriter.
"""

from __future__ import annotations

import json
import logging
import os
import random
import tempfile
from pathlib import Path

from codemeta.config import clamp_id_length
from codemeta.errors import CodeMetaError, IdCollisionError
from codemeta.fragments.store import FragmentStore
from codemeta.session import Session

logger = logging.getLogger(__name__)

STATE_FILENAME = "state.json"
MAX_RANDOM_ATTEMPTS = 100


class IdAllocator:
    """Mint fragment IDs for one workspace."""

    def __init__(self, session: Session, store: FragmentStore) -> None:
        self.session = session
        self.store = store

    def _state_path(self, operation: str) -> Path:
        root = self.session.require_root(operation)
        return root / self.session.config.cms_folder / STATE_FILENAME

    # ── State file ────────────────────────────────────────────

    def read_next_id(self) -> int:
        """Current cursor; a missing or malformed state file reads as 0."""
        path = self._state_path("read_state")
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return 0
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            logger.warning("Unreadable %s, restarting cursor at 0: %s", path, e)
            return 0
        value = data.get("nextId") if isinstance(data, dict) else None
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            return 0
        return value

    def _write_next_id(self, value: int) -> None:
        path = self._state_path("write_state")
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".state-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({"nextId": value}, f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except OSError as e:
            Path(tmp).unlink(missing_ok=True)
            raise CodeMetaError("allocate", f"cannot persist {path}", e) from e

    # ── Allocation ────────────────────────────────────────────

    def allocate(self) -> str:
        """Return the next sequential ID and persist the advanced cursor.

        The cursor is on disk before the ID is returned. Values already used
        by an existing fragment are skipped, so a crash can leave gaps but an
        ID is never handed out twice.
        """
        self.session.require_root("allocate")
        value = self.read_next_id()
        while self.store.exists(str(value)):
            value += 1
        self._write_next_id(value + 1)
        logger.info("Allocated fragment id %d", value)
        return str(value)

    def generate_random(self, length: int | None = None) -> str:
        """Legacy fixed-length random ID, re-rolled until unused."""
        size = clamp_id_length(length if length is not None else self.session.config.id_length)
        for _ in range(MAX_RANDOM_ATTEMPTS):
            candidate = "".join(random.choice("0123456789") for _ in range(size))
            if not self.store.exists(candidate):
                return candidate
        raise IdCollisionError(
            "generate_random", f"no free {size}-digit id after {MAX_RANDOM_ATTEMPTS} attempts"
        )
