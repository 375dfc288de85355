from __future__ import annotations

import json
import logging
import os
import random
import time
from datetime import datetime
from pathlib import Path

import portalocker

from dropin_chat.constants import (
    BYPASS_FILE,
    LOCK_BACKOFF_BASE_SECONDS,
    LOCK_BACKOFF_MAX_SECONDS,
    LOCK_MAX_ATTEMPTS,
    LOCK_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)


class BypassRepository:
    """Durable list of rooms the user chose to keep viewing after they closed.

    Stored as JSONL, one ``{"room_id", "ts"}`` row per decision, appended under
    a file lock so several clients on one machine can share it.
    """

    def __init__(self, path: str | Path = BYPASS_FILE):
        self.path = Path(path)
        self._cache: set[str] | None = None

    def load(self) -> set[str]:
        if not self.path.exists():
            return set()
        room_ids: set[str] = set()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        row = json.loads(line)
                    except json.JSONDecodeError:
                        logger.warning("Invalid bypass row ignored in %s", self.path)
                        continue
                    room_id = row.get("room_id") if isinstance(row, dict) else None
                    if isinstance(room_id, str) and room_id:
                        room_ids.add(room_id)
        except OSError as exc:
            logger.warning("Failed reading bypass list %s: %s", self.path, exc)
        return room_ids

    def contains(self, room_id: str) -> bool:
        if self._cache is None:
            self._cache = self.load()
        return room_id in self._cache

    def add(self, room_id: str) -> bool:
        if self.contains(room_id):
            return True
        row = json.dumps(
            {"room_id": room_id, "ts": datetime.now().isoformat(timespec="seconds")},
            ensure_ascii=True,
        )
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.warning("Failed creating %s: %s", self.path.parent, exc)
            return False

        for attempt in range(LOCK_MAX_ATTEMPTS):
            try:
                with portalocker.Lock(
                    str(self.path),
                    mode="a",
                    timeout=LOCK_TIMEOUT_SECONDS,
                    fail_when_locked=True,
                    encoding="utf-8",
                ) as f:
                    f.write(row + "\n")
                    f.flush()
                    os.fsync(f.fileno())
                if self._cache is not None:
                    self._cache.add(room_id)
                return True
            except portalocker.exceptions.LockException:
                pass
            except OSError as exc:
                logger.warning("Failed writing bypass list %s: %s", self.path, exc)
                return False

            if attempt == LOCK_MAX_ATTEMPTS - 1:
                break
            delay = min(
                LOCK_BACKOFF_MAX_SECONDS,
                LOCK_BACKOFF_BASE_SECONDS * (2 ** min(attempt, 5)),
            )
            time.sleep(delay + random.uniform(0, 0.03))

        logger.warning("Bypass list %s stayed locked; decision not saved.", self.path)
        return False
