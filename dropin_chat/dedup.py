from __future__ import annotations

from collections.abc import Iterable


class FingerprintStore:
    """Ids already applied to one synchronization session.

    A store lives exactly as long as the session that owns it. Never share one
    between sessions: a revisit must be able to apply the same ids again.
    """

    def __init__(self, ids: Iterable[str] = ()):
        self._ids: set[str] = set(ids)

    def seen(self, item_id: str) -> bool:
        return item_id in self._ids

    def record(self, item_id: str) -> None:
        self._ids.add(item_id)

    def clear(self) -> None:
        self._ids.clear()

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)
