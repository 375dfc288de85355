from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from dropin_chat.dedup import FingerprintStore
from dropin_chat.models import Message, Reaction, Room


@dataclass
class SyncSession:
    room_id: str | None = None
    room: Room | None = None

    messages: list[Message] = field(default_factory=list)
    reactions: list[Reaction] = field(default_factory=list)
    message_fingerprints: FingerprintStore = field(default_factory=FingerprintStore)
    reaction_fingerprints: FingerprintStore = field(default_factory=FingerprintStore)

    message_loading: bool = False
    reaction_loading: bool = False
    message_error: str | None = None
    reaction_error: str | None = None

    @property
    def error(self) -> str | None:
        return self.message_error or self.reaction_error

    def is_bound_to(self, room_id: str) -> bool:
        return self.room_id is not None and self.room_id == room_id


class LifecycleState(str, Enum):
    IDLE = "idle"
    OBSERVING = "observing"
    COUNTING_DOWN = "counting_down"
    BYPASSED = "bypassed"
    REDIRECTED = "redirected"


@dataclass
class LifecycleWatch:
    room_id: str | None = None
    state: LifecycleState = LifecycleState.IDLE
    was_live: bool = False
    countdown_remaining: int = 0
    last_room: Room | None = None
