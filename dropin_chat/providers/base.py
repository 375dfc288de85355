from collections.abc import Callable
from typing import Any, Protocol

from dropin_chat.models import (
    AssistantStatus,
    HistoryEntry,
    Message,
    Reaction,
    Room,
    RoomSummary,
)


class RoomsClient(Protocol):
    async def get_room(self, room_id: str) -> Room:
        pass

    async def get_messages(self, room_id: str) -> list[Message]:
        pass

    async def create_message(self, room_id: str, content: str) -> Message:
        pass

    async def get_reactions(self, room_id: str) -> list[Reaction]:
        pass

    async def create_reaction(self, room_id: str, emoji: str) -> Reaction:
        pass

    async def join_room(self, room_id: str) -> None:
        pass

    async def leave_room(self, room_id: str) -> None:
        pass

    async def invite_users(self, room_id: str, usernames: list[str]) -> None:
        pass


class AssistantClient(Protocol):
    async def get_status(self) -> AssistantStatus:
        pass

    async def chat(
        self, message: str, room_id: str, history: list[HistoryEntry]
    ) -> str:
        pass

    async def get_summary(self, room_id: str) -> RoomSummary:
        pass


RawEventHandler = Callable[[str, Any], None]


class PushChannel(Protocol):
    def set_intake(self, handler: RawEventHandler) -> None:
        pass

    async def emit(self, signal: str, payload: Any) -> None:
        pass
