from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field

from dropin_chat.models import Message, Reaction


class AppEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: uuid4().hex)
    ts: str = Field(
        default_factory=lambda: datetime.now().isoformat(timespec="seconds")
    )
    topic: str
    source: str
    critical: bool = False
    retry_count: int = 0


class IncomingMessageEvent(AppEvent):
    topic: Literal["incoming_message"] = "incoming_message"
    room_id: str
    message: Message


class IncomingReactionEvent(AppEvent):
    topic: Literal["incoming_reaction"] = "incoming_reaction"
    room_id: str
    reaction: Reaction


class MessageAppliedEvent(AppEvent):
    topic: Literal["message_applied"] = "message_applied"
    room_id: str
    message: Message


class ReactionAppliedEvent(AppEvent):
    topic: Literal["reaction_applied"] = "reaction_applied"
    room_id: str
    reaction: Reaction


class HistoryLoadedEvent(AppEvent):
    topic: Literal["history_loaded"] = "history_loaded"
    room_id: str
    count: int


class CountdownEvent(AppEvent):
    topic: Literal["countdown"] = "countdown"
    room_id: str
    remaining: int


class RoomRedirectEvent(AppEvent):
    topic: Literal["room_redirect"] = "room_redirect"
    room_id: str
    target: str


class SystemMessageEvent(AppEvent):
    topic: Literal["system_message"] = "system_message"
    text: str
