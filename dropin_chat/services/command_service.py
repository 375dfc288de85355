from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from dropin_chat.constants import (
    ASSISTANT_APOLOGY_GENERIC,
    ASSISTANT_APOLOGY_NOT_AUTHENTICATED,
    ASSISTANT_APOLOGY_NOT_PARTICIPANT,
    ASSISTANT_GREETING,
    ASSISTANT_HISTORY_WINDOW,
    ASSISTANT_MARKER,
    ASSISTANT_UNAVAILABLE_TEXT,
    COMMAND_PREFIX,
)
from dropin_chat.errors import DropinError, PullPathError
from dropin_chat.models import HistoryEntry, Message
from dropin_chat.services.assistant_service import AssistantService
from dropin_chat.services.sync_service import SyncService

logger = logging.getLogger(__name__)


class CommandState(str, Enum):
    PLAIN = "plain"
    COMMAND = "command"
    GREETED = "greeted"
    SERVICE_UNAVAILABLE = "service_unavailable"
    AWAITING_REPLY = "awaiting_reply"
    REPLY_DELIVERED = "reply_delivered"
    REPLY_FAILED = "reply_failed"


TERMINAL_STATES = frozenset(
    {
        CommandState.PLAIN,
        CommandState.GREETED,
        CommandState.SERVICE_UNAVAILABLE,
        CommandState.REPLY_DELIVERED,
        CommandState.REPLY_FAILED,
    }
)


@dataclass
class CommandResult:
    state: CommandState
    sent: Message
    query: str = ""
    follow_up: Message | None = None
    reply_task: asyncio.Task[CommandState] | None = None

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES


def parse_command(text: str, prefix: str = COMMAND_PREFIX) -> tuple[bool, str]:
    """Split outgoing text into (is_command, remainder after the prefix)."""
    if not text.startswith(prefix):
        return False, ""
    return True, text[len(prefix) :].strip()


def is_assistant_reply(message: Message) -> bool:
    return message.content.startswith(ASSISTANT_MARKER)


def build_history_window(
    messages: list[Message], user_id: str, limit: int = ASSISTANT_HISTORY_WINDOW
) -> list[HistoryEntry]:
    entries = [
        HistoryEntry(
            role="user" if message.sender.id == user_id else "assistant",
            content=message.content,
        )
        for message in messages
        if message.content.strip() and not is_assistant_reply(message)
    ]
    if limit <= 0:
        return []
    return entries[-limit:]


def apology_for(exc: BaseException) -> str:
    status = exc.status_code if isinstance(exc, PullPathError) else None
    text = str(exc).lower()
    if status == 403 or "participant" in text:
        return ASSISTANT_APOLOGY_NOT_PARTICIPANT
    if status == 401 or "auth" in text or "token" in text:
        return ASSISTANT_APOLOGY_NOT_AUTHENTICATED
    return ASSISTANT_APOLOGY_GENERIC


class CommandService:
    """Intercepts ``@ai`` commands on the way out of the composer."""

    def __init__(
        self,
        sync: SyncService,
        assistant: AssistantService,
        user_id: str = "",
        prefix: str = COMMAND_PREFIX,
    ):
        self.sync = sync
        self.assistant = assistant
        self.user_id = user_id
        self.prefix = prefix
        self._pending: set[asyncio.Task[CommandState]] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def submit(self, room_id: str, text: str) -> CommandResult:
        is_command, query = parse_command(text, self.prefix)
        if not is_command:
            sent = await self.sync.send(room_id, text)
            return CommandResult(state=CommandState.PLAIN, sent=sent)

        # Snapshot before the echo so the query is not repeated in the window.
        history = build_history_window(self.sync.messages, self.user_id)
        echo = await self.sync.send(room_id, text)
        result = CommandResult(state=CommandState.COMMAND, sent=echo, query=query)

        if not query:
            result.follow_up = await self._send_follow_up(room_id, ASSISTANT_GREETING)
            result.state = CommandState.GREETED
            return result

        if not self.assistant.is_available:
            result.follow_up = await self._send_follow_up(
                room_id, ASSISTANT_UNAVAILABLE_TEXT
            )
            result.state = CommandState.SERVICE_UNAVAILABLE
            return result

        result.state = CommandState.AWAITING_REPLY
        task = asyncio.create_task(self._await_reply(result, room_id, query, history))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        result.reply_task = task
        return result

    async def _await_reply(
        self,
        result: CommandResult,
        room_id: str,
        query: str,
        history: list[HistoryEntry],
    ) -> CommandState:
        try:
            reply = await self.assistant.request_reply(query, room_id, history)
        except Exception as exc:
            logger.warning("Assistant request failed in room %s: %s", room_id, exc)
            result.follow_up = await self._send_follow_up(room_id, apology_for(exc))
            result.state = CommandState.REPLY_FAILED
            return result.state

        result.follow_up = await self._send_follow_up(
            room_id, f"{ASSISTANT_MARKER} {reply.strip()}"
        )
        result.state = CommandState.REPLY_DELIVERED
        return result.state

    async def _send_follow_up(self, room_id: str, content: str) -> Message | None:
        try:
            return await self.sync.send(room_id, content)
        except DropinError as exc:
            logger.warning("Failed posting assistant message to %s: %s", room_id, exc)
            return None

    async def wait_pending(self) -> list[CommandState]:
        if not self._pending:
            return []
        return list(await asyncio.gather(*list(self._pending)))

    def cancel_pending(self) -> None:
        for task in list(self._pending):
            task.cancel()
