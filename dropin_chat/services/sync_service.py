from __future__ import annotations

import logging
from collections import Counter

from dropin_chat.constants import SIGNAL_SEND_MESSAGE, SIGNAL_SEND_REACTION
from dropin_chat.dedup import FingerprintStore
from dropin_chat.errors import PullPathError, SendError
from dropin_chat.event_bus import EventBus
from dropin_chat.events import (
    HistoryLoadedEvent,
    IncomingMessageEvent,
    IncomingReactionEvent,
    MessageAppliedEvent,
    ReactionAppliedEvent,
)
from dropin_chat.models import Message, Reaction
from dropin_chat.providers.base import PushChannel, RoomsClient
from dropin_chat.state import SyncSession

logger = logging.getLogger(__name__)


class SyncService:
    """Merges pulled history with pushed live items into one store per room.

    The attached :class:`SyncSession` is the only copy of the room's
    sequences. Both paths write through ``apply_incoming`` so the fingerprint
    store decides what is new, whichever path delivers an item first.
    """

    def __init__(
        self,
        rooms: RoomsClient,
        push: PushChannel,
        bus: EventBus,
        user_id: str = "",
    ):
        self.rooms = rooms
        self.push = push
        self.bus = bus
        self.user_id = user_id
        self.session = SyncSession()

    def attach(self, session: SyncSession) -> None:
        self.session = session

    @property
    def messages(self) -> list[Message]:
        return list(self.session.messages)

    @property
    def reactions(self) -> list[Reaction]:
        return list(self.session.reactions)

    def reaction_counts(self) -> dict[str, int]:
        return dict(Counter(reaction.emoji for reaction in self.session.reactions))

    def clear_error(self) -> None:
        self.session.message_error = None
        self.session.reaction_error = None

    def _is_current(self, session: SyncSession, room_id: str) -> bool:
        return self.session is session and session.is_bound_to(room_id)

    async def load_history(self, room_id: str) -> list[Message]:
        session = self.session
        session.message_loading = True
        session.message_error = None
        try:
            fetched = await self.rooms.get_messages(room_id)
        except PullPathError as exc:
            if self._is_current(session, room_id):
                session.message_loading = False
                session.message_error = exc.detail or "Failed to fetch messages"
                logger.warning("History fetch failed for room %s: %s", room_id, exc)
            return list(session.messages)

        if not self._is_current(session, room_id):
            logger.debug("Discarding stale history for room %s", room_id)
            return []

        # Live items applied while the fetch was in flight stay after history.
        fetched_ids = {message.id for message in fetched}
        live = [m for m in session.messages if m.id not in fetched_ids]
        fingerprints = FingerprintStore()
        merged: list[Message] = []
        for message in [*fetched, *live]:
            if fingerprints.seen(message.id):
                continue
            fingerprints.record(message.id)
            merged.append(message)
        session.messages = merged
        session.message_fingerprints = fingerprints
        session.message_loading = False
        self.bus.publish(
            HistoryLoadedEvent(source="sync", room_id=room_id, count=len(merged))
        )
        return list(merged)

    async def load_reactions(self, room_id: str) -> list[Reaction]:
        session = self.session
        session.reaction_loading = True
        session.reaction_error = None
        try:
            fetched = await self.rooms.get_reactions(room_id)
        except PullPathError as exc:
            if self._is_current(session, room_id):
                session.reaction_loading = False
                session.reaction_error = exc.detail or "Failed to fetch reactions"
                logger.warning("Reaction fetch failed for room %s: %s", room_id, exc)
            return list(session.reactions)

        if not self._is_current(session, room_id):
            logger.debug("Discarding stale reactions for room %s", room_id)
            return []

        fetched_ids = {reaction.id for reaction in fetched}
        live = [r for r in session.reactions if r.id not in fetched_ids]
        fingerprints = FingerprintStore()
        merged: list[Reaction] = []
        for reaction in [*fetched, *live]:
            if fingerprints.seen(reaction.id):
                continue
            fingerprints.record(reaction.id)
            merged.append(reaction)
        session.reactions = merged
        session.reaction_fingerprints = fingerprints
        session.reaction_loading = False
        return list(merged)

    def apply_incoming(self, message: Message) -> bool:
        session = self.session
        if not session.is_bound_to(message.room_id):
            logger.debug(
                "Message %s for room %s ignored; session bound to %s",
                message.id,
                message.room_id,
                session.room_id,
            )
            return False
        if session.message_fingerprints.seen(message.id):
            return False
        session.message_fingerprints.record(message.id)
        session.messages.append(message)
        self.bus.publish(
            MessageAppliedEvent(source="sync", room_id=message.room_id, message=message)
        )
        return True

    def apply_incoming_reaction(self, reaction: Reaction) -> bool:
        session = self.session
        if not session.is_bound_to(reaction.room_id):
            return False
        if session.reaction_fingerprints.seen(reaction.id):
            return False
        session.reaction_fingerprints.record(reaction.id)
        session.reactions.append(reaction)
        self.bus.publish(
            ReactionAppliedEvent(
                source="sync", room_id=reaction.room_id, reaction=reaction
            )
        )
        return True

    def on_incoming_message(self, event: IncomingMessageEvent) -> None:
        self.apply_incoming(event.message)

    def on_incoming_reaction(self, event: IncomingReactionEvent) -> None:
        self.apply_incoming_reaction(event.reaction)

    async def send(self, room_id: str, content: str) -> Message:
        if not content.strip():
            raise ValueError("Message content must not be blank.")
        session = self.session
        try:
            message = await self.rooms.create_message(room_id, content)
        except PullPathError as exc:
            if self._is_current(session, room_id):
                session.message_error = exc.detail or "Failed to send message"
            raise SendError(room_id, str(exc)) from exc

        if self._is_current(session, room_id):
            self.apply_incoming(message)
        else:
            logger.debug("Room %s no longer bound; skipped local append", room_id)
        await self.push.emit(
            SIGNAL_SEND_MESSAGE, {"roomId": room_id, "message": message.to_dict()}
        )
        return message

    async def send_reaction(self, room_id: str, emoji: str) -> Reaction:
        if not emoji.strip():
            raise ValueError("Reaction emoji must not be blank.")
        session = self.session
        try:
            reaction = await self.rooms.create_reaction(room_id, emoji)
        except PullPathError as exc:
            if self._is_current(session, room_id):
                session.reaction_error = exc.detail or "Failed to send reaction"
            raise SendError(room_id, str(exc)) from exc

        if self._is_current(session, room_id):
            self.apply_incoming_reaction(reaction)
        await self.push.emit(
            SIGNAL_SEND_REACTION,
            {"roomId": room_id, "emoji": emoji, "userId": self.user_id},
        )
        return reaction
