from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from dropin_chat.constants import (
    EVENT_RECEIVE_MESSAGE,
    EVENT_RECEIVE_REACTION,
    SIGNAL_JOIN_ROOM,
)
from dropin_chat.event_bus import EventBus, Subscription
from dropin_chat.events import AppEvent, IncomingMessageEvent, IncomingReactionEvent
from dropin_chat.models import Message, Reaction, extract_ref_id
from dropin_chat.providers.base import PushChannel

logger = logging.getLogger(__name__)

EventHandlers = dict[type[AppEvent], Callable[[Any], None]]


def message_room_id(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    room_id = extract_ref_id(payload.get("roomId"))
    if room_id:
        return room_id
    message = payload.get("message", payload)
    if isinstance(message, dict):
        return extract_ref_id(message.get("room")) or extract_ref_id(
            message.get("roomId")
        )
    return None


def reaction_room_id(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    return extract_ref_id(payload.get("room")) or extract_ref_id(
        payload.get("roomId")
    )


class RoomBinding:
    """Subscriptions held for one bound room, released exactly once."""

    def __init__(
        self, router: "RoomEventRouter", room_id: str, subscriptions: list[Subscription]
    ):
        self.router = router
        self.room_id = room_id
        self._subscriptions = subscriptions
        self.released = False

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []
        self.router._on_binding_released(self)

    def __enter__(self) -> "RoomBinding":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class RoomEventRouter:
    def __init__(self, push: PushChannel, bus: EventBus):
        self.push = push
        self.bus = bus
        self.bound_room_id: str | None = None
        self._binding: RoomBinding | None = None
        self.discarded = 0
        self.push.set_intake(self.intake)

    async def bind(self, room_id: str, handlers: EventHandlers) -> RoomBinding:
        self.unbind()
        subscriptions = [
            self.bus.subscribe(event_type, handler)
            for event_type, handler in handlers.items()
        ]
        binding = RoomBinding(self, room_id, subscriptions)
        self._binding = binding
        self.bound_room_id = room_id
        # No matching leave is sent on unbind; isolation comes from filtering.
        await self.push.emit(SIGNAL_JOIN_ROOM, room_id)
        return binding

    def unbind(self) -> None:
        binding = self._binding
        if binding is not None:
            binding.release()
        self.bound_room_id = None

    def _on_binding_released(self, binding: RoomBinding) -> None:
        if self._binding is binding:
            self._binding = None
            self.bound_room_id = None

    def intake(self, event_name: str, payload: Any) -> None:
        if event_name == EVENT_RECEIVE_MESSAGE:
            self._route_message(payload)
        elif event_name == EVENT_RECEIVE_REACTION:
            self._route_reaction(payload)
        else:
            logger.debug("Ignoring push event %s", event_name)

    def _accepts(self, room_id: str | None, event_name: str) -> bool:
        if room_id is not None and room_id == self.bound_room_id:
            return True
        self.discarded += 1
        logger.debug(
            "Discarded %s for room %s (bound=%s)",
            event_name,
            room_id,
            self.bound_room_id,
        )
        return False

    def _route_message(self, payload: Any) -> None:
        room_id = message_room_id(payload)
        if not self._accepts(room_id, EVENT_RECEIVE_MESSAGE) or room_id is None:
            return
        raw = payload.get("message", payload)
        if isinstance(raw, dict) and raw.get("room") is None and "roomId" not in raw:
            raw = {**raw, "roomId": room_id}
        try:
            message = Message.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Malformed pushed message dropped: %s", exc)
            return
        self.bus.publish(
            IncomingMessageEvent(source="push", room_id=room_id, message=message)
        )

    def _route_reaction(self, payload: Any) -> None:
        room_id = reaction_room_id(payload)
        if not self._accepts(room_id, EVENT_RECEIVE_REACTION) or room_id is None:
            return
        raw = payload if payload.get("room") is not None else {**payload, "room": room_id}
        try:
            reaction = Reaction.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Malformed pushed reaction dropped: %s", exc)
            return
        self.bus.publish(
            IncomingReactionEvent(source="push", room_id=room_id, reaction=reaction)
        )
