from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from dropin_chat.errors import PullPathError, RoomActivationError
from dropin_chat.events import IncomingMessageEvent, IncomingReactionEvent
from dropin_chat.models import Room
from dropin_chat.providers.base import RoomsClient
from dropin_chat.services.lifecycle_service import LifecycleService
from dropin_chat.services.router_service import RoomBinding, RoomEventRouter
from dropin_chat.services.sync_service import SyncService
from dropin_chat.state import SyncSession

logger = logging.getLogger(__name__)


class BinderService:
    """Owns the active room: its session, its push binding and its lifecycle.

    Every ``activate`` starts from scratch, even for the room already bound,
    because participants and status may have changed since the last visit.
    """

    def __init__(
        self,
        rooms: RoomsClient,
        router: RoomEventRouter,
        sync: SyncService,
        lifecycle: LifecycleService,
    ):
        self.rooms = rooms
        self.router = router
        self.sync = sync
        self.lifecycle = lifecycle
        self.session = SyncSession()
        self._binding: RoomBinding | None = None
        self._background: set[asyncio.Task[None]] = set()
        self.lifecycle.set_refresher(self.refresh_room)

    @property
    def room_id(self) -> str | None:
        return self.session.room_id

    @property
    def room(self) -> Room | None:
        return self.session.room

    def _install(self, session: SyncSession) -> None:
        self.session = session
        self.sync.attach(session)

    async def activate(self, room_id: str, *, join: bool = False) -> Room | None:
        """Bind ``room_id`` and load its state.

        Returns ``None`` when another activation superseded this one while it
        was waiting on the network. Raises :class:`RoomActivationError` when
        the room details cannot be fetched; nothing is left bound then.
        """
        room_id = room_id.strip()
        if not room_id:
            raise RoomActivationError(room_id, "room id is empty")
        if self.session.room_id is not None:
            await self.leave()

        session = SyncSession(room_id=room_id)
        self._install(session)
        self.lifecycle.attach(room_id)

        try:
            if join:
                await self.rooms.join_room(room_id)
            room = await self.rooms.get_room(room_id)
        except PullPathError as exc:
            if self.session is not session:
                logger.debug("Superseded activation of %s failed: %s", room_id, exc)
                return None
            self._teardown()
            raise RoomActivationError(room_id, str(exc)) from exc

        if self.session is not session:
            logger.debug("Activation of room %s superseded", room_id)
            return None

        session.room = room
        self.lifecycle.observe(room)
        self._binding = await self.router.bind(
            room_id,
            {
                IncomingMessageEvent: self.sync.on_incoming_message,
                IncomingReactionEvent: self.sync.on_incoming_reaction,
            },
        )
        if self.session is not session:
            return None

        await self.sync.load_history(room_id)
        if self.session is not session:
            return None
        await self.sync.load_reactions(room_id)
        if self.session is not session:
            return None

        self.lifecycle.start()
        logger.info("Room %s active (%s)", room_id, room.status)
        return room

    async def leave(self) -> None:
        room_id = self.session.room_id
        if room_id is None:
            return
        self._teardown()
        task = asyncio.create_task(self._notify_leave(room_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _teardown(self) -> None:
        if self._binding is not None:
            self._binding.release()
            self._binding = None
        self.lifecycle.detach()
        self._install(SyncSession())

    async def _notify_leave(self, room_id: str) -> None:
        try:
            await self.rooms.leave_room(room_id)
        except PullPathError as exc:
            logger.debug("Leave notification for room %s failed: %s", room_id, exc)

    @asynccontextmanager
    async def bound(
        self, room_id: str, *, join: bool = False
    ) -> AsyncIterator[Room | None]:
        room = await self.activate(room_id, join=join)
        try:
            yield room
        finally:
            if self.session.room_id == room_id:
                await self.leave()

    async def refresh_room(self) -> Room | None:
        session = self.session
        room_id = session.room_id
        if room_id is None:
            return None
        try:
            room = await self.rooms.get_room(room_id)
        except PullPathError as exc:
            logger.warning("Refreshing room %s failed: %s", room_id, exc)
            return None
        if self.session is not session:
            return None
        session.room = room
        self.lifecycle.observe(room)
        return room

    async def invite_users(self, usernames: list[str]) -> Room | None:
        room_id = self.session.room_id
        if room_id is None:
            raise ValueError("No active room.")
        cleaned = [name.strip() for name in usernames if name.strip()]
        if not cleaned:
            raise ValueError("Please enter at least one valid username.")
        await self.rooms.invite_users(room_id, cleaned)
        return await self.refresh_room()

    async def wait_background(self) -> None:
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
