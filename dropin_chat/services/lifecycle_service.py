from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

from dropin_chat.constants import (
    DEFAULT_REDIRECT_TARGET,
    LIFECYCLE_POLL_INTERVAL_SECONDS,
    REDIRECT_COUNTDOWN_TICKS,
    REDIRECT_TICK_SECONDS,
)
from dropin_chat.event_bus import EventBus
from dropin_chat.events import CountdownEvent, RoomRedirectEvent
from dropin_chat.models import Room
from dropin_chat.repositories.bypass_repository import BypassRepository
from dropin_chat.state import LifecycleState, LifecycleWatch

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
Refresher = Callable[[], Awaitable[Any]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LifecycleService:
    """Watches the bound room and redirects once a live room has ended.

    Only a room seen ``live`` during this view can count down. A room that is
    already ``closed`` on first sight stays idle so its history can be read.
    """

    def __init__(
        self,
        bypass: BypassRepository,
        bus: EventBus,
        *,
        clock: Clock = utc_now,
        poll_interval_seconds: float = LIFECYCLE_POLL_INTERVAL_SECONDS,
        tick_seconds: float = REDIRECT_TICK_SECONDS,
        countdown_ticks: int = REDIRECT_COUNTDOWN_TICKS,
        redirect_target: str = DEFAULT_REDIRECT_TARGET,
    ):
        self.bypass = bypass
        self.bus = bus
        self.clock = clock
        self.poll_interval_seconds = poll_interval_seconds
        self.tick_seconds = tick_seconds
        self.countdown_ticks = countdown_ticks
        self.redirect_target = redirect_target
        self.watch = LifecycleWatch()
        self.on_redirect: Callable[[str, str], None] | None = None
        self._refresher: Refresher | None = None
        self._running = False
        self._poll_task: asyncio.Task[None] | None = None
        self._countdown_task: asyncio.Task[None] | None = None
        self.countdowns_started = 0

    @property
    def state(self) -> LifecycleState:
        return self.watch.state

    def set_refresher(self, refresher: Refresher | None) -> None:
        self._refresher = refresher

    def attach(self, room_id: str) -> None:
        self.stop()
        self.watch = LifecycleWatch(room_id=room_id)
        self.countdowns_started = 0
        if self.bypass.contains(room_id):
            self.watch.state = LifecycleState.BYPASSED
            logger.debug("Room %s was bypassed earlier; no countdown", room_id)

    def detach(self) -> None:
        self.stop()
        self.watch = LifecycleWatch()

    def observe(self, room: Room) -> None:
        watch = self.watch
        if watch.room_id is None or room.id != watch.room_id:
            return
        watch.last_room = room
        if watch.state is LifecycleState.IDLE and room.status == "live":
            watch.state = LifecycleState.OBSERVING
            watch.was_live = True
        if watch.state is LifecycleState.OBSERVING:
            self._evaluate(room)

    def check(self) -> None:
        room = self.watch.last_room
        if self.watch.state is LifecycleState.OBSERVING and room is not None:
            self._evaluate(room)

    def _evaluate(self, room: Room) -> None:
        if room.status == "closed" or room.has_ended(self.clock()):
            self.start_countdown()

    def start_countdown(self) -> bool:
        watch = self.watch
        if watch.state is not LifecycleState.OBSERVING:
            return False
        watch.state = LifecycleState.COUNTING_DOWN
        watch.countdown_remaining = self.countdown_ticks
        self.countdowns_started += 1
        logger.info(
            "Room %s has ended; redirecting in %s", watch.room_id, self.countdown_ticks
        )
        self._publish_countdown()
        if self._running:
            self._ensure_countdown_task()
        return True

    def tick(self) -> None:
        watch = self.watch
        if watch.state is not LifecycleState.COUNTING_DOWN:
            return
        watch.countdown_remaining = max(0, watch.countdown_remaining - 1)
        self._publish_countdown()
        if watch.countdown_remaining == 0:
            self._redirect()

    async def view_anyway(self) -> bool:
        watch = self.watch
        room_id = watch.room_id
        if watch.state is not LifecycleState.COUNTING_DOWN or room_id is None:
            return False
        self._cancel_countdown_task()
        watch.state = LifecycleState.BYPASSED
        watch.countdown_remaining = 0
        # The bypass file is lock-guarded and may back off with sleeps.
        saved = await asyncio.to_thread(self.bypass.add, room_id)
        if not saved:
            logger.warning("Bypass for room %s only applies to this view", room_id)
        return True

    def _publish_countdown(self) -> None:
        room_id = self.watch.room_id
        if room_id is None:
            return
        self.bus.publish(
            CountdownEvent(
                source="lifecycle",
                room_id=room_id,
                remaining=self.watch.countdown_remaining,
            )
        )

    def _redirect(self) -> None:
        watch = self.watch
        room_id = watch.room_id
        if room_id is None:
            return
        watch.state = LifecycleState.REDIRECTED
        self._cancel_poll_task()
        self.bus.publish(
            RoomRedirectEvent(
                source="lifecycle", room_id=room_id, target=self.redirect_target
            ),
            critical=True,
        )
        if self.on_redirect is not None:
            self.on_redirect(room_id, self.redirect_target)

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())
        if self.watch.state is LifecycleState.COUNTING_DOWN:
            self._ensure_countdown_task()

    def stop(self) -> None:
        self._running = False
        self._cancel_poll_task()
        self._cancel_countdown_task()

    def _ensure_countdown_task(self) -> None:
        if self._countdown_task is not None and not self._countdown_task.done():
            return
        self._countdown_task = asyncio.get_running_loop().create_task(
            self._countdown_loop()
        )

    def _cancel_poll_task(self) -> None:
        task = self._poll_task
        self._poll_task = None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

    def _cancel_countdown_task(self) -> None:
        task = self._countdown_task
        self._countdown_task = None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

    async def _poll_loop(self) -> None:
        while self._running and self.watch.state in (
            LifecycleState.IDLE,
            LifecycleState.OBSERVING,
        ):
            await asyncio.sleep(self.poll_interval_seconds)
            if not self._running:
                return
            if self._refresher is not None:
                await self._refresher()
            self.check()

    async def _countdown_loop(self) -> None:
        while self._running and self.watch.state is LifecycleState.COUNTING_DOWN:
            await asyncio.sleep(self.tick_seconds)
            if not self._running:
                return
            self.tick()


def _current_task() -> asyncio.Task[Any] | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
