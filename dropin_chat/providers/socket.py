from __future__ import annotations

import logging
from typing import Any

import socketio
from socketio.exceptions import SocketIOError

from dropin_chat.constants import EVENT_RECEIVE_MESSAGE, EVENT_RECEIVE_REACTION
from dropin_chat.providers.base import RawEventHandler

logger = logging.getLogger(__name__)


class SocketIOPushChannel:
    """Push-path channel over a python-socketio client.

    The transport is not room-partitioned: every ``receive_*`` event reaches
    the single intake handler and room filtering happens downstream.
    """

    def __init__(
        self,
        url: str,
        token: str = "",
        *,
        client: socketio.AsyncClient | None = None,
    ):
        self.url = url
        self.token = token
        self.client = client or socketio.AsyncClient(reconnection=True)
        self._intake: RawEventHandler | None = None
        self.client.on("connect", self._on_connect)
        self.client.on("disconnect", self._on_disconnect)
        for event_name in (EVENT_RECEIVE_MESSAGE, EVENT_RECEIVE_REACTION):
            self.client.on(event_name, self._build_handler(event_name))

    def set_intake(self, handler: RawEventHandler) -> None:
        self._intake = handler

    def _build_handler(self, event_name: str):
        async def handler(payload: Any) -> None:
            if self._intake is None:
                return
            self._intake(event_name, payload)

        return handler

    async def _on_connect(self) -> None:
        logger.info("Push channel connected to %s", self.url)

    async def _on_disconnect(self, *_args: Any) -> None:
        logger.warning("Push channel disconnected from %s", self.url)

    @property
    def connected(self) -> bool:
        return bool(self.client.connected)

    async def connect(self) -> bool:
        auth = {"token": self.token} if self.token else None
        try:
            await self.client.connect(self.url, auth=auth, transports=["websocket"])
        except SocketIOError as exc:
            logger.warning("Push channel could not connect to %s: %s", self.url, exc)
            return False
        return True

    async def disconnect(self) -> None:
        if self.client.connected:
            await self.client.disconnect()

    async def emit(self, signal: str, payload: Any) -> None:
        # Broadcast signals are best effort; nothing is queued while offline.
        if not self.client.connected:
            logger.warning("Push channel offline; dropped signal %s", signal)
            return
        try:
            await self.client.emit(signal, payload)
        except SocketIOError as exc:
            logger.warning("Failed emitting %s on push channel: %s", signal, exc)
