from __future__ import annotations

import logging

from dropin_chat.errors import PullPathError
from dropin_chat.models import HistoryEntry, RoomSummary
from dropin_chat.providers.base import AssistantClient

logger = logging.getLogger(__name__)


class AssistantService:
    def __init__(self, client: AssistantClient):
        self.client = client
        self.available: bool | None = None
        self.features: list[str] = []
        self.last_error: str | None = None

    @property
    def is_available(self) -> bool:
        return self.available is True

    def supports(self, feature: str) -> bool:
        return self.is_available and feature in self.features

    async def check_status(self) -> bool:
        try:
            status = await self.client.get_status()
        except PullPathError as exc:
            self.available = False
            self.features = []
            self.last_error = str(exc) or "Failed to connect to AI service"
            logger.warning("Assistant status check failed: %s", exc)
            return False
        self.available = status.available
        self.features = list(status.features)
        self.last_error = None
        return self.available

    async def request_reply(
        self, message: str, room_id: str, history: list[HistoryEntry]
    ) -> str:
        return await self.client.chat(message, room_id, history)

    async def summarize(self, room_id: str) -> RoomSummary:
        if not self.is_available:
            raise PullPathError("AI features are not available")
        return await self.client.get_summary(room_id)
