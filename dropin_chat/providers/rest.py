from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from dropin_chat.constants import HTTP_TIMEOUT_SECONDS
from dropin_chat.errors import PullPathError
from dropin_chat.models import (
    AssistantStatus,
    HistoryEntry,
    Message,
    Reaction,
    Room,
    RoomSummary,
)

logger = logging.getLogger(__name__)


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ("message", "error"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return response.reason_phrase or "Request failed"


class HttpRoomsClient:
    """Pull-path client for the rooms and assistant REST endpoints."""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        *,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self, method: str, path: str, payload: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        try:
            response = await self._http.request(method, path, json=payload)
        except httpx.HTTPError as exc:
            raise PullPathError(f"{method} {path} failed: {exc}") from exc
        if response.status_code >= 400:
            raise PullPathError(_error_detail(response), response.status_code)
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as exc:
            raise PullPathError(
                f"{method} {path} returned invalid JSON", response.status_code
            ) from exc
        if not isinstance(data, dict):
            raise PullPathError(
                f"{method} {path} returned unexpected payload", response.status_code
            )
        return data

    def _parse(self, model: Any, data: Any, what: str) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise PullPathError(f"Malformed {what} in response: {exc}") from exc

    def _parse_list(self, model: Any, rows: Any, what: str) -> list[Any]:
        if not isinstance(rows, list):
            raise PullPathError(f"Expected a list of {what} in response.")
        items = []
        for row in rows:
            try:
                items.append(model.model_validate(row))
            except ValidationError as exc:
                logger.warning("Skipping malformed %s row: %s", what, exc)
        return items

    async def get_room(self, room_id: str) -> Room:
        data = await self._request("GET", f"/rooms/{room_id}")
        return self._parse(Room, data.get("room", data), "room")

    async def get_messages(self, room_id: str) -> list[Message]:
        data = await self._request("GET", f"/rooms/{room_id}/messages")
        return self._parse_list(Message, data.get("messages", []), "message")

    async def create_message(self, room_id: str, content: str) -> Message:
        data = await self._request(
            "POST", f"/rooms/{room_id}/messages", {"content": content}
        )
        return self._parse(Message, data.get("message", data), "message")

    async def get_reactions(self, room_id: str) -> list[Reaction]:
        data = await self._request("GET", f"/rooms/{room_id}/reactions")
        return self._parse_list(Reaction, data.get("reactions", []), "reaction")

    async def create_reaction(self, room_id: str, emoji: str) -> Reaction:
        data = await self._request(
            "POST", f"/rooms/{room_id}/reactions", {"emoji": emoji}
        )
        return self._parse(Reaction, data.get("reaction", data), "reaction")

    async def join_room(self, room_id: str) -> None:
        await self._request("POST", f"/rooms/{room_id}/join")

    async def leave_room(self, room_id: str) -> None:
        await self._request("POST", f"/rooms/{room_id}/leave")

    async def invite_users(self, room_id: str, usernames: list[str]) -> None:
        await self._request(
            "POST", f"/rooms/{room_id}/invite", {"usernames": usernames}
        )

    async def get_status(self) -> AssistantStatus:
        data = await self._request("GET", "/ai/status")
        if not data.get("success", False):
            raise PullPathError(str(data.get("error") or "AI status check failed"))
        return self._parse(AssistantStatus, data.get("data", {}), "assistant status")

    async def chat(
        self, message: str, room_id: str, history: list[HistoryEntry]
    ) -> str:
        data = await self._request(
            "POST",
            "/ai/chat",
            {
                "message": message,
                "roomId": room_id,
                "conversationHistory": [entry.to_dict() for entry in history],
            },
        )
        if not data.get("success", True):
            raise PullPathError(str(data.get("error") or "Assistant request failed"))
        body = data.get("data", {})
        text = str(body.get("response", "")).strip() if isinstance(body, dict) else ""
        if not text:
            raise PullPathError("Assistant response was empty.")
        return text

    async def get_summary(self, room_id: str) -> RoomSummary:
        data = await self._request("GET", f"/ai/summary/{room_id}")
        if not data.get("success", True):
            raise PullPathError(str(data.get("error") or "Summary request failed"))
        return self._parse(RoomSummary, data.get("data", data), "room summary")
