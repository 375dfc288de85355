from __future__ import annotations


class DropinError(Exception):
    pass


class PullPathError(DropinError):
    """A REST call failed at the transport level or returned a non-2xx status."""

    def __init__(self, detail: str, status_code: int | None = None):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is None:
            return self.detail
        return f"HTTP {self.status_code}: {self.detail}"


class RoomActivationError(DropinError):
    def __init__(self, room_id: str, reason: str):
        super().__init__(f"Could not open room {room_id}: {reason}")
        self.room_id = room_id
        self.reason = reason


class SendError(DropinError):
    def __init__(self, room_id: str, reason: str):
        super().__init__(f"Could not send to room {room_id}: {reason}")
        self.room_id = room_id
        self.reason = reason
