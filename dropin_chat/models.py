from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

RoomStatus = Literal["scheduled", "live", "closed"]
MessageKind = Literal["text", "system"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def extract_ref_id(value: Any) -> str | None:
    """Return the id of a reference that may be a plain id or a nested object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, dict):
        for key in ("_id", "id"):
            candidate = value.get(key)
            if isinstance(candidate, str) and candidate.strip():
                return candidate.strip()
        return None
    candidate = getattr(value, "id", None)
    if isinstance(candidate, str) and candidate.strip():
        return candidate.strip()
    return None


class WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class UserRef(WireModel):
    id: str = Field(validation_alias=AliasChoices("_id", "id"), serialization_alias="_id")
    username: str = "Unknown"

    @classmethod
    def coerce(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"_id": value}
        return value


class Message(WireModel):
    id: str = Field(validation_alias=AliasChoices("_id", "id"), serialization_alias="_id")
    room_id: str = Field(
        validation_alias=AliasChoices("roomId", "room", "room_id"),
        serialization_alias="room",
    )
    sender: UserRef
    content: str = ""
    created_at: datetime = Field(
        default_factory=_utcnow,
        validation_alias=AliasChoices("createdAt", "created_at"),
        serialization_alias="createdAt",
    )
    kind: MessageKind = Field(
        default="text",
        validation_alias=AliasChoices("messageType", "kind"),
        serialization_alias="messageType",
    )

    @field_validator("room_id", mode="before")
    @classmethod
    def _room_ref(cls, value: Any) -> Any:
        return extract_ref_id(value) or value

    @field_validator("sender", mode="before")
    @classmethod
    def _sender_ref(cls, value: Any) -> Any:
        return UserRef.coerce(value)


class Reaction(WireModel):
    id: str = Field(validation_alias=AliasChoices("_id", "id"), serialization_alias="_id")
    room_id: str = Field(
        validation_alias=AliasChoices("room", "roomId", "room_id"),
        serialization_alias="room",
    )
    user: UserRef = Field(
        validation_alias=AliasChoices("user", "userId"), serialization_alias="user"
    )
    emoji: str
    created_at: datetime = Field(
        default_factory=_utcnow,
        validation_alias=AliasChoices("createdAt", "created_at"),
        serialization_alias="createdAt",
    )

    @field_validator("room_id", mode="before")
    @classmethod
    def _room_ref(cls, value: Any) -> Any:
        return extract_ref_id(value) or value

    @field_validator("user", mode="before")
    @classmethod
    def _user_ref(cls, value: Any) -> Any:
        return UserRef.coerce(value)


class Room(WireModel):
    id: str = Field(validation_alias=AliasChoices("_id", "id"), serialization_alias="_id")
    title: str = ""
    description: str = ""
    code: str = ""
    tags: list[str] = Field(default_factory=list)
    room_type: Literal["public", "private"] = Field(
        default="public",
        validation_alias=AliasChoices("roomType", "room_type"),
        serialization_alias="roomType",
    )
    status: RoomStatus = "scheduled"
    start_time: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("startTime", "start_time"),
        serialization_alias="startTime",
    )
    end_time: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("endTime", "end_time"),
        serialization_alias="endTime",
    )
    creator: UserRef | None = None
    participants: list[UserRef] = Field(default_factory=list)
    invited_users: list[UserRef] = Field(
        default_factory=list,
        validation_alias=AliasChoices("invitedUsers", "invited_users"),
        serialization_alias="invitedUsers",
    )

    @field_validator("creator", mode="before")
    @classmethod
    def _creator_ref(cls, value: Any) -> Any:
        return UserRef.coerce(value)

    @field_validator("participants", "invited_users", mode="before")
    @classmethod
    def _user_refs(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [UserRef.coerce(item) for item in value]
        return value

    @property
    def is_private(self) -> bool:
        return self.room_type == "private"

    def has_participant(self, user_id: str) -> bool:
        return any(user.id == user_id for user in self.participants)

    def has_ended(self, now: datetime) -> bool:
        if self.end_time is None:
            return False
        end = self.end_time
        if end.tzinfo is None:
            end = end.replace(tzinfo=timezone.utc)
        return now >= end


class AssistantStatus(WireModel):
    available: bool = False
    features: list[str] = Field(default_factory=list)


class HistoryEntry(WireModel):
    role: Literal["user", "assistant"]
    content: str


class RoomSummary(WireModel):
    summary: str = ""
    sentiment: str = "neutral"
    key_topics: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("keyTopics", "key_topics"),
        serialization_alias="keyTopics",
    )


class ClientSettings(BaseModel):
    api_url: str
    socket_url: str
    token: str = ""
    user_id: str = ""
    username: str = "Anonymous"
    room: str | None = None
