from enum import Enum
from typing import Any
from urllib.parse import urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator

from lobby_chat.constants import (
    DEFAULT_ORIGIN,
    DEFAULT_SENDER,
    MAX_SENDER_LENGTH,
    RECONNECT_MAX_ATTEMPTS,
)

OpaqueId = int | str
RoomId = OpaqueId


class Room(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    id: RoomId
    name: str
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Room":
        return cls(**data)


class RoomCreate(BaseModel):
    name: str
    description: str | None = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Room name must not be empty.")
        return value

    @field_validator("description")
    @classmethod
    def _blank_description_is_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class Message(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    id: OpaqueId | None = None
    sender: str
    content: str
    room_id: RoomId | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        return cls(**data)


class OutgoingMessage(BaseModel):
    sender: str
    content: str

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump()


class ChannelState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


def same_room(left: RoomId | None, right: RoomId | None) -> bool:
    if left is None or right is None:
        return False
    return str(left) == str(right)


def to_ws_origin(url: str) -> str:
    parts = urlsplit(url)
    scheme = {"http": "ws", "https": "wss"}.get(parts.scheme.lower(), parts.scheme)
    return urlunsplit((scheme, parts.netloc, parts.path, parts.query, parts.fragment))


class ClientSettings(BaseModel):
    backend_url: str | None = None
    origin: str = DEFAULT_ORIGIN
    username: str = DEFAULT_SENDER
    room: RoomId | None = None
    reconnect_max_attempts: int = Field(default=RECONNECT_MAX_ATTEMPTS, ge=0)

    @field_validator("backend_url")
    @classmethod
    def _blank_backend_is_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @field_validator("username")
    @classmethod
    def _clean_username(cls, value: str) -> str:
        value = value.strip()[:MAX_SENDER_LENGTH]
        return value or DEFAULT_SENDER

    def http_base(self) -> str:
        return (self.backend_url or self.origin).rstrip("/")

    def ws_base(self) -> str:
        return to_ws_origin(self.http_base())
