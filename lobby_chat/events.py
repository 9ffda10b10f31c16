from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field

from lobby_chat.models import ChannelState, RoomId


class AppEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: uuid4().hex)
    ts: str = Field(
        default_factory=lambda: datetime.now().isoformat(timespec="seconds")
    )
    topic: str
    source: str
    critical: bool = False
    retry_count: int = 0


class SystemMessageEvent(AppEvent):
    topic: Literal["system_message"] = "system_message"
    text: str


class RoomsChangedEvent(AppEvent):
    topic: Literal["rooms_changed"] = "rooms_changed"
    current_room_id: RoomId | None = None


class MessageLogChangedEvent(AppEvent):
    topic: Literal["message_log_changed"] = "message_log_changed"
    room_id: RoomId | None = None
    size: int = 0


class ChannelStateChangedEvent(AppEvent):
    topic: Literal["channel_state_changed"] = "channel_state_changed"
    room_id: RoomId
    state: ChannelState
