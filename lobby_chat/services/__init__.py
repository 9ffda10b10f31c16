from lobby_chat.services.channel_manager import (
    ChannelManager,
    ChannelUnavailableError,
    LiveChannel,
)
from lobby_chat.services.message_log import MessageLog
from lobby_chat.services.room_registry import RoomRegistry
from lobby_chat.services.transport_service import TransportSelector

__all__ = [
    "ChannelManager",
    "ChannelUnavailableError",
    "LiveChannel",
    "MessageLog",
    "RoomRegistry",
    "TransportSelector",
]
