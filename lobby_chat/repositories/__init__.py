from lobby_chat.repositories.config_repository import ConfigRepository
from lobby_chat.repositories.history_repository import HistoryRepository
from lobby_chat.repositories.room_repository import RoomRepository

__all__ = [
    "ConfigRepository",
    "HistoryRepository",
    "RoomRepository",
]
