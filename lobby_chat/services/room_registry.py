from __future__ import annotations

import logging
from typing import Any

from lobby_chat.event_helpers import emit_rooms_changed
from lobby_chat.models import Room, RoomId
from lobby_chat.repositories.room_repository import RoomRepository
from lobby_chat.state import SessionState

logger = logging.getLogger(__name__)


class RoomRegistry:
    """Known rooms plus the identity of the selected one.

    Append-only: rooms are never removed or renamed locally, and a room id
    seen once keeps its first definition.
    """

    def __init__(
        self,
        state: SessionState,
        repository: RoomRepository,
        bus: Any = None,
    ):
        self.state = state
        self.repository = repository
        self.bus = bus
        self._rooms: dict[str, Room] = {}
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def current_room(self) -> Room | None:
        if self.state.current_room_id is None:
            return None
        return self.get(self.state.current_room_id)

    async def load_rooms(self) -> list[Room]:
        if self._loaded:
            return self.list_rooms()
        self._loaded = True
        rooms = await self.repository.list_rooms()
        added = sum(1 for room in rooms if self._append(room))
        logger.info("Loaded %s rooms from the directory.", added)
        emit_rooms_changed(self.bus, self.state.current_room_id)
        return self.list_rooms()

    def list_rooms(self) -> list[Room]:
        return list(self._rooms.values())

    def get(self, room_id: RoomId | None) -> Room | None:
        if room_id is None:
            return None
        return self._rooms.get(str(room_id))

    def find(self, query: str) -> Room | None:
        query = query.strip().lstrip("#")
        if not query:
            return None
        room = self.get(query)
        if room is not None:
            return room
        lowered = query.lower()
        for candidate in self._rooms.values():
            if candidate.name.lower() == lowered:
                return candidate
        return None

    def select_room(self, room: Room | RoomId) -> Room | None:
        room_id = room.id if isinstance(room, Room) else room
        target = self.get(room_id)
        if target is None:
            logger.info("Ignoring selection of unknown room %s.", room_id)
            return None
        self.state.begin_selection(target.id)
        emit_rooms_changed(self.bus, target.id)
        return target

    def add_room(self, room: Room, *, select: bool = True) -> Room:
        if not self._append(room):
            logger.info("Room %s already registered; keeping existing entry.", room.id)
        registered = self._rooms[str(room.id)]
        if select:
            self.select_room(registered)
        else:
            emit_rooms_changed(self.bus, self.state.current_room_id)
        return registered

    def _append(self, room: Room) -> bool:
        key = str(room.id)
        if key in self._rooms:
            return False
        self._rooms[key] = room
        return True
