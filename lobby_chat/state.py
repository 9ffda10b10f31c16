from __future__ import annotations

from dataclasses import dataclass

from lobby_chat.constants import DEFAULT_SENDER
from lobby_chat.models import RoomId, same_room


@dataclass
class SessionState:
    current_room_id: RoomId | None = None
    selection: int = 0
    sender: str = DEFAULT_SENDER
    running: bool = True

    def begin_selection(self, room_id: RoomId) -> int:
        self.current_room_id = room_id
        self.selection += 1
        return self.selection

    def is_current(self, room_id: RoomId | None, selection: int | None = None) -> bool:
        if not same_room(room_id, self.current_room_id):
            return False
        return selection is None or selection == self.selection
