from __future__ import annotations

import logging

from pydantic import ValidationError

from lobby_chat.constants import ROOMS_PATH
from lobby_chat.models import Room, RoomCreate
from lobby_chat.providers.base import BackendError, JsonTransport

logger = logging.getLogger(__name__)


class RoomRepository:
    """Room Directory Service client."""

    def __init__(self, transport: JsonTransport):
        self.transport = transport

    async def list_rooms(self) -> list[Room]:
        try:
            rows = await self.transport.get_json(ROOMS_PATH)
        except BackendError as exc:
            logger.warning("Failed loading room list: %s", exc)
            return []
        if not isinstance(rows, list):
            logger.warning("Room list response was not a list; ignoring.")
            return []
        rooms: list[Room] = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            try:
                rooms.append(Room.from_dict(row))
            except ValidationError as exc:
                logger.warning("Invalid room row ignored: %s", exc)
        return rooms

    async def create_room(self, data: RoomCreate) -> Room | None:
        try:
            row = await self.transport.post_json(ROOMS_PATH, data.to_dict())
        except BackendError as exc:
            logger.warning("Failed creating room %r: %s", data.name, exc)
            return None
        if not isinstance(row, dict):
            logger.warning("Room creation for %r returned no room object.", data.name)
            return None
        try:
            return Room.from_dict(row)
        except ValidationError as exc:
            logger.warning("Room creation for %r returned invalid room: %s", data.name, exc)
            return None
