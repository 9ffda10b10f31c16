from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

from pydantic import ValidationError

from lobby_chat.constants import ROOM_MESSAGES_PATH
from lobby_chat.models import Message, OutgoingMessage, RoomId
from lobby_chat.providers.base import BackendError, JsonTransport

logger = logging.getLogger(__name__)


def room_messages_path(room_id: RoomId) -> str:
    return ROOM_MESSAGES_PATH.format(room_id=quote(str(room_id), safe=""))


def parse_message_rows(rows: Any, context: str) -> list[Message]:
    if not isinstance(rows, list):
        logger.warning("Expected a message list from %s, got %s.", context, type(rows).__name__)
        return []
    messages: list[Message] = []
    for row in rows:
        if not isinstance(row, dict):
            logger.warning("Non-object message row from %s ignored.", context)
            continue
        try:
            messages.append(Message.from_dict(row))
        except ValidationError as exc:
            logger.warning("Invalid message row from %s ignored: %s", context, exc)
    return messages


class HistoryRepository:
    """Read and durable-write paths of the History Service."""

    def __init__(self, transport: JsonTransport):
        self.transport = transport

    async def fetch_messages(self, room_id: RoomId) -> list[Message] | None:
        path = room_messages_path(room_id)
        try:
            rows = await self.transport.get_json(path)
        except BackendError as exc:
            logger.warning("Failed loading history for room %s: %s", room_id, exc)
            return None
        return parse_message_rows(rows, path)

    async def post_message(self, room_id: RoomId, message: OutgoingMessage) -> bool:
        try:
            await self.transport.post_json(room_messages_path(room_id), message.to_dict())
        except BackendError as exc:
            logger.warning("Durable send to room %s failed: %s", room_id, exc)
            return False
        return True
