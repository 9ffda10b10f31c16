from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from pydantic import ValidationError

from lobby_chat.constants import MAX_SENDER_LENGTH
from lobby_chat.models import ChannelState, OutgoingMessage, Room, RoomCreate, RoomId
from lobby_chat.repositories.history_repository import HistoryRepository
from lobby_chat.repositories.room_repository import RoomRepository
from lobby_chat.services.channel_manager import ChannelManager
from lobby_chat.services.message_log import MessageLog
from lobby_chat.services.room_registry import RoomRegistry
from lobby_chat.services.transport_service import TransportSelector
from lobby_chat.state import SessionState

logger = logging.getLogger(__name__)


class SessionController:
    """Reacts to user intents and keeps the session consistent.

    States are ``NoRoomSelected`` (``state.current_room_id is None``) and
    ``RoomSelected(room_id)``. Entering a room clears the log, starts the
    history fetch and opens the room's channel, in that order; the previous
    channel is closed without waiting for it.
    """

    def __init__(
        self,
        state: SessionState,
        registry: RoomRegistry,
        message_log: MessageLog,
        channels: ChannelManager,
        transport: TransportSelector,
        room_repository: RoomRepository,
        history_repository: HistoryRepository,
    ):
        self.state = state
        self.registry = registry
        self.message_log = message_log
        self.channels = channels
        self.transport = transport
        self.rooms = room_repository
        self.history = history_repository
        self._tasks: set[asyncio.Task] = set()

    @property
    def current_room(self) -> Room | None:
        return self.registry.current_room

    async def start(self, initial_room: RoomId | None = None) -> None:
        await self.registry.load_rooms()
        if initial_room is None or self.state.current_room_id is not None:
            return
        room = self.registry.get(initial_room)
        if room is None:
            logger.info("Last used room %s is no longer listed.", initial_room)
            return
        self.select_room(room)

    def select_room(self, room: Room | RoomId) -> bool:
        room_id = room.id if isinstance(room, Room) else room
        target = self.registry.get(room_id)
        if target is None:
            logger.info("Ignoring selection of unknown room %s.", room_id)
            return False
        if self.state.is_current(target.id) and self.channels.channel_state in (
            ChannelState.CONNECTING,
            ChannelState.OPEN,
        ):
            return False
        self._enter_room(target)
        return True

    async def create_room(self, name: str, description: str | None = None) -> Room | None:
        try:
            data = RoomCreate(name=name, description=description)
        except ValidationError as exc:
            logger.info("Rejected room creation: %s", exc)
            return None
        created = await self.rooms.create_room(data)
        if created is None:
            return None
        room = self.registry.add_room(created, select=False)
        self._enter_room(room)
        return room

    def send_message(self, text: str) -> bool:
        content = text.strip()
        if not content:
            return False
        if self.state.current_room_id is None:
            logger.debug("Message ignored; no room selected.")
            return False
        self.transport.send(OutgoingMessage(sender=self.state.sender, content=content))
        return True

    def set_sender(self, name: str) -> str | None:
        cleaned = name.strip()[:MAX_SENDER_LENGTH]
        if not cleaned:
            return None
        self.state.sender = cleaned
        return cleaned

    async def wait_idle(self) -> None:
        pending = [task for task in self._tasks if not task.done()]
        while pending:
            await asyncio.gather(*pending, return_exceptions=True)
            pending = [task for task in self._tasks if not task.done()]
        await self.transport.drain()

    async def shutdown(self) -> None:
        self.state.running = False
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()
        await self.transport.aclose()
        await self.channels.aclose()

    def _enter_room(self, room: Room) -> None:
        previous = self.state.current_room_id
        self.registry.select_room(room)
        selection = self.state.selection
        self.message_log.reset(room.id)
        self._spawn(self._load_history(room.id, selection))
        self.channels.open(room.id)
        logger.info("Entered room %s (previous %s).", room.id, previous)

    async def _load_history(self, room_id: RoomId, selection: int) -> None:
        try:
            history = await self.history.fetch_messages(room_id)
        except Exception:
            logger.exception("History load for room %s failed.", room_id)
            history = None
        if not self.state.is_current(room_id, selection):
            logger.info(
                "Discarded history for room %s; selection moved to room %s.",
                room_id,
                self.state.current_room_id,
            )
            return
        self.message_log.replace(history or [])

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
