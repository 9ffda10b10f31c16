from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from typing import Any

from lobby_chat.constants import DEDUP_WINDOW_SECONDS
from lobby_chat.event_helpers import emit_message_log_changed
from lobby_chat.models import Message, RoomId, same_room

logger = logging.getLogger(__name__)


class MessageLog:
    """Ordered message log for the selected room.

    Arrival order is display order. After ``reset`` the log is in backfill
    mode: live messages are held back until ``replace`` installs the room's
    history, then appended behind it. Repeated ids are ignored; messages
    without an id are collapsed when the same sender and content arrive
    within ``dedup_window_seconds``.
    """

    def __init__(
        self,
        bus: Any = None,
        clock: Callable[[], float] = time.monotonic,
        dedup_window_seconds: float = DEDUP_WINDOW_SECONDS,
    ):
        self.bus = bus
        self._clock = clock
        self._dedup_window_seconds = dedup_window_seconds
        self._room_id: RoomId | None = None
        self._messages: list[Message] = []
        self._seen_ids: set[str] = set()
        self._recent_anonymous: dict[tuple[str, str], float] = {}
        self._pending: list[Message] | None = None

    @property
    def room_id(self) -> RoomId | None:
        return self._room_id

    @property
    def backfilling(self) -> bool:
        return self._pending is not None

    def __len__(self) -> int:
        return len(self._messages)

    def view(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def reset(self, room_id: RoomId | None) -> None:
        self._room_id = room_id
        self._clear()
        self._pending = [] if room_id is not None else None
        self._notify()

    def replace(self, messages: Iterable[Message]) -> None:
        pending = self._pending or []
        self._pending = None
        self._clear()
        for message in messages:
            self._admit(message, live=False)
        for message in pending:
            self._admit(message, live=True)
        self._notify()

    def append(self, message: Message) -> bool:
        if not self._belongs(message):
            logger.warning(
                "Message for room %s rejected by log bound to room %s.",
                message.room_id,
                self._room_id,
            )
            return False
        if self._pending is not None:
            self._pending.append(message)
            return True
        if not self._admit(message, live=True):
            return False
        self._notify()
        return True

    def _clear(self) -> None:
        self._messages = []
        self._seen_ids = set()
        self._recent_anonymous = {}

    def _belongs(self, message: Message) -> bool:
        if self._room_id is None:
            return False
        return message.room_id is None or same_room(message.room_id, self._room_id)

    def _admit(self, message: Message, *, live: bool) -> bool:
        if not self._belongs(message):
            return False
        if message.id is not None:
            key = str(message.id)
            if key in self._seen_ids:
                logger.debug("Duplicate message id %s ignored.", key)
                return False
            self._seen_ids.add(key)
        elif live:
            anon_key = (message.sender, message.content)
            now = self._clock()
            last_seen = self._recent_anonymous.get(anon_key)
            self._recent_anonymous[anon_key] = now
            if (
                last_seen is not None
                and now - last_seen < self._dedup_window_seconds
            ):
                logger.debug("Duplicate anonymous message from %s ignored.", message.sender)
                return False
        self._messages.append(message)
        return True

    def _notify(self) -> None:
        emit_message_log_changed(self.bus, self._room_id, len(self._messages))
