from __future__ import annotations

import logging
from typing import Any

from lobby_chat.events import (
    ChannelStateChangedEvent,
    MessageLogChangedEvent,
    RoomsChangedEvent,
    SystemMessageEvent,
)
from lobby_chat.models import ChannelState, RoomId

logger = logging.getLogger(__name__)


def _publish(bus: Any, event: Any, *, critical: bool = False) -> bool:
    if bus is None:
        return False
    try:
        return bool(bus.publish(event, critical=critical))
    except Exception:
        logger.exception(
            "Failed publishing event topic=%s", getattr(event, "topic", "unknown")
        )
        return False


def emit_system_message(bus: Any, text: str, source: str = "engine") -> bool:
    if _publish(
        bus,
        SystemMessageEvent(source=source, text=text, critical=True),
        critical=True,
    ):
        return True
    if bus is not None:
        bus.increment_fallback_executed()
    logger.info("System message (unpublished): %s", text)
    return False


def emit_rooms_changed(
    bus: Any, current_room_id: RoomId | None, source: str = "room_registry"
) -> bool:
    return _publish(
        bus, RoomsChangedEvent(source=source, current_room_id=current_room_id)
    )


def emit_message_log_changed(
    bus: Any, room_id: RoomId | None, size: int, source: str = "message_log"
) -> bool:
    return _publish(
        bus, MessageLogChangedEvent(source=source, room_id=room_id, size=size)
    )


def emit_channel_state(
    bus: Any, room_id: RoomId, state: ChannelState, source: str = "channel_manager"
) -> bool:
    return _publish(
        bus, ChannelStateChangedEvent(source=source, room_id=room_id, state=state)
    )
