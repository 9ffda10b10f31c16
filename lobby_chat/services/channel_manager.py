from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import aiohttp
from pydantic import ValidationError

from lobby_chat.constants import (
    RECONNECT_BACKOFF_BASE_SECONDS,
    RECONNECT_BACKOFF_MAX_SECONDS,
    RECONNECT_MAX_ATTEMPTS,
    ROOM_CHANNEL_PATH,
)
from lobby_chat.event_helpers import emit_channel_state
from lobby_chat.models import ChannelState, Message, OutgoingMessage, RoomId, same_room
from lobby_chat.providers.base import BackendError, ChannelConnection, ChannelConnector
from lobby_chat.services.message_log import MessageLog
from lobby_chat.state import SessionState

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class ChannelUnavailableError(RuntimeError):
    """The live channel cannot carry a frame right now."""


def room_channel_path(room_id: RoomId) -> str:
    return ROOM_CHANNEL_PATH.format(room_id=quote(str(room_id), safe=""))


@dataclass
class ChannelMetrics:
    opened: int = 0
    delivered: int = 0
    stale_dropped: int = 0
    malformed_dropped: int = 0


class LiveChannel:
    """One live connection tagged with the room it was opened for.

    The supervising task reconnects with bounded exponential backoff while
    ``should_reconnect`` still approves the channel.
    """

    def __init__(
        self,
        bound_room_id: RoomId,
        connector: ChannelConnector,
        on_frame: Callable[["LiveChannel", Any], Any],
        on_state: Callable[["LiveChannel", ChannelState], None],
        should_reconnect: Callable[["LiveChannel"], bool],
        max_reconnect_attempts: int = RECONNECT_MAX_ATTEMPTS,
        backoff_base_seconds: float = RECONNECT_BACKOFF_BASE_SECONDS,
        backoff_max_seconds: float = RECONNECT_BACKOFF_MAX_SECONDS,
        sleep: Sleep = asyncio.sleep,
    ):
        self.bound_room_id = bound_room_id
        self.path = room_channel_path(bound_room_id)
        self.state = ChannelState.IDLE
        self.reconnect_attempts = 0
        self._connector = connector
        self._on_frame = on_frame
        self._on_state = on_state
        self._should_reconnect = should_reconnect
        self._max_reconnect_attempts = max(0, max_reconnect_attempts)
        self._backoff_base_seconds = backoff_base_seconds
        self._backoff_max_seconds = backoff_max_seconds
        self._sleep = sleep
        self._connection: ChannelConnection | None = None
        self._task: asyncio.Task | None = None
        self._close_requested = False

    def __repr__(self) -> str:
        return f"LiveChannel(room={self.bound_room_id!r}, state={self.state.value})"

    @property
    def accepting(self) -> bool:
        return not self._close_requested

    @property
    def is_open(self) -> bool:
        connection = self._connection
        return (
            self.state is ChannelState.OPEN
            and connection is not None
            and not connection.closed
        )

    @property
    def task(self) -> asyncio.Task | None:
        return self._task

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(
                self._run(), name=f"live-channel-{self.bound_room_id}"
            )
            self._task.add_done_callback(self._on_task_done)
        return self._task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._connection = None
        self._set_state(ChannelState.CLOSED)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Live channel for room %s stopped unexpectedly: %s",
                self.bound_room_id,
                exc,
                exc_info=exc,
            )

    def close(self) -> None:
        if self._close_requested:
            return
        self._close_requested = True
        if self._task is None or self._task.done():
            self._set_state(ChannelState.CLOSED)
            return
        self._set_state(ChannelState.CLOSING)
        self._task.cancel()

    async def aclose(self) -> None:
        self.close()
        task = self._task
        if task is None:
            return
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def send(self, data: str) -> None:
        connection = self._connection
        if connection is None or not self.is_open:
            raise ChannelUnavailableError(
                f"Live channel for room {self.bound_room_id} is {self.state.value}."
            )
        try:
            await connection.send_str(data)
        except (ConnectionError, aiohttp.ClientError) as exc:
            raise ChannelUnavailableError(
                f"Live channel for room {self.bound_room_id} dropped while sending: {exc}"
            ) from exc

    async def _run(self) -> None:
        backoff = self._backoff_base_seconds
        try:
            while not self._close_requested:
                self._set_state(ChannelState.CONNECTING)
                try:
                    async with self._connector.connect(self.path) as connection:
                        self._connection = connection
                        self.reconnect_attempts = 0
                        backoff = self._backoff_base_seconds
                        self._set_state(ChannelState.OPEN)
                        async for frame in connection:
                            if not self._handle_frame(frame):
                                break
                except (
                    BackendError,
                    aiohttp.ClientError,
                    ConnectionError,
                    asyncio.TimeoutError,
                ) as exc:
                    logger.warning(
                        "Live channel for room %s failed: %s", self.bound_room_id, exc
                    )
                finally:
                    self._connection = None

                if self._close_requested:
                    break
                self._set_state(ChannelState.CLOSED)
                if not self._should_reconnect(self):
                    break
                if self.reconnect_attempts >= self._max_reconnect_attempts:
                    if self._max_reconnect_attempts:
                        logger.warning(
                            "Live channel for room %s gave up after %s reconnect attempts.",
                            self.bound_room_id,
                            self.reconnect_attempts,
                        )
                    break
                self.reconnect_attempts += 1
                logger.info(
                    "Reconnecting live channel for room %s in %.1fs (attempt %s).",
                    self.bound_room_id,
                    backoff,
                    self.reconnect_attempts,
                )
                await self._sleep(backoff)
                backoff = min(self._backoff_max_seconds, backoff * 2)
                if not self._should_reconnect(self):
                    break
        finally:
            self._connection = None
            self._set_state(ChannelState.CLOSED)

    def _handle_frame(self, frame: Any) -> bool:
        frame_type = getattr(frame, "type", None)
        if frame_type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
            self._on_frame(self, frame.data)
            return True
        if frame_type == aiohttp.WSMsgType.ERROR:
            logger.warning(
                "Live channel for room %s reported an error: %s",
                self.bound_room_id,
                getattr(frame, "data", None),
            )
            return False
        if frame_type in (
            aiohttp.WSMsgType.CLOSE,
            aiohttp.WSMsgType.CLOSING,
            aiohttp.WSMsgType.CLOSED,
        ):
            return False
        return True

    def _set_state(self, state: ChannelState) -> None:
        if state is self.state:
            return
        self.state = state
        self._on_state(self, state)


class ChannelManager:
    """Owns the single live channel bound to the selected room.

    Inbound frames are admitted only from the active channel, and only while
    its bound room is still the session's current room. Replaced channels are
    closed without waiting; their late frames are discarded by that check.
    """

    def __init__(
        self,
        state: SessionState,
        message_log: MessageLog,
        connector: ChannelConnector,
        bus: Any = None,
        reconnect_max_attempts: int = RECONNECT_MAX_ATTEMPTS,
        backoff_base_seconds: float = RECONNECT_BACKOFF_BASE_SECONDS,
        backoff_max_seconds: float = RECONNECT_BACKOFF_MAX_SECONDS,
        sleep: Sleep = asyncio.sleep,
    ):
        self.state = state
        self.message_log = message_log
        self.connector = connector
        self.bus = bus
        self.reconnect_max_attempts = reconnect_max_attempts
        self.backoff_base_seconds = backoff_base_seconds
        self.backoff_max_seconds = backoff_max_seconds
        self._sleep = sleep
        self._channel: LiveChannel | None = None
        self._retired: set[LiveChannel] = set()

        self.metrics = ChannelMetrics()

    @property
    def channel(self) -> LiveChannel | None:
        return self._channel

    @property
    def channel_state(self) -> ChannelState | None:
        if self._channel is None:
            return None
        return self._channel.state

    @property
    def bound_room_id(self) -> RoomId | None:
        if self._channel is None:
            return None
        return self._channel.bound_room_id

    def open(self, room_id: RoomId) -> LiveChannel:
        previous = self._channel
        channel = LiveChannel(
            room_id,
            self.connector,
            on_frame=self.on_message,
            on_state=self._on_channel_state,
            should_reconnect=self._should_reconnect,
            max_reconnect_attempts=self.reconnect_max_attempts,
            backoff_base_seconds=self.backoff_base_seconds,
            backoff_max_seconds=self.backoff_max_seconds,
            sleep=self._sleep,
        )
        self._channel = channel
        if previous is not None:
            self._retire(previous)
        self.metrics.opened += 1
        channel.start()
        logger.debug("Opened %r.", channel)
        return channel

    def close(self) -> None:
        channel = self._channel
        if channel is None:
            return
        channel.close()

    async def aclose(self) -> None:
        channels = list(self._retired)
        if self._channel is not None:
            channels.append(self._channel)
        for channel in channels:
            await channel.aclose()
        self._retired.clear()

    def is_live(self, channel: LiveChannel) -> bool:
        return (
            channel is self._channel
            and channel.accepting
            and self.state.is_current(channel.bound_room_id)
        )

    def is_open_for(self, room_id: RoomId | None) -> bool:
        channel = self._channel
        if channel is None or not same_room(channel.bound_room_id, room_id):
            return False
        return self.is_live(channel) and channel.is_open

    async def send(self, room_id: RoomId, message: OutgoingMessage) -> None:
        channel = self._channel
        if channel is None or not same_room(channel.bound_room_id, room_id):
            raise ChannelUnavailableError(f"No live channel bound to room {room_id}.")
        await channel.send(json.dumps(message.to_dict()))

    def on_message(self, channel: LiveChannel, raw: Any) -> bool:
        message = self._parse(channel, raw)
        if message is None:
            return False
        if not self.is_live(channel):
            self.metrics.stale_dropped += 1
            logger.debug(
                "Discarded event from stale channel for room %s (current room %s).",
                channel.bound_room_id,
                self.state.current_room_id,
            )
            return False
        admitted = self.message_log.append(message)
        if admitted:
            self.metrics.delivered += 1
        return admitted

    def _parse(self, channel: LiveChannel, raw: Any) -> Message | None:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            self.metrics.malformed_dropped += 1
            logger.warning(
                "Malformed frame on channel for room %s dropped.", channel.bound_room_id
            )
            return None
        if not isinstance(data, dict):
            self.metrics.malformed_dropped += 1
            logger.warning(
                "Non-object frame on channel for room %s dropped.", channel.bound_room_id
            )
            return None
        try:
            return Message.from_dict(data)
        except ValidationError as exc:
            self.metrics.malformed_dropped += 1
            logger.warning(
                "Invalid message on channel for room %s dropped: %s",
                channel.bound_room_id,
                exc,
            )
            return None

    def _should_reconnect(self, channel: LiveChannel) -> bool:
        return self.state.running and self.is_live(channel)

    def _retire(self, channel: LiveChannel) -> None:
        channel.close()
        task = channel.task
        if task is None or task.done():
            return
        self._retired.add(channel)
        task.add_done_callback(lambda _task: self._retired.discard(channel))

    def _on_channel_state(self, channel: LiveChannel, new_state: ChannelState) -> None:
        logger.debug("Channel for room %s is %s.", channel.bound_room_id, new_state.value)
        if channel is not self._channel:
            return
        emit_channel_state(self.bus, channel.bound_room_id, new_state)
