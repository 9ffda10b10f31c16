from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass
from typing import Any

from lobby_chat.models import OutgoingMessage, RoomId
from lobby_chat.repositories.history_repository import HistoryRepository
from lobby_chat.services.channel_manager import ChannelManager, ChannelUnavailableError
from lobby_chat.state import SessionState

logger = logging.getLogger(__name__)

ROUTE_LIVE = "live"
ROUTE_DURABLE = "durable"
ROUTE_FAILED = "failed"


@dataclass
class TransportMetrics:
    live_sent: int = 0
    durable_sent: int = 0
    fallbacks: int = 0
    failed: int = 0


class TransportSelector:
    """Routes outgoing messages over the live channel or the durable write.

    Fire-and-forget: ``send`` picks the route from channel health at call
    time and never raises. Live sends are not echoed into the log; the
    channel's broadcast delivers them back.
    """

    def __init__(
        self,
        state: SessionState,
        channels: ChannelManager,
        history_repository: HistoryRepository,
    ):
        self.state = state
        self.channels = channels
        self.history = history_repository
        self._tasks: set[asyncio.Task] = set()

        self.metrics = TransportMetrics()

    def send(self, message: OutgoingMessage) -> None:
        room_id = self.state.current_room_id
        if room_id is None:
            logger.debug("No room selected; outgoing message dropped.")
            return
        use_live = self.channels.is_open_for(room_id)
        self._spawn(self.deliver(room_id, message, use_live=use_live))

    async def deliver(
        self,
        room_id: RoomId,
        message: OutgoingMessage,
        *,
        use_live: bool | None = None,
    ) -> str:
        if use_live is None:
            use_live = self.channels.is_open_for(room_id)
        if use_live:
            try:
                await self.channels.send(room_id, message)
                self.metrics.live_sent += 1
                return ROUTE_LIVE
            except ChannelUnavailableError as exc:
                self.metrics.fallbacks += 1
                logger.warning(
                    "Live send to room %s failed; using durable write: %s",
                    room_id,
                    exc,
                )
        if await self.history.post_message(room_id, message):
            self.metrics.durable_sent += 1
            return ROUTE_DURABLE
        self.metrics.failed += 1
        return ROUTE_FAILED

    async def drain(self) -> None:
        pending = [task for task in self._tasks if not task.done()]
        while pending:
            await asyncio.gather(*pending, return_exceptions=True)
            pending = [task for task in self._tasks if not task.done()]

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()

    def _spawn(self, coro: Coroutine[Any, Any, str]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
