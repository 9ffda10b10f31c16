import asyncio
import json
import logging

import pytest
from fakes import FakeBackend, settle

from lobby_chat.event_bus import EventBus
from lobby_chat.events import ChannelStateChangedEvent
from lobby_chat.models import ChannelState, OutgoingMessage
from lobby_chat.services.channel_manager import (
    ChannelManager,
    ChannelUnavailableError,
    room_channel_path,
)
from lobby_chat.services.message_log import MessageLog
from lobby_chat.state import SessionState


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_manager(backend, *, attempts=0, sleep=None, bus=None):
    state = SessionState()
    log = MessageLog()
    manager = ChannelManager(
        state,
        log,
        backend,
        bus=bus,
        reconnect_max_attempts=attempts,
        sleep=sleep or RecordingSleep(),
    )
    return manager, state, log


def enter(state: SessionState, log: MessageLog, room_id) -> None:
    state.begin_selection(room_id)
    log.reset(room_id)
    log.replace([])


def test_room_channel_path_quotes_ids() -> None:
    assert room_channel_path(5) == "/ws/rooms/5"
    assert room_channel_path("a b/c") == "/ws/rooms/a%20b%2Fc"


def test_frames_from_active_channel_reach_log() -> None:
    async def scenario():
        backend = FakeBackend()
        manager, state, log = make_manager(backend)
        enter(state, log, 1)
        manager.open(1)
        await settle()
        backend.connections[0].deliver({"id": 2, "sender": "b", "content": "yo"})
        await settle()
        await manager.aclose()
        return manager, log

    manager, log = asyncio.run(scenario())

    assert [m.content for m in log.view()] == ["yo"]
    assert manager.metrics.delivered == 1


def test_stale_channel_events_are_discarded() -> None:
    async def scenario():
        backend = FakeBackend()
        manager, state, log = make_manager(backend)
        enter(state, log, "A")
        old = manager.open("A")
        await settle()

        enter(state, log, "B")
        manager.open("B")
        await settle()

        late = json.dumps({"id": 9, "sender": "x", "content": "late"})
        admitted = manager.on_message(old, late)
        await manager.aclose()
        return admitted, manager, log, old

    admitted, manager, log, old = asyncio.run(scenario())

    assert admitted is False
    assert log.view() == ()
    assert manager.metrics.stale_dropped == 1
    assert old.state is ChannelState.CLOSED


def test_frame_is_discarded_when_selection_moves_without_new_channel() -> None:
    async def scenario():
        backend = FakeBackend()
        manager, state, log = make_manager(backend)
        enter(state, log, 1)
        manager.open(1)
        await settle()
        state.begin_selection(2)
        backend.connections[0].deliver({"id": 1, "sender": "a", "content": "hi"})
        await settle()
        await manager.aclose()
        return manager

    manager = asyncio.run(scenario())

    assert manager.metrics.stale_dropped == 1


def test_malformed_frames_are_dropped(caplog) -> None:
    async def scenario():
        backend = FakeBackend()
        manager, state, log = make_manager(backend)
        enter(state, log, 1)
        manager.open(1)
        await settle()
        conn = backend.connections[0]
        conn.deliver("{not json")
        conn.deliver("[1, 2]")
        conn.deliver({"id": 3, "content": "no sender"})
        conn.deliver({"id": 4, "sender": "a", "content": "fine"})
        await settle()
        await manager.aclose()
        return manager, log

    with caplog.at_level(logging.WARNING):
        manager, log = asyncio.run(scenario())

    assert [m.id for m in log.view()] == [4]
    assert manager.metrics.malformed_dropped == 3
    assert "Malformed frame on channel for room 1 dropped" in caplog.text


def test_state_changes_published_for_active_channel_only() -> None:
    async def scenario():
        bus = EventBus()
        seen: list[tuple] = []
        bus.subscribe(
            ChannelStateChangedEvent,
            lambda event: seen.append((event.room_id, event.state)),
        )
        backend = FakeBackend()
        manager, state, log = make_manager(backend, bus=bus)
        enter(state, log, 1)
        manager.open(1)
        await settle()
        enter(state, log, 2)
        manager.open(2)
        await settle()
        await manager.aclose()
        return seen

    seen = asyncio.run(scenario())

    assert (1, ChannelState.OPEN) in seen
    assert (1, ChannelState.CLOSING) not in seen
    assert (1, ChannelState.CLOSED) not in seen
    assert (2, ChannelState.OPEN) in seen


def test_reconnects_with_backoff_while_room_is_current() -> None:
    async def run():
        backend = FakeBackend()
        backend.connect_failures = 3
        sleep = RecordingSleep()
        manager, state, log = make_manager(backend, attempts=5, sleep=sleep)
        enter(state, log, 1)
        channel = manager.open(1)
        await settle(50)
        snapshot = (channel.state, channel.reconnect_attempts)
        await manager.aclose()
        return snapshot, sleep, backend

    snapshot, sleep, backend = asyncio.run(run())

    assert snapshot == (ChannelState.OPEN, 0)
    assert sleep.delays == [0.5, 1.0, 2.0]
    assert len(backend.connections) == 1


def test_backoff_is_capped() -> None:
    async def run():
        backend = FakeBackend()
        backend.connect_failures = 10
        sleep = RecordingSleep()
        manager, state, log = make_manager(backend, attempts=6, sleep=sleep)
        enter(state, log, 1)
        channel = manager.open(1)
        await settle(80)
        await manager.aclose()
        return channel, sleep

    channel, sleep = asyncio.run(run())

    assert sleep.delays == [0.5, 1.0, 2.0, 4.0, 5.0, 5.0]
    assert channel.state is ChannelState.CLOSED


def test_zero_attempts_means_no_reconnect() -> None:
    async def run():
        backend = FakeBackend()
        sleep = RecordingSleep()
        manager, state, log = make_manager(backend, attempts=0, sleep=sleep)
        enter(state, log, 1)
        channel = manager.open(1)
        await settle()
        backend.connections[0].drop()
        await settle()
        return channel, sleep, backend

    channel, sleep, backend = asyncio.run(run())

    assert channel.state is ChannelState.CLOSED
    assert sleep.delays == []
    assert len(backend.connections) == 1


def test_reconnect_stops_when_room_is_no_longer_current() -> None:
    async def run():
        backend = FakeBackend()
        manager, state, log = make_manager(backend, attempts=5)

        async def switch_then_sleep(_delay: float) -> None:
            state.begin_selection(2)

        manager._sleep = switch_then_sleep
        enter(state, log, 1)
        channel = manager.open(1)
        await settle()
        backend.connections[0].drop()
        await settle()
        return channel, backend

    channel, backend = asyncio.run(run())

    assert channel.state is ChannelState.CLOSED
    assert len(backend.connections) == 1


def test_send_requires_open_channel_for_room() -> None:
    async def run():
        backend = FakeBackend()
        manager, state, log = make_manager(backend)
        outgoing = OutgoingMessage(sender="me", content="hello")
        with pytest.raises(ChannelUnavailableError):
            await manager.send(1, outgoing)
        enter(state, log, 1)
        manager.open(1)
        await settle()
        assert manager.is_open_for(1) is True
        assert manager.is_open_for(2) is False
        await manager.send(1, outgoing)
        backend.connections[0].closed = True
        with pytest.raises(ChannelUnavailableError):
            await manager.send(1, outgoing)
        await manager.aclose()
        return backend

    backend = asyncio.run(run())

    assert [json.loads(data) for data in backend.connections[0].sent] == [
        {"sender": "me", "content": "hello"}
    ]


def test_close_is_idempotent() -> None:
    async def run():
        backend = FakeBackend()
        manager, state, log = make_manager(backend)
        enter(state, log, 1)
        channel = manager.open(1)
        await settle()
        manager.close()
        manager.close()
        await manager.aclose()
        return channel

    channel = asyncio.run(run())

    assert channel.state is ChannelState.CLOSED
    assert channel.accepting is False
