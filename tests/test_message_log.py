import logging

from lobby_chat.event_bus import EventBus
from lobby_chat.events import MessageLogChangedEvent
from lobby_chat.models import Message
from lobby_chat.services.message_log import MessageLog


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def msg(msg_id, sender="a", content="hi", room_id=None) -> Message:
    return Message(id=msg_id, sender=sender, content=content, room_id=room_id)


def test_live_messages_during_backfill_land_after_history() -> None:
    log = MessageLog()
    log.reset(1)

    assert log.backfilling is True
    assert log.append(msg(3, content="live")) is True
    assert log.view() == ()

    log.replace([msg(1), msg(2, content="yo")])

    assert log.backfilling is False
    assert [m.id for m in log.view()] == [1, 2, 3]


def test_replace_drops_live_duplicates_of_history() -> None:
    log = MessageLog()
    log.reset(1)
    log.append(msg(2, content="yo"))

    log.replace([msg(1), msg(2, content="yo")])

    assert [m.id for m in log.view()] == [1, 2]


def test_duplicate_ids_are_ignored_after_backfill() -> None:
    log = MessageLog()
    log.reset("room-a")
    log.replace([msg("x1")])

    assert log.append(msg("x1")) is False
    assert log.append(msg("x2")) is True
    assert len(log) == 2


def test_anonymous_duplicates_collapse_within_window_only() -> None:
    clock = FakeClock()
    log = MessageLog(clock=clock, dedup_window_seconds=2.0)
    log.reset(1)
    log.replace([])

    assert log.append(msg(None, content="ping")) is True
    clock.now += 1.0
    assert log.append(msg(None, content="ping")) is False
    clock.now += 5.0
    assert log.append(msg(None, content="ping")) is True
    assert log.append(msg(None, sender="b", content="ping")) is True
    assert len(log) == 3


def test_history_keeps_repeated_anonymous_rows() -> None:
    log = MessageLog(clock=FakeClock())
    log.reset(1)
    log.replace([msg(None, content="ok"), msg(None, content="ok")])

    assert len(log) == 2


def test_anonymous_history_row_does_not_hide_new_live_message() -> None:
    log = MessageLog(clock=FakeClock())
    log.reset(1)
    log.replace([msg(None, content="hi")])

    assert log.append(msg(None, content="hi")) is True
    assert [m.content for m in log.view()] == ["hi", "hi"]


def test_message_for_other_room_is_rejected(caplog) -> None:
    log = MessageLog()
    log.reset(1)
    log.replace([])

    with caplog.at_level(logging.WARNING):
        assert log.append(msg(9, room_id=2)) is False

    assert log.view() == ()
    assert "rejected by log bound to room 1" in caplog.text


def test_room_ids_compare_across_int_and_str() -> None:
    log = MessageLog()
    log.reset(7)
    log.replace([msg(1, room_id="7")])

    assert log.append(msg(2, room_id=7)) is True
    assert len(log) == 2


def test_unbound_log_accepts_nothing() -> None:
    log = MessageLog()

    assert log.append(msg(1)) is False
    assert log.view() == ()


def test_reset_clears_messages_and_seen_ids() -> None:
    log = MessageLog()
    log.reset(1)
    log.replace([msg(1)])

    log.reset(2)
    log.replace([msg(1)])

    assert log.room_id == 2
    assert [m.id for m in log.view()] == [1]


def test_every_mutation_publishes_log_changed() -> None:
    bus = EventBus()
    sizes: list[int] = []
    bus.subscribe(MessageLogChangedEvent, lambda event: sizes.append(event.size))
    log = MessageLog(bus=bus)

    log.reset(1)
    log.append(msg(1))
    log.replace([msg(2)])
    log.append(msg(3))
    log.append(msg(3))

    assert sizes == [0, 2, 3]
