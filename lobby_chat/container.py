from __future__ import annotations

from dependency_injector import containers, providers  # type: ignore[import-not-found]

from lobby_chat.controller import SessionController
from lobby_chat.event_bus import EventBus
from lobby_chat.models import ClientSettings
from lobby_chat.providers import AiohttpBackend
from lobby_chat.repositories import HistoryRepository, RoomRepository
from lobby_chat.services import (
    ChannelManager,
    MessageLog,
    RoomRegistry,
    TransportSelector,
)
from lobby_chat.state import SessionState
from lobby_chat.view import PromptToolkitView


class ChatAppContainer(containers.DeclarativeContainer):
    app = providers.Dependency()
    settings = providers.Dependency(instance_of=ClientSettings)

    backend = providers.Singleton(AiohttpBackend, settings=settings)
    event_bus = providers.Singleton(EventBus)
    session_state = providers.Singleton(
        SessionState, sender=settings.provided.username
    )

    room_repository = providers.Singleton(RoomRepository, transport=backend)
    history_repository = providers.Singleton(HistoryRepository, transport=backend)

    message_log = providers.Singleton(MessageLog, bus=event_bus)
    room_registry = providers.Singleton(
        RoomRegistry,
        state=session_state,
        repository=room_repository,
        bus=event_bus,
    )
    channel_manager = providers.Singleton(
        ChannelManager,
        state=session_state,
        message_log=message_log,
        connector=backend,
        bus=event_bus,
        reconnect_max_attempts=settings.provided.reconnect_max_attempts,
    )
    transport = providers.Singleton(
        TransportSelector,
        state=session_state,
        channels=channel_manager,
        history_repository=history_repository,
    )
    controller = providers.Singleton(
        SessionController,
        state=session_state,
        registry=room_registry,
        message_log=message_log,
        channels=channel_manager,
        transport=transport,
        room_repository=room_repository,
        history_repository=history_repository,
    )

    view = providers.Singleton(
        PromptToolkitView,
        app=app,
        on_submit=providers.Callable(lambda app: app.handle_input, app),
    )
