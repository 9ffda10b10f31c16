import argparse
import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from lobby_chat.commands.registry import CommandRegistry
from lobby_chat.constants import (
    CHANNEL_STATUS_STYLES,
    CONFIG_FILE,
    MAX_RENDERED_MESSAGES,
)
from lobby_chat.container import ChatAppContainer
from lobby_chat.event_helpers import emit_system_message
from lobby_chat.events import (
    ChannelStateChangedEvent,
    MessageLogChangedEvent,
    RoomsChangedEvent,
    SystemMessageEvent,
)
from lobby_chat.models import ClientSettings, same_room
from lobby_chat.repositories import ConfigRepository
from lobby_chat.ui import sanitize_display_text

logger = logging.getLogger(__name__)

MAX_NOTICES = 20


class ChatApp:
    def __init__(
        self,
        settings: ClientSettings,
        config_repository: ConfigRepository | None = None,
    ):
        self.settings = settings
        self.config_repository = config_repository
        self.container = ChatAppContainer(app=self, settings=settings)

        self.bus = self.container.event_bus()
        self.state = self.container.session_state()
        self.registry = self.container.room_registry()
        self.message_log = self.container.message_log()
        self.channels = self.container.channel_manager()
        self.controller = self.container.controller()

        self.notices: list[str] = []
        self.tasks: set[asyncio.Task] = set()
        self.command_handlers = self.build_command_handlers()
        self.view = self.container.view()
        self.subscribe_events()

    def subscribe_events(self) -> None:
        self.bus.subscribe(MessageLogChangedEvent, self.on_message_log_changed)
        self.bus.subscribe(RoomsChangedEvent, self.on_rooms_changed)
        self.bus.subscribe(ChannelStateChangedEvent, self.on_channel_state_changed)
        self.bus.subscribe(SystemMessageEvent, self.on_system_message)

    def build_command_handlers(self) -> dict[str, Any]:
        return CommandRegistry(self).build()

    def handle_input(self, text: str) -> None:
        text = text.strip()
        if not text:
            return

        if text.startswith("/"):
            parts = text.split(" ", 1)
            command = parts[0].lower()
            args = parts[1] if len(parts) > 1 else ""
            handler = self.command_handlers.get(command)
            if handler is None:
                self.append_system_message(f"Unknown command: {command}")
                self.view.clear_input()
                return
            handler(args)
            self.view.clear_input()
            return

        if not self.controller.send_message(text):
            self.append_system_message("Pick or create a room to start chatting.")
            return
        self.view.clear_input()

    def append_system_message(self, text: str) -> None:
        if not emit_system_message(self.bus, text, source="ui"):
            self.on_system_message(SystemMessageEvent(source="ui", text=text))

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)
        return task

    def save_config(self) -> None:
        self.settings = self.settings.model_copy(
            update={
                "username": self.state.sender,
                "room": self.state.current_room_id,
            }
        )
        if self.config_repository is not None:
            self.config_repository.save_settings(self.settings)

    def on_message_log_changed(self, _event: MessageLogChangedEvent) -> None:
        self.refresh_output()

    def on_rooms_changed(self, event: RoomsChangedEvent) -> None:
        self.update_sidebar()
        self.update_status()
        if event.current_room_id is not None and not same_room(
            event.current_room_id, self.settings.room
        ):
            self.save_config()

    def on_channel_state_changed(self, event: ChannelStateChangedEvent) -> None:
        if not same_room(event.room_id, self.state.current_room_id):
            return
        self.update_status()

    def on_system_message(self, event: SystemMessageEvent) -> None:
        self.notices.append(f"[System] {sanitize_display_text(event.text, 400)}")
        if len(self.notices) > MAX_NOTICES:
            self.notices = self.notices[-MAX_NOTICES:]
        self.refresh_output()

    def render_lines(self) -> list[str]:
        lines = [
            f"{sanitize_display_text(message.sender, 64)}: "
            f"{sanitize_display_text(message.content, 4000)}"
            for message in self.message_log.view()
        ]
        if len(lines) > MAX_RENDERED_MESSAGES:
            lines = lines[-MAX_RENDERED_MESSAGES:]
        return lines + self.notices

    def refresh_output(self) -> None:
        self.view.show_messages("\n".join(self.render_lines()))

    def update_sidebar(self) -> None:
        fragments: list[tuple[str, str]] = []
        rooms = self.registry.list_rooms()
        if not rooms:
            fragments.append(("fg:#888888", "No rooms yet.\nUse /create <name>."))
        for idx, room in enumerate(rooms):
            name = sanitize_display_text(room.name, 28)
            if self.state.is_current(room.id):
                fragments.append(("bold", f"> #{name}"))
            else:
                fragments.append(("", f"  #{name}"))
            if room.description:
                description = sanitize_display_text(room.description, 30)
                fragments.append(("fg:#888888", f"\n    {description}"))
            if idx < len(rooms) - 1:
                fragments.append(("", "\n"))
        self.view.show_rooms(fragments)

    def update_status(self) -> None:
        fragments: list[tuple[str, str]] = [("", f" {self.state.sender} | ")]
        room = self.controller.current_room
        if room is None:
            fragments.append(("", "no room selected"))
        else:
            channel_state = self.channels.channel_state
            state = channel_state.value if channel_state is not None else "idle"
            fragments.append(("", f"#{sanitize_display_text(room.name, 32)} | "))
            fragments.append((CHANNEL_STATUS_STYLES.get(state, ""), state))
        self.view.show_status(fragments)

    async def run(self) -> None:
        self.update_sidebar()
        self.update_status()
        try:
            await self.controller.start(initial_room=self.settings.room)
            if self.controller.current_room is None:
                self.append_system_message(
                    "Welcome! Use /rooms to list rooms and /join <room> to enter one."
                )
            await self.view.run_async()
        finally:
            for task in list(self.tasks):
                task.cancel()
            await asyncio.gather(*list(self.tasks), return_exceptions=True)
            await self.controller.shutdown()
            await self.container.backend().close()
            self.bus.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lobby-chat", description="Room chat client")
    parser.add_argument("--backend-url", help="Base URL of the chat backend")
    parser.add_argument("--origin", help="Origin used when no backend URL is set")
    parser.add_argument("--name", dest="username", help="Display name for messages")
    parser.add_argument("--config", default=CONFIG_FILE, help="Path to the config file")
    parser.add_argument("--log-file", help="Write logs to this file")
    parser.add_argument("--verbose", action="store_true", help="Log debug output")
    return parser


def configure_logging(log_file: str | None, verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    if log_file:
        logging.basicConfig(
            filename=log_file,
            level=level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        return
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_file, args.verbose)
    config_repository = ConfigRepository(args.config)
    settings = config_repository.load_settings(
        {
            "backend_url": args.backend_url,
            "origin": args.origin,
            "username": args.username,
        }
    )
    logger.info("Connecting to %s", settings.http_base())
    try:
        asyncio.run(ChatApp(settings, config_repository).run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
