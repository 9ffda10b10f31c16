from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from chat import ChatApp


class CommandRegistry:
    def __init__(self, app: "ChatApp"):
        self.app = app

    def build(self) -> dict[str, Any]:
        return {
            "/rooms": self.command_rooms,
            "/join": self.command_join,
            "/create": self.command_create,
            "/room": self.command_room,
            "/name": self.command_name,
            "/help": self.command_help,
            "/exit": self.command_exit,
            "/quit": self.command_exit,
        }

    def command_rooms(self, _args: str) -> None:
        rooms = self.app.registry.list_rooms()
        if not rooms:
            self.app.append_system_message("No rooms yet. Create one with /create <name>.")
            return
        names = ", ".join(f"#{room.name}" for room in rooms)
        self.app.append_system_message(f"Rooms: {names}")

    def command_join(self, args: str) -> None:
        query = args.strip()
        if not query:
            self.app.append_system_message("Usage: /join <room>")
            return
        room = self.app.registry.find(query)
        if room is None:
            self.app.append_system_message(f"Unknown room '{query}'.")
            return
        self.app.controller.select_room(room)

    def command_create(self, args: str) -> None:
        name, _, description = args.partition("|")
        if not name.strip():
            self.app.append_system_message("Usage: /create <name> [| description]")
            return
        self.app.spawn(
            self.app.controller.create_room(name.strip(), description.strip() or None)
        )

    def command_room(self, _args: str) -> None:
        room = self.app.controller.current_room
        if room is None:
            self.app.append_system_message("Pick or create a room to start chatting.")
            return
        suffix = f" ({room.description})" if room.description else ""
        self.app.append_system_message(f"Current room: #{room.name}{suffix}")

    def command_name(self, args: str) -> None:
        name = self.app.controller.set_sender(args)
        if name is None:
            self.app.append_system_message(f"Your name is {self.app.state.sender}.")
            return
        self.app.save_config()
        self.app.update_status()
        self.app.append_system_message(f"You are now {name}.")

    def command_help(self, _args: str) -> None:
        self.app.append_system_message(
            "Commands: /rooms, /join <room>, /create <name> [| description], "
            "/room, /name <name>, /quit. Anything else is sent to the room."
        )

    def command_exit(self, _args: str) -> None:
        self.app.view.exit()
