import re
from typing import TYPE_CHECKING

from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.lexers import Lexer

if TYPE_CHECKING:
    from chat import ChatApp

COMMAND_HINTS = {
    "/rooms": "List rooms",
    "/join": "Switch to a room",
    "/create": "Create a room: /create <name> [| description]",
    "/room": "Show the current room",
    "/name": "Set your display name",
    "/help": "Show commands",
    "/quit": "Leave the chat",
    "/exit": "Leave the chat",
}

MESSAGE_LINE = re.compile(r"^([^:]{1,64}): (.*)$")


def sanitize_display_text(value: object, max_len: int) -> str:
    text = str(value).replace("\r", " ").replace("\n", " ").replace("\t", " ")
    return text[:max_len]


class SlashCompleter(Completer):
    def __init__(self, app_ref: "ChatApp"):
        self.app_ref = app_ref

    def _yield_candidates(
        self, prefix: str, options: list[str], metas: dict[str, str] | None = None
    ):
        metas = metas or {}
        lowered = prefix.lower()
        for value in options:
            if value.lower().startswith(lowered):
                yield Completion(
                    value,
                    start_position=-len(prefix),
                    display=value,
                    display_meta=metas.get(value, ""),
                )

    def get_completions(self, document, complete_event):
        text = document.text_before_cursor
        if text.startswith("/join "):
            prefix = text[6:]
            names = [room.name for room in self.app_ref.registry.list_rooms()]
            yield from self._yield_candidates(prefix, names)
            return

        if text.startswith("/") and " " not in text:
            yield from self._yield_candidates(
                text, sorted(COMMAND_HINTS), COMMAND_HINTS
            )


class ChatLexer(Lexer):
    def __init__(self, app_ref: "ChatApp"):
        self.app_ref = app_ref

    def lex_document(self, document):
        lines = document.lines

        def get_line(lineno: int):
            if lineno >= len(lines):
                return []
            line_text = lines[lineno]
            if line_text.startswith("[System] "):
                return [("class:system", line_text)]
            match = MESSAGE_LINE.match(line_text)
            if match is None:
                return [("", line_text)]
            sender, body = match.groups()
            style = "class:sender"
            if sender == self.app_ref.state.sender:
                style = "class:sender bold underline"
            return [(style, sender), ("", ": "), ("", body)]

        return get_line
