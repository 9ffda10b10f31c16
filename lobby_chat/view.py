from __future__ import annotations

from collections.abc import Callable
from typing import Any, TYPE_CHECKING

from prompt_toolkit.application import Application
from prompt_toolkit.formatted_text import StyleAndTextTuples
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.layout.containers import (
    Float,
    FloatContainer,
    HSplit,
    VSplit,
    Window,
)
from prompt_toolkit.layout.controls import FormattedTextControl
from prompt_toolkit.layout.layout import Layout
from prompt_toolkit.layout.menus import CompletionsMenu
from prompt_toolkit.styles import Style
from prompt_toolkit.widgets import Frame, TextArea

from lobby_chat.constants import STYLE
from lobby_chat.ui import ChatLexer, SlashCompleter

if TYPE_CHECKING:
    from chat import ChatApp

SIDEBAR_WIDTH = 34
SCROLL_LINES = 10


class PromptToolkitView:
    """Full-screen layout: messages and rooms side by side, status, input.

    The app pushes content through ``show_*``; nothing here reads engine
    state directly except the completer and lexer.
    """

    def __init__(self, app: "ChatApp", on_submit: Callable[[str], None]):
        self.app = app
        self.on_submit = on_submit

        self.output_field = TextArea(
            style="class:chat-area",
            focusable=False,
            scrollbar=True,
            wrap_lines=True,
            lexer=ChatLexer(app),
        )
        self.input_field = TextArea(
            height=1,
            prompt="> ",
            style="class:input-area",
            multiline=False,
            completer=SlashCompleter(app),
            complete_while_typing=True,
        )
        self.sidebar_control = FormattedTextControl(focusable=False)
        self.status_control = FormattedTextControl(focusable=False)

        self.application: Any = Application(
            layout=Layout(self._build_layout(), focused_element=self.input_field),
            key_bindings=self._build_key_bindings(),
            style=Style.from_dict(STYLE),
            full_screen=True,
            mouse_support=True,
        )

    def _build_layout(self) -> FloatContainer:
        body = VSplit(
            [
                Frame(self.output_field, title="Messages"),
                Frame(
                    Window(
                        content=self.sidebar_control,
                        width=SIDEBAR_WIDTH,
                        style="class:sidebar",
                    ),
                    title="Rooms",
                ),
            ]
        )
        status_bar = Window(content=self.status_control, height=1, style="class:status")
        return FloatContainer(
            content=HSplit(
                [
                    body,
                    status_bar,
                    Frame(self.input_field, title="Message (/help for commands)"),
                ]
            ),
            floats=[
                Float(
                    xcursor=True,
                    ycursor=True,
                    content=CompletionsMenu(max_height=10, scroll_offset=1),
                )
            ],
        )

    def _build_key_bindings(self) -> KeyBindings:
        bindings = KeyBindings()

        @bindings.add("enter")
        def _submit(_event: Any) -> None:
            self.on_submit(self.input_field.text)

        @bindings.add("tab")
        def _complete(event: Any) -> None:
            buffer = event.current_buffer
            state = buffer.complete_state
            if state is None:
                buffer.start_completion(select_first=True)
                return
            completion = state.current_completion
            if completion is None and state.completions:
                completion = state.completions[0]
            if completion is not None:
                buffer.apply_completion(completion)

        @bindings.add("escape", eager=True)
        def _clear(_event: Any) -> None:
            self.clear_input()

        @bindings.add("pageup")
        def _scroll_up(_event: Any) -> None:
            self._scroll(-SCROLL_LINES)

        @bindings.add("pagedown")
        def _scroll_down(_event: Any) -> None:
            self._scroll(SCROLL_LINES)

        @bindings.add("c-c")
        @bindings.add("c-d")
        def _exit(event: Any) -> None:
            event.app.exit()

        return bindings

    def _scroll(self, lines: int) -> None:
        buffer = self.output_field.buffer
        if lines < 0:
            buffer.cursor_up(count=-lines)
        else:
            buffer.cursor_down(count=lines)

    def show_messages(self, text: str) -> None:
        self.output_field.text = text
        self.output_field.buffer.cursor_position = len(text)
        self.invalidate()

    def show_rooms(self, fragments: StyleAndTextTuples) -> None:
        self.sidebar_control.text = fragments
        self.invalidate()

    def show_status(self, fragments: StyleAndTextTuples) -> None:
        self.status_control.text = fragments
        self.invalidate()

    def clear_input(self) -> None:
        self.input_field.text = ""

    def invalidate(self) -> None:
        self.application.invalidate()

    async def run_async(self) -> Any:
        return await self.application.run_async()

    def exit(self, result: str | None = None) -> None:
        if self.application.is_running:
            self.application.exit(result=result)
