"""Modal prompts backing the host's pick/ask/confirm services."""

from __future__ import annotations

from typing import Sequence

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, OptionList, Static
from textual.widgets.option_list import Option

from dbviewer.commands import PickItem

_PROMPT_CSS = """
{name} {{
    align: center middle;
}}
{name} > Vertical {{
    width: 70%;
    max-width: 100;
    height: auto;
    max-height: 80%;
    border: round $primary;
    background: $surface;
    padding: 1 2;
}}
{name} .prompt-title {{
    text-style: bold;
    margin-bottom: 1;
}}
"""


class PickScreen(ModalScreen[int | None]):
    """Selection list; dismisses with the chosen index or ``None``."""

    DEFAULT_CSS = _PROMPT_CSS.format(name="PickScreen") + """
    PickScreen OptionList {
        height: auto;
        max-height: 20;
    }
    """

    BINDINGS = [Binding("escape", "cancel", "Cancel")]

    def __init__(self, items: Sequence[PickItem], *, placeholder: str) -> None:
        super().__init__()
        self._pick_items = tuple(items)
        self._pick_title = placeholder

    def compose(self) -> ComposeResult:
        options = []
        for index, item in enumerate(self._pick_items):
            marker = "● " if item.picked else "  "
            prompt = f"{marker}{item.label}"
            if item.description:
                prompt = f"{prompt}  [dim]{item.description}[/dim]"
            options.append(Option(prompt, id=str(index)))
        with Vertical():
            yield Static(self._pick_title, classes="prompt-title")
            yield OptionList(*options, id="pick-options")

    def on_mount(self) -> None:
        options = self.query_one("#pick-options", OptionList)
        picked = next((index for index, item in enumerate(self._pick_items) if item.picked), 0)
        if self._pick_items:
            options.highlighted = picked
        options.focus()

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        event.stop()
        self.dismiss(event.option_index)

    def action_cancel(self) -> None:
        self.dismiss(None)


class InputScreen(ModalScreen[str | None]):
    """Single-line text prompt; dismisses with the text or ``None``."""

    DEFAULT_CSS = _PROMPT_CSS.format(name="InputScreen")

    BINDINGS = [Binding("escape", "cancel", "Cancel")]

    def __init__(self, prompt: str, *, placeholder: str = "") -> None:
        super().__init__()
        self._prompt_text = prompt
        self._input_placeholder = placeholder

    def compose(self) -> ComposeResult:
        with Vertical():
            yield Static(self._prompt_text, classes="prompt-title")
            yield Input(placeholder=self._input_placeholder, id="prompt-input")

    def on_mount(self) -> None:
        self.query_one("#prompt-input", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        event.stop()
        self.dismiss(event.value)

    def action_cancel(self) -> None:
        self.dismiss(None)


class ConfirmScreen(ModalScreen[bool]):
    """Yes/No question."""

    DEFAULT_CSS = _PROMPT_CSS.format(name="ConfirmScreen") + """
    ConfirmScreen Horizontal {
        height: auto;
        align-horizontal: right;
    }
    ConfirmScreen Button {
        margin-left: 1;
    }
    """

    BINDINGS = [Binding("escape", "cancel", "Cancel")]

    def __init__(self, message: str) -> None:
        super().__init__()
        self._question = message

    def compose(self) -> ComposeResult:
        with Vertical():
            yield Static(self._question, classes="prompt-title")
            with Horizontal():
                yield Button("Yes", id="confirm-yes", variant="error")
                yield Button("No", id="confirm-no", variant="primary")

    def on_mount(self) -> None:
        self.query_one("#confirm-no", Button).focus()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        event.stop()
        self.dismiss(event.button.id == "confirm-yes")

    def action_cancel(self) -> None:
        self.dismiss(False)


__all__ = ["ConfirmScreen", "InputScreen", "PickScreen"]
