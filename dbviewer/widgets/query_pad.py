"""SQL editor pane with a results log underneath."""

from __future__ import annotations

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal
from textual.message import Message
from textual.widgets import Button, Log, Static, TextArea


class QueryPad(Container):
    """Multi-line SQL editor; posts :class:`QueryPad.Submitted` when asked to run."""

    DEFAULT_CSS = """
    QueryPad {
        layout: vertical;
        border: round $primary 40%;
        padding: 1 2;
        height: 1fr;
        background: $surface;
    }

    QueryPad .panel-title {
        text-style: bold;
    }

    QueryPad #sql-input {
        height: 1fr;
        min-height: 5;
    }

    QueryPad:focus-within {
        border: round $primary;
    }

    QueryPad .query-actions {
        height: auto;
        margin-top: 1;
        align-horizontal: left;
    }

    QueryPad .query-actions > * {
        margin-right: 1;
    }

    QueryPad #query-output {
        height: 2fr;
        margin-top: 1;
        border-top: solid $surface-darken-2;
    }
    """

    BINDINGS = Container.BINDINGS + [
        Binding("ctrl+enter", "run_query", "Run query", show=False, priority=True),
    ]

    class Submitted(Message):
        """The user asked to execute the editor contents (or its selection)."""

        def __init__(self, sql: str) -> None:
            super().__init__()
            self.sql = sql

    def __init__(self, output: Log | None = None) -> None:
        super().__init__(id="query-pad")
        self._results_log = output or Log(id="query-output", highlight=False)

    @property
    def output(self) -> Log:
        return self._results_log

    def compose(self) -> ComposeResult:
        yield Static("SQL", classes="panel-title")
        yield TextArea(id="sql-input")
        yield Horizontal(
            Button("Execute", id="run-query", variant="primary"),
            Static("Ctrl+Enter or F5 runs the selection, or the whole buffer.", id="query-hint"),
            classes="query-actions",
        )
        yield self._results_log

    @property
    def sql(self) -> str:
        """Selected text when there is a selection, otherwise the whole buffer."""

        editor = self.query_one("#sql-input", TextArea)
        return editor.selected_text or editor.text

    def action_run_query(self) -> None:
        self.post_message(self.Submitted(self.sql))

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "run-query":
            event.stop()
            self.action_run_query()


__all__ = ["QueryPad"]
