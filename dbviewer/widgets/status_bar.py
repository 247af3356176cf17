"""Status bar widget that mirrors the selected connection and worker state."""

from __future__ import annotations

from typing import Callable

from textual.widgets import Static

from dbviewer.models import ConnectionProfile
from dbviewer.registry import ConnectionRegistry
from dbviewer.worker import WorkerClient, WorkerState


class StatusBar(Static):
    """Compact status strip rendered above Textual's footer."""

    DEFAULT_CSS = """
    StatusBar {
        height: 1;
        padding: 0 1;
        background: $surface-darken-3;
        color: $text;
    }
    """

    def __init__(self, registry: ConnectionRegistry, client: WorkerClient) -> None:
        super().__init__("", id="status-bar")
        self._connections = registry
        self._worker_client = client
        self._unsubscribers: list[Callable[[], None]] = []

    async def on_mount(self) -> None:
        self._unsubscribers = [
            self._connections.selection_changed.subscribe(self._handle_selection),
            self._connections.connections_changed.subscribe(lambda _profiles: self.refresh_status()),
            self._worker_client.subscribe(self._handle_worker_state),
        ]
        self.refresh_status()

    def on_unmount(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def refresh_status(self) -> None:
        self.update(self.describe(self._connections.get_selected(), self._worker_client.state, len(self._connections.list_profiles())))

    @staticmethod
    def describe(selected: ConnectionProfile | None, state: WorkerState, total: int) -> str:
        """Render the status line text."""

        connection = selected.name if selected else "none"
        if selected and selected.type:
            connection = f"{connection} ({selected.type})"
        parts = [
            f"Connection: {connection}",
            f"Profiles: {total}",
            f"Worker: {state.value}",
        ]
        return " | ".join(parts)

    def _handle_selection(self, _profile: ConnectionProfile | None) -> None:
        self.refresh_status()

    def _handle_worker_state(self, _state: WorkerState) -> None:
        self.refresh_status()


__all__ = ["StatusBar"]
