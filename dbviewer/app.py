"""Textual application entry point for dbviewer."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Callable, Sequence

from textual.app import App, ComposeResult, SuspendNotSupported
from textual.containers import Container
from textual.widgets import Footer, Header, Log

from .command_registry import EXECUTE, SELECT_CONNECTION, CommandRegistry, build_command_registry
from .commands import ConnectionCommands, PickItem, WorkspaceCommands
from .config import AppConfig, load_config
from .providers import ConnectionSwitchProvider, DbViewerCommandProvider
from .registry import ConnectionRegistry
from .watcher import ConfigFileWatcher
from .widgets import ConfirmScreen, InputScreen, PickScreen, QueryPad, StatusBar
from .worker import WorkerClient, WorkerState

LOG = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _load_app_config() -> AppConfig:
    """Load configuration with a small wrapper for future overrides."""

    return load_config()


def configure_logging(config: AppConfig) -> Path:
    """Send package logs to a file so they never draw over the UI."""

    log_file = config.resolved_log_file
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    package_logger = logging.getLogger("dbviewer")
    package_logger.addHandler(handler)
    package_logger.setLevel(config.log_level.upper())
    return log_file


class LogOutput:
    """Adapts the results :class:`Log` widget to an output channel."""

    def __init__(self, log: Log) -> None:
        self._log = log

    def clear(self) -> None:
        self._log.clear()

    def append_line(self, line: str) -> None:
        self._log.write_line(line)

    def show(self) -> None:
        if self._log.is_mounted:
            self._log.scroll_end(animate=False)


class TextualHost:
    """Host services backed by the running Textual app."""

    def __init__(self, app: DbViewerApp, output: LogOutput) -> None:
        self._app = app
        self._output = output

    @property
    def output(self) -> LogOutput:
        return self._output

    def show_info(self, message: str) -> None:
        self._app.safe_notify(message, severity="information")

    def show_warning(self, message: str) -> None:
        self._app.safe_notify(message, severity="warning")

    def show_error(self, message: str) -> None:
        self._app.safe_notify(message, severity="error")

    async def pick(self, items: Sequence[PickItem], *, placeholder: str) -> PickItem | None:
        index = await self._app.push_screen_wait(PickScreen(items, placeholder=placeholder))
        if index is None:
            return None
        return items[index]

    async def ask(self, prompt: str, *, placeholder: str = "") -> str | None:
        return await self._app.push_screen_wait(InputScreen(prompt, placeholder=placeholder))

    async def confirm(self, message: str) -> bool:
        return bool(await self._app.push_screen_wait(ConfirmScreen(message)))

    async def open_file(self, path: Path) -> None:
        editor = os.environ.get("VISUAL") or os.environ.get("EDITOR")
        if not editor:
            self.show_info(f"Connections are stored in {path}. Set $EDITOR to edit them from here.")
            return
        try:
            with self._app.suspend():
                subprocess.run([*editor.split(), str(path)], check=False)
        except SuspendNotSupported:
            self.show_info(f"Connections are stored in {path}.")
        except OSError as exc:
            self.show_error(f"Failed to open configuration file: {exc}")


class DbViewerApp(App[None]):
    """Database query shell: pick a connection, run SQL, read the results."""

    TITLE = "DB Viewer"
    COMMANDS = App.COMMANDS | {DbViewerCommandProvider, ConnectionSwitchProvider}
    CSS = """
    Screen {
        layout: vertical;
    }
    #main-column {
        layout: vertical;
        padding: 1 2;
        height: 1fr;
    }
    """

    BINDINGS = [
        ("ctrl+c", "quit", "Quit"),
        ("f5", "execute", "Execute SQL"),
        ("ctrl+o", "select_connection", "Connections"),
        ("ctrl+p", "command_palette", "Command Palette"),
    ]

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        registry: ConnectionRegistry | None = None,
        client: WorkerClient | None = None,
    ) -> None:
        super().__init__()
        self._config = config or _load_app_config()
        self._connections = registry or ConnectionRegistry.from_paths(
            self._config.connections_file,
            self._config.state_file,
        )
        self._worker_client = client or WorkerClient.from_config(self._config)
        self._query_pad = QueryPad()
        self._ui_host = TextualHost(self, LogOutput(self._query_pad.output))
        self._connection_commands = ConnectionCommands(self._connections, self._worker_client, self._ui_host)
        self._workspace_commands = WorkspaceCommands(self._connections, self._worker_client, self._ui_host)
        self._command_registry = build_command_registry(self._connection_commands, self._workspace_commands)
        self._detach_sync: Callable[[], None] | None = self._connection_commands.attach()
        self._file_watcher: ConfigFileWatcher | None = None
        if self._config.watch_config:
            self._file_watcher = ConfigFileWatcher(
                self._connections.config_path,
                self._reload_connections,
                debounce_ms=self._config.watch_debounce_ms,
            )
        self._pending_notifications: list[tuple[str, str]] = []

    def compose(self) -> ComposeResult:
        """Compose the root layout."""

        yield Header(show_clock=True)
        yield Container(self._query_pad, id="main-column")
        yield StatusBar(self._connections, self._worker_client)
        yield Footer()

    async def on_mount(self) -> None:
        if self._config.theme in self.available_themes:
            self.theme = self._config.theme
        self._flush_pending_notifications()
        self._connection_commands.report_load_problem()
        if self._file_watcher is not None:
            self._file_watcher.start()
        self.run_worker(self._start_query_worker(), group="lifecycle", exit_on_error=False)

    @property
    def connections(self) -> ConnectionRegistry:
        """Expose the connection registry for providers and tests."""

        return self._connections

    @property
    def command_registry(self) -> CommandRegistry:
        return self._command_registry

    @property
    def worker_client(self) -> WorkerClient:
        return self._worker_client

    @property
    def ui_host(self) -> TextualHost:
        return self._ui_host

    def action_execute(self) -> None:
        self.dispatch_command(EXECUTE, self._query_pad.sql)

    def action_select_connection(self) -> None:
        self.dispatch_command(SELECT_CONNECTION)

    def on_query_pad_submitted(self, message: QueryPad.Submitted) -> None:
        self.dispatch_command(EXECUTE, message.sql)

    def dispatch_command(self, name: str, *args: object) -> None:
        """Run a registered command in a worker so it may prompt the user."""

        if self._command_registry.get(name) is None:
            self.safe_notify(f"Unknown command: {name}", severity="error")
            return
        self.run_worker(self._run_registered_command(name, *args), group="commands", exit_on_error=False)

    def switch_connection(self, name: str) -> None:
        """Select the named connection and hand it to the worker."""

        self._connection_commands.activate(name)

    def safe_notify(self, message: str, *, severity: str = "information") -> None:
        if self.is_running:
            try:
                self.notify(message, severity=severity)  # type: ignore[arg-type]
            except Exception:
                LOG.exception("Failed to display notification", extra={"notification": message})
        else:
            self._pending_notifications.append((message, severity))

    @property
    def pending_notifications(self) -> tuple[tuple[str, str], ...]:
        """Notifications queued before the app started (testing helper)."""

        return tuple(self._pending_notifications)

    async def _run_registered_command(self, name: str, *args: object) -> None:
        try:
            await self._command_registry.execute(name, *args)
        except Exception as exc:
            LOG.exception("Command failed", extra={"command": name})
            self.safe_notify(f"Command {name} failed: {exc}", severity="error")

    def _reload_connections(self) -> None:
        self._connections.reload()
        self._connection_commands.report_load_problem()

    async def _start_query_worker(self) -> None:
        await self._worker_client.start()
        if self._worker_client.state is not WorkerState.RUNNING:
            self.safe_notify(
                f"Query worker failed to start ({self._worker_client.command[0]}); see the log for details.",
                severity="error",
            )

    async def _shutdown(self) -> None:
        if self._detach_sync:
            self._detach_sync()
            self._detach_sync = None
        if self._file_watcher is not None:
            await self._file_watcher.stop()
        await self._worker_client.stop()
        self._connections.close()
        await super()._shutdown()

    def _flush_pending_notifications(self) -> None:
        if not self._pending_notifications:
            return
        pending = list(self._pending_notifications)
        self._pending_notifications.clear()
        for message, severity in pending:
            try:
                self.notify(message, severity=severity)  # type: ignore[arg-type]
            except Exception:
                LOG.exception("Failed to display queued notification", extra={"notification": message})


def main() -> None:
    """Invoke the Textual application."""

    config = _load_app_config()
    log_file = configure_logging(config)
    LOG.info("dbviewer starting; logging to %s", log_file)
    DbViewerApp(config).run()


if __name__ == "__main__":
    main()
