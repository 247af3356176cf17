"""Orchestrators turning user actions into registry and worker calls."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol, Sequence

from .formatter import render_result
from .models import ConnectionProfile, DatabaseType, ExecutionRequest
from .registry import ConfigWriteError, ConnectionRegistry
from .worker import WorkerClient, WorkerCommandError, WorkerError, WorkerState, WorkerTransportError

LOG = logging.getLogger(__name__)

NO_CONNECTION_SELECTED = "No database connection selected."

EXECUTION_HINTS = (
    "Please check the SQL statement and try again.",
    "  Possible reasons:",
    "    - SQL syntax error",
    "    - SQL connection error",
    "    - SQL execution error",
)

TRANSPORT_HINTS = (
    "The query worker is not reachable.",
    "  Restart it with 'Restart Query Worker' and try again.",
)


@dataclass(frozen=True, slots=True)
class PickItem:
    """Entry offered to the user in a selection list."""

    label: str
    description: str = ""
    picked: bool = False


class OutputChannel(Protocol):
    """Text buffer the host uses to display query output."""

    def clear(self) -> None: ...

    def append_line(self, line: str) -> None: ...

    def show(self) -> None: ...


class Host(Protocol):
    """UI services the orchestrators rely on."""

    @property
    def output(self) -> OutputChannel: ...

    def show_info(self, message: str) -> None: ...

    def show_warning(self, message: str) -> None: ...

    def show_error(self, message: str) -> None: ...

    async def pick(self, items: Sequence[PickItem], *, placeholder: str) -> PickItem | None: ...

    async def ask(self, prompt: str, *, placeholder: str = "") -> str | None: ...

    async def confirm(self, message: str) -> bool: ...

    async def open_file(self, path: Path) -> None: ...


class ConnectionCommands:
    """List, add, delete, select and check connection profiles."""

    def __init__(self, registry: ConnectionRegistry, client: WorkerClient, host: Host) -> None:
        self._registry = registry
        self._client = client
        self._host = host

    def attach(self) -> Callable[[], None]:
        """Keep the worker's connection list in sync; returns a detach handle."""

        unsubscribers = [
            self._registry.connections_changed.subscribe(self.sync_connections),
            self._client.subscribe(self._handle_worker_state),
        ]

        def _detach() -> None:
            for unsubscribe in unsubscribers:
                unsubscribe()

        return _detach

    def report_load_problem(self) -> bool:
        """Warn the user when the connections file could not be fully loaded."""

        problem = self._registry.load_problem
        if problem is None:
            return False
        self._host.show_warning(problem)
        return True

    def sync_connections(self, profiles: Sequence[ConnectionProfile] | None = None) -> None:
        """Push every known profile to the worker."""

        if profiles is None:
            profiles = self._registry.list_profiles()
        self._client.register_all_connections(profiles)

    async def list_connections(self) -> None:
        await self.select_connection()

    async def select_connection(self) -> None:
        profiles = self._registry.list_profiles()
        if not profiles:
            self._host.show_info("No database connections configured. Use 'Add Connection' to add one.")
            return
        selected = self._registry.get_selected()
        items = [
            PickItem(
                label=profile.name,
                description=profile.connection_string,
                picked=selected is not None and profile.name == selected.name,
            )
            for profile in profiles
        ]
        choice = await self._host.pick(items, placeholder="Select a database connection")
        if choice is not None:
            self.activate(choice.label)

    def activate(self, name: str) -> bool:
        """Select a profile by name and hand it to the worker."""

        try:
            self._registry.set_selected(name)
        except ValueError as exc:
            self._host.show_error(str(exc))
            return False
        profile = self._registry.get(name)
        if profile is not None:
            self._client.register_connection(profile)
        self._host.show_info(f"Connected to {name}")
        return True

    async def add_connection(self) -> None:
        name = await self._host.ask("Enter a name for this connection", placeholder="My Database")
        if not name or not name.strip():
            return
        name = name.strip()
        type_choice = await self._host.pick(
            [PickItem(label=db_type.value) for db_type in DatabaseType],
            placeholder="Select database type",
        )
        if type_choice is None:
            return
        db_type = DatabaseType(type_choice.label)
        connection_string = await self._host.ask("Enter connection string", placeholder=db_type.placeholder)
        if not connection_string or not connection_string.strip():
            return
        profile = ConnectionProfile(name=name, connection_string=connection_string.strip(), type=db_type.value)
        try:
            self._registry.save(profile)
        except ConfigWriteError as exc:
            self._host.show_error(str(exc))
            return
        self._host.show_info(f'Database connection "{name}" added!')

    async def delete_connection(self) -> None:
        profiles = self._registry.list_profiles()
        if not profiles:
            self._host.show_info("No database connections to delete.")
            return
        items = [PickItem(label=profile.name, description=profile.connection_string) for profile in profiles]
        choice = await self._host.pick(items, placeholder="Select a connection to delete")
        if choice is None:
            return
        if not await self._host.confirm(f'Are you sure you want to delete the connection "{choice.label}"?'):
            return
        try:
            deleted = self._registry.delete(choice.label)
        except ConfigWriteError as exc:
            self._host.show_error(str(exc))
            return
        if deleted:
            self._host.show_info(f'Connection "{choice.label}" deleted.')

    async def open_config_file(self) -> None:
        try:
            path = self._registry.ensure_config_file()
        except OSError as exc:
            self._host.show_error(f"Failed to open configuration file: {exc}")
            return
        await self._host.open_file(path)

    async def check_connection(self) -> None:
        profile = self._registry.get_selected()
        if profile is None:
            self._host.show_error(NO_CONNECTION_SELECTED)
            return
        try:
            reachable = await self._client.check_connection(profile)
        except WorkerError as exc:
            self._host.show_error(f"Connection check for {profile.name} failed: {exc}")
            return
        if reachable:
            self._host.show_info(f"Connection {profile.name} is reachable.")
        else:
            self._host.show_warning(f"Connection {profile.name} is not reachable.")

    async def restart_worker(self) -> None:
        await self._client.restart()
        if self._client.is_running:
            self._host.show_info("Query worker restarted.")
        else:
            self._host.show_error("Query worker failed to restart; see the log for details.")

    def _handle_worker_state(self, state: WorkerState) -> None:
        if state is WorkerState.RUNNING:
            self.sync_connections()


class WorkspaceCommands:
    """Executes SQL against the selected connection and renders the outcome."""

    def __init__(self, registry: ConnectionRegistry, client: WorkerClient, host: Host) -> None:
        self._registry = registry
        self._client = client
        self._host = host

    async def execute_sql(self, sql: str) -> None:
        profile = self._registry.get_selected()
        if profile is None:
            self._host.show_error(NO_CONNECTION_SELECTED)
            return
        statement = sql.strip()
        if not statement:
            self._host.show_warning("Provide SQL to execute.")
            return

        output = self._host.output
        output.clear()
        output.append_line(f"Executing SQL on database: {profile.name}")
        output.append_line(f"SQL: {statement}")
        output.append_line("")
        output.show()

        LOG.info("Executing SQL on %s", profile.name)
        try:
            result = await self._client.execute_command(ExecutionRequest.for_profile(profile, statement))
        except WorkerCommandError as exc:
            LOG.warning("Worker rejected SQL on %s: %s", profile.name, exc)
            self._report_failure(statement, exc.details(), EXECUTION_HINTS)
            return
        except WorkerTransportError as exc:
            LOG.warning("Worker unavailable while executing SQL on %s: %s", profile.name, exc)
            self._report_failure(statement, str(exc), TRANSPORT_HINTS)
            return

        if result is None:
            output.append_line("⚠ No results returned.")
            return
        for line in render_result(result, statement):
            output.append_line(line)

    def _report_failure(self, statement: str, details: str, hints: Sequence[str]) -> None:
        output = self._host.output
        output.append_line(f"✖ Failed to execute SQL: {statement}")
        output.append_line("")
        output.append_line("Error details:")
        for line in details.splitlines() or [""]:
            output.append_line(line)
        output.append_line("")
        for hint in hints:
            output.append_line(hint)


__all__ = [
    "ConnectionCommands",
    "EXECUTION_HINTS",
    "Host",
    "NO_CONNECTION_SELECTED",
    "OutputChannel",
    "PickItem",
    "TRANSPORT_HINTS",
    "WorkspaceCommands",
]
