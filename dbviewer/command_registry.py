"""Command surface exposed to the host shell."""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable

from .commands import ConnectionCommands, WorkspaceCommands

CommandHandler = Callable[..., Awaitable[None] | None]

LIST_CONNECTIONS = "dbviewer.listConnections"
ADD_CONNECTION = "dbviewer.addConnection"
DELETE_CONNECTION = "dbviewer.deleteConnection"
OPEN_CONFIG_FILE = "dbviewer.openConfigFile"
SELECT_CONNECTION = "dbviewer.selectConnection"
EXECUTE = "dbviewer.execute"
CHECK_CONNECTION = "dbviewer.checkConnection"
RESTART_WORKER = "dbviewer.restartWorker"


@dataclass(frozen=True, slots=True)
class CommandSpec:
    """One entry point the host can bind to."""

    name: str
    title: str
    handler: CommandHandler | None = None
    hidden: bool = False


class CommandRegistry:
    """Collects the commands offered to the host."""

    def __init__(self) -> None:
        self._commands: dict[str, CommandSpec] = {}

    def register(self, spec: CommandSpec) -> None:
        """Register a command."""

        if spec.handler is None:
            raise ValueError(f"Command '{spec.name}' is missing a handler")
        self._commands[spec.name] = spec

    def register_many(self, specs: Iterable[CommandSpec]) -> None:
        for spec in specs:
            self.register(spec)

    def get(self, name: str) -> CommandSpec | None:
        return self._commands.get(name)

    def list_commands(self, *, include_hidden: bool = False) -> list[CommandSpec]:
        """Return the known commands in registration order."""

        return [spec for spec in self._commands.values() if include_hidden or not spec.hidden]

    async def execute(self, name: str, *args: object, **kwargs: object) -> None:
        """Execute a registered command by name."""

        spec = self._commands[name]
        handler = spec.handler
        assert handler is not None  # register() guards this
        result = handler(*args, **kwargs)
        if inspect.isawaitable(result):
            await result


def build_command_registry(connections: ConnectionCommands, workspace: WorkspaceCommands) -> CommandRegistry:
    """Wire the orchestrators into the default command surface."""

    registry = CommandRegistry()
    registry.register_many(
        [
            CommandSpec(LIST_CONNECTIONS, "DB Viewer: List Connections", connections.list_connections),
            CommandSpec(ADD_CONNECTION, "DB Viewer: Add Connection", connections.add_connection),
            CommandSpec(DELETE_CONNECTION, "DB Viewer: Delete Connection", connections.delete_connection),
            CommandSpec(OPEN_CONFIG_FILE, "DB Viewer: Open Configuration File", connections.open_config_file),
            CommandSpec(SELECT_CONNECTION, "Select Database Connection", connections.select_connection),
            CommandSpec(CHECK_CONNECTION, "DB Viewer: Check Connection", connections.check_connection),
            CommandSpec(RESTART_WORKER, "DB Viewer: Restart Query Worker", connections.restart_worker),
            CommandSpec(EXECUTE, "Execute SQL Statement", workspace.execute_sql, hidden=True),
        ]
    )
    return registry


__all__ = [
    "ADD_CONNECTION",
    "CHECK_CONNECTION",
    "CommandRegistry",
    "CommandSpec",
    "DELETE_CONNECTION",
    "EXECUTE",
    "LIST_CONNECTIONS",
    "OPEN_CONFIG_FILE",
    "RESTART_WORKER",
    "SELECT_CONNECTION",
    "build_command_registry",
]
