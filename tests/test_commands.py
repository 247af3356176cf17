"""Tests for the connection and workspace orchestrators."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Iterable, Sequence

import pytest

from dbviewer.command_registry import (
    ADD_CONNECTION,
    EXECUTE,
    LIST_CONNECTIONS,
    CommandRegistry,
    CommandSpec,
    build_command_registry,
)
from dbviewer.commands import (
    EXECUTION_HINTS,
    NO_CONNECTION_SELECTED,
    TRANSPORT_HINTS,
    ConnectionCommands,
    PickItem,
    WorkspaceCommands,
)
from dbviewer.events import EventEmitter
from dbviewer.models import AffectedRowsResult, ConnectionProfile, ExecutionRequest, ExecutionResult, RowSetResult
from dbviewer.registry import ConnectionRegistry, MemoryStateStore, ProfileFile
from dbviewer.worker import WorkerCommandError, WorkerState, WorkerTransportError


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class _Output:
    def __init__(self) -> None:
        self.lines: list[str] = []
        self.cleared = 0
        self.shown = 0

    def clear(self) -> None:
        self.cleared += 1
        self.lines.clear()

    def append_line(self, line: str) -> None:
        self.lines.append(line)

    def show(self) -> None:
        self.shown += 1


class _FakeHost:
    def __init__(self) -> None:
        self._output = _Output()
        self.messages: list[tuple[str, str]] = []
        self.picks: list[Callable[[Sequence[PickItem]], PickItem | None]] = []
        self.answers: list[str | None] = []
        self.confirmations: list[bool] = []
        self.opened: list[Path] = []
        self.offered: list[tuple[PickItem, ...]] = []

    @property
    def output(self) -> _Output:
        return self._output

    def show_info(self, message: str) -> None:
        self.messages.append(("info", message))

    def show_warning(self, message: str) -> None:
        self.messages.append(("warning", message))

    def show_error(self, message: str) -> None:
        self.messages.append(("error", message))

    async def pick(self, items: Sequence[PickItem], *, placeholder: str) -> PickItem | None:
        self.offered.append(tuple(items))
        chooser = self.picks.pop(0)
        return chooser(items)

    async def ask(self, prompt: str, *, placeholder: str = "") -> str | None:
        return self.answers.pop(0)

    async def confirm(self, message: str) -> bool:
        return self.confirmations.pop(0)

    async def open_file(self, path: Path) -> None:
        self.opened.append(path)


class _FakeClient:
    def __init__(self) -> None:
        self.requests: list[ExecutionRequest] = []
        self.registered: list[ConnectionProfile] = []
        self.synced: list[tuple[str, ...]] = []
        self.result: ExecutionResult | None = None
        self.error: Exception | None = None
        self.reachable = True
        self.restarts = 0
        self.is_running = True
        self.state_changed: EventEmitter[WorkerState] = EventEmitter()

    def subscribe(self, listener: Callable[[WorkerState], None]) -> Callable[[], None]:
        return self.state_changed.subscribe(listener)

    async def execute_command(self, request: ExecutionRequest) -> ExecutionResult | None:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.result

    async def check_connection(self, profile: ConnectionProfile) -> bool:
        return self.reachable

    async def restart(self) -> None:
        self.restarts += 1

    def register_connection(self, profile: ConnectionProfile) -> None:
        self.registered.append(profile)

    def register_all_connections(self, profiles: Iterable[ConnectionProfile]) -> None:
        self.synced.append(tuple(profile.name for profile in profiles))


def _pick_label(label: str) -> Callable[[Sequence[PickItem]], PickItem | None]:
    return lambda items: next(item for item in items if item.label == label)


def _profile(name: str) -> ConnectionProfile:
    return ConnectionProfile(name=name, connection_string=f"sqlite:{name}.db", type="sqlite")


@pytest.fixture
def registry(tmp_path: Path) -> ConnectionRegistry:
    return ConnectionRegistry(ProfileFile(tmp_path / "db-connections.json"), MemoryStateStore())


@pytest.fixture
def host() -> _FakeHost:
    return _FakeHost()


@pytest.fixture
def client() -> _FakeClient:
    return _FakeClient()


@pytest.fixture
def connections(registry: ConnectionRegistry, client: _FakeClient, host: _FakeHost) -> ConnectionCommands:
    return ConnectionCommands(registry, client, host)  # type: ignore[arg-type]


@pytest.fixture
def workspace(registry: ConnectionRegistry, client: _FakeClient, host: _FakeHost) -> WorkspaceCommands:
    return WorkspaceCommands(registry, client, host)  # type: ignore[arg-type]


@pytest.mark.anyio
async def test_execute_without_selection_sends_nothing(
    workspace: WorkspaceCommands, client: _FakeClient, host: _FakeHost
) -> None:
    await workspace.execute_sql("SELECT 1")

    assert client.requests == []
    assert host.messages == [("error", NO_CONNECTION_SELECTED)]
    assert host.output.lines == []


@pytest.mark.anyio
async def test_execute_renders_rows(
    registry: ConnectionRegistry, workspace: WorkspaceCommands, client: _FakeClient, host: _FakeHost
) -> None:
    registry.save(_profile("local"))
    registry.set_selected("local")
    client.result = RowSetResult(rows=({"id": 1},), execution_time_ms=2.0)

    await workspace.execute_sql("  SELECT 1  ")

    assert client.requests == [ExecutionRequest("SELECT 1", "local", "sqlite:local.db")]
    assert host.output.cleared == 1
    assert host.output.shown == 1
    assert host.output.lines[:3] == ["Executing SQL on database: local", "SQL: SELECT 1", ""]
    assert host.output.lines[3] == "| id         |"
    assert host.output.lines[-1] == "✔ 1 row(s) returned, execution time: 2 ms"


@pytest.mark.anyio
async def test_execute_reports_affected_rows(
    registry: ConnectionRegistry, workspace: WorkspaceCommands, client: _FakeClient, host: _FakeHost
) -> None:
    registry.save(_profile("local"))
    registry.set_selected("local")
    client.result = AffectedRowsResult(rows_affected=3, execution_time_ms=12.0)

    await workspace.execute_sql("DELETE FROM t")

    assert host.output.lines[-1] == "✔ Success: 3 row(s) affected, execution time: 12 ms"


@pytest.mark.anyio
async def test_execute_reports_missing_result(
    registry: ConnectionRegistry, workspace: WorkspaceCommands, host: _FakeHost
) -> None:
    registry.save(_profile("local"))
    registry.set_selected("local")

    await workspace.execute_sql("SELECT 1")

    assert host.output.lines[-1] == "⚠ No results returned."


@pytest.mark.anyio
async def test_execute_reports_worker_errors_with_hints(
    registry: ConnectionRegistry, workspace: WorkspaceCommands, client: _FakeClient, host: _FakeHost
) -> None:
    registry.save(_profile("local"))
    registry.set_selected("local")
    client.error = WorkerCommandError("Command execution failed", code=-32603, data="near FROM: syntax error")

    await workspace.execute_sql("SELEC 1")

    lines = host.output.lines
    assert "✖ Failed to execute SQL: SELEC 1" in lines
    assert "Error details:" in lines
    assert "near FROM: syntax error" in lines
    assert lines[-len(EXECUTION_HINTS):] == list(EXECUTION_HINTS)


@pytest.mark.anyio
async def test_execute_reports_transport_errors(
    registry: ConnectionRegistry, workspace: WorkspaceCommands, client: _FakeClient, host: _FakeHost
) -> None:
    registry.save(_profile("local"))
    registry.set_selected("local")
    client.error = WorkerTransportError("Worker is not running")

    await workspace.execute_sql("SELECT 1")

    assert "Worker is not running" in host.output.lines
    assert host.output.lines[-len(TRANSPORT_HINTS):] == list(TRANSPORT_HINTS)


@pytest.mark.anyio
async def test_execute_rejects_blank_sql(
    registry: ConnectionRegistry, workspace: WorkspaceCommands, client: _FakeClient, host: _FakeHost
) -> None:
    registry.save(_profile("local"))
    registry.set_selected("local")

    await workspace.execute_sql("   ")

    assert client.requests == []
    assert host.messages[-1][0] == "warning"


@pytest.mark.anyio
async def test_select_connection_persists_and_registers(
    registry: ConnectionRegistry, connections: ConnectionCommands, client: _FakeClient, host: _FakeHost
) -> None:
    registry.save(_profile("a"))
    registry.save(_profile("b"))
    registry.set_selected("a")
    host.picks.append(_pick_label("b"))

    await connections.select_connection()

    assert [item.picked for item in host.offered[0]] == [True, False]
    assert host.offered[0][1].description == "sqlite:b.db"
    assert registry.get_selected() == _profile("b")
    assert client.registered == [_profile("b")]
    assert host.messages[-1] == ("info", "Connected to b")


@pytest.mark.anyio
async def test_select_connection_cancelled_changes_nothing(
    registry: ConnectionRegistry, connections: ConnectionCommands, client: _FakeClient, host: _FakeHost
) -> None:
    registry.save(_profile("a"))
    host.picks.append(lambda _items: None)

    await connections.list_connections()

    assert registry.get_selected() is None
    assert client.registered == []


@pytest.mark.anyio
async def test_select_connection_with_no_profiles_informs(
    connections: ConnectionCommands, host: _FakeHost
) -> None:
    await connections.select_connection()

    assert host.offered == []
    assert host.messages[0][0] == "info"


@pytest.mark.anyio
async def test_add_connection_saves_profile(
    registry: ConnectionRegistry, connections: ConnectionCommands, host: _FakeHost
) -> None:
    host.answers.extend(["  warehouse ", "postgresql://u:p@db:5432/wh"])
    host.picks.append(_pick_label("postgresql"))

    await connections.add_connection()

    profile = registry.get("warehouse")
    assert profile == ConnectionProfile(
        name="warehouse", connection_string="postgresql://u:p@db:5432/wh", type="postgresql"
    )
    assert host.messages[-1] == ("info", 'Database connection "warehouse" added!')


@pytest.mark.anyio
async def test_add_connection_aborts_on_cancel(
    registry: ConnectionRegistry, connections: ConnectionCommands, host: _FakeHost
) -> None:
    host.answers.extend(["warehouse", None])
    host.picks.append(_pick_label("sqlite"))

    await connections.add_connection()

    assert registry.list_profiles() == ()


@pytest.mark.anyio
async def test_delete_connection_requires_confirmation(
    registry: ConnectionRegistry, connections: ConnectionCommands, host: _FakeHost
) -> None:
    registry.save(_profile("a"))
    host.picks.extend([_pick_label("a"), _pick_label("a")])
    host.confirmations.extend([False, True])

    await connections.delete_connection()
    assert registry.get("a") is not None

    await connections.delete_connection()
    assert registry.get("a") is None
    assert host.messages[-1] == ("info", 'Connection "a" deleted.')


@pytest.mark.anyio
async def test_open_config_file_creates_file(
    registry: ConnectionRegistry, connections: ConnectionCommands, host: _FakeHost
) -> None:
    await connections.open_config_file()

    assert host.opened == [registry.config_path]
    assert registry.config_path.read_text() == "[]\n"


@pytest.mark.anyio
async def test_check_connection_reports_reachability(
    registry: ConnectionRegistry, connections: ConnectionCommands, client: _FakeClient, host: _FakeHost
) -> None:
    await connections.check_connection()
    assert host.messages[-1] == ("error", NO_CONNECTION_SELECTED)

    registry.save(_profile("a"))
    registry.set_selected("a")
    await connections.check_connection()
    assert host.messages[-1] == ("info", "Connection a is reachable.")

    client.reachable = False
    await connections.check_connection()
    assert host.messages[-1][0] == "warning"


@pytest.mark.anyio
async def test_restart_worker_reports_outcome(
    connections: ConnectionCommands, client: _FakeClient, host: _FakeHost
) -> None:
    await connections.restart_worker()
    client.is_running = False
    await connections.restart_worker()

    assert client.restarts == 2
    assert [kind for kind, _ in host.messages] == ["info", "error"]


def test_attach_syncs_profiles_with_worker(
    registry: ConnectionRegistry, connections: ConnectionCommands, client: _FakeClient
) -> None:
    detach = connections.attach()

    registry.save(_profile("a"))
    client.state_changed.fire(WorkerState.RUNNING)
    client.state_changed.fire(WorkerState.STOPPED)
    detach()
    registry.save(_profile("b"))

    assert client.synced == [("a",), ("a",)]


def test_activate_unknown_profile_reports_error(connections: ConnectionCommands, host: _FakeHost) -> None:
    assert connections.activate("ghost") is False
    assert host.messages == [("error", "Connection 'ghost' not found.")]


@pytest.mark.anyio
async def test_command_registry_routes_to_orchestrators(
    registry: ConnectionRegistry,
    connections: ConnectionCommands,
    workspace: WorkspaceCommands,
    client: _FakeClient,
) -> None:
    commands = build_command_registry(connections, workspace)
    registry.save(_profile("a"))
    registry.set_selected("a")

    await commands.execute(EXECUTE, "SELECT 1")

    assert [request.query for request in client.requests] == ["SELECT 1"]
    visible = [spec.name for spec in commands.list_commands()]
    assert LIST_CONNECTIONS in visible
    assert ADD_CONNECTION in visible
    assert EXECUTE not in visible
    assert EXECUTE in [spec.name for spec in commands.list_commands(include_hidden=True)]


@pytest.mark.anyio
async def test_command_registry_supports_sync_handlers() -> None:
    calls: list[Any] = []
    commands = CommandRegistry()
    commands.register(CommandSpec("demo.sync", "Sync", lambda value: calls.append(value)))

    await commands.execute("demo.sync", 5)

    assert calls == [5]
    with pytest.raises(ValueError):
        commands.register(CommandSpec("demo.none", "None"))


def test_report_load_problem_warns_about_skipped_entries(
    tmp_path: Path, client: _FakeClient, host: _FakeHost
) -> None:
    path = tmp_path / "db-connections.json"
    path.write_text('[{"name": "ok", "connectionString": "sqlite:ok.db"}, {"connectionString": "sqlite:x.db"}]')
    registry = ConnectionRegistry(ProfileFile(path), MemoryStateStore())
    commands = ConnectionCommands(registry, client, host)  # type: ignore[arg-type]

    assert commands.report_load_problem() is True
    assert host.messages[0][0] == "warning"
    assert "invalid connection entry" in host.messages[0][1]


def test_report_load_problem_is_quiet_for_clean_files(connections: ConnectionCommands, host: _FakeHost) -> None:
    assert connections.report_load_problem() is False
    assert host.messages == []
