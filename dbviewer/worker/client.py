"""Managed client for the external query worker process."""

from __future__ import annotations

import asyncio
import itertools
import logging
import os
from contextlib import suppress
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Mapping, Sequence

from pydantic import ValidationError

from dbviewer.config import AppConfig
from dbviewer.events import EventEmitter
from dbviewer.models import ConnectionProfile, ExecutionRequest, ExecutionResult, decode_execution_result

from . import protocol
from .protocol import ProtocolError, ResponseError

LOG = logging.getLogger(__name__)

STREAM_LIMIT = 1024 * 1024

Launcher = Callable[..., Awaitable[asyncio.subprocess.Process]]

_LOG_LEVELS = {1: logging.ERROR, 2: logging.WARNING, 3: logging.INFO, 4: logging.DEBUG}


class WorkerState(str, Enum):
    """Lifecycle states of the worker process."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    RESTARTING = "restarting"


class WorkerError(RuntimeError):
    """Base class for worker failures."""


class WorkerTransportError(WorkerError):
    """The worker could not be reached (not running, channel closed, process exited)."""


class WorkerCommandError(WorkerError):
    """The worker answered with an error."""

    def __init__(self, message: str, *, code: int = 0, data: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data

    def details(self) -> str:
        """Message plus any diagnostic payload the worker attached."""

        if self.data in (None, ""):
            return self.message
        return f"{self.message}\n{self.data}"


class WorkerClient:
    """Owns the worker's lifecycle and a request/response channel to it.

    Requests are JSON-RPC messages correlated by id, so any number may be in flight. Lifecycle
    methods never raise: failures are logged and leave the client ``STOPPED``.
    """

    def __init__(
        self,
        command: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        startup_timeout: float = 10.0,
        shutdown_timeout: float = 5.0,
        client_name: str = "dbviewer",
        launcher: Launcher | None = None,
    ) -> None:
        if not command:
            raise ValueError("Worker command must not be empty")
        self._command = list(command)
        self._env = dict(env) if env is not None else None
        self._startup_timeout = startup_timeout
        self._shutdown_timeout = shutdown_timeout
        self._client_name = client_name
        self._launcher = launcher or asyncio.create_subprocess_exec
        self._state = WorkerState.STOPPED
        self._process: asyncio.subprocess.Process | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._stderr_task: asyncio.Task[None] | None = None
        self._pending: dict[int, asyncio.Future[Any]] = {}
        self._ids = itertools.count(1)
        self._lifecycle_lock = asyncio.Lock()
        self._launched_once = False
        self.state_changed: EventEmitter[WorkerState] = EventEmitter()

    @classmethod
    def from_config(cls, config: AppConfig) -> WorkerClient:
        return cls(
            config.worker_command(),
            env=config.worker_env(),
            shutdown_timeout=config.shutdown_timeout,
        )

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is WorkerState.RUNNING

    @property
    def command(self) -> tuple[str, ...]:
        return tuple(self._command)

    def subscribe(self, listener: Callable[[WorkerState], None]) -> Callable[[], None]:
        """Subscribe to state transitions; returns an unsubscribe handle."""

        return self.state_changed.subscribe(listener)

    async def start(self) -> None:
        """Launch the worker and perform the handshake; no-op when running."""

        async with self._lifecycle_lock:
            if self._state is WorkerState.RUNNING:
                return
            self._set_state(WorkerState.STARTING)
            started = await self._launch()
            self._set_state(WorkerState.RUNNING if started else WorkerState.STOPPED)

    async def stop(self) -> None:
        """Ask the worker to shut down; no-op when not running."""

        async with self._lifecycle_lock:
            if self._state is not WorkerState.RUNNING:
                return
            self._set_state(WorkerState.STOPPING)
            await self._shutdown_process()
            self._set_state(WorkerState.STOPPED)

    async def restart(self) -> None:
        """Stop (if needed) and start again as one step; subscribers only see the outcome."""

        async with self._lifecycle_lock:
            if not self._launched_once:
                LOG.warning("Worker restart requested before it was ever started")
                return
            self._set_state(WorkerState.RESTARTING, notify=False)
            if self._process is not None:
                await self._shutdown_process()
            started = await self._launch()
            self._set_state(WorkerState.RUNNING if started else WorkerState.STOPPED)

    async def send_request(self, method: str, params: Any = None) -> Any:
        """Send a request and wait for the matching response."""

        if self._state is not WorkerState.RUNNING:
            raise WorkerTransportError("Worker is not running")
        return await self._request(method, params)

    async def send_command(self, command: str, arguments: Iterable[Any] = ()) -> Any:
        """Invoke one of the worker's named commands."""

        return await self.send_request(
            protocol.EXECUTE_COMMAND,
            {"command": command, "arguments": list(arguments)},
        )

    async def execute_command(self, request: ExecutionRequest) -> ExecutionResult | None:
        """Run a query and decode the worker's payload; ``None`` when it returned nothing."""

        payload = await self.send_command(protocol.SERVER_EXECUTE_COMMAND, [request.to_params()])
        return decode_execution_result(payload)

    async def check_connection(self, profile: ConnectionProfile) -> bool:
        """Ask the worker whether it can reach the profile's database."""

        payload = await self.send_command(
            protocol.SERVER_CHECK_CONNECTION,
            [{"connection_id": profile.name, "connection_string": profile.connection_string}],
        )
        if isinstance(payload, Mapping):
            data = payload.get("data", payload)
            if isinstance(data, Mapping):
                return bool(data.get("result"))
        return bool(payload)

    def register_connection(self, profile: ConnectionProfile) -> None:
        """Tell the worker about one profile (fire-and-forget)."""

        self._send_notification(protocol.REGISTER_CONNECTION, profile.to_worker_params())

    def register_all_connections(self, profiles: Iterable[ConnectionProfile]) -> None:
        """Replace the worker's view of available profiles (fire-and-forget)."""

        self._send_notification(
            protocol.REGISTER_ALL_CONNECTIONS,
            {"connections": [profile.to_worker_params() for profile in profiles]},
        )

    async def _launch(self) -> bool:
        self._launched_once = True
        try:
            process = await self._launcher(
                *self._command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._env,
                limit=STREAM_LIMIT,
            )
        except (OSError, ValueError) as exc:
            LOG.error("Failed to launch worker %s: %s", self._command[0], exc)
            return False
        self._process = process
        self._reader_task = asyncio.create_task(self._read_loop(process), name="dbviewer-worker-reader")
        self._stderr_task = asyncio.create_task(self._drain_stderr(process), name="dbviewer-worker-stderr")
        try:
            await asyncio.wait_for(self._request(protocol.INITIALIZE, self._initialize_params()), self._startup_timeout)
            self._write(protocol.notification(protocol.INITIALIZED, {}))
        except (WorkerError, asyncio.TimeoutError) as exc:
            LOG.error("Worker handshake failed: %s", str(exc) or "timed out")
            await self._terminate()
            return False
        LOG.info("Worker started (pid %s)", process.pid)
        return True

    async def _shutdown_process(self) -> None:
        if self._process is None:
            return
        try:
            await asyncio.wait_for(self._request(protocol.SHUTDOWN), self._shutdown_timeout)
            self._write(protocol.notification(protocol.EXIT))
        except (WorkerError, asyncio.TimeoutError) as exc:
            LOG.warning("Worker did not acknowledge shutdown: %s", str(exc) or "timed out")
        await self._terminate()

    async def _terminate(self) -> None:
        process = self._process
        self._process = None
        if process is None:
            return
        if process.stdin is not None and not process.stdin.is_closing():
            process.stdin.close()
        try:
            await asyncio.wait_for(process.wait(), self._shutdown_timeout)
        except asyncio.TimeoutError:
            LOG.warning("Worker did not exit within %.1fs; killing it", self._shutdown_timeout)
            with suppress(ProcessLookupError):
                process.kill()
            await process.wait()
        tasks = [task for task in (self._reader_task, self._stderr_task) if task is not None]
        self._reader_task = None
        self._stderr_task = None
        if tasks:
            _, still_running = await asyncio.wait(tasks, timeout=1.0)
            for task in still_running:
                task.cancel()
        self._fail_pending(WorkerTransportError("Worker stopped"))
        LOG.info("Worker exited with code %s", process.returncode)

    async def _request(self, method: str, params: Any = None) -> Any:
        message_id = next(self._ids)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[message_id] = future
        try:
            self._write(protocol.request(message_id, method, params))
            await self._drain()
            return await future
        finally:
            self._pending.pop(message_id, None)

    def _send_notification(self, method: str, params: Any) -> None:
        if self._state is not WorkerState.RUNNING:
            LOG.debug("Worker not running; dropping %s", method)
            return
        try:
            self._write(protocol.notification(method, params))
        except WorkerTransportError as exc:
            LOG.warning("Failed to send %s to worker: %s", method, exc)

    def _write(self, message: dict[str, Any]) -> None:
        process = self._process
        if process is None or process.stdin is None or process.stdin.is_closing():
            raise WorkerTransportError("Worker channel is closed")
        try:
            process.stdin.write(protocol.encode_message(message))
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise WorkerTransportError(f"Worker channel is closed: {exc}") from exc

    async def _drain(self) -> None:
        process = self._process
        if process is None or process.stdin is None:
            raise WorkerTransportError("Worker channel is closed")
        try:
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise WorkerTransportError(f"Worker channel is closed: {exc}") from exc

    async def _read_loop(self, process: asyncio.subprocess.Process) -> None:
        assert process.stdout is not None
        try:
            while True:
                message = await protocol.read_message(process.stdout)
                if message is None:
                    break
                self._dispatch(message)
        except ProtocolError as exc:
            LOG.error("Worker sent an invalid message: %s", exc)
        finally:
            self._connection_lost(process)

    async def _drain_stderr(self, process: asyncio.subprocess.Process) -> None:
        assert process.stderr is not None
        while True:
            chunk = await process.stderr.read(65536)
            if not chunk:
                return
            for line in chunk.decode("utf-8", errors="replace").splitlines():
                if line.strip():
                    LOG.debug("[worker stderr] %s", line)

    def _dispatch(self, message: dict[str, Any]) -> None:
        method = message.get("method")
        if isinstance(method, str):
            if "id" in message:
                self._answer_server_request(message)
            else:
                self._handle_notification(method, message.get("params"))
            return
        message_id = message.get("id")
        future = self._pending.pop(message_id, None) if isinstance(message_id, int) else None
        if future is None or future.done():
            LOG.debug("Dropping response for unknown request id %r", message_id)
            return
        error = message.get("error")
        if error is None:
            future.set_result(message.get("result"))
            return
        try:
            detail = ResponseError.model_validate(error)
        except ValidationError:
            detail = ResponseError(message=str(error))
        future.set_exception(WorkerCommandError(detail.message, code=detail.code, data=detail.data))

    def _answer_server_request(self, message: dict[str, Any]) -> None:
        LOG.debug("Worker request %s answered with null", message.get("method"))
        try:
            self._write(protocol.response(message.get("id")))
        except WorkerTransportError as exc:
            LOG.warning("Could not answer worker request: %s", exc)

    def _handle_notification(self, method: str, params: Any) -> None:
        if method == protocol.LOG_MESSAGE and isinstance(params, Mapping):
            level = _LOG_LEVELS.get(params.get("type"), logging.INFO)
            LOG.log(level, "[worker] %s", params.get("message", ""))
            return
        LOG.debug("Ignoring worker notification %s", method)

    def _connection_lost(self, process: asyncio.subprocess.Process) -> None:
        self._fail_pending(WorkerTransportError("Worker connection closed"))
        if self._process is not process or self._state is not WorkerState.RUNNING:
            return
        LOG.error("Worker exited unexpectedly (code %s)", process.returncode)
        self._process = None
        if process.returncode is None:
            with suppress(ProcessLookupError):
                process.kill()
        self._set_state(WorkerState.STOPPED)

    def _fail_pending(self, error: WorkerError) -> None:
        pending = list(self._pending.values())
        self._pending.clear()
        for future in pending:
            if not future.done():
                future.set_exception(error)

    def _initialize_params(self) -> dict[str, Any]:
        return {
            "processId": os.getpid(),
            "clientInfo": {"name": self._client_name},
            "rootUri": None,
            "capabilities": {},
        }

    def _set_state(self, state: WorkerState, *, notify: bool = True) -> None:
        if state is self._state:
            return
        LOG.debug("Worker state %s -> %s", self._state.value, state.value)
        self._state = state
        if notify:
            self.state_changed.fire(state)


__all__ = [
    "WorkerClient",
    "WorkerCommandError",
    "WorkerError",
    "WorkerState",
    "WorkerTransportError",
]
