"""Client side of the query worker process."""

from .client import (
    WorkerClient,
    WorkerCommandError,
    WorkerError,
    WorkerState,
    WorkerTransportError,
)
from .protocol import (
    REGISTER_ALL_CONNECTIONS,
    REGISTER_CONNECTION,
    SERVER_CHECK_CONNECTION,
    SERVER_EXECUTE_COMMAND,
    ProtocolError,
)

__all__ = [
    "ProtocolError",
    "REGISTER_ALL_CONNECTIONS",
    "REGISTER_CONNECTION",
    "SERVER_CHECK_CONNECTION",
    "SERVER_EXECUTE_COMMAND",
    "WorkerClient",
    "WorkerCommandError",
    "WorkerError",
    "WorkerState",
    "WorkerTransportError",
]
