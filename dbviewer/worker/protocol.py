"""JSON-RPC framing used to talk to the worker over stdio."""

from __future__ import annotations

import asyncio
import json
from typing import Any

from pydantic import BaseModel

CONTENT_LENGTH = "Content-Length"
JSONRPC_VERSION = "2.0"

# Lifecycle methods
INITIALIZE = "initialize"
INITIALIZED = "initialized"
SHUTDOWN = "shutdown"
EXIT = "exit"

EXECUTE_COMMAND = "workspace/executeCommand"
LOG_MESSAGE = "window/logMessage"
REGISTER_CONNECTION = "db.registerConnection"
REGISTER_ALL_CONNECTIONS = "db.registerAllConnections"

# Command names understood by the worker's executeCommand handler
SERVER_EXECUTE_COMMAND = "dbviewer.server.executeCommand"
SERVER_CHECK_CONNECTION = "dbviewer.server.checkConnection"


class ProtocolError(ValueError):
    """Raised when the peer sends bytes that are not a valid framed message."""


class ResponseError(BaseModel):
    """Error object carried by a failed JSON-RPC response."""

    code: int = 0
    message: str = ""
    data: Any = None


def request(message_id: int, method: str, params: Any = None) -> dict[str, Any]:
    message: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": message_id, "method": method}
    if params is not None:
        message["params"] = params
    return message


def notification(method: str, params: Any = None) -> dict[str, Any]:
    message: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": method}
    if params is not None:
        message["params"] = params
    return message


def response(message_id: Any, result: Any = None) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": message_id, "result": result}


def encode_message(message: dict[str, Any]) -> bytes:
    """Serialize a message with its ``Content-Length`` header."""

    body = json.dumps(message, separators=(",", ":")).encode("utf-8")
    header = f"{CONTENT_LENGTH}: {len(body)}\r\n\r\n".encode("ascii")
    return header + body


async def read_message(reader: asyncio.StreamReader) -> dict[str, Any] | None:
    """Read one framed message; returns ``None`` at end of stream."""

    length: int | None = None
    while True:
        try:
            line = await reader.readline()
        except (asyncio.LimitOverrunError, ValueError) as exc:
            raise ProtocolError(f"Header line too long: {exc}") from exc
        if not line:
            return None
        text = line.decode("ascii", errors="replace").strip()
        if not text:
            if length is None:
                raise ProtocolError("Message without Content-Length header")
            break
        name, _, value = text.partition(":")
        if name.strip().lower() == CONTENT_LENGTH.lower():
            try:
                length = int(value.strip())
            except ValueError as exc:
                raise ProtocolError(f"Invalid Content-Length: {value.strip()!r}") from exc
    try:
        body = await reader.readexactly(length)
    except asyncio.IncompleteReadError:
        return None
    try:
        message = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ProtocolError(f"Invalid message body: {exc}") from exc
    if not isinstance(message, dict):
        raise ProtocolError("Message body is not a JSON object")
    return message


__all__ = [
    "CONTENT_LENGTH",
    "EXECUTE_COMMAND",
    "EXIT",
    "INITIALIZE",
    "INITIALIZED",
    "LOG_MESSAGE",
    "ProtocolError",
    "REGISTER_ALL_CONNECTIONS",
    "REGISTER_CONNECTION",
    "ResponseError",
    "SERVER_CHECK_CONNECTION",
    "SERVER_EXECUTE_COMMAND",
    "SHUTDOWN",
    "encode_message",
    "notification",
    "read_message",
    "request",
    "response",
]
