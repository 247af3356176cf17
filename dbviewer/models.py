"""Shared models: connection profiles, execution requests and decoded results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field


class DatabaseType(str, Enum):
    """Database flavours offered when adding a connection."""

    MYSQL = "mysql"
    POSTGRESQL = "postgresql"
    SQLITE = "sqlite"

    @property
    def placeholder(self) -> str:
        """Example connection string shown while prompting."""

        if self is DatabaseType.SQLITE:
            return "sqlite:path/to/database.db"
        return f"{self.value}://username:password@hostname:port/database"


class ConnectionProfile(BaseModel):
    """Named connection description persisted in the connections file."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    name: str = Field(min_length=1)
    connection_string: str = Field(alias="connectionString")
    type: str | None = None
    username: str | None = None
    password: str | None = None

    def to_json(self) -> dict[str, Any]:
        """Return the on-disk representation (camelCase, optional keys omitted, unknown keys kept)."""

        return self.model_dump(by_alias=True, exclude_none=True)

    def to_worker_params(self) -> dict[str, Any]:
        """Return the payload used to register the profile with the worker."""

        return {
            "connectionId": self.name,
            "connectionString": self.connection_string,
            "type": self.type,
            "username": self.username,
            "password": self.password,
        }


@dataclass(frozen=True, slots=True)
class ExecutionRequest:
    """A query bound to the profile it should run against."""

    query: str
    connection_id: str
    connection_string: str

    @classmethod
    def for_profile(cls, profile: ConnectionProfile, query: str) -> ExecutionRequest:
        return cls(query=query, connection_id=profile.name, connection_string=profile.connection_string)

    def to_params(self) -> dict[str, str]:
        return {
            "query": self.query,
            "connection_id": self.connection_id,
            "connection_string": self.connection_string,
        }


@dataclass(frozen=True, slots=True)
class RowSetResult:
    """Rows returned by a read query."""

    rows: tuple[Mapping[str, Any], ...]
    execution_time_ms: float | None = None


@dataclass(frozen=True, slots=True)
class AffectedRowsResult:
    """Outcome of a write or DDL statement."""

    rows_affected: int
    execution_time_ms: float | None = None


@dataclass(frozen=True, slots=True)
class OpaqueResult:
    """Any payload the worker returned that is neither rows nor an affected count."""

    payload: Any = field(default=None)


ExecutionResult = Union[RowSetResult, AffectedRowsResult, OpaqueResult]

_AFFECTED_KEYS = ("rowsAffected", "rows_affected", "affected_rows")
_TIME_KEYS = ("execution_time", "executionTimeMs", "execution_time_ms")


def decode_execution_result(payload: Any) -> ExecutionResult | None:
    """Resolve a raw worker response into one concrete result variant."""

    if payload is None:
        return None
    if not isinstance(payload, Mapping):
        return OpaqueResult(payload)
    elapsed = _first_number(payload, _TIME_KEYS)
    data = payload.get("data", payload)
    if isinstance(data, Mapping):
        rows = data.get("rows")
        if isinstance(rows, list) and all(isinstance(row, Mapping) for row in rows):
            return RowSetResult(rows=tuple(rows), execution_time_ms=elapsed)
        for source in (data, payload):
            affected = _first_int(source, _AFFECTED_KEYS)
            if affected is not None:
                return AffectedRowsResult(rows_affected=affected, execution_time_ms=elapsed)
    return OpaqueResult(payload)


def _first_int(source: Mapping[str, Any], keys: tuple[str, ...]) -> int | None:
    for key in keys:
        value = source.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def _first_number(source: Mapping[str, Any], keys: tuple[str, ...]) -> float | None:
    for key in keys:
        value = source.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    return None


__all__ = [
    "AffectedRowsResult",
    "ConnectionProfile",
    "DatabaseType",
    "ExecutionRequest",
    "ExecutionResult",
    "OpaqueResult",
    "RowSetResult",
    "decode_execution_result",
]
