"""File-backed registry of connection profiles plus the selected connection."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Iterable, Protocol

from pydantic import ValidationError

from .events import EventEmitter
from .models import ConnectionProfile

LOG = logging.getLogger(__name__)

SELECTED_CONNECTION_KEY = "selectedConnectionName"

ProfileSnapshot = tuple[ConnectionProfile, ...]


class RegistryError(RuntimeError):
    """Base class for registry failures surfaced to callers."""


class ConfigWriteError(RegistryError):
    """Raised when the connections file could not be written.

    The in-memory registry already reflects the mutation when this is raised.
    """

    def __init__(self, path: Path, reason: OSError) -> None:
        super().__init__(f"Failed to save database connections to {path}: {reason}")
        self.path = path
        self.reason = reason


class ProfileFile:
    """JSON array of profiles on disk."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._invalid_entries: tuple[Any, ...] = ()
        self._problem: str | None = None
        self._unparsed_text: str | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def backup_path(self) -> Path:
        """Where an unparseable file is copied before it is first overwritten."""

        return self._path.with_name(self._path.name + ".bak")

    @property
    def invalid_entries(self) -> tuple[Any, ...]:
        """Raw entries from the last read that failed validation; written back untouched."""

        return self._invalid_entries

    @property
    def problem(self) -> str | None:
        """Human-readable description of what went wrong on the last read, if anything."""

        return self._problem

    def read(self) -> ProfileSnapshot:
        """Return the stored profiles; missing or malformed files read as empty."""

        self._invalid_entries = ()
        self._problem = None
        self._unparsed_text = None
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ()
        except OSError as exc:
            LOG.warning("Failed to read connections file %s: %s", self._path, exc)
            self._problem = f"Failed to read {self._path}: {exc}"
            return ()
        if not text.strip():
            return ()
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            LOG.warning("Connections file %s is not valid JSON: %s", self._path, exc)
            self._problem = f"{self._path} is not valid JSON; no connections were loaded."
            self._unparsed_text = text
            return ()
        if not isinstance(data, list):
            LOG.warning("Connections file %s does not hold a JSON array", self._path)
            self._problem = f"{self._path} does not hold a JSON array; no connections were loaded."
            self._unparsed_text = text
            return ()
        profiles: list[ConnectionProfile] = []
        invalid: list[Any] = []
        for index, entry in enumerate(data):
            try:
                profiles.append(ConnectionProfile.model_validate(entry))
            except ValidationError as exc:
                LOG.warning("Skipping invalid connection entry %d in %s: %s", index, self._path, exc)
                invalid.append(entry)
        self._invalid_entries = tuple(invalid)
        if invalid:
            self._problem = f"Skipped {len(invalid)} invalid connection entry(ies) in {self._path}."
        return tuple(profiles)

    def write(self, profiles: Iterable[ConnectionProfile]) -> None:
        """Overwrite the file with the given profiles."""

        self._path.parent.mkdir(parents=True, exist_ok=True)
        if self._unparsed_text is not None:
            self.backup_path.write_text(self._unparsed_text, encoding="utf-8")
            LOG.warning("Saved unreadable connections file to %s before overwriting it", self.backup_path)
            self._unparsed_text = None
        payload: list[Any] = [profile.to_json() for profile in profiles]
        payload.extend(self._invalid_entries)
        self._path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")

    def ensure_exists(self) -> Path:
        """Create the directory and an empty array file when missing."""

        self._path.parent.mkdir(parents=True, exist_ok=True)
        if not self._path.exists():
            self._path.write_text("[]\n", encoding="utf-8")
        return self._path


class StateStore(Protocol):
    """Durable key/value state provided by the host."""

    def get(self, key: str) -> Any: ...

    def update(self, key: str, value: Any) -> None: ...


class MemoryStateStore:
    """In-process state store (tests, ephemeral sessions)."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any:
        return self._values.get(key)

    def update(self, key: str, value: Any) -> None:
        if value is None:
            self._values.pop(key, None)
        else:
            self._values[key] = value


class JsonStateStore(MemoryStateStore):
    """State store persisted as a flat JSON object."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        super().__init__(self._load())

    @property
    def path(self) -> Path:
        return self._path

    def update(self, key: str, value: Any) -> None:
        super().update(key, value)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(self._values, indent=2) + "\n", encoding="utf-8")
        except OSError as exc:
            LOG.warning("Failed to persist state to %s: %s", self._path, exc)

    def _load(self) -> dict[str, Any]:
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as exc:
            LOG.warning("Ignoring unreadable state file %s: %s", self._path, exc)
            return {}
        return raw if isinstance(raw, dict) else {}


class ConnectionRegistry:
    """Owns the profile snapshot and the selection pointer.

    Every mutation runs under a single re-entrant lock and fires its notifications while the lock
    is held, so listeners observe changes in the order they were applied. Listeners run on the
    mutating thread and may read the registry again.
    """

    def __init__(self, store: ProfileFile, state: StateStore) -> None:
        self._store = store
        self._state = state
        self._lock = threading.RLock()
        self._profiles: ProfileSnapshot = store.read()
        self.connections_changed: EventEmitter[ProfileSnapshot] = EventEmitter()
        self.selection_changed: EventEmitter[ConnectionProfile | None] = EventEmitter()
        self._validate_selection()

    @classmethod
    def from_paths(cls, connections_file: Path, state_file: Path) -> ConnectionRegistry:
        return cls(ProfileFile(connections_file), JsonStateStore(state_file))

    @property
    def config_path(self) -> Path:
        return self._store.path

    @property
    def load_problem(self) -> str | None:
        """What went wrong reading the file most recently; invalid entries are kept on disk."""

        return self._store.problem

    def list_profiles(self) -> ProfileSnapshot:
        """Current snapshot in insertion order."""

        return self._profiles

    def get(self, name: str) -> ConnectionProfile | None:
        for profile in self._profiles:
            if profile.name == name:
                return profile
        return None

    def save(self, profile: ConnectionProfile) -> None:
        """Insert or replace a profile by name and rewrite the file."""

        with self._lock:
            profiles = list(self._profiles)
            for index, existing in enumerate(profiles):
                if existing.name == profile.name:
                    profiles[index] = profile
                    break
            else:
                profiles.append(profile)
            error = self._apply(tuple(profiles))
            self._validate_selection()
            self._raise_write_error(error)

    def delete(self, name: str) -> bool:
        """Remove a profile; returns whether anything was removed."""

        with self._lock:
            remaining = tuple(profile for profile in self._profiles if profile.name != name)
            if len(remaining) == len(self._profiles):
                return False
            error = self._apply(remaining)
            self._validate_selection()
            self._raise_write_error(error)
            return True

    def get_selected(self) -> ConnectionProfile | None:
        """Resolve the persisted selection against the current snapshot."""

        name = self._selected_name()
        return self.get(name) if name else None

    def set_selected(self, name: str | None) -> None:
        """Persist the selection by name and notify listeners."""

        with self._lock:
            if name is not None and self.get(name) is None:
                raise ValueError(f"Connection '{name}' not found.")
            self._write_selection(name)

    def reload(self) -> None:
        """Re-read the backing file; notify only when the snapshot changed."""

        with self._lock:
            profiles = self._store.read()
            if profiles != self._profiles:
                LOG.debug("Connections file changed, %d profile(s) loaded", len(profiles))
                self._profiles = profiles
                self.connections_changed.fire(profiles)
            self._validate_selection()

    def ensure_config_file(self) -> Path:
        """Make sure the backing file exists so it can be opened for editing."""

        return self._store.ensure_exists()

    def close(self) -> None:
        self.connections_changed.clear()
        self.selection_changed.clear()

    def _apply(self, profiles: ProfileSnapshot) -> OSError | None:
        changed = profiles != self._profiles
        self._profiles = profiles
        error: OSError | None = None
        try:
            self._store.write(profiles)
        except OSError as exc:
            LOG.error("Failed to save database connections to %s: %s", self._store.path, exc)
            error = exc
        if changed:
            self.connections_changed.fire(profiles)
        return error

    def _raise_write_error(self, error: OSError | None) -> None:
        if error is not None:
            raise ConfigWriteError(self._store.path, error)

    def _selected_name(self) -> str | None:
        name = self._state.get(SELECTED_CONNECTION_KEY)
        return name if isinstance(name, str) and name else None

    def _validate_selection(self) -> None:
        name = self._selected_name()
        if name is not None and self.get(name) is None:
            LOG.info("Selected connection '%s' no longer exists; clearing selection", name)
            self._write_selection(None)

    def _write_selection(self, name: str | None) -> None:
        self._state.update(SELECTED_CONNECTION_KEY, name)
        self.selection_changed.fire(self.get(name) if name else None)


__all__ = [
    "ConfigWriteError",
    "ConnectionRegistry",
    "JsonStateStore",
    "MemoryStateStore",
    "ProfileFile",
    "RegistryError",
    "SELECTED_CONNECTION_KEY",
    "StateStore",
]
