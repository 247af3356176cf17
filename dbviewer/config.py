"""App configuration loading helpers."""

from __future__ import annotations

import os
import shutil
from pathlib import Path

import tomllib

from pydantic import BaseModel, Field

CONFIG_FILE = Path.home() / ".config" / "dbviewer" / "config.toml"
DEFAULT_STORAGE_DIR = Path.home() / ".local" / "share" / "dbviewer"
CONNECTIONS_FILENAME = "db-connections.json"
STATE_FILENAME = "state.json"
WORKER_EXECUTABLE = "db-viewer-server"
WORKER_BASE_PATH_ENV = "SERVER_BASE_PATH"


class AppConfig(BaseModel):
    """Shape of the application configuration file."""

    theme: str = "textual-dark"
    storage_dir: Path = Field(default_factory=lambda: DEFAULT_STORAGE_DIR)
    worker_path: str | None = None
    worker_args: list[str] = Field(default_factory=list)
    worker_log_level: str = "debug"
    shutdown_timeout: float = 5.0
    watch_config: bool = True
    watch_debounce_ms: int = 50
    log_level: str = "INFO"
    log_file: Path | None = None

    @property
    def connections_file(self) -> Path:
        """JSON document holding the connection profiles."""

        return self.storage_dir / CONNECTIONS_FILENAME

    @property
    def state_file(self) -> Path:
        """Key/value state file (selected connection)."""

        return self.storage_dir / STATE_FILENAME

    @property
    def resolved_log_file(self) -> Path:
        return self.log_file or self.storage_dir / "dbviewer.log"

    def worker_command(self) -> list[str]:
        """Return argv for launching the worker process."""

        return [resolve_worker_path(self.worker_path), *self.worker_args]

    def worker_env(self) -> dict[str, str]:
        """Environment for the worker; inherits ours plus its log level."""

        env = dict(os.environ)
        env["RUST_LOG"] = self.worker_log_level
        return env


def resolve_worker_path(configured: str | None = None) -> str:
    """Locate the worker executable.

    An explicit path wins, then ``$SERVER_BASE_PATH/db-viewer-server``, then a lookup on ``PATH``.
    The bare executable name is returned when nothing matches so launch errors name it.
    """

    if configured:
        return str(Path(configured).expanduser())
    suffix = ".exe" if os.name == "nt" else ""
    name = f"{WORKER_EXECUTABLE}{suffix}"
    base = os.environ.get(WORKER_BASE_PATH_ENV)
    if base:
        return str(Path(base) / name)
    return shutil.which(name) or name


def load_config() -> AppConfig:
    """Load configuration from disk; fall back to defaults if missing."""

    try:
        data = _read_config_file()
    except FileNotFoundError:
        return AppConfig()
    except (tomllib.TOMLDecodeError, OSError):
        return AppConfig()
    return AppConfig(**data)


def _read_config_file() -> dict[str, object]:
    with CONFIG_FILE.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    for key in ("theme", "worker_path", "worker_log_level", "log_level"):
        value = raw.get(key)
        if isinstance(value, str):
            data[key] = value
    for key in ("storage_dir", "log_file"):
        value = raw.get(key)
        if isinstance(value, str):
            data[key] = Path(value).expanduser()
    worker_args = raw.get("worker_args")
    if isinstance(worker_args, list):
        data["worker_args"] = [str(arg) for arg in worker_args]
    timeout = raw.get("shutdown_timeout")
    if isinstance(timeout, (int, float)) and not isinstance(timeout, bool) and timeout > 0:
        data["shutdown_timeout"] = float(timeout)
    watch = raw.get("watch_config")
    if isinstance(watch, bool):
        data["watch_config"] = watch
    debounce = raw.get("watch_debounce_ms")
    if isinstance(debounce, int) and not isinstance(debounce, bool) and debounce >= 0:
        data["watch_debounce_ms"] = debounce
    return data


__all__ = ["AppConfig", "CONFIG_FILE", "load_config", "resolve_worker_path"]
