"""Watch the connections file and trigger registry reloads."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from pathlib import Path
from typing import Callable

from watchfiles import Change, awatch

LOG = logging.getLogger(__name__)

_RELOAD_CHANGES = {Change.added, Change.modified}


class ConfigFileWatcher:
    """Calls ``on_change`` once per filesystem notification touching ``path``.

    The parent directory is watched (non-recursively) so that deleting and recreating the file is
    still observed. Deletions alone do not trigger a reload.
    """

    def __init__(self, path: Path, on_change: Callable[[], None], *, debounce_ms: int = 50) -> None:
        self._path = Path(path).resolve()
        self._on_change = on_change
        self._debounce_ms = debounce_ms
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start watching on the running event loop; no-op when already watching."""

        if self.running:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._stop_event = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._watch(), name="dbviewer-config-watch")

    async def stop(self) -> None:
        if self._stop_event:
            self._stop_event.set()
        task = self._task
        self._task = None
        self._stop_event = None
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    def matches(self, change: Change, path: str) -> bool:
        """Whether a raw watchfiles change should trigger a reload."""

        return change in _RELOAD_CHANGES and Path(path).resolve() == self._path

    async def _watch(self) -> None:
        assert self._stop_event is not None
        async for changes in awatch(
            self._path.parent,
            stop_event=self._stop_event,
            debounce=self._debounce_ms,
            recursive=False,
            watch_filter=self.matches,
        ):
            LOG.debug("Connections file change detected: %s", changes)
            try:
                self._on_change()
            except Exception:
                LOG.exception("Reloading connections after file change failed", extra={"path": str(self._path)})


__all__ = ["ConfigFileWatcher"]
