"""Minimal observer helper shared by the registry and the worker client."""

from __future__ import annotations

from typing import Callable, Generic, TypeVar

T = TypeVar("T")

Listener = Callable[[T], None]


class EventEmitter(Generic[T]):
    """Callback registry that delivers each fired value to every subscriber."""

    def __init__(self) -> None:
        self._listeners: list[Listener[T]] = []

    def subscribe(self, listener: Listener[T]) -> Callable[[], None]:
        """Register a listener; returns an unsubscribe handle."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def fire(self, value: T) -> None:
        for listener in tuple(self._listeners):
            listener(value)

    def clear(self) -> None:
        self._listeners.clear()

    def __len__(self) -> int:
        return len(self._listeners)


__all__ = ["EventEmitter", "Listener"]
