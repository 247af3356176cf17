"""Command palette providers for the connection and query commands."""

from __future__ import annotations

from textual.command import DiscoveryHit, Hit, Hits, Provider
from textual.types import IgnoreReturnCallbackType

from .command_registry import CommandRegistry
from .registry import ConnectionRegistry


class DbViewerCommandProvider(Provider):
    """Exposes the visible commands to Textual's command palette."""

    async def search(self, query: str) -> Hits:
        registry = self._registry
        if registry is None:
            return
        matcher = self.matcher(query)
        for spec in registry.list_commands():
            match = matcher.match(spec.title)
            if match > 0:
                yield Hit(
                    score=match,
                    match_display=matcher.highlight(spec.title),
                    command=self._build_callback(spec.name),
                    help=spec.name,
                )

    async def discover(self) -> Hits:
        registry = self._registry
        if registry is None:
            return
        for spec in registry.list_commands():
            yield DiscoveryHit(
                display=spec.title,
                command=self._build_callback(spec.name),
                help=spec.name,
            )

    @property
    def _registry(self) -> CommandRegistry | None:
        registry = getattr(self.app, "command_registry", None)
        if isinstance(registry, CommandRegistry):
            return registry
        return None

    def _build_callback(self, name: str) -> IgnoreReturnCallbackType:
        async def _run() -> None:
            dispatch = getattr(self.app, "dispatch_command", None)
            if dispatch is None:
                return
            dispatch(name)

        return _run


class ConnectionSwitchProvider(Provider):
    """Expose connection profiles to the command palette."""

    async def search(self, query: str) -> Hits:
        registry = self._connections
        if registry is None:
            return
        matcher = self.matcher(query)
        for profile in registry.list_profiles():
            match = matcher.match(profile.name)
            if match > 0:
                yield Hit(
                    score=match,
                    match_display=f"Switch to connection: {matcher.highlight(profile.name)}",
                    command=self._build_callback(profile.name),
                    help=profile.connection_string,
                )

    async def discover(self) -> Hits:
        registry = self._connections
        if registry is None:
            return
        for profile in registry.list_profiles():
            yield DiscoveryHit(
                display=f"Switch to connection: {profile.name}",
                command=self._build_callback(profile.name),
                help=profile.connection_string,
            )

    @property
    def _connections(self) -> ConnectionRegistry | None:
        registry = getattr(self.app, "connections", None)
        if isinstance(registry, ConnectionRegistry):
            return registry
        return None

    def _build_callback(self, name: str) -> IgnoreReturnCallbackType:
        async def _run() -> None:
            switcher = getattr(self.app, "switch_connection", None)
            if switcher is None:
                return
            switcher(name)

        return _run


__all__ = ["ConnectionSwitchProvider", "DbViewerCommandProvider"]
