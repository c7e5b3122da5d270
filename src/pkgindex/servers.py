"""In-memory server-list provider.

The provider keeps the last known list of connection-manager servers. Its
contents are opaque to the index; the database only persists
:meth:`InMemoryServerListProvider.dump_state` and saves whenever the
provider emits its payload-less "updated" signal.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pkgindex.exceptions import PkgIndexLoadError

_logger = logging.getLogger(__name__)

UpdatedCallback = Callable[[], None]


class ServerRecord(BaseModel):
    """A single server endpoint."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    host: str = Field(min_length=1)
    port: int = Field(ge=1, le=65535)
    protocol: str = "tcp"


class ServerListState(BaseModel):
    """Persisted server-list sub-state."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    servers: tuple[ServerRecord, ...] = ()


class ServerListEmitter(Protocol):
    """Structural interface of an emitter the notifier bridge can observe."""

    def subscribe(self, callback: UpdatedCallback) -> Subscription:
        ...

    def unsubscribe(self, subscription: Subscription) -> None:
        ...


@dataclass(eq=False)
class Subscription:
    """Registration handle returned by :meth:`ServerListEmitter.subscribe`.

    ``close()`` removes the callback; calling it again is a no-op.
    """

    emitter: ServerListEmitter
    callback: UpdatedCallback
    active: bool = field(default=True)

    def close(self) -> None:
        if not self.active:
            return
        self.emitter.unsubscribe(self)
        self.active = False


class InMemoryServerListProvider:
    """Thread-safe server list holder that signals changes to subscribers."""

    def __init__(self, servers: Iterable[ServerRecord] = ()) -> None:
        self._lock = threading.Lock()
        self._servers: tuple[ServerRecord, ...] = tuple(servers)
        self._subscriptions: list[Subscription] = []

    @classmethod
    def from_state(cls, state: dict[str, Any]) -> InMemoryServerListProvider:
        """Rebuild a provider from :meth:`dump_state` output.

        Raises
        ------
        PkgIndexLoadError
            If *state* is not a valid server-list sub-state.
        """
        try:
            parsed = ServerListState.model_validate(state)
        except ValidationError as exc:
            raise PkgIndexLoadError(f"Invalid server list state: {exc}") from exc
        return cls(parsed.servers)

    def dump_state(self) -> dict[str, Any]:
        with self._lock:
            servers = self._servers
        return ServerListState(servers=servers).model_dump(mode="json")

    def fetch_servers(self) -> tuple[ServerRecord, ...]:
        with self._lock:
            return self._servers

    def update_servers(self, servers: Iterable[ServerRecord]) -> bool:
        """Replace the server list, emitting "updated" only if it changed."""
        new_servers = tuple(servers)
        with self._lock:
            if new_servers == self._servers:
                return False
            self._servers = new_servers
        _logger.debug("Server list updated count=%d", len(new_servers))
        self._emit_updated()
        return True

    def subscribe(self, callback: UpdatedCallback) -> Subscription:
        subscription = Subscription(emitter=self, callback=callback)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions = [s for s in self._subscriptions if s is not subscription]

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def _emit_updated(self) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            try:
                subscription.callback()
            except Exception:
                _logger.debug("Server list updated callback failed", exc_info=True)
