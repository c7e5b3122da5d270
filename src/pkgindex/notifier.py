"""Bridge from server-list "updated" signals to database saves."""

from __future__ import annotations

import logging
from collections.abc import Callable

from pkgindex.servers import ServerListEmitter, Subscription

_logger = logging.getLogger(__name__)


class ChangeNotifierBridge:
    """Calls *on_change* synchronously whenever *emitter* signals an update.

    The bridge only observes the emitter. It subscribes on construction and
    holds the returned :class:`Subscription` until :meth:`close` consumes
    it, after which no further signals reach *on_change*.
    """

    def __init__(self, emitter: ServerListEmitter, on_change: Callable[[], object]) -> None:
        self._on_change = on_change
        self._subscription: Subscription | None = emitter.subscribe(self._handle_updated)

    @property
    def is_attached(self) -> bool:
        return self._subscription is not None

    def _handle_updated(self) -> None:
        if self._subscription is None:
            return
        _logger.debug("Server list changed; saving database")
        self._on_change()

    def close(self) -> None:
        """Remove the subscription. Safe to call more than once."""
        subscription = self._subscription
        self._subscription = None
        if subscription is not None:
            subscription.close()
