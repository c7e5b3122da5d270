"""Single-flight refresh of unknown package IDs.

Owns:
- the "missing package" scan against the entry store
- the call into the enrichment collaborator
- merging its answer and triggering persistence

At most one refresh runs per database; later callers wait on an
``asyncio.Lock`` before computing their own missing set, so they never
re-request packages the in-flight refresh just resolved.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping

from pydantic import TypeAdapter, ValidationError

from pkgindex.diagnostics import DiagnosticSink, LoggingDiagnosticSink, report_exception, report_invalid_argument
from pkgindex.models import Uint32, is_valid_id
from pkgindex.store import EntryStore

_logger = logging.getLogger(__name__)

EnrichmentResult = Mapping[int, Iterable[int]] | None
Enricher = Callable[[frozenset[int]], Awaitable[EnrichmentResult]]
"""Resolves unknown package IDs to ``{app_id: package_ids}``; ``None`` or empty when nothing resolved."""

_ENRICHMENT_ADAPTER: TypeAdapter[dict[Uint32, set[Uint32]]] = TypeAdapter(dict[Uint32, set[Uint32]])


class RefreshCoordinator:
    """Merges enrichment results for unknown packages into an :class:`EntryStore`.

    Parameters
    ----------
    entries : EntryStore
        Index to scan and merge into.
    persist : Callable[[], object]
        Blocking save, run in the default executor after a merge.
    enricher : Enricher or None
        Default enrichment collaborator; may be overridden per call.
    diagnostics : DiagnosticSink or None
        Receives invalid arguments and swallowed failures.
    timeout : float or None
        Seconds to wait for an in-flight refresh before giving up.
        ``None`` waits indefinitely.
    """

    def __init__(
        self,
        entries: EntryStore,
        persist: Callable[[], object],
        *,
        enricher: Enricher | None = None,
        diagnostics: DiagnosticSink | None = None,
        timeout: float | None = None,
    ) -> None:
        self._entries = entries
        self._persist = persist
        self._enricher = enricher
        self._diagnostics = diagnostics or LoggingDiagnosticSink()
        self._timeout = timeout
        self._lock = asyncio.Lock()
        self._lock_loop: asyncio.AbstractEventLoop | None = None

    @property
    def is_refreshing(self) -> bool:
        """Whether a refresh currently holds the admission slot."""
        return self._lock.locked()

    def _admission_lock(self) -> asyncio.Lock | None:
        """Admission lock usable from the running loop.

        An idle lock is rebuilt when refreshes move to another event loop
        (e.g. successive ``asyncio.run`` calls). Returns ``None`` while a
        refresh on a different loop still holds it.
        """
        loop = asyncio.get_running_loop()
        if self._lock_loop is not loop:
            if self._lock.locked():
                return None
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    def missing_packages(self, package_ids: Iterable[int]) -> frozenset[int]:
        """Package IDs not granted to any app in the index (read-only)."""
        return frozenset(p for p in package_ids if not self._entries.contains_package(p))

    async def refresh(self, package_ids: Iterable[int] | None, enricher: Enricher | None = None) -> None:
        """Resolve every package in *package_ids* the index does not know yet.

        Invalid input is reported and ignored. When all packages are known
        this returns without calling the enricher or saving.
        """
        try:
            requested = frozenset(package_ids) if package_ids is not None else frozenset()
        except TypeError:
            requested = frozenset()
        if not requested or not all(is_valid_id(p) for p in requested):
            report_invalid_argument(self._diagnostics, "package_ids")
            return

        enrich = enricher if enricher is not None else self._enricher
        if enrich is None:
            report_invalid_argument(self._diagnostics, "enricher")
            return

        lock = self._admission_lock()
        if lock is None:
            report_invalid_argument(self._diagnostics, "event loop (refresh in flight on another loop)")
            return

        try:
            async with asyncio.timeout(self._timeout):
                await lock.acquire()
        except TimeoutError as exc:
            report_exception(self._diagnostics, exc, f"waiting {self._timeout}s for in-flight refresh")
            return

        try:
            await self._refresh_locked(requested, enrich)
        finally:
            lock.release()

    async def _refresh_locked(self, requested: frozenset[int], enrich: Enricher) -> None:
        missing = self.missing_packages(requested)
        _logger.debug("Refresh requested=%d missing=%d", len(requested), len(missing))
        if not missing:
            return

        try:
            result = await enrich(missing)
        except Exception as exc:
            report_exception(self._diagnostics, exc, "enrichment")
            return

        if not result:
            _logger.debug("Enrichment resolved nothing for %d packages", len(missing))
            return

        try:
            additions = _ENRICHMENT_ADAPTER.validate_python(result)
        except ValidationError as exc:
            report_exception(self._diagnostics, exc, "enrichment result")
            return

        added = self._entries.merge(additions)
        _logger.debug("Merged apps=%d new_pairs=%d", len(additions), added)

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._persist)
