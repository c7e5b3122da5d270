"""Durable AppID to PackageID database.

Usage::

    result = PackageIndexDatabase.load("config/pkgindex.json", enricher=resolve_packages)
    if not result.ok:
        ...  # caller decides: abort, or move the file aside and recreate
    with result.database as database:
        await database.refresh_package_ids({100, 101})
        database.get_package_ids(730)
"""

from __future__ import annotations

import logging
import os
import threading
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any

from pkgindex.config import DEFAULT_TEMP_SUFFIX, IndexConfig
from pkgindex.diagnostics import DiagnosticSink, LoggingDiagnosticSink, report_exception, report_invalid_argument
from pkgindex.exceptions import PkgIndexConfigError, PkgIndexError, PkgIndexLoadError
from pkgindex.models import DatabaseSnapshot, is_valid_id
from pkgindex.notifier import ChangeNotifierBridge
from pkgindex.persistence import PersistenceManager, load_snapshot
from pkgindex.refresh import Enricher, RefreshCoordinator
from pkgindex.servers import InMemoryServerListProvider
from pkgindex.store import EntryStore

_logger = logging.getLogger(__name__)


class LoadOutcome(StrEnum):
    CREATED = "created"
    LOADED = "loaded"
    UNUSABLE = "unusable"


class DatabaseState(StrEnum):
    IDLE = "idle"
    REFRESHING = "refreshing"
    DISPOSED = "disposed"


@dataclass(frozen=True)
class LoadResult:
    """Outcome of :meth:`PackageIndexDatabase.load`.

    ``database`` is set for ``CREATED`` and ``LOADED``; ``error`` is set
    for ``UNUSABLE``.
    """

    outcome: LoadOutcome
    database: PackageIndexDatabase | None = None
    error: PkgIndexError | None = None

    @property
    def ok(self) -> bool:
        return self.database is not None


class PackageIndexDatabase:
    """Process-local index of which packages grant which apps.

    Instances come from :meth:`load` or :meth:`from_config`. The database
    saves itself after every refresh that learned something, after every
    cell ID change, and whenever its server list reports an update.
    """

    def __init__(
        self,
        path: Path,
        snapshot: DatabaseSnapshot,
        *,
        origin: LoadOutcome,
        enricher: Enricher | None = None,
        diagnostics: DiagnosticSink | None = None,
        temp_suffix: str = DEFAULT_TEMP_SUFFIX,
        refresh_timeout: float | None = None,
        save_timeout: float | None = None,
        json_indent: int | None = None,
    ) -> None:
        self._diagnostics = diagnostics or LoggingDiagnosticSink()
        self._origin = origin
        self._guid = snapshot.guid
        self._cell_id = snapshot.cell_id
        self._cell_id_lock = threading.Lock()
        self._disposed = False

        self._server_list = InMemoryServerListProvider.from_state(snapshot.server_list)
        self._entries = EntryStore.from_mapping(snapshot.app_ids_to_package_ids)
        self._persistence = PersistenceManager(
            path,
            diagnostics=self._diagnostics,
            temp_suffix=temp_suffix,
            lock_timeout=save_timeout,
            json_indent=json_indent,
        )
        self._refresher = RefreshCoordinator(
            self._entries,
            self.save,
            enricher=enricher,
            diagnostics=self._diagnostics,
            timeout=refresh_timeout,
        )
        self._notifier = ChangeNotifierBridge(self._server_list, self.save)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def load(
        cls,
        path: str | os.PathLike[str] | None,
        *,
        diagnostics: DiagnosticSink | None = None,
        **options: Any,
    ) -> LoadResult:
        """Open the database at *path*, creating and saving it when absent.

        Never raises for unreadable or malformed files: those yield an
        ``UNUSABLE`` result carrying the :class:`PkgIndexLoadError`.

        Parameters
        ----------
        path : str or PathLike
            Database file location.
        diagnostics : DiagnosticSink or None
            Receives invalid arguments and swallowed failures.
        **options
            ``enricher``, ``temp_suffix``, ``refresh_timeout``,
            ``save_timeout`` and ``json_indent``, forwarded to the
            database.
        """
        sink = diagnostics or LoggingDiagnosticSink()
        if path is None or not os.fspath(path).strip():
            report_invalid_argument(sink, "path")
            return LoadResult(LoadOutcome.UNUSABLE, error=PkgIndexConfigError("Database path is empty"))

        file_path = Path(path)
        try:
            exists = file_path.exists()
        except OSError as exc:
            error = PkgIndexLoadError(f"Cannot access database file {file_path}: {exc}", path=file_path)
            error.__cause__ = exc
            report_exception(sink, error, "load")
            return LoadResult(LoadOutcome.UNUSABLE, error=error)
        if not exists:
            return cls._create(file_path, sink, options)

        try:
            snapshot = load_snapshot(file_path)
            database = cls(file_path, snapshot, origin=LoadOutcome.LOADED, diagnostics=sink, **options)
        except PkgIndexLoadError as exc:
            report_exception(sink, exc, "load")
            return LoadResult(LoadOutcome.UNUSABLE, error=exc)

        _logger.debug(
            "Database loaded path=%s apps=%d guid=%s",
            file_path,
            len(database.entries),
            database.guid,
        )
        return LoadResult(LoadOutcome.LOADED, database=database)

    @classmethod
    def _create(cls, file_path: Path, sink: DiagnosticSink, options: dict[str, Any]) -> LoadResult:
        snapshot = DatabaseSnapshot.fresh(InMemoryServerListProvider().dump_state())
        database = cls(file_path, snapshot, origin=LoadOutcome.CREATED, diagnostics=sink, **options)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            report_exception(sink, exc, "create database directory")
        database.save()
        _logger.debug("Database created path=%s guid=%s", file_path, database.guid)
        return LoadResult(LoadOutcome.CREATED, database=database)

    @classmethod
    def from_config(
        cls,
        config: IndexConfig,
        *,
        enricher: Enricher | None = None,
        diagnostics: DiagnosticSink | None = None,
    ) -> LoadResult:
        """Open the database described by *config*."""
        return cls.load(
            config.database_path,
            enricher=enricher,
            diagnostics=diagnostics,
            temp_suffix=config.temp_suffix,
            refresh_timeout=config.refresh_timeout,
            save_timeout=config.save_timeout,
            json_indent=config.json_indent,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def __enter__(self) -> PackageIndexDatabase:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def close(self) -> None:
        """Detach from the server list. The database is unusable for refreshes afterwards."""
        self._notifier.close()
        self._disposed = True

    @property
    def state(self) -> DatabaseState:
        if self._disposed:
            return DatabaseState.DISPOSED
        if self._refresher.is_refreshing:
            return DatabaseState.REFRESHING
        return DatabaseState.IDLE

    @property
    def origin(self) -> LoadOutcome:
        """Whether this instance was freshly created or loaded from disk."""
        return self._origin

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    @property
    def path(self) -> Path:
        return self._persistence.path

    @property
    def guid(self) -> uuid.UUID:
        return self._guid

    @property
    def entries(self) -> EntryStore:
        return self._entries

    @property
    def server_list(self) -> InMemoryServerListProvider:
        return self._server_list

    @property
    def cell_id(self) -> int:
        return self._cell_id

    @cell_id.setter
    def cell_id(self, value: int) -> None:
        self.set_cell_id(value)

    def set_cell_id(self, value: int) -> bool:
        """Store a new cell ID and save.

        ``0`` and the current value are ignored. Returns ``True`` when the
        value changed.
        """
        if not is_valid_id(value):
            report_invalid_argument(self._diagnostics, "cell_id")
            return False
        with self._cell_id_lock:
            if value == 0 or value == self._cell_id:
                return False
            self._cell_id = value
        self.save()
        return True

    def get_package_ids(self, app_id: int) -> frozenset[int]:
        return self._entries.get(app_id)

    def contains_package(self, package_id: int) -> bool:
        return self._entries.contains_package(package_id)

    def snapshot(self) -> DatabaseSnapshot:
        """Current full state in its persisted form."""
        return DatabaseSnapshot(
            app_ids_to_package_ids=self._entries.snapshot(),
            guid=self._guid,
            server_list=self._server_list.dump_state(),
            cell_id=self._cell_id,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def refresh_package_ids(
        self,
        package_ids: Iterable[int] | None,
        enricher: Enricher | None = None,
    ) -> None:
        """Resolve and persist the owners of every package the index does not know yet."""
        if self._disposed:
            report_invalid_argument(self._diagnostics, "database (disposed)")
            return
        await self._refresher.refresh(package_ids, enricher)

    def save(self) -> bool:
        """Write the full snapshot atomically. Failures are reported, not raised."""
        return self._persistence.save(self.snapshot)
