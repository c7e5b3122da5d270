"""Snapshot serialization and atomic file replacement."""

from __future__ import annotations

import contextlib
import logging
import os
import threading
from collections.abc import Callable
from pathlib import Path

from pydantic import ValidationError

from pkgindex.config import DEFAULT_TEMP_SUFFIX
from pkgindex.diagnostics import DiagnosticSink, LoggingDiagnosticSink, report_exception
from pkgindex.exceptions import PkgIndexLoadError, PkgIndexPersistError
from pkgindex.models import DatabaseSnapshot

_logger = logging.getLogger(__name__)


def temp_path_for(path: Path, suffix: str = DEFAULT_TEMP_SUFFIX) -> Path:
    """Sibling temporary path (same directory, *suffix* appended)."""
    return path.with_name(path.name + suffix)


def load_snapshot(path: Path) -> DatabaseSnapshot:
    """Read and validate the database file at *path*.

    Raises
    ------
    PkgIndexLoadError
        If the file cannot be read or does not contain every required field.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise PkgIndexLoadError(f"Cannot read database file {path}: {exc}", path=path) from exc

    try:
        return DatabaseSnapshot.model_validate_json(raw)
    except ValidationError as exc:
        raise PkgIndexLoadError(f"Invalid database file {path}: {exc}", path=path) from exc


def _write_fully(path: Path, text: str) -> None:
    with path.open("w", encoding="utf-8") as handle:
        handle.write(text)
        handle.flush()
        os.fsync(handle.fileno())


class PersistenceManager:
    """Writes snapshots to a single database file.

    Every save serializes the snapshot, writes it to a sibling temporary
    file and swaps that file over the target with :func:`os.replace`, so
    a reader of the target only ever sees a complete file. The whole
    sequence runs under a per-instance lock because saves arrive both from
    the refresh path and from server-list notifications.

    Parameters
    ----------
    path : Path
        Target database file.
    diagnostics : DiagnosticSink or None
        Receives swallowed save failures.
    temp_suffix : str
        Suffix for the temporary sibling file.
    lock_timeout : float or None
        Seconds to wait for the file lock before skipping the save.
        ``None`` waits indefinitely.
    json_indent : int or None
        Indentation of the written JSON.
    """

    def __init__(
        self,
        path: Path,
        *,
        diagnostics: DiagnosticSink | None = None,
        temp_suffix: str = DEFAULT_TEMP_SUFFIX,
        lock_timeout: float | None = None,
        json_indent: int | None = None,
    ) -> None:
        self._path = path
        self._temp_path = temp_path_for(path, temp_suffix)
        self._diagnostics = diagnostics or LoggingDiagnosticSink()
        self._lock_timeout = lock_timeout
        self._json_indent = json_indent
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def temp_path(self) -> Path:
        return self._temp_path

    def save(self, build_snapshot: Callable[[], DatabaseSnapshot]) -> bool:
        """Persist the snapshot returned by *build_snapshot*.

        The snapshot is built inside the file lock so the last save to
        finish always writes the newest state. Failures are reported and
        swallowed; the previously committed file stays intact.

        Returns
        -------
        bool
            ``True`` when the new file was committed.
        """
        timeout = -1 if self._lock_timeout is None else self._lock_timeout
        if not self._lock.acquire(timeout=timeout):
            report_exception(
                self._diagnostics,
                TimeoutError(f"Timed out after {self._lock_timeout}s waiting for {self._path}"),
                "save",
            )
            return False

        try:
            self._write_atomically(build_snapshot)
        except PkgIndexPersistError as exc:
            report_exception(self._diagnostics, exc, "save")
            return False
        finally:
            self._lock.release()
        return True

    def _write_atomically(self, build_snapshot: Callable[[], DatabaseSnapshot]) -> None:
        try:
            text = build_snapshot().model_dump_json(indent=self._json_indent)
        except Exception as exc:
            raise PkgIndexPersistError(f"Cannot serialize database: {exc}", path=self._path) from exc

        if not text:
            raise PkgIndexPersistError("Serialized database is empty", path=self._path)

        try:
            _write_fully(self._temp_path, text)
            os.replace(self._temp_path, self._path)
        except OSError as exc:
            with contextlib.suppress(OSError):
                self._temp_path.unlink(missing_ok=True)
            raise PkgIndexPersistError(f"Cannot write database file {self._path}: {exc}", path=self._path) from exc

        _logger.debug("Database saved path=%s bytes=%d", self._path, len(text))
