"""Custom exception hierarchy for pkgindex."""

from __future__ import annotations

from pathlib import Path


class PkgIndexError(Exception):
    """Base exception for all pkgindex errors."""


class PkgIndexConfigError(PkgIndexError):
    """Invalid or missing configuration."""


class PkgIndexLoadError(PkgIndexError):
    """A persisted database could not be read or is structurally invalid.

    Never raised across :meth:`PackageIndexDatabase.load`; the database
    facade returns it inside an ``UNUSABLE`` :class:`LoadResult` instead.
    """

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        self.path = path
        super().__init__(message)


class PkgIndexPersistError(PkgIndexError):
    """Writing the temporary file or swapping it into place failed.

    Reported to the diagnostic sink and swallowed by ``save()``; the
    previously committed file stays intact.
    """

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        self.path = path
        super().__init__(message)
