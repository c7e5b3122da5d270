"""pkgindex - Durable AppID to PackageID index with single-flight refresh."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pkgindex")
except PackageNotFoundError:
    __version__ = "0+local"
from pkgindex.config import IndexConfig
from pkgindex.database import DatabaseState, LoadOutcome, LoadResult, PackageIndexDatabase
from pkgindex.diagnostics import DiagnosticSink, LoggingDiagnosticSink
from pkgindex.exceptions import (
    PkgIndexConfigError,
    PkgIndexError,
    PkgIndexLoadError,
    PkgIndexPersistError,
)
from pkgindex.models import DatabaseSnapshot
from pkgindex.notifier import ChangeNotifierBridge
from pkgindex.persistence import PersistenceManager
from pkgindex.refresh import Enricher, RefreshCoordinator
from pkgindex.servers import InMemoryServerListProvider, ServerRecord, Subscription
from pkgindex.store import ConcurrentIdSet, EntryStore

__all__ = [
    "__version__",
    "ChangeNotifierBridge",
    "ConcurrentIdSet",
    "DatabaseSnapshot",
    "DatabaseState",
    "DiagnosticSink",
    "Enricher",
    "EntryStore",
    "InMemoryServerListProvider",
    "IndexConfig",
    "LoadOutcome",
    "LoadResult",
    "LoggingDiagnosticSink",
    "PackageIndexDatabase",
    "PersistenceManager",
    "PkgIndexConfigError",
    "PkgIndexError",
    "PkgIndexLoadError",
    "PkgIndexPersistError",
    "RefreshCoordinator",
    "ServerRecord",
    "Subscription",
]
