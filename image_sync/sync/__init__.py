"""Sync engine: adapters, matching, conflict resolution and orchestration."""
from .interfaces import FileStat, LocalDirectory, RemoteCatalog, RemotePage, SyncLogStore  # noqa: F401
from .local_directory import LocalDirectoryAdapter  # noqa: F401
from .matcher import match  # noqa: F401
from .orchestrator import SyncOrchestrator, plan_pass  # noqa: F401
from .remote_client import RemoteCatalogClient  # noqa: F401
from .resolver import orphan_action, resolve  # noqa: F401
from .scheduler import SyncScheduler  # noqa: F401

__all__ = [
    "FileStat",
    "LocalDirectory",
    "LocalDirectoryAdapter",
    "RemoteCatalog",
    "RemoteCatalogClient",
    "RemotePage",
    "SyncLogStore",
    "SyncOrchestrator",
    "SyncScheduler",
    "match",
    "orphan_action",
    "plan_pass",
    "resolve",
]
