from .changelog import ChangeLog, InMemoryChangeLog, JsonlChangeLog
from .config import (
    FileSpaceConfigStore,
    InMemorySpaceConfigStore,
    SpaceConfigStore,
    parse_endpoints,
    sanitize_name,
)
from .snapshots import (
    FileSnapshotStore,
    InMemorySnapshotStore,
    SnapshotStore,
    latest_baseline,
    latest_current,
)

__all__ = [
    "SpaceConfigStore",
    "InMemorySpaceConfigStore",
    "FileSpaceConfigStore",
    "parse_endpoints",
    "sanitize_name",
    "SnapshotStore",
    "InMemorySnapshotStore",
    "FileSnapshotStore",
    "latest_baseline",
    "latest_current",
    "ChangeLog",
    "InMemoryChangeLog",
    "JsonlChangeLog",
]
