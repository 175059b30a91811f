from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Protocol

import structlog

from ..errors import StoreError
from ..models import Snapshot
from .config import sanitize_name

logger = structlog.get_logger(__name__)


class SnapshotStore(Protocol):
    def append(self, space: str, endpoint: str, snapshot: Snapshot) -> str: ...

    def list(self, space: str, endpoint: str | None = None) -> list[Snapshot]: ...

    def read(self, snapshot_id: str) -> Snapshot: ...

    def prune(self, space: str, endpoint: str, keep: int) -> int: ...


def _ordered(snapshots: list[Snapshot]) -> list[Snapshot]:
    return sorted(snapshots, key=lambda s: (s.timestamp, s.id))


def latest_baseline(store: SnapshotStore, space: str, endpoint: str) -> Snapshot | None:
    baselines = [s for s in store.list(space, endpoint) if s.baseline]
    return baselines[-1] if baselines else None


def latest_current(store: SnapshotStore, space: str, endpoint: str, *, after: Snapshot | None = None) -> Snapshot | None:
    """Newest non-baseline snapshot, optionally restricted to ones taken after `after`."""
    candidates = [s for s in store.list(space, endpoint) if not s.baseline]
    if after is not None:
        candidates = [s for s in candidates if (s.timestamp, s.id) > (after.timestamp, after.id)]
    return candidates[-1] if candidates else None


def _prune_victims(snapshots: list[Snapshot], keep: int) -> list[Snapshot]:
    if keep < 0:
        raise ValueError("keep must be >= 0")
    ordered = _ordered(snapshots)
    baselines = [s for s in ordered if s.baseline]
    protected = {baselines[-1].id} if baselines else set()
    removable = [s for s in ordered if s.id not in protected]
    if len(removable) <= keep:
        return []
    return removable[: len(removable) - keep]


class InMemorySnapshotStore:
    def __init__(self) -> None:
        self._snapshots: dict[str, Snapshot] = {}
        self._lock = threading.Lock()

    def append(self, space: str, endpoint: str, snapshot: Snapshot) -> str:
        with self._lock:
            if snapshot.id in self._snapshots:
                raise StoreError(f"Snapshot already exists: {snapshot.id}")
            self._snapshots[snapshot.id] = snapshot
        return snapshot.id

    def list(self, space: str, endpoint: str | None = None) -> list[Snapshot]:
        with self._lock:
            items = [
                s
                for s in self._snapshots.values()
                if s.space == space and (endpoint is None or s.endpoint == endpoint)
            ]
        return _ordered(items)

    def read(self, snapshot_id: str) -> Snapshot:
        try:
            return self._snapshots[snapshot_id]
        except KeyError:
            raise StoreError(f"Snapshot not found: {snapshot_id}") from None

    def prune(self, space: str, endpoint: str, keep: int) -> int:
        victims = _prune_victims(self.list(space, endpoint), keep)
        with self._lock:
            for snapshot in victims:
                self._snapshots.pop(snapshot.id, None)
        return len(victims)


class FileSnapshotStore:
    """Snapshots as JSON documents: `<root>/<space>/<endpoint>/<id>.json`."""

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root)
        self._index: dict[str, Path] = {}
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def _dir(self, space: str, endpoint: str | None = None) -> Path:
        base = self._root / sanitize_name(space)
        return base if endpoint is None else base / sanitize_name(endpoint)

    def append(self, space: str, endpoint: str, snapshot: Snapshot) -> str:
        target = self._dir(space, endpoint) / f"{snapshot.id}.json"
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("x", encoding="utf-8") as file:
                json.dump(snapshot.to_dict(), file, indent=2)
                file.write("\n")
        except FileExistsError as exc:
            raise StoreError(f"Snapshot already exists: {snapshot.id}") from exc
        except (OSError, TypeError, ValueError) as exc:
            raise StoreError(f"Failed to write snapshot {snapshot.id} to {target}: {exc}") from exc
        with self._lock:
            self._index[snapshot.id] = target
        return snapshot.id

    def _load(self, path: Path) -> Snapshot:
        try:
            with path.open("r", encoding="utf-8") as file:
                return Snapshot.from_dict(json.load(file))
        except (OSError, ValueError, KeyError) as exc:
            raise StoreError(f"Failed to load snapshot from {path}: {exc}") from exc

    def list(self, space: str, endpoint: str | None = None) -> list[Snapshot]:
        base = self._dir(space, endpoint)
        if not base.is_dir():
            return []
        pattern = "*.json" if endpoint is not None else "*/*.json"
        out: list[Snapshot] = []
        for path in base.glob(pattern):
            snapshot = self._load(path)
            with self._lock:
                self._index[snapshot.id] = path
            out.append(snapshot)
        return _ordered(out)

    def read(self, snapshot_id: str) -> Snapshot:
        with self._lock:
            path = self._index.get(snapshot_id)
        if path is None or not path.exists():
            matches = list(self._root.glob(f"*/*/{snapshot_id}.json"))
            if not matches:
                raise StoreError(f"Snapshot not found: {snapshot_id}")
            path = matches[0]
        return self._load(path)

    def prune(self, space: str, endpoint: str, keep: int) -> int:
        victims = _prune_victims(self.list(space, endpoint), keep)
        for snapshot in victims:
            path = self._dir(space, endpoint) / f"{snapshot.id}.json"
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise StoreError(f"Failed to delete snapshot {path}: {exc}") from exc
            with self._lock:
                self._index.pop(snapshot.id, None)
        if victims:
            logger.info("snapshots_pruned", space=space, endpoint=endpoint, removed=len(victims), kept=keep)
        return len(victims)
