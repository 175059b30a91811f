from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Protocol

from ..errors import StoreError
from ..models import ChangeLogEntry


class ChangeLog(Protocol):
    def append(self, entry: ChangeLogEntry) -> None: ...

    def entries(self, space: str | None = None) -> list[ChangeLogEntry]: ...


class InMemoryChangeLog:
    def __init__(self) -> None:
        self._entries: list[ChangeLogEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: ChangeLogEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def entries(self, space: str | None = None) -> list[ChangeLogEntry]:
        with self._lock:
            return [e for e in self._entries if space is None or e.space == space]


class JsonlChangeLog:
    """Append-only JSON-lines file; entries are never rewritten."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def append(self, entry: ChangeLogEntry) -> None:
        line = json.dumps(entry.to_dict(), sort_keys=True)
        with self._lock:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with self._path.open("a", encoding="utf-8") as file:
                    file.write(line + "\n")
            except OSError as exc:
                raise StoreError(f"Failed to append change log entry to {self._path}: {exc}") from exc

    def entries(self, space: str | None = None) -> list[ChangeLogEntry]:
        if not self._path.exists():
            return []
        out: list[ChangeLogEntry] = []
        with self._lock:
            lines = self._path.read_text(encoding="utf-8").splitlines()
        for lineno, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                entry = ChangeLogEntry.from_dict(json.loads(line))
            except (ValueError, KeyError) as exc:
                raise StoreError(f"{self._path}:{lineno}: invalid change log entry: {exc}") from exc
            if space is None or entry.space == space:
                out.append(entry)
        return out
