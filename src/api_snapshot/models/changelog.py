from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .common import _omit_none


class Disposition(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class ChangeLogEntry:
    id: str
    space: str
    endpoint: str
    baseline_id: str
    current_id: str
    disposition: Disposition
    timestamp: str
    reason: str | None = None
    counts: dict[str, int] = field(default_factory=dict)
    automatic: bool = False
    promoted_snapshot_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _omit_none(
            {
                "id": self.id,
                "space": self.space,
                "endpoint": self.endpoint,
                "baseline_id": self.baseline_id,
                "current_id": self.current_id,
                "disposition": self.disposition.value,
                "timestamp": self.timestamp,
                "reason": self.reason,
                "counts": dict(self.counts),
                "automatic": self.automatic,
                "promoted_snapshot_id": self.promoted_snapshot_id,
            }
        )

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "ChangeLogEntry":
        return ChangeLogEntry(
            id=data["id"],
            space=data["space"],
            endpoint=data["endpoint"],
            baseline_id=data["baseline_id"],
            current_id=data["current_id"],
            disposition=Disposition(data["disposition"]),
            timestamp=data["timestamp"],
            reason=data.get("reason"),
            counts={str(k): int(v) for k, v in (data.get("counts") or {}).items()},
            automatic=bool(data.get("automatic", False)),
            promoted_snapshot_id=data.get("promoted_snapshot_id"),
        )
