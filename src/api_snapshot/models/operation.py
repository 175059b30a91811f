from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from .common import _omit_none


class OperationKind(Enum):
    SINGLE = "single"
    BULK = "bulk"


class OperationState(Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    TIMED_OUT = "timed-out"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (OperationState.COMPLETED, OperationState.TIMED_OUT, OperationState.CANCELLED)


@dataclass(frozen=True, slots=True)
class CaptureOperation:
    id: str
    space: str
    kind: OperationKind
    targets: tuple[str, ...]
    state: OperationState = OperationState.PENDING
    completed: int = 0
    failed: int = 0
    started_at: float | None = None
    deadline: float | None = None
    finished_at: float | None = None

    @property
    def total(self) -> int:
        return len(self.targets)

    @property
    def processed(self) -> int:
        return self.completed + self.failed

    def to_dict(self) -> dict[str, Any]:
        return _omit_none(
            {
                "id": self.id,
                "space": self.space,
                "kind": self.kind.value,
                "targets": list(self.targets),
                "state": self.state.value,
                "total": self.total,
                "completed": self.completed,
                "failed": self.failed,
                "started_at": self.started_at,
                "deadline": self.deadline,
                "finished_at": self.finished_at,
            }
        )
