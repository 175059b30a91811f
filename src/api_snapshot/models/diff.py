from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class DiffKind(Enum):
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"
    TYPE_CHANGED = "type-changed"


class Severity(Enum):
    BREAKING = "breaking"
    NON_BREAKING = "non-breaking"
    INFORMATIONAL = "informational"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.BREAKING: 0,
    Severity.NON_BREAKING: 1,
    Severity.INFORMATIONAL: 2,
}

_MISSING: Any = object()


@dataclass(frozen=True, slots=True)
class Difference:
    path: str
    kind: DiffKind
    severity: Severity
    old_value: Any = _MISSING
    new_value: Any = _MISSING

    @property
    def has_old_value(self) -> bool:
        return self.old_value is not _MISSING

    @property
    def has_new_value(self) -> bool:
        return self.new_value is not _MISSING

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "path": self.path,
            "kind": self.kind.value,
            "severity": self.severity.value,
        }
        if self.has_old_value:
            out["old_value"] = self.old_value
        if self.has_new_value:
            out["new_value"] = self.new_value
        return out

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Difference":
        return Difference(
            path=data["path"],
            kind=DiffKind(data["kind"]),
            severity=Severity(data["severity"]),
            old_value=data.get("old_value", _MISSING),
            new_value=data.get("new_value", _MISSING),
        )


@dataclass(frozen=True, slots=True)
class Comparison:
    endpoint: str
    baseline_id: str
    current_id: str
    differences: tuple[Difference, ...] = ()

    @property
    def has_changes(self) -> bool:
        return bool(self.differences)

    @property
    def breaking(self) -> tuple[Difference, ...]:
        return self.by_severity(Severity.BREAKING)

    def by_severity(self, severity: Severity) -> tuple[Difference, ...]:
        return tuple(d for d in self.differences if d.severity is severity)

    def counts(self) -> dict[str, int]:
        return {severity.value: len(self.by_severity(severity)) for severity in Severity}

    def to_dict(self) -> dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "baseline_id": self.baseline_id,
            "current_id": self.current_id,
            "has_changes": self.has_changes,
            "differences": [d.to_dict() for d in self.differences],
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Comparison":
        return Comparison(
            endpoint=data["endpoint"],
            baseline_id=data["baseline_id"],
            current_id=data["current_id"],
            differences=tuple(Difference.from_dict(d) for d in data.get("differences", [])),
        )
