from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .common import Headers, _omit_none
from .endpoint import ResolvedRequest


class SnapshotStatus(Enum):
    SUCCESS = "success"
    ERROR = "error"


class BodyFormat(Enum):
    JSON = "json"
    TEXT = "text"


@dataclass(frozen=True, slots=True)
class HttpResponse:
    """Raw outcome of one completed HTTP call, as returned by an executor."""

    status: int
    headers: Headers = field(default_factory=dict)
    body: str = ""
    duration_ms: float = 0.0


@dataclass(frozen=True, slots=True)
class RecordedResponse:
    status: int
    headers: Headers
    body: Any
    body_format: BodyFormat = BodyFormat.JSON
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "headers": dict(self.headers),
            "body": self.body,
            "body_format": self.body_format.value,
            "duration_ms": self.duration_ms,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "RecordedResponse":
        return RecordedResponse(
            status=int(data["status"]),
            headers=dict(data.get("headers") or {}),
            body=data.get("body"),
            body_format=BodyFormat(data.get("body_format", BodyFormat.JSON.value)),
            duration_ms=float(data.get("duration_ms", 0.0)),
        )


@dataclass(frozen=True, slots=True)
class Snapshot:
    id: str
    space: str
    endpoint: str
    timestamp: str
    request: ResolvedRequest
    response: RecordedResponse | None = None
    error: str | None = None
    baseline: bool = False
    validation: tuple[str, ...] = ()

    @property
    def status(self) -> SnapshotStatus:
        return SnapshotStatus.ERROR if self.response is None else SnapshotStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return _omit_none(
            {
                "id": self.id,
                "space": self.space,
                "endpoint": self.endpoint,
                "timestamp": self.timestamp,
                "status": self.status.value,
                "baseline": self.baseline,
                "request": self.request.to_dict(),
                "response": self.response.to_dict() if self.response is not None else None,
                "error": self.error,
                "validation": list(self.validation) or None,
            }
        )

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Snapshot":
        response = data.get("response")
        return Snapshot(
            id=data["id"],
            space=data["space"],
            endpoint=data["endpoint"],
            timestamp=data["timestamp"],
            request=ResolvedRequest.from_dict(data["request"]),
            response=RecordedResponse.from_dict(response) if isinstance(response, dict) else None,
            error=data.get("error"),
            baseline=bool(data.get("baseline", False)),
            validation=tuple(data.get("validation") or ()),
        )
