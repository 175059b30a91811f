from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

from api_snapshot.errors import StoreError, TransportError
from api_snapshot.models import EndpointTemplate, HttpResponse, RecordedResponse, ResolvedRequest, Snapshot
from api_snapshot.stores import InMemorySnapshotStore

Handler = Callable[[str, str, dict[str, str], Any], HttpResponse]


def json_response(status: int, body: Any, headers: dict[str, str] | None = None) -> HttpResponse:
    return HttpResponse(
        status=status,
        headers={"content-type": "application/json", **(headers or {})},
        body=json.dumps(body),
        duration_ms=1.0,
    )


class FakeExecutor:
    """Answers requests from a handler and records every call."""

    def __init__(self, handler: Handler, *, delay: float = 0.0) -> None:
        self.handler = handler
        self.delay = delay
        self.calls: list[tuple[str, str, dict[str, str], Any, int]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def execute(self, method, url, headers, body, timeout_ms) -> HttpResponse:
        self.calls.append((method, url, dict(headers), body, timeout_ms))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            return self.handler(method, url, headers, body)
        finally:
            self.in_flight -= 1


def failing_for(url_fragment: str, handler: Handler) -> Handler:
    def _handler(method, url, headers, body):
        if url_fragment in url:
            raise TransportError("connection refused", url=url)
        return handler(method, url, headers, body)

    return _handler


class BrokenSnapshotStore(InMemorySnapshotStore):
    def __init__(self, fail_after: int = 0) -> None:
        super().__init__()
        self.fail_after = fail_after
        self.appended = 0

    def append(self, space, endpoint, snapshot):
        if self.appended >= self.fail_after:
            raise StoreError("disk unavailable")
        self.appended += 1
        return super().append(space, endpoint, snapshot)


def make_snapshot(
    body: Any = None,
    *,
    snapshot_id: str = "snap_a",
    status: int = 200,
    headers: dict[str, str] | None = None,
    text: bool = False,
    error: str | None = None,
    endpoint: str = "get-user",
    timestamp: str = "2024-01-01T00:00:00Z",
    baseline: bool = False,
) -> Snapshot:
    from api_snapshot.models import BodyFormat

    response = None
    if error is None:
        response = RecordedResponse(
            status=status,
            headers=headers if headers is not None else {"content-type": "application/json"},
            body=body,
            body_format=BodyFormat.TEXT if text else BodyFormat.JSON,
        )
    return Snapshot(
        id=snapshot_id,
        space="test",
        endpoint=endpoint,
        timestamp=timestamp,
        request=ResolvedRequest(method="GET", url="https://api.example.com/users/1"),
        response=response,
        error=error,
        baseline=baseline,
    )


STAGING_ENDPOINTS = [
    EndpointTemplate(name="get-user", url="https://staging.example.com/users/{userId}"),
    EndpointTemplate(name="get-orders", url="https://staging.example.com/users/{userId}/orders"),
]


class StagingApi:
    """Serves the staging space; `release()` switches the user payload to the new shape."""

    def __init__(self) -> None:
        self.released = False

    def release(self) -> None:
        self.released = True

    def __call__(self, method, url, headers, body) -> HttpResponse:
        user_id = url.split("/users/", 1)[1].split("/", 1)[0]
        if url.endswith("/orders"):
            return json_response(200, {"orders": [{"id": "o-1", "total": 12.5}], "userId": user_id})
        if self.released:
            return json_response(200, {"id": user_id, "name": "Ada", "email": "ada@example.com"})
        return json_response(200, {"id": user_id, "name": "Ada", "legacyId": 7})
