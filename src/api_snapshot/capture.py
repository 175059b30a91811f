from __future__ import annotations

import asyncio
import json
import uuid
from dataclasses import dataclass, replace
from typing import Any, Callable, Iterable

import structlog

from .errors import (
    ConfigurationError,
    InvalidTransitionError,
    OrchestrationError,
    ParseError,
    TransportError,
    ValidationError,
)
from .events import EventKind, EventSink, NullEventSink
from .http import DEFAULT_TIMEOUT_MS, HttpExecutor, redact_headers
from .models import (
    AuthDescriptor,
    BodyFormat,
    CaptureOperation,
    EndpointTemplate,
    OperationState,
    RecordedResponse,
    ResolvedRequest,
    Snapshot,
    utc_now_iso,
)
from .operations import OperationTracker
from .parameters import ParameterResolver, has_unresolved
from .schemas import ensure_valid
from .stores import SnapshotStore, SpaceConfigStore

logger = structlog.get_logger(__name__)

DEFAULT_CONCURRENCY = 5

AuthHook = Callable[[ResolvedRequest, AuthDescriptor], ResolvedRequest]


@dataclass(frozen=True, slots=True)
class CaptureResult:
    endpoint: str
    success: bool
    snapshot: Snapshot | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"endpoint": self.endpoint, "success": self.success}
        if self.snapshot is not None:
            out["snapshot_id"] = self.snapshot.id
            if self.snapshot.response is not None:
                out["status"] = self.snapshot.response.status
        if self.error is not None:
            out["error"] = self.error
        return out


def _new_snapshot_id() -> str:
    return f"snap_{uuid.uuid4().hex[:12]}"


def _decode_json(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise ParseError(f"Response body is not JSON: {exc}") from exc


def parse_body(raw: str) -> tuple[Any, BodyFormat]:
    try:
        return _decode_json(raw), BodyFormat.JSON
    except ParseError:
        return raw, BodyFormat.TEXT


def _check_schema(label: str, instance: Any, schema: dict[str, Any]) -> list[str]:
    try:
        ensure_valid(instance, schema, label=label)
    except ValidationError as exc:
        return [f"{label} {message}" for message in exc.errors]
    except ConfigurationError as exc:
        return [f"{label} {exc.message}"]
    return []


class CaptureOrchestrator:
    """
    Executes endpoint templates of one space and records one snapshot per target.

    Targets run concurrently up to `concurrency`. A failing target never stops
    the others; only a snapshot store failure halts the batch.
    """

    def __init__(
        self,
        space: str,
        *,
        config_store: SpaceConfigStore,
        snapshot_store: SnapshotStore,
        executor: HttpExecutor,
        resolver: ParameterResolver,
        tracker: OperationTracker,
        sink: EventSink | None = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        auth_hook: AuthHook | None = None,
    ) -> None:
        if concurrency < 1:
            raise ConfigurationError(f"concurrency must be >= 1, got {concurrency}")
        self._space = space
        self._config_store = config_store
        self._snapshot_store = snapshot_store
        self._executor = executor
        self._resolver = resolver
        self._tracker = tracker
        self._sink = sink or NullEventSink()
        self._concurrency = concurrency
        self._default_timeout_ms = default_timeout_ms
        self._auth_hook = auth_hook

    @property
    def space(self) -> str:
        return self._space

    def endpoints(self) -> list[EndpointTemplate]:
        return self._config_store.load_endpoints(self._space)

    def _select(self, names: Iterable[str] | None) -> list[EndpointTemplate]:
        endpoints = self.endpoints()
        if names is None:
            return endpoints
        by_name = {e.name: e for e in endpoints}
        selected: list[EndpointTemplate] = []
        for name in names:
            if name not in by_name:
                raise ConfigurationError(f"Endpoint not found in space {self._space!r}: {name}")
            selected.append(by_name[name])
        return selected

    async def capture_one(self, endpoint_name: str, *, baseline: bool = False) -> CaptureResult:
        results = await self.capture_many([endpoint_name], baseline=baseline)
        return results[0]

    async def capture_many(
        self,
        endpoint_names: Iterable[str] | None = None,
        *,
        baseline: bool = False,
        operation: CaptureOperation | None = None,
    ) -> list[CaptureResult]:
        templates = self._select(endpoint_names)
        names = [t.name for t in templates]
        if operation is None:
            operation = self._tracker.start(self._space, names)
        elif operation.state is OperationState.PENDING:
            operation = self._tracker.activate(operation.id)
        op_id = operation.id
        log = logger.bind(space=self._space, operation_id=op_id)

        self._sink.publish(EventKind.STARTED, {"space": self._space, "endpoints": names, "operation_id": op_id})
        log.info("capture_started", endpoints=len(names), baseline=baseline)

        semaphore = asyncio.Semaphore(self._concurrency)
        counts = {"completed": 0, "failed": 0}
        fatal: list[BaseException] = []

        async def run(template: EndpointTemplate) -> CaptureResult | None:
            async with semaphore:
                if fatal:
                    return None
                snapshot = await self._capture(template, baseline=baseline)
                if fatal:
                    return None
                try:
                    self._snapshot_store.append(self._space, template.name, snapshot)
                except Exception as exc:
                    fatal.append(exc)
                    self._halt(op_id, template.name, exc)
                    return None
                success = snapshot.response is not None
                counts["completed" if success else "failed"] += 1
                self._tracker.record(op_id, success)
                self._sink.publish(
                    EventKind.PROGRESS,
                    {
                        "space": self._space,
                        "endpoint": template.name,
                        "success": success,
                        "completed": counts["completed"],
                        "failed": counts["failed"],
                        "total": len(templates),
                    },
                )
                return CaptureResult(endpoint=template.name, success=success, snapshot=snapshot, error=snapshot.error)

        results = await asyncio.gather(*(run(t) for t in templates))
        if fatal:
            raise OrchestrationError(f"Capture halted: {fatal[0]}", space=self._space) from fatal[0]

        self._sink.publish(
            EventKind.COMPLETE,
            {
                "space": self._space,
                "successCount": counts["completed"],
                "failedCount": counts["failed"],
                "operation_id": op_id,
            },
        )
        log.info("capture_complete", succeeded=counts["completed"], failed=counts["failed"])
        return [r for r in results if r is not None]

    def _halt(self, op_id: str, endpoint: str, exc: BaseException) -> None:
        reason = f"Snapshot store failed for {endpoint}: {exc}"
        logger.error("capture_halted", space=self._space, operation_id=op_id, endpoint=endpoint, error=str(exc))
        self._sink.publish(EventKind.ERROR, {"space": self._space, "reason": reason})
        try:
            self._tracker.cancel(op_id)
        except (InvalidTransitionError, KeyError):
            logger.debug("operation_already_finished", operation_id=op_id)

    def _prepare(self, template: EndpointTemplate, annotations: list[str], log: Any) -> ResolvedRequest:
        request = self._resolver.resolve_for(self._space, template)

        if template.request_schema is not None and request.body is not None:
            body = request.body
            if isinstance(body, str):
                body, _ = parse_body(body)
            annotations.extend(_check_schema("request", body, template.request_schema))

        if template.auth is not None:
            if self._auth_hook is not None:
                request = self._auth_hook(request, template.auth)
            else:
                log.warning("auth_not_configured", auth_type=template.auth.type)

        if has_unresolved(request):
            log.warning("unresolved_placeholders", url=request.url)
        return request

    async def _capture(self, template: EndpointTemplate, *, baseline: bool) -> Snapshot:
        """
        Run one target. Every failure up to the response becomes an error
        snapshot; only the caller's store write may abort the batch.
        """
        log = logger.bind(space=self._space, endpoint=template.name)
        timestamp = utc_now_iso()
        annotations: list[str] = []
        request = ResolvedRequest(
            method=template.method.upper(),
            url=template.url,
            headers=dict(template.headers),
            body=template.body,
            timeout_ms=template.timeout_ms,
        )
        timeout_ms = request.timeout_ms or self._default_timeout_ms

        try:
            request = self._prepare(template, annotations, log)
            timeout_ms = request.timeout_ms or self._default_timeout_ms
            raw = await asyncio.wait_for(
                self._executor.execute(request.method, request.url, dict(request.headers), request.body, timeout_ms),
                timeout=timeout_ms / 1000.0,
            )
        except asyncio.TimeoutError:
            error = str(TransportError(f"Request timed out after {timeout_ms}ms", url=request.url, timed_out=True))
        except TransportError as exc:
            error = str(exc)
        except Exception as exc:
            log.exception("endpoint_capture_crashed")
            error = f"{type(exc).__name__}: {exc}"
        else:
            recorded_request = replace(request, headers=redact_headers(request.headers), timeout_ms=timeout_ms)
            body, body_format = parse_body(raw.body)
            if template.response_schema is not None:
                if body_format is BodyFormat.JSON:
                    annotations.extend(_check_schema("response", body, template.response_schema))
                else:
                    annotations.append("response $: body is not JSON")
            if annotations:
                log.warning("schema_validation_failed", errors=annotations)
            log.debug("endpoint_captured", status=raw.status, duration_ms=raw.duration_ms)
            return Snapshot(
                id=_new_snapshot_id(),
                space=self._space,
                endpoint=template.name,
                timestamp=timestamp,
                request=recorded_request,
                response=RecordedResponse(
                    status=raw.status,
                    headers=redact_headers(raw.headers),
                    body=body,
                    body_format=body_format,
                    duration_ms=raw.duration_ms,
                ),
                baseline=baseline,
                validation=tuple(annotations),
            )

        log.warning("endpoint_capture_failed", error=error)
        return Snapshot(
            id=_new_snapshot_id(),
            space=self._space,
            endpoint=template.name,
            timestamp=timestamp,
            request=replace(request, headers=redact_headers(request.headers), timeout_ms=timeout_ms),
            error=error,
            baseline=baseline,
            validation=tuple(annotations),
        )
