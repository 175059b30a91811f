from __future__ import annotations

import asyncio
from typing import Iterable

import structlog

from .approval import ApprovalWorkflow
from .capture import AuthHook, CaptureOrchestrator, CaptureResult
from .config import Settings
from .diff import DiffEngine, DiffRule, unified_text_diff
from .errors import ConfigurationError
from .events import EventBus, LoggingEventSink
from .http import DEFAULT_TIMEOUT_MS, HttpExecutor, HttpxExecutor
from .models import CaptureOperation, Comparison, ParameterDefinition, Snapshot
from .operations import OperationTracker
from .parameters import ParameterResolver, ParameterStore
from .stores import (
    ChangeLog,
    FileSnapshotStore,
    FileSpaceConfigStore,
    JsonlChangeLog,
    SnapshotStore,
    SpaceConfigStore,
    latest_baseline,
    latest_current,
)

logger = structlog.get_logger(__name__)


class Workspace:
    """
    Owns the long-lived state shared by every space: one parameter store, one
    operation tracker, one event bus, and the collaborators.
    """

    def __init__(
        self,
        *,
        config_store: SpaceConfigStore,
        snapshot_store: SnapshotStore,
        changelog: ChangeLog,
        executor: HttpExecutor | None = None,
        tracker: OperationTracker | None = None,
        bus: EventBus | None = None,
        concurrency: int = 5,
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        auth_hook: AuthHook | None = None,
    ) -> None:
        self.config_store = config_store
        self.snapshot_store = snapshot_store
        self.changelog = changelog
        self.executor = executor or HttpxExecutor()
        self.tracker = tracker or OperationTracker()
        self.bus = bus or EventBus()
        self.parameters = ParameterStore(config_store)
        self.resolver = ParameterResolver(self.parameters)
        self._concurrency = concurrency
        self._default_timeout_ms = default_timeout_ms
        self._auth_hook = auth_hook

    @classmethod
    def from_settings(cls, settings: Settings, *, executor: HttpExecutor | None = None) -> "Workspace":
        bus = EventBus()
        sink = LoggingEventSink()
        bus.subscribe(sink.publish)
        return cls(
            config_store=FileSpaceConfigStore(settings.config_dir),
            snapshot_store=FileSnapshotStore(settings.snapshot_dir),
            changelog=JsonlChangeLog(settings.changelog_path),
            executor=executor,
            tracker=OperationTracker(deadline_s=settings.operation_deadline_s, grace_s=settings.operation_grace_s),
            bus=bus,
            concurrency=settings.concurrency,
            default_timeout_ms=settings.default_timeout_ms,
        )

    def orchestrator(self, space: str) -> CaptureOrchestrator:
        return CaptureOrchestrator(
            space,
            config_store=self.config_store,
            snapshot_store=self.snapshot_store,
            executor=self.executor,
            resolver=self.resolver,
            tracker=self.tracker,
            sink=self.bus,
            concurrency=self._concurrency,
            default_timeout_ms=self._default_timeout_ms,
            auth_hook=self._auth_hook,
        )

    def endpoint_names(self, space: str, names: Iterable[str] | None = None) -> list[str]:
        known = [e.name for e in self.config_store.load_endpoints(space)]
        if names is None:
            return known
        selected = list(names)
        missing = [n for n in selected if n not in known]
        if missing:
            raise ConfigurationError(f"Endpoint not found in space {space!r}: {', '.join(missing)}")
        return selected

    def begin_capture(self, space: str, names: Iterable[str] | None = None) -> CaptureOperation:
        """Register a PENDING operation for a capture that will run later."""
        return self.tracker.create(space, self.endpoint_names(space, names))

    async def capture(
        self,
        space: str,
        names: Iterable[str] | None = None,
        *,
        baseline: bool = False,
        operation: CaptureOperation | None = None,
    ) -> list[CaptureResult]:
        return await self.orchestrator(space).capture_many(names, baseline=baseline, operation=operation)

    def diff_engine(self, space: str) -> DiffEngine:
        rules = [DiffRule.from_dict(raw) for raw in self.config_store.load_rules(space)]
        return DiffEngine(rules)

    def latest_pair(self, space: str, endpoint: str) -> tuple[Snapshot, Snapshot] | None:
        baseline = latest_baseline(self.snapshot_store, space, endpoint)
        if baseline is None:
            logger.warning("no_baseline", space=space, endpoint=endpoint)
            return None
        current = latest_current(self.snapshot_store, space, endpoint, after=baseline)
        if current is None:
            logger.warning("no_current_snapshot", space=space, endpoint=endpoint, baseline_id=baseline.id)
            return None
        return baseline, current

    def compare(self, space: str, endpoint: str | None = None) -> list[Comparison]:
        engine = self.diff_engine(space)
        names = self.endpoint_names(space, [endpoint] if endpoint is not None else None)
        comparisons: list[Comparison] = []
        for name in names:
            pair = self.latest_pair(space, name)
            if pair is not None:
                comparisons.append(engine.compare(*pair))
        return comparisons

    def text_diffs(self, comparisons: Iterable[Comparison]) -> dict[str, str]:
        out: dict[str, str] = {}
        for comparison in comparisons:
            if not comparison.has_changes:
                continue
            baseline = self.snapshot_store.read(comparison.baseline_id)
            current = self.snapshot_store.read(comparison.current_id)
            out[comparison.endpoint] = unified_text_diff(baseline, current)
        return out

    def promote(self, space: str, endpoint: str) -> str | None:
        """Capture `endpoint` again and store the result as the new baseline."""
        result = asyncio.run(self.orchestrator(space).capture_one(endpoint, baseline=True))
        return result.snapshot.id if result.snapshot is not None else None

    def approvals(self) -> ApprovalWorkflow:
        return ApprovalWorkflow(self.changelog, promote_hook=self.promote)

    def parameter_definitions(self, space: str) -> list[ParameterDefinition]:
        return self.resolver.definitions(space, self.config_store.load_endpoints(space))

    def reset_parameters(self, space: str, names: Iterable[str] | None = None) -> list[str]:
        if names is None:
            return self.parameters.reset_all(space)
        return [name for name in names if self.parameters.reset(space, name)]

    def prune(self, space: str, keep: int, endpoint: str | None = None) -> dict[str, int]:
        if keep < 0:
            raise ConfigurationError(f"keep must be >= 0, got {keep}")
        names = self.endpoint_names(space, [endpoint] if endpoint is not None else None)
        return {name: self.snapshot_store.prune(space, name, keep) for name in names}
