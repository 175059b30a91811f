"""
In-process tracking of capture operations.

There are no timers. Every read and write first settles the table against the
clock: ACTIVE operations past their deadline become TIMED_OUT, and finished
operations whose grace window has elapsed are dropped.
"""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import replace
from typing import Callable, Iterable

import structlog

from .errors import InvalidTransitionError
from .models import CaptureOperation, OperationKind, OperationState

logger = structlog.get_logger(__name__)

DEFAULT_DEADLINE_S = 300.0
DEFAULT_GRACE_S = 5.0


def _new_operation_id() -> str:
    return f"op_{uuid.uuid4().hex[:12]}"


class OperationTracker:
    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        deadline_s: float = DEFAULT_DEADLINE_S,
        grace_s: float = DEFAULT_GRACE_S,
    ) -> None:
        self._clock = clock
        self._deadline_s = deadline_s
        self._grace_s = grace_s
        self._operations: dict[str, CaptureOperation] = {}
        self._lock = threading.Lock()

    def _settle(self, now: float) -> None:
        for op_id, op in list(self._operations.items()):
            if op.state is OperationState.ACTIVE and op.deadline is not None and now >= op.deadline:
                op = replace(op, state=OperationState.TIMED_OUT, finished_at=now)
                self._operations[op_id] = op
                logger.warning(
                    "operation_timed_out",
                    operation_id=op_id,
                    space=op.space,
                    completed=op.completed,
                    failed=op.failed,
                    total=op.total,
                )
            if op.finished_at is not None and now - op.finished_at >= self._grace_s:
                del self._operations[op_id]

    def create(self, space: str, targets: Iterable[str], kind: OperationKind | None = None) -> CaptureOperation:
        targets = tuple(targets)
        if kind is None:
            kind = OperationKind.SINGLE if len(targets) == 1 else OperationKind.BULK
        op = CaptureOperation(id=_new_operation_id(), space=space, kind=kind, targets=targets)
        with self._lock:
            self._settle(self._clock())
            self._operations[op.id] = op
        return op

    def activate(self, op_id: str) -> CaptureOperation:
        with self._lock:
            now = self._clock()
            self._settle(now)
            op = self._require(op_id)
            if op.state is not OperationState.PENDING:
                raise InvalidTransitionError(op.state.value, OperationState.ACTIVE.value)
            op = replace(op, state=OperationState.ACTIVE, started_at=now, deadline=now + self._deadline_s)
            if op.total == 0:
                op = replace(op, state=OperationState.COMPLETED, finished_at=now)
            self._operations[op_id] = op
        logger.debug("operation_started", operation_id=op_id, space=op.space, total=op.total)
        return op

    def start(self, space: str, targets: Iterable[str], kind: OperationKind | None = None) -> CaptureOperation:
        return self.activate(self.create(space, targets, kind).id)

    def record(self, op_id: str, success: bool) -> CaptureOperation | None:
        """
        Count one finished target.

        Returns the updated operation, or None when progress was not accepted
        (operation unknown, expired, or no longer ACTIVE).
        """
        with self._lock:
            now = self._clock()
            self._settle(now)
            op = self._operations.get(op_id)
            if op is None or op.state is not OperationState.ACTIVE:
                return None
            if success:
                op = replace(op, completed=op.completed + 1)
            else:
                op = replace(op, failed=op.failed + 1)
            if op.processed >= op.total:
                op = replace(op, state=OperationState.COMPLETED, finished_at=now)
            self._operations[op_id] = op
            return op

    def complete(self, op_id: str) -> CaptureOperation:
        return self._finish(op_id, OperationState.COMPLETED)

    def cancel(self, op_id: str) -> CaptureOperation:
        op = self._finish(op_id, OperationState.CANCELLED)
        with self._lock:
            self._operations.pop(op_id, None)
        logger.info("operation_cancelled", operation_id=op_id, space=op.space)
        return op

    def _finish(self, op_id: str, target: OperationState) -> CaptureOperation:
        with self._lock:
            now = self._clock()
            self._settle(now)
            op = self._require(op_id)
            if op.state.terminal:
                raise InvalidTransitionError(op.state.value, target.value)
            op = replace(op, state=target, finished_at=now)
            self._operations[op_id] = op
            return op

    def _require(self, op_id: str) -> CaptureOperation:
        op = self._operations.get(op_id)
        if op is None:
            raise KeyError(op_id)
        return op

    def get(self, op_id: str) -> CaptureOperation | None:
        with self._lock:
            self._settle(self._clock())
            return self._operations.get(op_id)

    def list(self, space: str | None = None) -> list[CaptureOperation]:
        with self._lock:
            self._settle(self._clock())
            return [op for op in self._operations.values() if space is None or op.space == space]
