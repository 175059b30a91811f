from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, BackgroundTasks, Response
from pydantic import BaseModel

from .. import __version__
from ..errors import OrchestrationError
from ..models import CaptureOperation
from ..report import summarize
from ..workspace import Workspace
from .errors import SnapshotServerError

logger = structlog.get_logger(__name__)


class CaptureRequest(BaseModel):
    endpoints: list[str] | None = None
    baseline: bool = False


def _not_found(what: str, ident: str) -> SnapshotServerError:
    return SnapshotServerError(code="not_found", message=f"{what} not found: {ident}", status_code=404)


def build_router(workspace: Workspace) -> APIRouter:
    router = APIRouter(prefix="/v1")

    async def _run_capture(space: str, operation: CaptureOperation, request: CaptureRequest) -> None:
        try:
            await workspace.capture(space, request.endpoints, baseline=request.baseline, operation=operation)
        except OrchestrationError as exc:
            logger.error("background_capture_failed", space=space, operation_id=operation.id, error=str(exc))

    @router.get("/health")
    def health() -> dict[str, Any]:
        return {"status": "ok", "version": __version__}

    @router.post("/spaces/{space}/captures", status_code=202)
    async def start_capture(
        space: str,
        request: CaptureRequest,
        background: BackgroundTasks,
        response: Response,
        wait: bool = False,
    ) -> dict[str, Any]:
        operation = workspace.begin_capture(space, request.endpoints)
        if not wait:
            background.add_task(_run_capture, space, operation, request)
            return {"operation": operation.to_dict()}

        results = await workspace.capture(space, request.endpoints, baseline=request.baseline, operation=operation)
        response.status_code = 200
        current = workspace.tracker.get(operation.id)
        return {
            "operation": (current or operation).to_dict(),
            "results": [r.to_dict() for r in results],
        }

    @router.get("/operations/{operation_id}")
    def get_operation(operation_id: str) -> dict[str, Any]:
        operation = workspace.tracker.get(operation_id)
        if operation is None:
            raise _not_found("Operation", operation_id)
        return operation.to_dict()

    @router.get("/spaces/{space}/operations")
    def list_operations(space: str) -> dict[str, Any]:
        return {"operations": [op.to_dict() for op in workspace.tracker.list(space)]}

    @router.get("/spaces/{space}/snapshots")
    def list_snapshots(space: str, endpoint: str | None = None) -> dict[str, Any]:
        workspace.endpoint_names(space, [endpoint] if endpoint is not None else None)
        snapshots = workspace.snapshot_store.list(space, endpoint)
        return {"snapshots": [s.to_dict() for s in snapshots]}

    @router.get("/spaces/{space}/comparisons")
    def list_comparisons(space: str, endpoint: str | None = None) -> dict[str, Any]:
        comparisons = workspace.compare(space, endpoint)
        return {
            "comparisons": [{**c.to_dict(), "counts": c.counts()} for c in comparisons],
            "summary": summarize(comparisons),
        }

    @router.delete("/spaces/{space}/parameters/{name}", status_code=204)
    def reset_parameter(space: str, name: str) -> Response:
        if not workspace.reset_parameters(space, [name]):
            raise _not_found("Parameter", name)
        return Response(status_code=204)

    return router
