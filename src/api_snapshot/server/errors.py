from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..errors import ConfigurationError, OrchestrationError, SnapshotError, StoreError

logger = structlog.get_logger(__name__)


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None
    retryable: bool = False


class ErrorEnvelope(BaseModel):
    error: ErrorDetail


class SnapshotServerError(Exception):
    def __init__(
        self,
        *,
        code: str,
        message: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        self.retryable = retryable

    def to_envelope(self) -> ErrorEnvelope:
        return ErrorEnvelope(
            error=ErrorDetail(code=self.code, message=self.message, details=self.details, retryable=self.retryable)
        )


def _response(envelope: ErrorEnvelope, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=envelope.model_dump(exclude_none=True))


def _from_domain(exc: SnapshotError) -> SnapshotServerError:
    if isinstance(exc, ConfigurationError):
        return SnapshotServerError(code=exc.code, message=exc.message, status_code=400, details=exc.details)
    if isinstance(exc, StoreError):
        return SnapshotServerError(code=exc.code, message=exc.message, status_code=503, retryable=True)
    if isinstance(exc, OrchestrationError):
        return SnapshotServerError(code=exc.code, message=exc.message, status_code=500, retryable=True)
    return SnapshotServerError(code=exc.code, message=exc.message, status_code=409, details=exc.details)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(SnapshotServerError)
    async def _server_error(_: Request, exc: SnapshotServerError) -> JSONResponse:
        return _response(exc.to_envelope(), exc.status_code)

    @app.exception_handler(SnapshotError)
    async def _domain_error(_: Request, exc: SnapshotError) -> JSONResponse:
        mapped = _from_domain(exc)
        return _response(mapped.to_envelope(), mapped.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        envelope = ErrorEnvelope(error=ErrorDetail(code="http_error", message=str(exc.detail)))
        return _response(envelope, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        envelope = ErrorEnvelope(
            error=ErrorDetail(
                code="invalid_request",
                message="Request validation failed",
                details={"errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in exc.errors()]},
            )
        )
        return _response(envelope, 400)

    @app.exception_handler(Exception)
    async def _unexpected(_: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_server_error", error=str(exc))
        envelope = ErrorEnvelope(error=ErrorDetail(code="internal_error", message="Internal server error"))
        return _response(envelope, 500)
