from __future__ import annotations

import secrets
from typing import Callable, Iterable

import structlog
from fastapi import Depends, Request
from fastapi.security.api_key import APIKeyHeader

from .errors import SnapshotServerError

logger = structlog.get_logger(__name__)


def api_key_dependency(
    api_keys: str | Iterable[str],
    *,
    header_name: str = "X-API-Key",
) -> Callable[..., None]:
    """Reject requests whose `header_name` matches none of `api_keys`.

    Several keys may be active at once so a key can be rotated without downtime.
    """
    accepted = [api_keys] if isinstance(api_keys, str) else [k for k in api_keys if k]
    if not accepted:
        raise ValueError("at least one API key is required")
    header = APIKeyHeader(name=header_name, auto_error=False)

    async def _require_key(request: Request, key: str | None = Depends(header)) -> None:
        if key and any(secrets.compare_digest(key.encode(), c.encode()) for c in accepted):
            return
        logger.warning("api_key_rejected", path=request.url.path, header_present=key is not None)
        raise SnapshotServerError(
            code="unauthorized",
            message=f"Missing or invalid {header_name} header",
            status_code=401,
        )

    return _require_key
