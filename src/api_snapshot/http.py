from __future__ import annotations

import json
import time
from typing import Any, Protocol

import httpx
import structlog

from .errors import TransportError
from .models import Headers, HttpResponse

logger = structlog.get_logger(__name__)

BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})
SENSITIVE_HEADERS = frozenset({"authorization", "cookie", "set-cookie", "x-api-key"})
REDACTED = "[REDACTED]"
DEFAULT_TIMEOUT_MS = 30_000


class HttpExecutor(Protocol):
    async def execute(
        self,
        method: str,
        url: str,
        headers: Headers,
        body: Any | None,
        timeout_ms: int,
    ) -> HttpResponse: ...


def normalize_headers(headers: Any) -> Headers:
    """Lower-case header names. Repeated headers are joined with ', '."""
    out: Headers = {}
    items = headers.multi_items() if hasattr(headers, "multi_items") else dict(headers).items()
    for key, value in items:
        name = str(key).lower()
        out[name] = f"{out[name]}, {value}" if name in out else str(value)
    return out


def redact_headers(headers: Headers) -> Headers:
    return {key: REDACTED if key.lower() in SENSITIVE_HEADERS else value for key, value in headers.items()}


def encode_body(method: str, headers: Headers, body: Any | None) -> tuple[bytes | None, Headers]:
    if body is None or method.upper() not in BODY_METHODS:
        return None, headers
    if isinstance(body, (bytes, bytearray)):
        return bytes(body), headers
    if isinstance(body, str):
        return body.encode("utf-8"), headers
    out = dict(headers)
    if not any(key.lower() == "content-type" for key in out):
        out["Content-Type"] = "application/json"
    return json.dumps(body).encode("utf-8"), out


class HttpxExecutor:
    """
    Default executor over `httpx.AsyncClient`.

    Without an injected client, each call opens a short-lived one so the
    executor can be reused across event loops.
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        follow_redirects: bool = True,
    ) -> None:
        self._client = client
        self._transport = transport
        self._follow_redirects = follow_redirects

    async def execute(
        self,
        method: str,
        url: str,
        headers: Headers,
        body: Any | None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> HttpResponse:
        content, req_headers = encode_body(method, headers, body)
        timeout = httpx.Timeout(timeout_ms / 1000.0)
        started = time.perf_counter()
        try:
            if self._client is not None:
                response = await self._client.request(
                    method.upper(), url, headers=req_headers, content=content, timeout=timeout
                )
            else:
                async with httpx.AsyncClient(
                    transport=self._transport, follow_redirects=self._follow_redirects
                ) as client:
                    response = await client.request(
                        method.upper(), url, headers=req_headers, content=content, timeout=timeout
                    )
        except httpx.TimeoutException as exc:
            raise TransportError(f"Request timed out after {timeout_ms}ms", url=url, timed_out=True) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}", url=url) from exc
        duration_ms = round((time.perf_counter() - started) * 1000.0, 3)
        logger.debug("http_request_completed", method=method.upper(), url=url, status=response.status_code, duration_ms=duration_ms)
        return HttpResponse(
            status=response.status_code,
            headers=normalize_headers(response.headers),
            body=response.text,
            duration_ms=duration_ms,
        )
