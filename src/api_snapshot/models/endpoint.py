from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .common import Headers, _omit_none

HTTP_METHODS = frozenset({"GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"})


class ParameterPattern(Enum):
    ID = "id"
    UUID = "uuid"
    TIMESTAMP = "timestamp"
    DATE = "date"
    TIME = "time"
    TOKEN = "token"
    URL = "url"
    EMAIL = "email"
    STRING = "string"


@dataclass(frozen=True, slots=True)
class AuthDescriptor:
    type: str
    params: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return _omit_none({"type": self.type, "params": self.params})

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "AuthDescriptor":
        return AuthDescriptor(type=data["type"], params=data.get("params"))


@dataclass(frozen=True, slots=True)
class EndpointTemplate:
    name: str
    url: str
    method: str = "GET"
    headers: Headers = field(default_factory=dict)
    body: Any | None = None
    timeout_ms: int | None = None
    auth: AuthDescriptor | None = None
    request_schema: dict[str, Any] | None = None
    response_schema: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return _omit_none(
            {
                "name": self.name,
                "url": self.url,
                "method": self.method,
                "headers": dict(self.headers) or None,
                "body": self.body,
                "timeout_ms": self.timeout_ms,
                "auth": self.auth.to_dict() if self.auth is not None else None,
                "request_schema": self.request_schema,
                "response_schema": self.response_schema,
            }
        )

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "EndpointTemplate":
        auth = data.get("auth")
        timeout = data.get("timeout_ms", data.get("timeout"))
        return EndpointTemplate(
            name=data["name"],
            url=data["url"],
            method=str(data.get("method", "GET")).upper(),
            headers={str(k): str(v) for k, v in (data.get("headers") or {}).items()},
            body=data.get("body"),
            timeout_ms=int(timeout) if timeout is not None else None,
            auth=AuthDescriptor.from_dict(auth) if isinstance(auth, dict) else None,
            request_schema=data.get("request_schema"),
            response_schema=data.get("response_schema"),
        )


@dataclass(frozen=True, slots=True)
class ResolvedRequest:
    method: str
    url: str
    headers: Headers = field(default_factory=dict)
    body: Any | None = None
    timeout_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return _omit_none(
            {
                "method": self.method,
                "url": self.url,
                "headers": dict(self.headers),
                "body": self.body,
                "timeout_ms": self.timeout_ms,
            }
        )

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "ResolvedRequest":
        return ResolvedRequest(
            method=data["method"],
            url=data["url"],
            headers=dict(data.get("headers") or {}),
            body=data.get("body"),
            timeout_ms=data.get("timeout_ms"),
        )


@dataclass(frozen=True, slots=True)
class ParameterDefinition:
    name: str
    pattern: ParameterPattern
    value: str | None = None
    referenced_by: frozenset[str] = frozenset()

    def to_dict(self) -> dict[str, Any]:
        return _omit_none(
            {
                "name": self.name,
                "pattern": self.pattern.value,
                "value": self.value,
                "referenced_by": sorted(self.referenced_by),
            }
        )
