from __future__ import annotations

from typing import Any


class SnapshotError(Exception):
    def __init__(
        self,
        message: str,
        *,
        code: str = "snapshot_error",
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ConfigurationError(SnapshotError):
    """Missing or invalid space, endpoint or setting. Aborts the invoked command."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, code="configuration_error", details=details)


class TransportError(SnapshotError):
    """Network failure or timeout while executing one request."""

    def __init__(self, message: str, *, url: str | None = None, timed_out: bool = False) -> None:
        self.url = url
        self.timed_out = timed_out
        super().__init__(message, code="timeout" if timed_out else "transport_error")


class ParseError(SnapshotError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code="parse_error")


class ValidationError(SnapshotError):
    """Schema mismatch. Attached to a snapshot as annotations, never raised out of a capture."""

    def __init__(self, message: str, *, errors: list[str] | None = None) -> None:
        self.errors = list(errors or [])
        super().__init__(message, code="validation_error")


class OrchestrationError(SnapshotError):
    def __init__(self, message: str, *, space: str | None = None) -> None:
        self.space = space
        super().__init__(message, code="orchestration_error")


class StoreError(SnapshotError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code="store_error")


class InvalidTransitionError(SnapshotError):
    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot move from {current} to {target}", code="invalid_transition")
