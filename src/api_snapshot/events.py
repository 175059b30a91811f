from __future__ import annotations

import threading
from enum import Enum
from typing import Any, Callable, Iterable, Protocol

import structlog

logger = structlog.get_logger(__name__)


class EventKind(Enum):
    STARTED = "started"
    PROGRESS = "progress"
    COMPLETE = "complete"
    ERROR = "error"


EventHandler = Callable[[EventKind, dict[str, Any]], None]


class EventSink(Protocol):
    def publish(self, kind: EventKind, payload: dict[str, Any]) -> None: ...


class NullEventSink:
    def publish(self, kind: EventKind, payload: dict[str, Any]) -> None:
        return None


class LoggingEventSink:
    def __init__(self, name: str = "api_snapshot.events") -> None:
        self._logger = structlog.get_logger(name)

    def publish(self, kind: EventKind, payload: dict[str, Any]) -> None:
        if kind is EventKind.ERROR:
            self._logger.error(f"capture_{kind.value}", **payload)
        elif kind is EventKind.PROGRESS:
            self._logger.debug(f"capture_{kind.value}", **payload)
        else:
            self._logger.info(f"capture_{kind.value}", **payload)


class EventBus:
    """
    Fan-out sink. Handlers run synchronously on the publishing thread.

    A handler that raises is logged and skipped; other handlers still run.
    """

    def __init__(self) -> None:
        self._handlers: list[tuple[EventHandler, frozenset[EventKind] | None]] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: EventHandler, kinds: Iterable[EventKind] | None = None) -> Callable[[], None]:
        entry = (handler, frozenset(kinds) if kinds is not None else None)
        with self._lock:
            self._handlers.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._handlers:
                    self._handlers.remove(entry)

        return unsubscribe

    def publish(self, kind: EventKind, payload: dict[str, Any]) -> None:
        with self._lock:
            handlers = list(self._handlers)
        for handler, kinds in handlers:
            if kinds is not None and kind not in kinds:
                continue
            try:
                handler(kind, dict(payload))
            except Exception:
                logger.exception("event_handler_failed", kind=kind.value)
