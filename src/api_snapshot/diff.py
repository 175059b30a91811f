"""
Structural comparison of two snapshots of one endpoint.

The walk visits `response.status`, then the body under `response.body`, then a
fixed set of headers. Object keys are visited in baseline order followed by
keys that only exist in the current body; array items by ascending index.
Differences are then stably sorted by severity, so equal severities keep walk
order and the output is deterministic.
"""

from __future__ import annotations

import difflib
import json
from dataclasses import dataclass
from typing import Any, Iterable, Protocol, Sequence

from .models import BodyFormat, Comparison, Difference, DiffKind, RecordedResponse, Severity, Snapshot
from .models.diff import _MISSING
from .values import JsonArray, JsonObject, JsonString, JsonValue, to_tagged

STATUS_KEYS = frozenset({"status", "statusCode", "status_code", "httpStatus"})
TRACKED_HEADERS = ("content-type", "content-length", "cache-control")

_KIND_SEVERITY = {
    DiffKind.REMOVED: Severity.BREAKING,
    DiffKind.TYPE_CHANGED: Severity.BREAKING,
    DiffKind.ADDED: Severity.NON_BREAKING,
    DiffKind.MODIFIED: Severity.INFORMATIONAL,
}


class StatusCategoryPolicy(Protocol):
    def is_category_shift(self, path: str, old: Any, new: Any) -> bool: ...


def _is_http_code(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 100 <= value <= 599


def _last_key(path: str) -> str | None:
    if path.endswith("]"):
        return None
    return path.rsplit(".", 1)[-1]


class HttpStatusCategoryPolicy:
    """A change between hundreds-classes (2xx, 4xx, ...) of an HTTP status code."""

    def __init__(self, keys: Iterable[str] = STATUS_KEYS) -> None:
        self._keys = frozenset(keys)

    def applies_to(self, path: str) -> bool:
        if path == "response.status":
            return True
        return path.startswith("response.body.") and _last_key(path) in self._keys

    def is_category_shift(self, path: str, old: Any, new: Any) -> bool:
        if not self.applies_to(path):
            return False
        if not (_is_http_code(old) and _is_http_code(new)):
            return False
        return old // 100 != new // 100


@dataclass(frozen=True, slots=True)
class DiffRule:
    """Ignore or re-grade differences at `path` and everything below it."""

    path: str
    ignore: bool = False
    severity: Severity | None = None

    def matches(self, path: str) -> bool:
        if path == self.path:
            return True
        return path.startswith(self.path + ".") or path.startswith(self.path + "[")

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "DiffRule":
        severity = data.get("severity")
        return DiffRule(
            path=str(data["path"]),
            ignore=bool(data.get("ignore", False)),
            severity=Severity(severity) if severity is not None else None,
        )


DEFAULT_RULES: tuple[DiffRule, ...] = (
    DiffRule("response.headers.date", ignore=True),
    DiffRule("response.headers.x-request-id", ignore=True),
    DiffRule("response.headers.content-type", severity=Severity.BREAKING),
)


def _text_of(response: RecordedResponse) -> str:
    return response.body if isinstance(response.body, str) else str(response.body)


class DiffEngine:
    def __init__(
        self,
        rules: Sequence[DiffRule] = (),
        *,
        policy: StatusCategoryPolicy | None = None,
        include_defaults: bool = True,
    ) -> None:
        self._rules = tuple(rules) + (DEFAULT_RULES if include_defaults else ())
        self._policy = policy or HttpStatusCategoryPolicy()

    @property
    def rules(self) -> tuple[DiffRule, ...]:
        return self._rules

    def compare(self, baseline: Snapshot, current: Snapshot) -> Comparison:
        raw: list[tuple[str, DiffKind, Any, Any]] = []
        self._walk_snapshots(baseline, current, raw)

        differences: list[Difference] = []
        for path, kind, old, new in raw:
            severity = self._severity(path, kind, old, new)
            rule = self._rule_for(path)
            if rule is not None:
                if rule.ignore:
                    continue
                if rule.severity is not None:
                    severity = rule.severity
            differences.append(Difference(path=path, kind=kind, severity=severity, old_value=old, new_value=new))

        differences.sort(key=lambda d: d.severity.rank)
        return Comparison(
            endpoint=current.endpoint,
            baseline_id=baseline.id,
            current_id=current.id,
            differences=tuple(differences),
        )

    def _rule_for(self, path: str) -> DiffRule | None:
        for rule in self._rules:
            if rule.matches(path):
                return rule
        return None

    def _severity(self, path: str, kind: DiffKind, old: Any, new: Any) -> Severity:
        if kind is DiffKind.MODIFIED and self._policy.is_category_shift(path, old, new):
            return Severity.BREAKING
        return _KIND_SEVERITY[kind]

    def _walk_snapshots(self, baseline: Snapshot, current: Snapshot, out: list) -> None:
        old, new = baseline.response, current.response
        if old is None and new is None:
            if baseline.error != current.error:
                out.append(("error", DiffKind.MODIFIED, baseline.error, current.error))
            return
        if new is None:
            out.append(("response", DiffKind.REMOVED, old.status, _MISSING))
            return
        if old is None:
            out.append(("response", DiffKind.ADDED, _MISSING, new.status))
            return

        if old.status != new.status:
            out.append(("response.status", DiffKind.MODIFIED, old.status, new.status))

        old_text = old.body_format is BodyFormat.TEXT
        new_text = new.body_format is BodyFormat.TEXT
        if old_text and new_text:
            _walk("response.body", JsonString(_text_of(old)), JsonString(_text_of(new)), out)
        elif old_text or new_text:
            out.append(("response.body", DiffKind.TYPE_CHANGED, old.body, new.body))
        else:
            _walk("response.body", to_tagged(old.body), to_tagged(new.body), out)

        old_headers = {k.lower(): v for k, v in old.headers.items()}
        new_headers = {k.lower(): v for k, v in new.headers.items()}
        for name in TRACKED_HEADERS:
            path = f"response.headers.{name}"
            if name in old_headers and name in new_headers:
                if old_headers[name] != new_headers[name]:
                    out.append((path, DiffKind.MODIFIED, old_headers[name], new_headers[name]))
            elif name in old_headers:
                out.append((path, DiffKind.REMOVED, old_headers[name], _MISSING))
            elif name in new_headers:
                out.append((path, DiffKind.ADDED, _MISSING, new_headers[name]))


def _walk(path: str, old: JsonValue, new: JsonValue, out: list) -> None:
    if type(old) is not type(new):
        out.append((path, DiffKind.TYPE_CHANGED, old.to_plain(), new.to_plain()))
        return
    if isinstance(old, JsonObject):
        old_fields = old.as_mapping()
        new_fields = new.as_mapping()
        for key, value in old.fields:
            child = f"{path}.{key}"
            if key in new_fields:
                _walk(child, value, new_fields[key], out)
            else:
                out.append((child, DiffKind.REMOVED, value.to_plain(), _MISSING))
        for key, value in new.fields:
            if key not in old_fields:
                out.append((f"{path}.{key}", DiffKind.ADDED, _MISSING, value.to_plain()))
        return
    if isinstance(old, JsonArray):
        for index in range(max(len(old.items), len(new.items))):
            child = f"{path}[{index}]"
            if index < len(old.items) and index < len(new.items):
                _walk(child, old.items[index], new.items[index], out)
            elif index < len(old.items):
                out.append((child, DiffKind.REMOVED, old.items[index].to_plain(), _MISSING))
            else:
                out.append((child, DiffKind.ADDED, _MISSING, new.items[index].to_plain()))
        return
    if old != new:
        out.append((path, DiffKind.MODIFIED, old.to_plain(), new.to_plain()))


def _pretty(response: RecordedResponse | None, error: str | None) -> list[str]:
    if response is None:
        return [f"error: {error}"]
    if response.body_format is BodyFormat.TEXT:
        text = response.body if isinstance(response.body, str) else str(response.body)
    else:
        text = json.dumps(response.body, indent=2, ensure_ascii=False)
    return text.splitlines()


def unified_text_diff(baseline: Snapshot, current: Snapshot, *, context: int = 3) -> str:
    lines = difflib.unified_diff(
        _pretty(baseline.response, baseline.error),
        _pretty(current.response, current.error),
        fromfile=f"baseline/{baseline.id}",
        tofile=f"current/{current.id}",
        n=context,
        lineterm="",
    )
    return "\n".join(lines)
