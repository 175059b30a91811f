from __future__ import annotations

import json
import re
import secrets
import threading
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Iterable

import structlog

from .models import EndpointTemplate, ParameterDefinition, ParameterPattern, ResolvedRequest

if TYPE_CHECKING:
    from .stores import SpaceConfigStore

logger = structlog.get_logger(__name__)

PLACEHOLDER_RE = re.compile(r"\{([^{}]+)\}")
UNRESOLVED_RE = PLACEHOLDER_RE

# Most specific suffixes first: "Uid" must not fall through to "Id".
_SUFFIX_PATTERNS: tuple[tuple[tuple[str, ...], ParameterPattern], ...] = (
    (("uuid", "uid"), ParameterPattern.UUID),
    (("timestamp", "tm"), ParameterPattern.TIMESTAMP),
    (("date",), ParameterPattern.DATE),
    (("time",), ParameterPattern.TIME),
    (("token", "key"), ParameterPattern.TOKEN),
    (("url",), ParameterPattern.URL),
    (("email",), ParameterPattern.EMAIL),
    (("id",), ParameterPattern.ID),
)

PLACEHOLDER_EMAIL = "test@example.com"


def _parse_structured(body: str) -> tuple[Any, bool]:
    try:
        parsed = json.loads(body)
    except ValueError:
        return body, False
    if not isinstance(parsed, (dict, list)):
        return body, False
    return parsed, True


def _scan_string(text: str, out: set[str]) -> None:
    out.update(PLACEHOLDER_RE.findall(text))


def _scan_value(value: Any, out: set[str]) -> None:
    if isinstance(value, str):
        _scan_string(value, out)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _scan_value(item, out)
    elif isinstance(value, dict):
        for item in value.values():
            _scan_value(item, out)


def _scan_body(body: Any, out: set[str]) -> None:
    if body is None:
        return
    if isinstance(body, str):
        parsed, structured = _parse_structured(body)
        if structured:
            _scan_value(parsed, out)
        else:
            _scan_string(body, out)
        return
    _scan_value(body, out)


def scan(template: EndpointTemplate | ResolvedRequest) -> set[str]:
    """Placeholder names referenced by the URL, header values and body of a template."""
    names: set[str] = set()
    _scan_string(template.url, names)
    for value in template.headers.values():
        _scan_string(value, names)
    _scan_body(template.body, names)
    return names


def classify(name: str) -> ParameterPattern:
    lowered = name.lower()
    for suffixes, pattern in _SUFFIX_PATTERNS:
        if lowered.endswith(suffixes):
            return pattern
    return ParameterPattern.STRING


def substitute(text: str, values: dict[str, str]) -> str:
    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        return values[name] if name in values else match.group(0)

    return PLACEHOLDER_RE.sub(_replace, text)


def _substitute_value(value: Any, values: dict[str, str]) -> Any:
    if isinstance(value, str):
        return substitute(value, values)
    if isinstance(value, (list, tuple)):
        return [_substitute_value(item, values) for item in value]
    if isinstance(value, dict):
        return {key: _substitute_value(item, values) for key, item in value.items()}
    return value


def _substitute_body(body: Any, values: dict[str, str]) -> Any:
    if body is None:
        return None
    if isinstance(body, str):
        parsed, structured = _parse_structured(body)
        if structured:
            substituted = _substitute_value(parsed, values)
            return body if substituted == parsed else json.dumps(substituted)
        return substitute(body, values)
    return _substitute_value(body, values)


def resolve(template: EndpointTemplate, values: dict[str, str]) -> ResolvedRequest:
    """Concrete request for a template. Tokens without a value are left in place."""
    return ResolvedRequest(
        method=template.method.upper(),
        url=substitute(template.url, values),
        headers={key: substitute(value, values) for key, value in template.headers.items()},
        body=_substitute_body(template.body, values),
        timeout_ms=template.timeout_ms,
    )


def _has_placeholder(value: Any) -> bool:
    if isinstance(value, str):
        return UNRESOLVED_RE.search(value) is not None
    if isinstance(value, (list, tuple)):
        return any(_has_placeholder(item) for item in value)
    if isinstance(value, dict):
        return any(_has_placeholder(item) for item in value.values())
    return False


def has_unresolved(request: ResolvedRequest) -> bool:
    if _has_placeholder(request.url):
        return True
    if any(_has_placeholder(value) for value in request.headers.values()):
        return True
    if isinstance(request.body, str):
        parsed, structured = _parse_structured(request.body)
        return _has_placeholder(parsed if structured else request.body)
    return _has_placeholder(request.body)


class ValueGenerator:
    """Synthesises first-use values per parameter pattern."""

    def __init__(self, *, now: Callable[[], datetime] = datetime.now) -> None:
        self._now = now
        self._generators: dict[ParameterPattern, Callable[[str], str]] = {
            ParameterPattern.UUID: lambda name: str(uuid.uuid4()),
            ParameterPattern.TIMESTAMP: lambda name: str(int(self._now().timestamp() * 1000)),
            ParameterPattern.DATE: lambda name: self._now().date().isoformat(),
            ParameterPattern.TIME: lambda name: self._now().strftime("%H:%M:%S"),
            ParameterPattern.TOKEN: lambda name: f"tk_{name.lower()}_{secrets.token_hex(4)}",
            ParameterPattern.URL: lambda name: f"https://example.com/test-{name}",
            ParameterPattern.EMAIL: lambda name: PLACEHOLDER_EMAIL,
            ParameterPattern.ID: self._default,
            ParameterPattern.STRING: self._default,
        }

    @staticmethod
    def _default(name: str) -> str:
        return f"test-{name}"

    def __call__(self, name: str, pattern: ParameterPattern | str | None) -> str:
        if not isinstance(pattern, ParameterPattern):
            try:
                pattern = ParameterPattern(pattern)
            except ValueError:
                pattern = ParameterPattern.STRING
        return self._generators.get(pattern, self._default)(name)


class ParameterStore:
    """
    Space-scoped parameter values.

    A name resolves to one value per space until it is reset. Values already
    present in the config store win over generated ones, and generated values
    are written back to it. First-time generation for a (space, name) pair is
    serialised so concurrent captures observe the same value.
    """

    def __init__(
        self,
        config_store: "SpaceConfigStore | None" = None,
        *,
        generator: ValueGenerator | None = None,
    ) -> None:
        self._config_store = config_store
        self._generator = generator or ValueGenerator()
        self._values: dict[str, dict[str, str]] = {}
        self._guard = threading.Lock()
        self._locks: dict[tuple[str, str], threading.Lock] = {}

    def _space_values(self, space: str) -> dict[str, str]:
        with self._guard:
            values = self._values.get(space)
            if values is None:
                loaded = self._config_store.load_parameters(space) if self._config_store is not None else {}
                values = {str(k): str(v) for k, v in loaded.items()}
                self._values[space] = values
            return values

    def _key_lock(self, space: str, name: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault((space, name), threading.Lock())

    def get(self, space: str, name: str) -> str | None:
        return self._space_values(space).get(name)

    def values(self, space: str) -> dict[str, str]:
        return dict(self._space_values(space))

    def set(self, space: str, name: str, value: str) -> None:
        values = self._space_values(space)
        with self._key_lock(space, name):
            values[name] = value
            if self._config_store is not None:
                self._config_store.save_parameter(space, name, value)

    def generate(self, space: str, name: str, pattern: ParameterPattern | str | None = None) -> str:
        values = self._space_values(space)
        existing = values.get(name)
        if existing is not None:
            return existing
        with self._key_lock(space, name):
            existing = values.get(name)
            if existing is not None:
                return existing
            value = self._generator(name, pattern if pattern is not None else classify(name))
            values[name] = value
            if self._config_store is not None:
                self._config_store.save_parameter(space, name, value)
        logger.info("parameter_generated", space=space, name=name, value=value)
        return value

    def reset(self, space: str, name: str) -> bool:
        values = self._space_values(space)
        with self._key_lock(space, name):
            removed = values.pop(name, None) is not None
            if removed and self._config_store is not None:
                self._config_store.delete_parameter(space, name)
        if removed:
            logger.info("parameter_reset", space=space, name=name)
        return removed

    def reset_all(self, space: str) -> list[str]:
        names = sorted(self._space_values(space))
        for name in names:
            self.reset(space, name)
        return names


class ParameterResolver:
    def __init__(self, store: ParameterStore) -> None:
        self._store = store

    @property
    def store(self) -> ParameterStore:
        return self._store

    scan = staticmethod(scan)
    classify = staticmethod(classify)
    resolve = staticmethod(resolve)
    has_unresolved = staticmethod(has_unresolved)

    def generate(self, space: str, name: str, pattern: ParameterPattern | str | None = None) -> str:
        return self._store.generate(space, name, pattern)

    def values_for(self, space: str, template: EndpointTemplate) -> dict[str, str]:
        return {name: self.generate(space, name, classify(name)) for name in sorted(scan(template))}

    def resolve_for(self, space: str, template: EndpointTemplate) -> ResolvedRequest:
        return resolve(template, self.values_for(space, template))

    def definitions(self, space: str, endpoints: Iterable[EndpointTemplate]) -> list[ParameterDefinition]:
        references: dict[str, set[str]] = {}
        for endpoint in endpoints:
            for name in scan(endpoint):
                references.setdefault(name, set()).add(endpoint.name)
        return [
            ParameterDefinition(
                name=name,
                pattern=classify(name),
                value=self._store.get(space, name),
                referenced_by=frozenset(refs),
            )
            for name, refs in sorted(references.items())
        ]
