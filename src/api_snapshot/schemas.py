from __future__ import annotations

from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError
from jsonschema.validators import validator_for

from .errors import ConfigurationError, ValidationError


def _json_path(err: object) -> str:
    path = getattr(err, "absolute_path", None)
    if not path:
        return "$"
    out = "$"
    for part in path:
        if isinstance(part, int):
            out += f"[{part}]"
        else:
            out += f".{part}"
    return out


def validate(instance: Any, schema: dict[str, Any]) -> list[str]:
    """
    Validate `instance` against an inline JSON Schema.

    Returns `"<json path>: <message>"` strings, empty when valid. The draft is
    taken from `$schema`, defaulting to 2020-12.
    """
    cls = validator_for(schema, default=Draft202012Validator)
    try:
        cls.check_schema(schema)
    except SchemaError as exc:
        raise ConfigurationError(f"Invalid JSON schema: {exc.message}") from exc
    validator = cls(schema)
    errors = sorted(validator.iter_errors(instance), key=lambda e: [str(p) for p in getattr(e, "absolute_path", [])])
    return [f"{_json_path(e)}: {e.message}" for e in errors]


def ensure_valid(instance: Any, schema: dict[str, Any], *, label: str = "instance") -> None:
    errors = validate(instance, schema)
    if errors:
        raise ValidationError(f"{label} does not match its schema ({len(errors)} error(s))", errors=errors)
