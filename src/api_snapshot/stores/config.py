from __future__ import annotations

import json
import re
import threading
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence

import structlog
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from ..errors import ConfigurationError
from ..models import HTTP_METHODS, EndpointTemplate

logger = structlog.get_logger(__name__)

_CONFIG_SUFFIXES = (".yaml", ".yml", ".json")


class SpaceConfigStore(Protocol):
    def load_endpoints(self, space: str) -> list[EndpointTemplate]: ...

    def load_parameters(self, space: str) -> dict[str, str]: ...

    def save_parameter(self, space: str, name: str, value: str) -> None: ...

    def delete_parameter(self, space: str, name: str) -> None: ...

    def load_rules(self, space: str) -> list[dict[str, Any]]: ...


def sanitize_name(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9_-]", "_", name)


def _to_builtin(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k): _to_builtin(v) for k, v in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_to_builtin(v) for v in value]
    return value


def parse_endpoints(space: str, raw: Any) -> list[EndpointTemplate]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigurationError(f"Space {space!r}: 'endpoints' must be a list")
    out: list[EndpointTemplate] = []
    seen: set[str] = set()
    for idx, item in enumerate(raw):
        if not isinstance(item, dict) or not item.get("name") or not item.get("url"):
            raise ConfigurationError(f"Space {space!r}: endpoint #{idx} must have a name and url")
        endpoint = EndpointTemplate.from_dict(item)
        if endpoint.method not in HTTP_METHODS:
            raise ConfigurationError(f"Space {space!r}: endpoint {endpoint.name!r} has invalid method {endpoint.method!r}")
        if endpoint.name in seen:
            raise ConfigurationError(f"Space {space!r}: duplicate endpoint name {endpoint.name!r}")
        seen.add(endpoint.name)
        out.append(endpoint)
    return out


class InMemorySpaceConfigStore:
    def __init__(
        self,
        endpoints: dict[str, list[EndpointTemplate]] | None = None,
        parameters: dict[str, dict[str, str]] | None = None,
        rules: dict[str, list[dict[str, Any]]] | None = None,
    ) -> None:
        self._endpoints = {space: list(items) for space, items in (endpoints or {}).items()}
        self._parameters = {space: dict(values) for space, values in (parameters or {}).items()}
        self._rules = {space: list(items) for space, items in (rules or {}).items()}
        self._lock = threading.Lock()

    def add_space(self, space: str, endpoints: list[EndpointTemplate]) -> None:
        with self._lock:
            self._endpoints[space] = list(endpoints)

    def load_endpoints(self, space: str) -> list[EndpointTemplate]:
        if space not in self._endpoints:
            raise ConfigurationError(f"Space not found: {space}")
        return list(self._endpoints[space])

    def load_parameters(self, space: str) -> dict[str, str]:
        return dict(self._parameters.get(space, {}))

    def save_parameter(self, space: str, name: str, value: str) -> None:
        with self._lock:
            self._parameters.setdefault(space, {})[name] = value

    def delete_parameter(self, space: str, name: str) -> None:
        with self._lock:
            self._parameters.get(space, {}).pop(name, None)

    def load_rules(self, space: str) -> list[dict[str, Any]]:
        return list(self._rules.get(space, []))


class FileSpaceConfigStore:
    """
    One document per space under `config_dir`: `<space>.yaml`, `.yml` or `.json`.

    Documents hold `endpoints`, `parameters` and optional diff `rules`.
    Parameter writes go back to the same document.
    """

    def __init__(self, config_dir: Path | str) -> None:
        self._config_dir = Path(config_dir)
        self._lock = threading.Lock()

    @property
    def config_dir(self) -> Path:
        return self._config_dir

    def path_for(self, space: str) -> Path:
        stem = sanitize_name(space)
        for suffix in _CONFIG_SUFFIXES:
            candidate = self._config_dir / f"{stem}{suffix}"
            if candidate.exists():
                return candidate
        raise ConfigurationError(f"Space not found: {space} (looked in {self._config_dir})")

    def list_spaces(self) -> list[str]:
        if not self._config_dir.is_dir():
            return []
        return sorted({p.stem for p in self._config_dir.iterdir() if p.suffix in _CONFIG_SUFFIXES})

    def _read(self, path: Path) -> dict[str, Any]:
        try:
            with path.open("r", encoding="utf-8") as file:
                data = YAML(typ="safe").load(file)
        except (OSError, YAMLError) as exc:
            raise ConfigurationError(f"Failed to load space config {path}: {exc}") from exc
        data = _to_builtin(data) if data is not None else {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Space config {path} must be a mapping")
        return data

    def _write(self, path: Path, data: dict[str, Any]) -> None:
        if path.suffix == ".json":
            path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
            return
        yaml = YAML()
        yaml.default_flow_style = False
        with path.open("w", encoding="utf-8") as file:
            yaml.dump(data, file)

    def load_endpoints(self, space: str) -> list[EndpointTemplate]:
        data = self._read(self.path_for(space))
        return parse_endpoints(space, data.get("endpoints"))

    def load_parameters(self, space: str) -> dict[str, str]:
        data = self._read(self.path_for(space))
        params = data.get("parameters") or {}
        if not isinstance(params, dict):
            raise ConfigurationError(f"Space {space!r}: 'parameters' must be a mapping")
        return {str(k): str(v) for k, v in params.items()}

    def save_parameter(self, space: str, name: str, value: str) -> None:
        with self._lock:
            path = self.path_for(space)
            data = self._read(path)
            params = data.get("parameters") or {}
            params[name] = value
            data["parameters"] = params
            self._write(path, data)
        logger.debug("parameter_saved", space=space, name=name, path=str(path))

    def delete_parameter(self, space: str, name: str) -> None:
        with self._lock:
            path = self.path_for(space)
            data = self._read(path)
            params = data.get("parameters") or {}
            if name not in params:
                return
            del params[name]
            data["parameters"] = params
            self._write(path, data)

    def load_rules(self, space: str) -> list[dict[str, Any]]:
        data = self._read(self.path_for(space))
        rules = data.get("rules") or []
        if not isinstance(rules, list):
            raise ConfigurationError(f"Space {space!r}: 'rules' must be a list")
        return rules
