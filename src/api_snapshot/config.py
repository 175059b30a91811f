from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping

from .errors import ConfigurationError

ENV_PREFIX = "API_SNAPSHOT_"
LOG_FORMATS = ("console", "json")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _int(env: Mapping[str, str], name: str, default: int, *, minimum: int) -> int:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be >= {minimum}, got {value}")
    return value


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be >= 0, got {value}")
    return value


@dataclass(frozen=True, slots=True)
class Settings:
    config_dir: Path = Path("configs")
    snapshot_dir: Path = Path("snapshots")
    changelog: Path | None = None
    concurrency: int = 5
    default_timeout_ms: int = 30_000
    operation_deadline_s: float = 300.0
    operation_grace_s: float = 5.0
    log_level: str = "INFO"
    log_format: str = "console"
    api_key: str | None = None

    @property
    def changelog_path(self) -> Path:
        return self.changelog if self.changelog is not None else self.snapshot_dir / "changelog.jsonl"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if env is None else env

        log_level = env.get(ENV_PREFIX + "LOG_LEVEL", "INFO").strip().upper() or "INFO"
        if log_level not in LOG_LEVELS:
            raise ConfigurationError(f"{ENV_PREFIX}LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")
        log_format = env.get(ENV_PREFIX + "LOG_FORMAT", "console").strip().lower() or "console"
        if log_format not in LOG_FORMATS:
            raise ConfigurationError(f"{ENV_PREFIX}LOG_FORMAT must be one of {', '.join(LOG_FORMATS)}")

        changelog = env.get(ENV_PREFIX + "CHANGELOG")
        return cls(
            config_dir=Path(env.get(ENV_PREFIX + "CONFIG_DIR") or "configs"),
            snapshot_dir=Path(env.get(ENV_PREFIX + "SNAPSHOT_DIR") or "snapshots"),
            changelog=Path(changelog) if changelog else None,
            concurrency=_int(env, "CONCURRENCY", 5, minimum=1),
            default_timeout_ms=_int(env, "DEFAULT_TIMEOUT_MS", 30_000, minimum=1),
            operation_deadline_s=_float(env, "OPERATION_DEADLINE_S", 300.0),
            operation_grace_s=_float(env, "OPERATION_GRACE_S", 5.0),
            log_level=log_level,
            log_format=log_format,
            api_key=env.get(ENV_PREFIX + "API_KEY") or None,
        )

    def with_overrides(self, **overrides: Any) -> "Settings":
        return replace(self, **{key: value for key, value in overrides.items() if value is not None})
