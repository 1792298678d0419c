"""Settings file loading."""

import json
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, cast

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(Exception):
    """Settings file is missing required structure or has bad values."""


def default_log_file() -> Path:
    return Path.home() / ".cache" / "gitbuddy" / "gitbuddy.log"


@dataclass(frozen=True)
class Settings:
    log_limit: int = 200
    refresh_interval: float = 5.0
    workers: int = 4
    log_file: Path = field(default_factory=default_log_file)
    log_level: str = "INFO"

    def override(self, **values: Any) -> "Settings":
        """Copy with every non-None value applied, e.g. from CLI flags."""
        return replace(self, **{key: value for key, value in values.items() if value is not None})


def settings_path(repo_root: Path) -> Path:
    return repo_root / ".gitbuddy" / "settings.json"


def _load_raw(path: Path) -> dict[str, object]:
    if not path.is_file():
        return {}

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {path}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"Invalid settings format in {path}")
    return cast(dict[str, object], raw)


def _expect_int(value: object, key: str, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigError(f"Setting '{key}' must be an integer >= {minimum}.")
    return value


def _expect_float(value: object, key: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ConfigError(f"Setting '{key}' must be a non-negative number.")
    return float(value)


def parse_settings(raw: dict[str, object]) -> Settings:
    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"Unknown setting(s): {', '.join(unknown)}")

    values: dict[str, Any] = {}
    if "log_limit" in raw:
        values["log_limit"] = _expect_int(raw["log_limit"], "log_limit", 1)
    if "workers" in raw:
        values["workers"] = _expect_int(raw["workers"], "workers", 1)
    if "refresh_interval" in raw:
        values["refresh_interval"] = _expect_float(raw["refresh_interval"], "refresh_interval")
    if "log_file" in raw:
        log_file = raw["log_file"]
        if not isinstance(log_file, str) or not log_file.strip():
            raise ConfigError("Setting 'log_file' must be a path.")
        values["log_file"] = Path(log_file).expanduser()
    if "log_level" in raw:
        level = raw["log_level"]
        if not isinstance(level, str) or level.upper() not in LOG_LEVELS:
            raise ConfigError(f"Setting 'log_level' must be one of {', '.join(LOG_LEVELS)}.")
        values["log_level"] = level.upper()
    return Settings(**values)


def load_settings(repo_root: Path) -> Settings:
    """Read ``.gitbuddy/settings.json``; every key is optional."""
    return parse_settings(_load_raw(settings_path(repo_root)))
