from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from gitbuddy.config import ConfigError, Settings, load_settings, parse_settings, settings_path
from gitbuddy.log import setup_logging


def _write_settings(repo: Path, data: object) -> None:
    path = settings_path(repo)
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps(data))


def test_missing_file_gives_defaults(tmp_path: Path) -> None:
    settings = load_settings(tmp_path)
    assert settings == Settings()
    assert settings.log_limit == 200
    assert settings.workers == 4


def test_values_are_read(tmp_path: Path) -> None:
    _write_settings(
        tmp_path,
        {"log_limit": 50, "refresh_interval": 0, "log_level": "debug", "log_file": "~/gb.log"},
    )
    settings = load_settings(tmp_path)
    assert settings.log_limit == 50
    assert settings.refresh_interval == 0.0
    assert settings.log_level == "DEBUG"
    assert settings.log_file == Path("~/gb.log").expanduser()


@pytest.mark.parametrize(
    "raw",
    [
        {"log_limit": 0},
        {"log_limit": "10"},
        {"workers": True},
        {"refresh_interval": -1},
        {"log_level": "LOUD"},
        {"log_file": ""},
        {"colour": "blue"},
    ],
)
def test_bad_values_are_rejected(raw: dict[str, object]) -> None:
    with pytest.raises(ConfigError):
        parse_settings(raw)


def test_invalid_json(tmp_path: Path) -> None:
    path = settings_path(tmp_path)
    path.parent.mkdir(parents=True)
    path.write_text("{not json")
    with pytest.raises(ConfigError):
        load_settings(tmp_path)


def test_non_object_settings(tmp_path: Path) -> None:
    _write_settings(tmp_path, [1, 2])
    with pytest.raises(ConfigError):
        load_settings(tmp_path)


def test_override_skips_unset_values() -> None:
    settings = Settings().override(log_limit=10, log_level=None)
    assert settings.log_limit == 10
    assert settings.log_level == "INFO"


def test_setup_logging_writes_to_file(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "gitbuddy.log"
    assert setup_logging(log_file, "debug") == log_file
    setup_logging(log_file, "DEBUG")
    logger = logging.getLogger("gitbuddy.test")
    logger.debug("hello from test")
    for handler in logging.getLogger("gitbuddy").handlers:
        handler.flush()
    assert len(logging.getLogger("gitbuddy").handlers) == 1
    assert log_file.read_text().count("hello from test") == 1
    for handler in list(logging.getLogger("gitbuddy").handlers):
        logging.getLogger("gitbuddy").removeHandler(handler)
        handler.close()
