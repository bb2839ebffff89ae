"""
Unit tests for merged settings and the overrides file.
"""

import json
import logging

from procguard.config import MergedSettings


def test_defaults_come_from_settings(tmp_path) -> None:
    settings = MergedSettings(tmp_path / "missing.json")

    assert settings.PIPE_NAME == "ProcessGuardService"
    assert settings.PIPE_BUFFER_SIZE == 65536
    assert settings.SERVICE_POLL_ATTEMPTS == 60
    assert settings.get("NOT_A_SETTING", "fallback") == "fallback"


def test_overrides_apply_only_to_modifiable_settings(tmp_path, caplog) -> None:
    path = tmp_path / "overrides.json"
    path.write_text(json.dumps({
        "HEARTBEAT_INTERVAL": "2",
        "SERVICE_POLL_ATTEMPTS": 10,
        "PIPE_NAME": "Hijacked",
        "UNKNOWN_KEY": 1,
    }))

    with caplog.at_level(logging.WARNING):
        settings = MergedSettings(path)

    assert settings.HEARTBEAT_INTERVAL == 2.0
    assert settings.SERVICE_POLL_ATTEMPTS == 10
    assert settings.PIPE_NAME == "ProcessGuardService"
    assert "non-modifiable setting 'PIPE_NAME'" in caplog.text
    assert "'UNKNOWN_KEY' not found" in caplog.text


def test_unconvertible_override_is_ignored(tmp_path) -> None:
    path = tmp_path / "overrides.json"
    path.write_text(json.dumps({"SERVICE_POLL_ATTEMPTS": "many"}))

    assert MergedSettings(path).SERVICE_POLL_ATTEMPTS == 60


def test_corrupt_overrides_file_keeps_defaults(tmp_path) -> None:
    path = tmp_path / "overrides.json"
    path.write_text("{not json")

    assert MergedSettings(path).CONNECT_TIMEOUT == 5.0


def test_save_overrides_persists_modifiable_keys_only(tmp_path) -> None:
    path = tmp_path / "overrides.json"
    settings = MergedSettings(path)

    settings.save_overrides({"CONNECT_TIMEOUT": 1.5, "PIPE_NAME": "Other"})

    assert json.loads(path.read_text()) == {"CONNECT_TIMEOUT": 1.5}
    assert MergedSettings(path).CONNECT_TIMEOUT == 1.5
