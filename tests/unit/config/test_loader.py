"""
serial-dispatch — unit tests for config loader

File: tests/unit/config/test_loader.py
Last updated: 2026-10-18

Purpose
- Validate deterministic config loading from defaults, TOML, env overrides, and CLI overrides.

What this test file should cover
- Precedence: CLI > env > file > defaults.
- Env var path mapping and numeric/boolean coercion.
- Profile selection from argument, CLI override, and env.
- Path normalization relative to the config file.
- Deterministic effective config dumping.

Non-functional requirements
- Deterministic output across repeated loads.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from serial_dispatch.config.loader import (
    ConfigLoadError,
    dump_effective_config,
    effective_config,
    load_config,
)
from serial_dispatch.config.schema import ConfigValidationError


def _write_config(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_when_no_file_present(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    config = load_config(environ={})

    assert config["dispatcher"] == {"max_id": 0xFFFF, "timeout_ms": 5000, "sending_delay_ms": 0}
    assert config["observability"]["log_dir"] == (tmp_path / "logs").resolve().as_posix()


def test_loader_precedence_default_file_env_cli(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "serial_dispatch.toml",
        """
[dispatcher]
max_id = 255
timeout_ms = 800
sending_delay_ms = 10
""".strip(),
    )

    from_file = load_config(config_path, environ={})
    assert from_file["dispatcher"] == {"max_id": 255, "timeout_ms": 800, "sending_delay_ms": 10}

    env = {
        "SERIAL_DISPATCH_DISPATCHER_TIMEOUT_MS": "300",
        "SERIAL_DISPATCH_DISPATCHER_SENDING_DELAY_MS": "2.5",
    }
    from_env = load_config(config_path, environ=env)
    assert from_env["dispatcher"]["max_id"] == 255
    assert from_env["dispatcher"]["timeout_ms"] == 300
    assert from_env["dispatcher"]["sending_delay_ms"] == 2.5

    from_cli = load_config(
        config_path,
        environ=env,
        cli_overrides={"dispatcher.timeout_ms": 50, "dispatcher.max_id": None},
    )
    assert from_cli["dispatcher"]["timeout_ms"] == 50
    assert from_cli["dispatcher"]["max_id"] == 255


def test_env_boolean_and_string_coercion(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)
    config = load_config(
        environ={
            "SERIAL_DISPATCH_OBSERVABILITY_LOG_TO_STDOUT": "off",
            "SERIAL_DISPATCH_OBSERVABILITY_LOG_FORMAT": " text ",
        },
    )

    assert config["observability"]["log_to_stdout"] is False
    assert config["observability"]["log_format"] == "text"


@pytest.mark.parametrize(
    ("name", "value", "message"),
    [
        ("SERIAL_DISPATCH_DISPATCHER_MAX_ID", "many", "must be a number"),
        ("SERIAL_DISPATCH_OBSERVABILITY_LOG_TO_STDOUT", "maybe", "must be a boolean"),
    ],
)
def test_env_coercion_errors_name_the_variable(name: str, value: str, message: str) -> None:
    with pytest.raises(ConfigLoadError, match=message) as excinfo:
        load_config(environ={name: value})

    assert name in str(excinfo.value)


def test_env_float_for_integer_field_fails_validation() -> None:
    with pytest.raises(ConfigValidationError, match="dispatcher.max_id"):
        load_config(environ={"SERIAL_DISPATCH_DISPATCHER_MAX_ID": "1.5"})


@pytest.mark.parametrize(
    ("kwargs", "environ"),
    [
        ({"profile": "serial"}, {}),
        ({"cli_overrides": {"profile": "serial"}}, {}),
        ({}, {"SERIAL_DISPATCH_PROFILE": "serial"}),
    ],
)
def test_profile_selection_sources(
    kwargs: dict[str, object],
    environ: dict[str, str],
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    monkeypatch.chdir(tmp_path)

    config = load_config(environ=environ, **kwargs)  # type: ignore[arg-type]

    assert config["dispatcher"]["sending_delay_ms"] == 50


def test_env_overrides_apply_on_top_of_profile(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)

    config = load_config(
        profile="fast", environ={"SERIAL_DISPATCH_DISPATCHER_TIMEOUT_MS": "123"}
    )

    assert config["dispatcher"]["timeout_ms"] == 123
    assert config["dispatcher"]["sending_delay_ms"] == 0


def test_unknown_profile_is_rejected(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    with pytest.raises(ConfigValidationError, match="profile 'bursty' is not defined"):
        load_config(profile="bursty", environ={})


def test_custom_profile_from_file(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "serial_dispatch.toml",
        """
[profiles.modbus.dispatcher]
timeout_ms = 250
sending_delay_ms = 35
""".strip(),
    )

    config = load_config(config_path, profile="modbus", environ={})

    assert config["dispatcher"]["timeout_ms"] == 250
    assert config["dispatcher"]["sending_delay_ms"] == 35
    assert set(config["profiles"]) == {"fast", "modbus", "serial"}


def test_explicit_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config(tmp_path / "nope.toml", environ={})


def test_invalid_toml_raises(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "broken.toml", "[dispatcher\nmax_id = 1")

    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(config_path, environ={})


def test_log_dir_is_resolved_relative_to_config_file(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "conf" / "serial_dispatch.toml",
        """
[observability]
log_dir = "../var/log"
""".strip(),
    )

    config = load_config(config_path, environ={})

    assert config["observability"]["log_dir"] == (tmp_path.resolve() / "var" / "log").as_posix()


def test_effective_config_dump_is_deterministic_and_omits_profiles(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)
    config = load_config(environ={})

    first = dump_effective_config(config)
    second = dump_effective_config(load_config(environ={}))

    assert first == second
    parsed = json.loads(first)
    assert "profiles" not in parsed
    assert parsed == effective_config(config)
    assert list(parsed) == sorted(parsed)
