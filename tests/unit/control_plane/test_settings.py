"""Unit tests for typed dispatcher settings."""

from __future__ import annotations

from pathlib import Path

import pytest

from serial_dispatch.config import default_config, load_config
from serial_dispatch.control_plane.settings import DispatcherSettings
from serial_dispatch.errors import DispatcherConfigError


def test_defaults_match_sixteen_bit_range_and_five_second_timeout() -> None:
    settings = DispatcherSettings()

    assert settings.max_id == 0xFFFF
    assert settings.timeout_ms == 5000
    assert settings.effective_delay_ms == 0.0


@pytest.mark.parametrize(
    ("delay", "expected"),
    [(None, 0.0), (0, 0.0), (-10, 0.0), (25, 25.0), (2.5, 2.5)],
)
def test_effective_delay_ignores_non_positive(delay: float | None, expected: float) -> None:
    assert DispatcherSettings(sending_delay_ms=delay).effective_delay_ms == expected


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"max_id": True}, "max_id must be an integer"),
        ({"max_id": 1.0}, "max_id must be an integer"),
        ({"max_id": -1}, "max_id must be >= 0"),
        ({"timeout_ms": "100"}, "timeout_ms must be a number"),
        ({"timeout_ms": float("inf")}, "timeout_ms must be a number"),
        ({"timeout_ms": -5}, "timeout_ms must be > 0"),
        ({"sending_delay_ms": "fast"}, "sending_delay_ms must be a number"),
    ],
)
def test_invalid_values_raise_config_error(kwargs: dict[str, object], message: str) -> None:
    with pytest.raises(DispatcherConfigError, match=message):
        DispatcherSettings(**kwargs)  # type: ignore[arg-type]


def test_config_error_is_also_value_error() -> None:
    with pytest.raises(ValueError):
        DispatcherSettings(max_id=-3)


def test_from_config_reads_dispatcher_section() -> None:
    settings = DispatcherSettings.from_config(default_config())

    assert settings == DispatcherSettings()
    assert settings.to_dict() == {"max_id": 0xFFFF, "timeout_ms": 5000, "sending_delay_ms": 0}


def test_from_config_applies_profile_overlay(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)
    config = load_config(profile="fast", environ={})

    settings = DispatcherSettings.from_config(config)

    assert settings.timeout_ms == 1000
    assert settings.effective_delay_ms == 0.0


def test_from_config_rejects_non_mapping_section() -> None:
    with pytest.raises(DispatcherConfigError, match="must be an object"):
        DispatcherSettings.from_config({"dispatcher": [1, 2]})
