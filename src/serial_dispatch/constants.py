"""Stable constants shared across the dispatcher, config, and CLI."""

from __future__ import annotations

from typing import Final

# Schema version for ``serial_dispatch.toml``.
CONFIG_SCHEMA_VERSION: Final[int] = 1

# Dispatcher defaults.
DEFAULT_MAX_ID: Final[int] = 0xFFFF
DEFAULT_TIMEOUT_MS: Final[int] = 5000
DEFAULT_SENDING_DELAY_MS: Final[int] = 0

# Outcome channel names.
OUTCOME_SUCCESS: Final[str] = "success"
OUTCOME_TIMEOUT: Final[str] = "timeout"
OUTCOME_ERROR: Final[str] = "error"

TIMEOUT_MESSAGE: Final[str] = "request timed out"

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_MAX_ID",
    "DEFAULT_SENDING_DELAY_MS",
    "DEFAULT_TIMEOUT_MS",
    "OUTCOME_ERROR",
    "OUTCOME_SUCCESS",
    "OUTCOME_TIMEOUT",
    "TIMEOUT_MESSAGE",
]
