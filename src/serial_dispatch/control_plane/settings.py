"""Typed dispatcher construction parameters."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass

from serial_dispatch.constants import DEFAULT_MAX_ID, DEFAULT_SENDING_DELAY_MS, DEFAULT_TIMEOUT_MS
from serial_dispatch.errors import DispatcherConfigError


@dataclass(frozen=True, slots=True)
class DispatcherSettings:
    """Id range, per-request timeout, and inter-send pause for one dispatcher.

    ``sending_delay_ms`` of ``None`` or any value ``<= 0`` disables the pause.
    """

    max_id: int = DEFAULT_MAX_ID
    timeout_ms: float = DEFAULT_TIMEOUT_MS
    sending_delay_ms: float | None = DEFAULT_SENDING_DELAY_MS

    def __post_init__(self) -> None:
        if isinstance(self.max_id, bool) or not isinstance(self.max_id, int):
            raise DispatcherConfigError(
                f"max_id must be an integer, got {type(self.max_id).__name__}"
            )
        if self.max_id < 0:
            raise DispatcherConfigError("max_id must be >= 0")
        if not _is_number(self.timeout_ms):
            raise DispatcherConfigError(
                f"timeout_ms must be a number, got {type(self.timeout_ms).__name__}"
            )
        if self.timeout_ms <= 0:
            raise DispatcherConfigError("timeout_ms must be > 0")
        if self.sending_delay_ms is not None and not _is_number(self.sending_delay_ms):
            raise DispatcherConfigError(
                f"sending_delay_ms must be a number, got {type(self.sending_delay_ms).__name__}"
            )

    @property
    def effective_delay_ms(self) -> float:
        if self.sending_delay_ms is None or self.sending_delay_ms <= 0:
            return 0.0
        return float(self.sending_delay_ms)

    @classmethod
    def from_config(cls, config: Mapping[str, object]) -> DispatcherSettings:
        """Build settings from a loaded config (the ``[dispatcher]`` section)."""

        section = config.get("dispatcher", {})
        if not isinstance(section, Mapping):
            raise DispatcherConfigError("dispatcher config section must be an object")
        return cls(
            max_id=section.get("max_id", DEFAULT_MAX_ID),  # type: ignore[arg-type]
            timeout_ms=section.get("timeout_ms", DEFAULT_TIMEOUT_MS),  # type: ignore[arg-type]
            sending_delay_ms=section.get(  # type: ignore[arg-type]
                "sending_delay_ms", DEFAULT_SENDING_DELAY_MS
            ),
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "max_id": self.max_id,
            "timeout_ms": self.timeout_ms,
            "sending_delay_ms": self.sending_delay_ms,
        }


def _is_number(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


__all__ = ["DispatcherSettings"]
