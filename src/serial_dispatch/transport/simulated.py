"""Randomized in-process transport used by the ``simulate`` command and tests."""

from __future__ import annotations

import asyncio
import random as random_module
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, TypeAlias

import structlog

from serial_dispatch.domain.models import RequestEnvelope

SleepFn: TypeAlias = Callable[[float], Awaitable[None]]


class SimulatedOutcome(StrEnum):
    RESPOND = "respond"
    REJECT = "reject"
    LOSE = "lose"


class SimulatedTransportError(RuntimeError):
    """Rejection raised by :class:`SimulatedTransport`."""


@dataclass(frozen=True, slots=True)
class SimulationProfile:
    """Latency ceiling and outcome mix; whatever is left after respond+reject is lost."""

    max_latency_ms: float = 6000.0
    respond_ratio: float = 0.6
    reject_ratio: float = 0.2

    def __post_init__(self) -> None:
        if self.max_latency_ms < 0:
            raise ValueError("max_latency_ms must be >= 0")
        if not 0.0 <= self.respond_ratio <= 1.0:
            raise ValueError("respond_ratio must be within [0, 1]")
        if not 0.0 <= self.reject_ratio <= 1.0:
            raise ValueError("reject_ratio must be within [0, 1]")
        if self.respond_ratio + self.reject_ratio > 1.0:
            raise ValueError("respond_ratio + reject_ratio must be <= 1")

    @property
    def lose_ratio(self) -> float:
        return max(0.0, 1.0 - self.respond_ratio - self.reject_ratio)


class SimulatedTransport:
    """Answer after a random delay, reject, or never answer at all.

    Successful answers are shaped ``{"id": <envelope id>, "response": {"data": "Success"}}``.
    Lost requests wait until cancelled, so the dispatcher's timeout resolves them.
    """

    def __init__(
        self,
        profile: SimulationProfile | None = None,
        *,
        seed: int | None = None,
        rng: random_module.Random | None = None,
        sleep: SleepFn = asyncio.sleep,
        logger: Any | None = None,
    ) -> None:
        if rng is not None and seed is not None:
            raise ValueError("provide only one of seed or rng")
        self._profile = profile if profile is not None else SimulationProfile()
        self._rng = rng if rng is not None else random_module.Random(seed)
        self._sleep = sleep
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self.calls: list[RequestEnvelope] = []

    @property
    def profile(self) -> SimulationProfile:
        return self._profile

    def choose(self) -> tuple[float, SimulatedOutcome]:
        """Draw the latency (ms) and outcome for the next call."""

        latency_ms = self._rng.random() * self._profile.max_latency_ms
        roll = self._rng.random()
        if roll < self._profile.respond_ratio:
            return latency_ms, SimulatedOutcome.RESPOND
        if roll < self._profile.respond_ratio + self._profile.reject_ratio:
            return latency_ms, SimulatedOutcome.REJECT
        return latency_ms, SimulatedOutcome.LOSE

    async def __call__(self, envelope: RequestEnvelope) -> dict[str, object]:
        self.calls.append(envelope)
        latency_ms, outcome = self.choose()
        self._logger.debug(
            "simulated_send",
            request_id=envelope.id,
            latency_ms=round(latency_ms, 1),
            outcome=outcome.value,
        )
        await self._sleep(latency_ms / 1000.0)

        if outcome is SimulatedOutcome.RESPOND:
            return {"id": envelope.id, "response": {"data": "Success"}}
        if outcome is SimulatedOutcome.REJECT:
            raise SimulatedTransportError(f"Failed to send request {envelope.id}")

        await asyncio.get_running_loop().create_future()
        raise AssertionError("unreachable")  # pragma: no cover


__all__ = [
    "SimulatedOutcome",
    "SimulatedTransport",
    "SimulatedTransportError",
    "SimulationProfile",
    "SleepFn",
]
