"""One-shot event-loop timers with idempotent cancellation."""

from __future__ import annotations

import asyncio
from collections.abc import Callable


class OneShotTimer:
    """Wrap ``loop.call_later`` so the callback runs at most once.

    ``cancel`` may be called any number of times, before or after the timer
    fires. Once cancelled the callback is guaranteed not to run, even if the
    underlying handle was already queued for the current loop iteration.
    """

    __slots__ = ("_callback", "_cancelled", "_fired", "_handle")

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        delay_ms: float,
        callback: Callable[[], None],
    ) -> None:
        if delay_ms < 0:
            raise ValueError("delay_ms must be >= 0")
        self._callback = callback
        self._cancelled = False
        self._fired = False
        self._handle: asyncio.TimerHandle = loop.call_later(delay_ms / 1000.0, self._fire)

    @property
    def active(self) -> bool:
        return not self._cancelled and not self._fired

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def when(self) -> float:
        """Loop time at which the timer is scheduled to fire."""

        return self._handle.when()

    def cancel(self) -> None:
        if self._cancelled or self._fired:
            return
        self._cancelled = True
        self._handle.cancel()

    def _fire(self) -> None:
        if self._cancelled or self._fired:
            return
        self._fired = True
        self._callback()


__all__ = ["OneShotTimer"]
