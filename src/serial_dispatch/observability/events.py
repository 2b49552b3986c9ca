"""Outcome bus: per-channel observer fan-out with failure isolation and history."""

from __future__ import annotations

import asyncio
import inspect
import threading
from collections import deque
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Final, cast

import structlog

from serial_dispatch.domain.models import Notice, OutcomeEvent, OutcomeKind

Observer = Callable[[Notice], object]

_DEFAULT_FAILURE_BUFFER: Final[int] = 1024


@dataclass(frozen=True, slots=True)
class ObserverFailure:
    """Observer exception captured without interrupting the publisher."""

    kind: str
    request_id: int
    target: str
    error_type: str
    message: str


@dataclass(frozen=True, slots=True)
class _Subscription:
    token: int
    kind: OutcomeKind | None
    callback: Observer


class OutcomeBus:
    """Broadcast ``success``/``timeout``/``error`` notices to subscribed observers.

    Observers may be plain callables or coroutine functions. An observer that
    raises (or whose coroutine fails) is logged and recorded as an
    :class:`ObserverFailure`; the remaining observers still run and the
    publisher never sees the exception.
    """

    def __init__(self, *, buffer_size: int = 512, logger: Any | None = None) -> None:
        if isinstance(buffer_size, bool) or not isinstance(buffer_size, int):
            raise ValueError(f"buffer_size must be an integer, got {type(buffer_size).__name__}")
        if buffer_size <= 0:
            raise ValueError("buffer_size must be > 0")

        self._history = deque[OutcomeEvent](maxlen=buffer_size)
        self._subscriptions: dict[int, _Subscription] = {}
        self._pending_tasks: set[asyncio.Task[None]] = set()
        self._failures = deque[ObserverFailure](maxlen=_DEFAULT_FAILURE_BUFFER)
        self._next_token = 1
        self._next_sequence = 1
        self._lock = threading.RLock()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def subscribe(self, kind: OutcomeKind | str | None, callback: Observer) -> int:
        """Register ``callback`` for one channel, or for all channels when ``kind`` is ``None``."""

        if not callable(callback):
            raise ValueError("callback must be callable")
        normalized = _normalize_kind_filter(kind)

        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscriptions[token] = _Subscription(
                token=token, kind=normalized, callback=callback
            )
        return token

    def unsubscribe(self, token: int) -> bool:
        """Remove a subscription. Returns ``True`` when the token existed."""

        with self._lock:
            return self._subscriptions.pop(token, None) is not None

    def subscriber_count(self, kind: OutcomeKind | str | None = None) -> int:
        normalized = _normalize_kind_filter(kind)
        with self._lock:
            subscriptions = tuple(self._subscriptions.values())
        if normalized is None:
            return len(subscriptions)
        return sum(1 for item in subscriptions if item.kind in (None, normalized))

    def publish(self, kind: OutcomeKind | str, notice: Notice) -> tuple[ObserverFailure, ...]:
        """Deliver ``notice`` on channel ``kind`` and return any synchronous observer failures."""

        resolved_kind = _as_kind(kind)
        with self._lock:
            event = OutcomeEvent(
                sequence=self._next_sequence,
                kind=resolved_kind,
                notice=notice,
                timestamp=datetime.now(tz=UTC),
            )
            self._next_sequence += 1
            self._history.append(event)
            subscriptions = tuple(self._subscriptions.values())

        running_loop = _current_running_loop()
        failures: list[ObserverFailure] = []
        for subscription in subscriptions:
            if subscription.kind is not None and subscription.kind is not resolved_kind:
                continue
            failure = self._invoke(subscription.callback, event, running_loop)
            if failure is not None:
                failures.append(failure)

        return tuple(failures)

    async def drain(self) -> tuple[ObserverFailure, ...]:
        """Await async observer tasks started by :meth:`publish`."""

        with self._lock:
            pending = tuple(self._pending_tasks)
            self._pending_tasks.clear()

        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        with self._lock:
            return tuple(self._failures)

    def history(
        self,
        *,
        kind: OutcomeKind | str | None = None,
        limit: int | None = None,
    ) -> tuple[OutcomeEvent, ...]:
        """Return recorded outcome events in publish order."""

        normalized = _normalize_kind_filter(kind)
        with self._lock:
            events = tuple(self._history)

        filtered = [event for event in events if normalized is None or event.kind is normalized]
        return tuple(_tail(filtered, limit))

    def failures(self, *, limit: int | None = None) -> tuple[ObserverFailure, ...]:
        """Return recorded observer failures, oldest first."""

        with self._lock:
            recorded = list(self._failures)
        return tuple(_tail(recorded, limit))

    def _invoke(
        self,
        callback: Observer,
        event: OutcomeEvent,
        running_loop: asyncio.AbstractEventLoop | None,
    ) -> ObserverFailure | None:
        target = _callback_name(callback)
        try:
            result = callback(event.notice)
            if inspect.isawaitable(result):
                coroutine = _as_coroutine(result)
                if running_loop is None:
                    asyncio.run(coroutine)
                    return None
                task = running_loop.create_task(coroutine)
                with self._lock:
                    self._pending_tasks.add(task)
                task.add_done_callback(
                    lambda done: self._on_task_done(done, event=event, target=target)
                )
            return None
        except Exception as exc:  # noqa: BLE001
            return self._record_failure(event=event, target=target, exc=exc)

    def _on_task_done(self, task: asyncio.Task[None], *, event: OutcomeEvent, target: str) -> None:
        with self._lock:
            self._pending_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if isinstance(exc, Exception):
            self._record_failure(event=event, target=target, exc=exc)

    def _record_failure(
        self, *, event: OutcomeEvent, target: str, exc: Exception
    ) -> ObserverFailure:
        failure = ObserverFailure(
            kind=event.kind.value,
            request_id=event.request_id,
            target=target,
            error_type=exc.__class__.__name__,
            message=str(exc),
        )
        with self._lock:
            self._failures.append(failure)
        self._logger.warning(
            "observer_failed",
            kind=failure.kind,
            request_id=failure.request_id,
            observer=target,
            error_type=failure.error_type,
            error=failure.message,
        )
        return failure


def _as_kind(value: OutcomeKind | str) -> OutcomeKind:
    if isinstance(value, OutcomeKind):
        return value
    if not isinstance(value, str):
        raise ValueError(f"kind must be string/OutcomeKind, got {type(value).__name__}")
    try:
        return OutcomeKind(value.strip())
    except ValueError as exc:
        allowed = ", ".join(item.value for item in OutcomeKind)
        raise ValueError(f"invalid outcome kind {value!r}; allowed: {allowed}") from exc


def _normalize_kind_filter(value: OutcomeKind | str | None) -> OutcomeKind | None:
    if value is None:
        return None
    return _as_kind(value)


def _tail(items: list[Any], limit: int | None) -> list[Any]:
    if limit is None:
        return items
    if isinstance(limit, bool) or not isinstance(limit, int):
        raise ValueError(f"limit must be an integer, got {type(limit).__name__}")
    if limit <= 0:
        return []
    return items[-limit:]


def _callback_name(callback: object) -> str:
    name = getattr(callback, "__qualname__", None) or getattr(callback, "__name__", None)
    if isinstance(name, str) and name:
        return name
    return callback.__class__.__name__


def _current_running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def _as_coroutine(value: object) -> Coroutine[Any, Any, None]:
    if inspect.iscoroutine(value):
        return cast("Coroutine[Any, Any, None]", value)
    return _await_awaitable(cast("Awaitable[None]", value))


async def _await_awaitable(awaitable: Awaitable[None]) -> None:
    await awaitable


__all__ = [
    "Observer",
    "ObserverFailure",
    "OutcomeBus",
]
