"""
serial-dispatch — unit tests for the outcome bus

File: tests/unit/observability/test_events.py
Last updated: 2026-10-18

Purpose
- Validate per-channel fan-out, observer failure isolation, and outcome history.

What this test file should cover
- Channel filtering and wildcard subscribers.
- Sync and async observer support.
- Observer exception isolation with recorded failures.
- Ring-buffer history ordering and filtering.

Non-functional requirements
- No sleep-based synchronization.
"""

from __future__ import annotations

from datetime import UTC

import pytest

from serial_dispatch.domain.models import (
    ErrorNotice,
    OutcomeKind,
    SuccessNotice,
    TimeoutNotice,
)
from serial_dispatch.errors import RequestTimeoutError
from serial_dispatch.observability.events import OutcomeBus


def _success(request_id: int) -> SuccessNotice:
    return SuccessNotice(id=request_id, response={"data": "Success"})


def _timeout(request_id: int) -> TimeoutNotice:
    return TimeoutNotice(
        id=request_id, payload=None, error=RequestTimeoutError(request_id=request_id)
    )


def test_observers_only_receive_their_channel() -> None:
    bus = OutcomeBus()
    successes: list[int] = []
    timeouts: list[int] = []
    everything: list[int] = []

    bus.subscribe(OutcomeKind.SUCCESS, lambda notice: successes.append(notice.id))
    bus.subscribe("timeout", lambda notice: timeouts.append(notice.id))
    bus.subscribe(None, lambda notice: everything.append(notice.id))

    bus.publish(OutcomeKind.SUCCESS, _success(1))
    bus.publish("timeout", _timeout(2))
    bus.publish(OutcomeKind.ERROR, ErrorNotice(id=3, payload="p", error=OSError("x")))

    assert successes == [1]
    assert timeouts == [2]
    assert everything == [1, 2, 3]
    assert bus.subscriber_count() == 3
    assert bus.subscriber_count(OutcomeKind.SUCCESS) == 2


def test_publish_with_no_observers_is_silent() -> None:
    bus = OutcomeBus()

    assert bus.publish(OutcomeKind.ERROR, ErrorNotice(id=1, payload=None, error=OSError())) == ()
    assert len(bus.history()) == 1


def test_observer_exception_does_not_break_other_observers() -> None:
    bus = OutcomeBus()
    received: list[int] = []

    def broken(_notice: object) -> None:
        raise RuntimeError("boom")

    bus.subscribe(OutcomeKind.SUCCESS, broken)
    bus.subscribe(OutcomeKind.SUCCESS, lambda notice: received.append(notice.id))

    failures = bus.publish(OutcomeKind.SUCCESS, _success(5))

    assert received == [5]
    assert len(failures) == 1
    failure = failures[0]
    assert failure.kind == "success"
    assert failure.request_id == 5
    assert failure.error_type == "RuntimeError"
    assert failure.message == "boom"
    assert "broken" in failure.target
    assert bus.failures() == failures


async def test_async_observer_runs_on_loop_and_failures_surface_after_drain() -> None:
    bus = OutcomeBus()
    received: list[int] = []

    async def collect(notice: SuccessNotice) -> None:
        received.append(notice.id)

    async def explode(_notice: SuccessNotice) -> None:
        raise ValueError("async boom")

    bus.subscribe(OutcomeKind.SUCCESS, collect)
    bus.subscribe(OutcomeKind.SUCCESS, explode)

    assert bus.publish(OutcomeKind.SUCCESS, _success(1)) == ()
    failures = await bus.drain()

    assert received == [1]
    assert [(item.error_type, item.message) for item in failures] == [("ValueError", "async boom")]


def test_async_observer_without_running_loop_completes_inline() -> None:
    bus = OutcomeBus()
    received: list[int] = []

    async def collect(notice: SuccessNotice) -> None:
        received.append(notice.id)

    bus.subscribe(OutcomeKind.SUCCESS, collect)
    bus.publish(OutcomeKind.SUCCESS, _success(9))

    assert received == [9]


def test_unsubscribe_stops_delivery() -> None:
    bus = OutcomeBus()
    received: list[int] = []
    token = bus.subscribe(OutcomeKind.SUCCESS, lambda notice: received.append(notice.id))

    assert bus.unsubscribe(token) is True
    assert bus.unsubscribe(token) is False
    bus.publish(OutcomeKind.SUCCESS, _success(1))

    assert received == []


def test_history_is_bounded_ordered_and_filterable() -> None:
    bus = OutcomeBus(buffer_size=3)
    for request_id in range(1, 5):
        bus.publish(OutcomeKind.SUCCESS, _success(request_id))
    bus.publish(OutcomeKind.TIMEOUT, _timeout(5))

    history = bus.history()
    assert [event.request_id for event in history] == [3, 4, 5]
    assert [event.sequence for event in history] == [3, 4, 5]
    assert [event.request_id for event in bus.history(kind="success")] == [3, 4]
    assert [event.request_id for event in bus.history(limit=1)] == [5]
    assert bus.history(limit=0) == ()


def test_history_timestamps_are_utc_aware() -> None:
    bus = OutcomeBus()
    bus.publish(OutcomeKind.SUCCESS, _success(1))

    (event,) = bus.history()
    assert event.timestamp.tzinfo is UTC


@pytest.mark.parametrize("bad_kind", ["retry", "", 3])
def test_invalid_kind_is_rejected(bad_kind: object) -> None:
    bus = OutcomeBus()

    with pytest.raises(ValueError, match="kind"):
        bus.subscribe(bad_kind, lambda notice: None)  # type: ignore[arg-type]


@pytest.mark.parametrize("buffer_size", [0, -1, True, 1.5])
def test_invalid_buffer_size_is_rejected(buffer_size: object) -> None:
    with pytest.raises(ValueError, match="buffer_size"):
        OutcomeBus(buffer_size=buffer_size)  # type: ignore[arg-type]


def test_non_callable_observer_is_rejected() -> None:
    with pytest.raises(ValueError, match="callable"):
        OutcomeBus().subscribe(OutcomeKind.SUCCESS, "nope")  # type: ignore[arg-type]
