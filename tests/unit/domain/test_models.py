"""Unit tests for dispatcher data types and response field extraction."""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import UTC, datetime
from types import SimpleNamespace

import pytest

from serial_dispatch.domain.models import (
    MISSING,
    DispatcherState,
    ErrorNotice,
    OutcomeEvent,
    OutcomeKind,
    RequestEnvelope,
    SuccessNotice,
    TransportResponse,
    extract_response_fields,
)


def test_outcome_kinds_are_the_three_observer_channels() -> None:
    assert [kind.value for kind in OutcomeKind] == ["success", "timeout", "error"]
    assert OutcomeKind("timeout") is OutcomeKind.TIMEOUT


def test_request_envelope_is_frozen_and_serializable() -> None:
    envelope = RequestEnvelope(id=7, payload={"cmd": "1"})

    assert envelope.to_dict() == {"id": 7, "payload": {"cmd": "1"}}
    with pytest.raises(FrozenInstanceError):
        envelope.id = 8  # type: ignore[misc]


def test_extract_reads_mapping_keys() -> None:
    assert extract_response_fields({"id": 3, "response": {"data": "ok"}}) == (3, {"data": "ok"})


def test_extract_reads_attributes() -> None:
    assert extract_response_fields(TransportResponse(id=4, response="pong")) == (4, "pong")
    assert extract_response_fields(SimpleNamespace(id=5, response=None)) == (5, None)


def test_extract_marks_absent_fields_missing() -> None:
    assert extract_response_fields({"response": 1}) == (MISSING, 1)
    assert extract_response_fields({"id": 1}) == (1, MISSING)
    assert extract_response_fields(None) == (MISSING, MISSING)
    assert extract_response_fields(42) == (MISSING, MISSING)
    assert repr(MISSING) == "MISSING"


def test_dispatcher_state_idle_only_when_both_gates_clear() -> None:
    assert DispatcherState(is_processing=False, is_delaying=False, counter=0).is_idle
    assert not DispatcherState(is_processing=True, is_delaying=False, counter=1).is_idle
    assert not DispatcherState(is_processing=False, is_delaying=True, counter=1).is_idle


def test_outcome_event_exposes_notice_request_id() -> None:
    event = OutcomeEvent(
        sequence=1,
        kind=OutcomeKind.ERROR,
        notice=ErrorNotice(id=9, payload="p", error=RuntimeError("x")),
        timestamp=datetime.now(tz=UTC),
    )
    assert event.request_id == 9

    success = OutcomeEvent(
        sequence=2,
        kind=OutcomeKind.SUCCESS,
        notice=SuccessNotice(id=10, response=None),
        timestamp=datetime.now(tz=UTC),
    )
    assert success.request_id == 10
