"""Request, in-flight, and outcome types for the single-flight dispatcher."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Final, Protocol, TypeAlias

from serial_dispatch.constants import OUTCOME_ERROR, OUTCOME_SUCCESS, OUTCOME_TIMEOUT


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class OutcomeKind(StrEnum):
    """Observer channel for a terminal request resolution."""

    SUCCESS = OUTCOME_SUCCESS
    TIMEOUT = OUTCOME_TIMEOUT
    ERROR = OUTCOME_ERROR


@dataclass(frozen=True, slots=True)
class RequestEnvelope:
    """The ``{id, payload}`` pairing handed to the transport."""

    id: int
    payload: object

    def to_dict(self) -> dict[str, object]:
        return {"id": self.id, "payload": self.payload}


@dataclass(frozen=True, slots=True)
class TransportResponse:
    """Well-formed success outcome returned by a transport."""

    id: int
    response: object


@dataclass(slots=True)
class ActiveEntry:
    """Bookkeeping for the request currently in flight."""

    id: int
    payload: object
    timeout_handle: Cancellable | None
    token: int


@dataclass(frozen=True, slots=True)
class DispatcherState:
    """Read-only snapshot of the dispatcher gates and id counter."""

    is_processing: bool
    is_delaying: bool
    counter: int

    @property
    def is_idle(self) -> bool:
        return not self.is_processing and not self.is_delaying


@dataclass(frozen=True, slots=True)
class SuccessNotice:
    id: int
    response: object


@dataclass(frozen=True, slots=True)
class TimeoutNotice:
    id: int
    payload: object
    error: BaseException


@dataclass(frozen=True, slots=True)
class ErrorNotice:
    id: int
    payload: object
    error: BaseException


Notice: TypeAlias = SuccessNotice | TimeoutNotice | ErrorNotice


@dataclass(frozen=True, slots=True)
class OutcomeEvent:
    """A notice as recorded in the observer bus history."""

    sequence: int
    kind: OutcomeKind
    notice: Notice
    timestamp: datetime

    @property
    def request_id(self) -> int:
        return self.notice.id


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Final[_Missing] = _Missing()


def extract_response_fields(result: object) -> tuple[object, object]:
    """Return ``(id, response)`` from a transport result.

    Mappings are read by key, anything else by attribute. A field the result
    does not carry comes back as :data:`MISSING`; ``None`` is a legitimate value.
    """

    if isinstance(result, Mapping):
        return result.get("id", MISSING), result.get("response", MISSING)
    if result is None:
        return MISSING, MISSING
    return getattr(result, "id", MISSING), getattr(result, "response", MISSING)


__all__ = [
    "MISSING",
    "ActiveEntry",
    "Cancellable",
    "DispatcherState",
    "ErrorNotice",
    "Notice",
    "OutcomeEvent",
    "OutcomeKind",
    "RequestEnvelope",
    "SuccessNotice",
    "TimeoutNotice",
    "TransportResponse",
    "extract_response_fields",
]
