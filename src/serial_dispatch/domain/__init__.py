"""
serial-dispatch — domain types

File: src/serial_dispatch/domain/__init__.py
Last updated: 2026-10-18

Purpose
- Envelope, active-entry, state snapshot, and outcome notice types shared by the
  dispatcher, the observer bus, and transports.
- Keep the domain layer free of IO and event-loop side effects.
"""

from serial_dispatch.domain.ids import IdAllocator
from serial_dispatch.domain.models import (
    ActiveEntry,
    DispatcherState,
    ErrorNotice,
    Notice,
    OutcomeEvent,
    OutcomeKind,
    RequestEnvelope,
    SuccessNotice,
    TimeoutNotice,
    TransportResponse,
)

__all__ = [
    "ActiveEntry",
    "DispatcherState",
    "ErrorNotice",
    "IdAllocator",
    "Notice",
    "OutcomeEvent",
    "OutcomeKind",
    "RequestEnvelope",
    "SuccessNotice",
    "TimeoutNotice",
    "TransportResponse",
]
