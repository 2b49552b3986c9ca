"""
serial-dispatch — single-flight request dispatcher

File: src/serial_dispatch/__init__.py
Last updated: 2026-10-18

Purpose
- Package root. Serializes opaque request payloads onto a transport that can
  only have one request in flight, with per-request timeouts and an optional
  pause between sends.

Import boundary rules
- No side effects at import time (no config loading, no logging init).
"""

from serial_dispatch.control_plane.dispatcher import Dispatcher
from serial_dispatch.domain.models import (
    ErrorNotice,
    OutcomeKind,
    RequestEnvelope,
    SuccessNotice,
    TimeoutNotice,
    TransportResponse,
)
from serial_dispatch.errors import (
    DispatcherClosedError,
    DispatcherConfigError,
    RequestTimeoutError,
    SerialDispatchError,
    TransportContractError,
)

__version__ = "0.1.0"

__all__ = [
    "Dispatcher",
    "DispatcherClosedError",
    "DispatcherConfigError",
    "ErrorNotice",
    "OutcomeKind",
    "RequestEnvelope",
    "RequestTimeoutError",
    "SerialDispatchError",
    "SuccessNotice",
    "TimeoutNotice",
    "TransportContractError",
    "TransportResponse",
    "__version__",
]
