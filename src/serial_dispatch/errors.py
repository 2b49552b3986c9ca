"""Exception hierarchy for serial-dispatch."""

from __future__ import annotations

from serial_dispatch.constants import TIMEOUT_MESSAGE


class SerialDispatchError(Exception):
    """Base class for all dispatcher-raised errors."""


class DispatcherConfigError(SerialDispatchError, ValueError):
    """Raised at construction time when the dispatcher is misconfigured."""


class TransportContractError(SerialDispatchError, RuntimeError):
    """Raised when a transport resolves with a malformed success outcome.

    This is a defect in the transport itself, so it is propagated rather than
    reported through the ``error`` channel.
    """

    def __init__(
        self, message: str, *, request_id: int | None = None, result: object = None
    ) -> None:
        super().__init__(message)
        self.request_id = request_id
        self.result = result


class RequestTimeoutError(SerialDispatchError, TimeoutError):
    """Carried by ``timeout`` notices for requests that never resolved in time."""

    def __init__(self, message: str = TIMEOUT_MESSAGE, *, request_id: int | None = None) -> None:
        super().__init__(message)
        self.request_id = request_id


class DispatcherClosedError(SerialDispatchError, RuntimeError):
    """Raised when enqueueing onto a dispatcher that has been closed."""


__all__ = [
    "DispatcherClosedError",
    "DispatcherConfigError",
    "RequestTimeoutError",
    "SerialDispatchError",
    "TransportContractError",
]
