"""
Single-flight dispatcher: FIFO admission, timeout racing, and paced resume.

Exactly one request is in flight at a time. Each admitted request races its
transport call against a timeout timer; whichever resolves first wins and the
other side becomes a no-op. After any resolution the next queued request is
admitted, either immediately or after the configured inter-send pause.

All state lives on one asyncio event loop and every transition runs as a
discrete loop callback, so no locking is needed. Calls from other threads are
rejected rather than serialized.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import threading
from collections import deque
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeAlias

import structlog

from serial_dispatch.control_plane.settings import DispatcherSettings
from serial_dispatch.control_plane.timers import OneShotTimer
from serial_dispatch.domain.ids import IdAllocator
from serial_dispatch.domain.models import (
    MISSING,
    ActiveEntry,
    DispatcherState,
    ErrorNotice,
    OutcomeKind,
    RequestEnvelope,
    SuccessNotice,
    TimeoutNotice,
    extract_response_fields,
)
from serial_dispatch.errors import (
    DispatcherClosedError,
    DispatcherConfigError,
    RequestTimeoutError,
    TransportContractError,
)
from serial_dispatch.observability.events import Observer, OutcomeBus
from serial_dispatch.observability.logging import correlation_scope

if TYPE_CHECKING:
    from types import TracebackType

Transport: TypeAlias = Callable[[RequestEnvelope], object]


class Dispatcher:
    """Serialize opaque payloads onto a transport that allows one request in flight.

    Parameters
    ----------
    transport:
        Callable taking a :class:`RequestEnvelope`. It may be a coroutine
        function or return any awaitable; a plain return value counts as an
        immediate result and a synchronous raise as a rejection. A successful
        result must carry ``id`` and ``response`` (mapping keys or attributes).
    max_id:
        Inclusive upper bound for request ids before they wrap to ``0``.
    timeout_ms:
        Per-request deadline measured from admission.
    sending_delay_ms:
        Pause between one resolution and the next admission. ``None`` or ``<= 0``
        admits the next request immediately.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        max_id: int,
        timeout_ms: float,
        sending_delay_ms: float | None = None,
        bus: OutcomeBus | None = None,
        logger: Any | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        if not callable(transport):
            raise DispatcherConfigError(
                f"transport must be callable, got {type(transport).__name__}"
            )
        self._settings = DispatcherSettings(
            max_id=max_id, timeout_ms=timeout_ms, sending_delay_ms=sending_delay_ms
        )
        self._transport = transport
        self._allocator = IdAllocator(max_id)
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._bus = bus if bus is not None else OutcomeBus(logger=self._logger)
        self._loop = loop

        self._queue: deque[RequestEnvelope] = deque()
        self._active: dict[int, ActiveEntry] = {}
        self._is_processing = False
        self._is_delaying = False
        self._delay_timer: OneShotTimer | None = None
        self._next_token = 1

        self._delivery_tasks: dict[int, asyncio.Task[None]] = {}
        self._idle_waiters: list[asyncio.Future[None]] = []
        self._faults: list[TransportContractError] = []
        self._unraised_faults: deque[TransportContractError] = deque()
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        transport: Transport,
        settings: DispatcherSettings,
        **kwargs: Any,
    ) -> Dispatcher:
        return cls(
            transport,
            max_id=settings.max_id,
            timeout_ms=settings.timeout_ms,
            sending_delay_ms=settings.sending_delay_ms,
            **kwargs,
        )

    async def __aenter__(self) -> Dispatcher:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    @property
    def settings(self) -> DispatcherSettings:
        return self._settings

    @property
    def bus(self) -> OutcomeBus:
        return self._bus

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def faults(self) -> tuple[TransportContractError, ...]:
        """Transport contract violations observed so far."""

        return tuple(self._faults)

    def on(self, kind: OutcomeKind | str, observer: Observer) -> int:
        """Subscribe ``observer`` to the ``success``, ``timeout``, or ``error`` channel."""

        return self._bus.subscribe(kind, observer)

    def off(self, token: int) -> bool:
        return self._bus.unsubscribe(token)

    def enqueue(self, payload: object) -> int:
        """Queue ``payload`` for sending and return its id without waiting."""

        if self._closed:
            raise DispatcherClosedError("dispatcher is closed")
        self._bind_loop()

        envelope = RequestEnvelope(id=self._allocator.next(), payload=payload)
        self._queue.append(envelope)
        self._logger.debug(
            "request_enqueued", request_id=envelope.id, pending=len(self._queue)
        )
        self._try_advance()
        return envelope.id

    def pending_count(self) -> int:
        return len(self._queue)

    def active_count(self) -> int:
        return len(self._active)

    def state(self) -> DispatcherState:
        return DispatcherState(
            is_processing=self._is_processing,
            is_delaying=self._is_delaying,
            counter=self._allocator.peek(),
        )

    async def join(self) -> None:
        """Wait until nothing is queued, in flight, or pausing.

        Raises the oldest :class:`TransportContractError` not yet raised by a
        previous call, if any. Each fault is raised once.
        """

        loop = asyncio.get_running_loop()
        while True:
            self._raise_fault()
            if self._is_drained():
                await self._bus.drain()
                return
            waiter: asyncio.Future[None] = loop.create_future()
            self._idle_waiters.append(waiter)
            await waiter

    async def aclose(self) -> tuple[RequestEnvelope, ...]:
        """Stop the dispatcher, cancel timers and transport calls, and drop queued requests.

        Returns the envelopes that were still waiting for admission. In-flight
        requests are abandoned without a notification.
        """

        if self._closed:
            return ()
        self._closed = True

        dropped = tuple(self._queue)
        self._queue.clear()
        for entry in self._active.values():
            if entry.timeout_handle is not None:
                entry.timeout_handle.cancel()
        abandoned = tuple(self._active)
        self._active.clear()
        if self._delay_timer is not None:
            self._delay_timer.cancel()
            self._delay_timer = None
        self._is_processing = False
        self._is_delaying = False

        tasks = tuple(self._delivery_tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self._bus.drain()

        self._logger.info(
            "dispatcher_closed",
            dropped=[envelope.id for envelope in dropped],
            abandoned=list(abandoned),
        )
        self._wake_waiters()
        return dropped

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def _try_advance(self) -> None:
        if self._is_processing or self._is_delaying:
            return
        if not self._queue:
            self._wake_waiters()
            return

        loop = self._require_loop()
        self._is_processing = True
        envelope = self._queue.popleft()
        token = self._next_token
        self._next_token += 1

        timer = OneShotTimer(
            loop,
            self._settings.timeout_ms,
            lambda: self._handle_timeout(envelope.id, token),
        )
        self._active[envelope.id] = ActiveEntry(
            id=envelope.id, payload=envelope.payload, timeout_handle=timer, token=token
        )

        with correlation_scope(request_id=envelope.id):
            self._logger.info(
                "request_admitted",
                request_id=envelope.id,
                pending=len(self._queue),
                timeout_ms=self._settings.timeout_ms,
            )

        task = loop.create_task(
            self._deliver(envelope, token), name=f"serial-dispatch-send-{envelope.id}"
        )
        self._delivery_tasks[token] = task
        task.add_done_callback(functools.partial(self._on_delivery_done, token))

    async def _deliver(self, envelope: RequestEnvelope, token: int) -> None:
        try:
            result = self._transport(envelope)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:  # noqa: BLE001 - transport failures become error notices
            self._handle_error(envelope.id, token, exc)
            return
        self._handle_response(result, token)

    def _on_delivery_done(self, token: int, task: asyncio.Task[None]) -> None:
        self._delivery_tasks.pop(token, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return

        if isinstance(exc, TransportContractError):
            self._faults.append(exc)
            self._unraised_faults.append(exc)
            self._logger.error(
                "transport_contract_violation",
                request_id=exc.request_id,
                error=str(exc),
                result=repr(exc.result),
            )
        loop = self._loop if self._loop is not None else task.get_loop()
        loop.call_exception_handler(
            {
                "message": f"serial-dispatch delivery failed: {exc}",
                "exception": exc,
                "task": task,
            }
        )
        self._wake_waiters()

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _handle_response(self, result: object, token: int) -> None:
        request_id, response = extract_response_fields(result)
        entry = None if request_id is MISSING else self._lookup(request_id)
        if entry is None or entry.token != token:
            self._logger.debug("late_response_discarded", request_id=repr(request_id))
            return
        if response is MISSING:
            raise TransportContractError(
                "The response structure is invalid: missing 'response'",
                request_id=entry.id,
                result=result,
            )

        self._retire(entry)
        with correlation_scope(request_id=entry.id):
            self._logger.info("request_succeeded", request_id=entry.id)
            self._bus.publish(OutcomeKind.SUCCESS, SuccessNotice(id=entry.id, response=response))
        self._complete()

    def _handle_timeout(self, request_id: int, token: int) -> None:
        entry = self._active.get(request_id)
        if entry is None or entry.token != token:
            return

        del self._active[request_id]
        task = self._delivery_tasks.get(token)
        if task is not None:
            task.cancel()
        with correlation_scope(request_id=request_id):
            self._logger.warning(
                "request_timed_out", request_id=request_id, timeout_ms=self._settings.timeout_ms
            )
            self._bus.publish(
                OutcomeKind.TIMEOUT,
                TimeoutNotice(
                    id=request_id,
                    payload=entry.payload,
                    error=RequestTimeoutError(request_id=request_id),
                ),
            )
        self._complete()

    def _handle_error(self, request_id: int, token: int, error: BaseException) -> None:
        entry = self._active.get(request_id)
        if entry is None or entry.token != token:
            self._logger.debug("late_error_discarded", request_id=request_id, error=str(error))
            return

        self._retire(entry)
        with correlation_scope(request_id=request_id):
            self._logger.warning(
                "request_failed",
                request_id=request_id,
                error_type=error.__class__.__name__,
                error=str(error),
            )
            self._bus.publish(
                OutcomeKind.ERROR,
                ErrorNotice(id=request_id, payload=entry.payload, error=error),
            )
        self._complete()

    def _retire(self, entry: ActiveEntry) -> None:
        if entry.timeout_handle is not None:
            entry.timeout_handle.cancel()
        del self._active[entry.id]

    def _complete(self) -> None:
        self._is_processing = False
        self._resume()

    def _resume(self) -> None:
        delay_ms = self._settings.effective_delay_ms
        if delay_ms > 0 and self._queue:
            self._is_delaying = True
            self._delay_timer = OneShotTimer(
                self._require_loop(), delay_ms, self._on_delay_elapsed
            )
            self._logger.debug("sending_delay_started", delay_ms=delay_ms)
            return
        self._try_advance()

    def _on_delay_elapsed(self) -> None:
        self._is_delaying = False
        self._delay_timer = None
        self._try_advance()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lookup(self, request_id: object) -> ActiveEntry | None:
        if isinstance(request_id, bool) or not isinstance(request_id, int):
            return None
        return self._active.get(request_id)

    def _is_drained(self) -> bool:
        return (
            not self._queue
            and not self._active
            and not self._is_processing
            and not self._is_delaying
        )

    def _raise_fault(self) -> None:
        if self._unraised_faults:
            raise self._unraised_faults.popleft()

    def _wake_waiters(self) -> None:
        waiters, self._idle_waiters = self._idle_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)

    def _bind_loop(self) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is None:
            if self._loop is None:
                raise RuntimeError("Dispatcher.enqueue requires a running event loop")
            if self._loop.is_running():
                raise RuntimeError(
                    "Dispatcher.enqueue must be called from the event loop thread "
                    f"(called from {threading.current_thread().name})"
                )
            return

        if self._loop is None:
            self._loop = running
        elif self._loop is not running:
            raise RuntimeError("Dispatcher is bound to a different event loop")

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            raise RuntimeError("Dispatcher has no event loop")
        return self._loop


__all__ = ["Dispatcher", "Transport"]
