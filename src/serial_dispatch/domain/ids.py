"""Bounded, wrapping request identifier allocation."""

from __future__ import annotations


class IdAllocator:
    """Counter producing ids in ``[0, max_id]``.

    The counter is advanced before it is returned, so a fresh allocator yields
    ``1, 2, ..., max_id, 0, 1, ...``. With ``max_id == 0`` every call yields ``0``.
    Ids are not checked against requests that are still queued or in flight.
    """

    __slots__ = ("_counter", "_max_id")

    def __init__(self, max_id: int) -> None:
        if isinstance(max_id, bool) or not isinstance(max_id, int):
            raise ValueError(f"max_id must be an integer, got {type(max_id).__name__}")
        if max_id < 0:
            raise ValueError("max_id must be >= 0")
        self._max_id = max_id
        self._counter = 0

    @property
    def max_id(self) -> int:
        return self._max_id

    def next(self) -> int:
        if self._counter < self._max_id:
            self._counter += 1
        else:
            self._counter = 0
        return self._counter

    def peek(self) -> int:
        """Return the most recently issued id (``0`` before the first call)."""

        return self._counter


__all__ = ["IdAllocator"]
