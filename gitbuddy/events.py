"""Events and the queue the application loop drains."""

from __future__ import annotations

import queue
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gitbuddy.runner import OperationResult


@dataclass(frozen=True)
class KeyPressed:
    key: str


@dataclass(frozen=True)
class OperationCompleted:
    result: OperationResult


@dataclass(frozen=True)
class RefreshTick:
    """Timer asking for a passive refresh of the repository state."""


Event = KeyPressed | OperationCompleted | RefreshTick


class EventLoop:
    """Single consumer of all events.

    ``post`` may be called from any thread. Everything else runs on the thread
    that owns UI state, which is the only thread allowed to call ``handler``.
    """

    def __init__(self, handler: Callable[[Event], None]) -> None:
        self.handler = handler
        self._queue: queue.Queue[Event] = queue.Queue()

    def post(self, event: Event) -> None:
        self._queue.put(event)

    def pending(self) -> int:
        return self._queue.qsize()

    def run_pending(self) -> int:
        """Apply every queued event without blocking. Returns how many ran."""
        count = 0
        while True:
            try:
                event = self._queue.get_nowait()
            except queue.Empty:
                return count
            self.handler(event)
            count += 1

    def run_once(self, timeout: float | None = None) -> bool:
        """Block for one event and apply it. Returns False on timeout."""
        try:
            event = self._queue.get(timeout=timeout)
        except queue.Empty:
            return False
        self.handler(event)
        return True
