"""Clock port — wall time plus cancellable one-shot timers.

A callback whose handle has been canceled must never run afterwards.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Protocol


class TimerHandle(Protocol):
    """Cancellation token returned by ClockPort.call_later."""

    def cancel(self) -> None: ...


class ClockPort(Protocol):
    """Abstract clock used by core modules."""

    def now(self) -> datetime: ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...
