"""asyncio clock adapter — implements ClockPort.

Timers are plain `loop.call_later` handles; asyncio guarantees a cancelled
handle never runs.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo


class AsyncioClock:
    """asyncio implementation of ClockPort."""

    def __init__(
        self,
        tz: ZoneInfo | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._tz = tz
        self._loop = loop

    def now(self) -> datetime:
        return datetime.now(self._tz)

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)
