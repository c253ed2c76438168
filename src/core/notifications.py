"""
JIN Routines — Notification Timer Manager.

Owns the on-screen lifetime of routine popups. Per routine id:

    IDLE -> PENDING -> (EXPIRED | DISMISSED | ACTIVATED) -> IDLE

- PENDING: popup visible, dwell timer running (5 s by default).
- EXPIRED: dwell elapsed; held for the exit grace period, then IDLE.
- DISMISSED: user closed the popup; IDLE immediately.
- ACTIVATED: user clicked through; navigation intent emitted, held for the
  exit grace period, then IDLE.

At most one timer is live per routine id. Every transition cancels the
outstanding timer before doing anything else, and a timer callback that is
no longer the entry's current timer is ignored, so on_dismiss runs at most
once per popup whichever way it ends.

Single-threaded: all entry points and timer callbacks must run on the
clock's event loop.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable

from src.data.models import NotificationEvent

if TYPE_CHECKING:
    from src.ports.clock_port import ClockPort, TimerHandle
    from src.ports.notification_port import NavigationPort

logger = logging.getLogger(__name__)

DEFAULT_DWELL_SECONDS = 5.0
DEFAULT_EXIT_GRACE_SECONDS = 0.3


class NotificationState(Enum):
    IDLE = "idle"
    PENDING = "pending"
    EXPIRED = "expired"
    DISMISSED = "dismissed"
    ACTIVATED = "activated"


DismissCallback = Callable[[NotificationEvent, NotificationState], None]


@dataclass
class _Entry:
    event: NotificationEvent
    state: NotificationState
    timer: TimerHandle | None = None


class NotificationTimerManager:
    """Schedules, expires and tears down routine popups."""

    def __init__(
        self,
        clock: ClockPort,
        on_dismiss: DismissCallback,
        navigator: NavigationPort | None = None,
        dwell_seconds: float = DEFAULT_DWELL_SECONDS,
        exit_grace_seconds: float = DEFAULT_EXIT_GRACE_SECONDS,
    ) -> None:
        if dwell_seconds <= 0:
            raise ValueError("dwell_seconds must be > 0")
        if exit_grace_seconds < 0:
            raise ValueError("exit_grace_seconds must be >= 0")
        self._clock = clock
        self._on_dismiss = on_dismiss
        self._navigator = navigator
        self._dwell = dwell_seconds
        self._grace = exit_grace_seconds
        self._entries: dict[str, _Entry] = {}

    # -- read-only views ----------------------------------------------------

    def state(self, routine_id: str) -> NotificationState:
        entry = self._entries.get(routine_id)
        return entry.state if entry else NotificationState.IDLE

    def active_event(self, routine_id: str) -> NotificationEvent | None:
        """The event currently on screen for *routine_id*, if any."""
        entry = self._entries.get(routine_id)
        if entry is None or entry.state is not NotificationState.PENDING:
            return None
        return entry.event

    def active_ids(self) -> list[str]:
        return [
            rid for rid, e in self._entries.items()
            if e.state is NotificationState.PENDING
        ]

    # -- entry points -------------------------------------------------------

    def schedule(self, routine_id: str, title: str, message: str) -> None:
        """Show a popup for *routine_id*, replacing any popup already shown.

        The replaced popup does not get a dismiss callback.
        """
        if not routine_id:
            raise ValueError("routine_id is required")

        old = self._entries.pop(routine_id, None)
        if old is not None:
            self._cancel_timer(old)
            logger.debug("Popup for %s replaced (was %s)", routine_id, old.state.value)

        event = NotificationEvent(
            routine_id=routine_id,
            title=title,
            message=message,
            created_at=self._clock.now(),
        )
        entry = _Entry(event=event, state=NotificationState.PENDING)
        self._entries[routine_id] = entry
        entry.timer = self._start_timer(entry, self._dwell, self._expire)
        logger.info("Popup shown for routine %s '%s'", routine_id, title)

    def dismiss(self, routine_id: str) -> None:
        """User closed the popup. No-op unless it is PENDING."""
        entry = self._pending(routine_id, "dismiss")
        if entry is None:
            return

        self._cancel_timer(entry)
        entry.state = NotificationState.DISMISSED
        self._fire_dismiss(entry)
        self._clear(entry)

    def activate(self, routine_id: str) -> None:
        """User clicked through the popup. No-op unless it is PENDING."""
        entry = self._pending(routine_id, "activate")
        if entry is None:
            return

        self._cancel_timer(entry)
        entry.state = NotificationState.ACTIVATED
        self._fire_dismiss(entry)
        if self._navigator is not None:
            try:
                self._navigator.navigate_to_routine(routine_id)
            except Exception:
                logger.exception("Navigation to routine %s failed", routine_id)
        self._linger(entry)

    def cancel_all(self) -> None:
        """Drop every popup without firing callbacks (shutdown)."""
        for entry in self._entries.values():
            self._cancel_timer(entry)
        count = len(self._entries)
        self._entries.clear()
        if count:
            logger.info("Cancelled %d popup(s)", count)

    # -- internals ----------------------------------------------------------

    def _pending(self, routine_id: str, action: str) -> _Entry | None:
        entry = self._entries.get(routine_id)
        if entry is None or entry.state is not NotificationState.PENDING:
            logger.debug("%s(%s) ignored: %s", action, routine_id, self.state(routine_id).value)
            return None
        return entry

    def _expire(self, entry: _Entry) -> None:
        entry.state = NotificationState.EXPIRED
        self._fire_dismiss(entry)
        self._linger(entry)

    def _linger(self, entry: _Entry) -> None:
        """Hold a terminal state for the exit animation, then go IDLE."""
        if self._grace == 0:
            self._clear(entry)
            return
        entry.timer = self._start_timer(entry, self._grace, self._clear)

    def _clear(self, entry: _Entry) -> None:
        rid = entry.event.routine_id
        if self._entries.get(rid) is entry:
            del self._entries[rid]
        logger.debug("Popup for %s closed (%s)", rid, entry.state.value)

    def _fire_dismiss(self, entry: _Entry) -> None:
        try:
            self._on_dismiss(entry.event, entry.state)
        except Exception:
            logger.exception("on_dismiss failed for routine %s", entry.event.routine_id)

    def _start_timer(
        self, entry: _Entry, delay: float, handler: Callable[[_Entry], None],
    ) -> TimerHandle:
        handle: TimerHandle | None = None

        def _fire() -> None:
            # Stale: entry replaced/cleared, or this timer superseded.
            if self._entries.get(entry.event.routine_id) is not entry or entry.timer is not handle:
                logger.debug("Stale timer for %s ignored", entry.event.routine_id)
                return
            entry.timer = None
            handler(entry)

        handle = self._clock.call_later(delay, _fire)
        return handle

    @staticmethod
    def _cancel_timer(entry: _Entry) -> None:
        if entry.timer is not None:
            entry.timer.cancel()
            entry.timer = None
