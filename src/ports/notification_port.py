"""Notification ports — abstract interfaces for the user-facing surface.

Core modules depend on these protocols, never on a specific messaging provider.
"""

from __future__ import annotations

from typing import Protocol

from src.data.models import NotificationEvent


class NotificationPort(Protocol):
    """Shows and hides routine popups for a user."""

    async def send_message(self, user_id: int, text: str) -> None:
        """Send a Markdown message; user-supplied parts must already be escaped."""

    async def show_popup(self, user_id: int, event: NotificationEvent) -> None: ...

    async def hide_popup(self, user_id: int, event: NotificationEvent) -> None: ...


class NavigationPort(Protocol):
    """Receives "open routine detail" intents emitted by popup click-through."""

    def navigate_to_routine(self, routine_id: str) -> None: ...
