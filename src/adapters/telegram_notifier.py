"""Telegram notification adapter — implements NotificationPort and NavigationPort.

A popup is a chat message with two inline buttons: the body button opens the
routine, the ✕ button closes the popup. Hiding a popup deletes the message.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.error import TelegramError
from telegram.helpers import escape_markdown

from src.data.models import NotificationEvent

logger = logging.getLogger(__name__)

PopupKey = tuple[int, str]


def popup_keyboard(routine_id: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[
        InlineKeyboardButton("Open", callback_data=f"notif:open:{routine_id}"),
        InlineKeyboardButton("✕", callback_data=f"notif:close:{routine_id}"),
    ]])


def format_popup(event: NotificationEvent) -> str:
    title = escape_markdown(event.title)
    if event.message:
        return f"🔔 *{title}*\n{escape_markdown(event.message)}"
    return f"🔔 *{title}*"


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot
        # (user_id, routine_id) -> message_id of the popup on screen
        self._popups: dict[PopupKey, int] = {}
        # Serializes show/hide per popup so overlapping sends never orphan a message.
        self._locks: dict[PopupKey, asyncio.Lock] = {}

    def _lock(self, key: PopupKey) -> asyncio.Lock:
        return self._locks.setdefault(key, asyncio.Lock())

    async def send_message(self, user_id: int, text: str) -> None:
        """Send Markdown text; callers escape user-supplied parts."""
        await self._bot.send_message(chat_id=user_id, text=text, parse_mode="Markdown")

    async def show_popup(self, user_id: int, event: NotificationEvent) -> None:
        key = (user_id, event.routine_id)
        async with self._lock(key):
            # A replaced popup gets no dismiss callback, so remove its message here.
            await self._delete(key)
            msg = await self._bot.send_message(
                chat_id=user_id,
                text=format_popup(event),
                parse_mode="Markdown",
                reply_markup=popup_keyboard(event.routine_id),
            )
            self._popups[key] = msg.message_id

    async def hide_popup(self, user_id: int, event: NotificationEvent) -> None:
        key = (user_id, event.routine_id)
        async with self._lock(key):
            await self._delete(key)

    async def _delete(self, key: PopupKey) -> None:
        message_id = self._popups.pop(key, None)
        if message_id is None:
            return
        user_id = key[0]
        try:
            await self._bot.delete_message(chat_id=user_id, message_id=message_id)
        except TelegramError as exc:
            # Already deleted by the user, or too old to delete.
            logger.warning("Could not delete popup %d for user %d: %s", message_id, user_id, exc)


class TelegramNavigator:
    """Turns "open routine" intents into a routine detail message.

    NavigationPort is synchronous; the send is scheduled on the running loop.
    """

    def __init__(
        self,
        user_id: int,
        render_detail: Callable[[int, str], Awaitable[None]],
    ) -> None:
        self._user_id = user_id
        self._render_detail = render_detail
        self._tasks: set[asyncio.Task] = set()

    def navigate_to_routine(self, routine_id: str) -> None:
        task = asyncio.get_running_loop().create_task(
            self._render_detail(self._user_id, routine_id)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
