"""Tests for src.adapters.telegram_notifier — popup messages on Telegram."""

import asyncio
from datetime import datetime

import pytest
from unittest.mock import AsyncMock, MagicMock

from telegram.error import TelegramError

from src.adapters.telegram_notifier import (
    TelegramNavigator,
    TelegramNotifier,
    format_popup,
    popup_keyboard,
)
from src.data.models import NotificationEvent


def _event(routine_id="r1", message="Time to stretch"):
    return NotificationEvent(
        routine_id=routine_id, title="Stretch", message=message,
        created_at=datetime(2026, 10, 19, 7, 0),
    )


def _make_bot(message_ids=(101, 102, 103)):
    bot = MagicMock()
    bot.send_message = AsyncMock(side_effect=[MagicMock(message_id=m) for m in message_ids])
    bot.delete_message = AsyncMock()
    return bot


class TestFormatting:
    def test_popup_text(self):
        assert format_popup(_event()) == "🔔 *Stretch*\nTime to stretch"
        assert format_popup(_event(message="")) == "🔔 *Stretch*"

    def test_popup_text_escapes_markdown(self):
        event = NotificationEvent(
            routine_id="r1", title="Read_book", message="ch. *3*",
            created_at=datetime(2026, 10, 19, 7, 0),
        )
        assert format_popup(event) == "🔔 *Read\\_book*\nch. \\*3\\*"

    def test_keyboard_callback_data(self):
        buttons = popup_keyboard("r1").inline_keyboard[0]
        assert [b.callback_data for b in buttons] == ["notif:open:r1", "notif:close:r1"]


class TestTelegramNotifier:
    @pytest.mark.asyncio
    async def test_show_then_hide_deletes_message(self):
        bot = _make_bot()
        notifier = TelegramNotifier(bot)
        await notifier.show_popup(12345, _event())
        await notifier.hide_popup(12345, _event())
        bot.delete_message.assert_awaited_once_with(chat_id=12345, message_id=101)

    @pytest.mark.asyncio
    async def test_replacing_popup_removes_old_message(self):
        bot = _make_bot()
        notifier = TelegramNotifier(bot)
        await notifier.show_popup(12345, _event())
        await notifier.show_popup(12345, _event(message="again"))
        bot.delete_message.assert_awaited_once_with(chat_id=12345, message_id=101)
        assert bot.send_message.await_count == 2

    @pytest.mark.asyncio
    async def test_overlapping_shows_leave_no_orphan(self):
        bot = MagicMock()
        ids = iter([101, 102])

        async def slow_send(**kwargs):
            message_id = next(ids)
            await asyncio.sleep(0.01)
            return MagicMock(message_id=message_id)

        bot.send_message = AsyncMock(side_effect=slow_send)
        bot.delete_message = AsyncMock()
        notifier = TelegramNotifier(bot)

        await asyncio.gather(notifier.show_popup(1, _event()), notifier.show_popup(1, _event()))
        await notifier.hide_popup(1, _event())

        deleted = [c.kwargs["message_id"] for c in bot.delete_message.call_args_list]
        assert deleted == [101, 102]

    @pytest.mark.asyncio
    async def test_hide_waits_for_inflight_show(self):
        bot = MagicMock()

        async def slow_send(**kwargs):
            await asyncio.sleep(0.01)
            return MagicMock(message_id=101)

        bot.send_message = AsyncMock(side_effect=slow_send)
        bot.delete_message = AsyncMock()
        notifier = TelegramNotifier(bot)

        await asyncio.gather(notifier.show_popup(1, _event()), notifier.hide_popup(1, _event()))
        bot.delete_message.assert_awaited_once_with(chat_id=1, message_id=101)

    @pytest.mark.asyncio
    async def test_send_message_uses_markdown(self):
        bot = _make_bot()
        await TelegramNotifier(bot).send_message(12345, "*Stretch*")
        bot.send_message.assert_awaited_once_with(
            chat_id=12345, text="*Stretch*", parse_mode="Markdown",
        )

    @pytest.mark.asyncio
    async def test_hide_unknown_is_noop(self):
        bot = _make_bot()
        await TelegramNotifier(bot).hide_popup(12345, _event())
        bot.delete_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_failure_is_logged_not_raised(self):
        bot = _make_bot()
        bot.delete_message.side_effect = TelegramError("message to delete not found")
        notifier = TelegramNotifier(bot)
        await notifier.show_popup(12345, _event())
        await notifier.hide_popup(12345, _event())
        await notifier.hide_popup(12345, _event())
        assert bot.delete_message.await_count == 1


class TestTelegramNavigator:
    @pytest.mark.asyncio
    async def test_navigate_schedules_render(self):
        render = AsyncMock()
        TelegramNavigator(12345, render).navigate_to_routine("r1")
        await asyncio.sleep(0)
        render.assert_awaited_once_with(12345, "r1")
