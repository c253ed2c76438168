"""
JIN Routines — Telegram Bot.

Telegram is the user interface: routine lists and edits, completion
check-offs, reordering, the timed routine popups and the notification inbox
all flow through this bot.

Security-first: unauthorized users are silently ignored.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timedelta
from functools import partial, wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine
from zoneinfo import ZoneInfo

from telegram import Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
)
from telegram.helpers import escape_markdown

from src.config import settings
from src.core.completion import CompletionTracker, completion_stats
from src.core.notifications import NotificationState, NotificationTimerManager
from src.core.routines import (
    InvalidDayError,
    InvalidRoutineError,
    due_routines,
    is_scheduled_today,
    move_routine,
    parse_days,
    parse_routine,
    sorted_routines,
    toggle_day,
)
from src.data.models import WEEKDAYS, NotificationEvent, NotificationRecord, Routine
from src.ports.routine_port import (
    NotificationNotFoundError,
    PersistenceFailure,
    RoutineNotFoundError,
    RoutineStoreError,
    RoutineUnauthorizedError,
)

if TYPE_CHECKING:
    from src.ports.clock_port import ClockPort
    from src.ports.notification_port import NotificationPort
    from src.ports.routine_port import NotificationInbox, RoutineRepository

logger = logging.getLogger(__name__)

# Fire-and-forget popup sends; referenced here so they aren't garbage collected.
_background: set[asyncio.Task] = set()


def _spawn(coro: Coroutine[Any, Any, None]) -> None:
    task = asyncio.get_running_loop().create_task(coro)
    _background.add(task)
    task.add_done_callback(_background.discard)


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Decorator that silently ignores messages from unauthorized users."""

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        if user is None or user.id not in settings.ALLOWED_USER_IDS:
            uid = user.id if user else "unknown"
            logger.warning("Unauthorized access attempt from user_id=%s", uid)
            return  # Silent ignore
        return await func(update, context)

    return wrapper


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def format_days(repeat_days: frozenset[str]) -> str:
    if not repeat_days:
        return "manual"
    if len(repeat_days) == len(WEEKDAYS):
        return "daily"
    return ", ".join(d[:3].title() for d in WEEKDAYS if d in repeat_days)


def md(text: str) -> str:
    """Escape user-supplied text for parse_mode="Markdown"."""
    return escape_markdown(text)


def format_routine_line(routine: Routine) -> str:
    mark = "✅" if routine.completed else "⬜"
    bell = " 🔔" if routine.notification else ""
    return (
        f"{mark} `{routine.id}` {routine.time} {md(routine.title)}"
        f" ({format_days(routine.repeat_days)}){bell}"
    )


def format_routine_detail(routine: Routine) -> str:
    lines = [
        f"*{md(routine.title)}*",
        f"Time: {routine.time}",
        f"Repeat: {format_days(routine.repeat_days)}",
        f"Color: {routine.color}",
        f"Status: {'done' if routine.completed else 'not done'}",
        f"Popups: {'on' if routine.notification else 'off'}",
    ]
    if routine.message:
        lines.append(f"\n{md(routine.message)}")
    if routine.files:
        lines.append("Files: " + ", ".join(md(f.name) for f in routine.files))
    return "\n".join(lines)


def format_notification_line(record: NotificationRecord) -> str:
    new = " *NEW*" if not record.read else ""
    when = record.created_at.strftime("%m-%d %H:%M")
    text = f"`{record.id}` {when} {md(record.title)}{new}"
    if record.message:
        text += f"\n    {md(record.message)}"
    return text


def _store_error_text(exc: RoutineStoreError, routine_id: str) -> str:
    # Unauthorized reads the same as not-found to the user.
    if isinstance(exc, (RoutineNotFoundError, RoutineUnauthorizedError)):
        return f"Routine {md(routine_id)} not found. Use /routines to see IDs."
    return "Couldn't reach the routine store. Please try again."


# ---------------------------------------------------------------------------
# Popups
# ---------------------------------------------------------------------------


async def _send_routine_detail(bot_data: dict, user_id: int, routine_id: str) -> None:
    repo: RoutineRepository = bot_data["repo"]
    notifier: NotificationPort = bot_data["notifier"]
    try:
        routine = await repo.get(routine_id, user_id)
    except RoutineStoreError as exc:
        logger.error("Open routine %s for user %d failed: %s", routine_id, user_id, exc)
        return
    await notifier.send_message(user_id, format_routine_detail(routine))


def get_popup_manager(bot_data: dict, user_id: int) -> NotificationTimerManager:
    """Return (creating on first use) the popup manager for one user."""
    managers: dict[int, NotificationTimerManager] = bot_data.setdefault("popups", {})
    manager = managers.get(user_id)
    if manager is not None:
        return manager

    from src.adapters.telegram_notifier import TelegramNavigator

    notifier: NotificationPort = bot_data["notifier"]

    def _on_dismiss(event: NotificationEvent, outcome: NotificationState) -> None:
        logger.debug("Popup %s for user %d ended: %s", event.routine_id, user_id, outcome.value)
        _spawn(notifier.hide_popup(user_id, event))

    manager = NotificationTimerManager(
        clock=bot_data["clock"],
        on_dismiss=_on_dismiss,
        navigator=TelegramNavigator(user_id, partial(_send_routine_detail, bot_data)),
        dwell_seconds=settings.dwell_seconds,
        exit_grace_seconds=settings.exit_grace_seconds,
    )
    managers[user_id] = manager
    return manager


async def fire_popup(bot_data: dict, routine: Routine) -> None:
    """Start (or restart) the popup for *routine* and render it."""
    manager = get_popup_manager(bot_data, routine.user_id)
    manager.schedule(routine.id, routine.title, routine.message)
    event = manager.active_event(routine.id)
    if event is None:
        return
    inbox: NotificationInbox = bot_data["inbox"]
    try:
        await inbox.add_notification(NotificationRecord(
            user_id=routine.user_id,
            routine_id=routine.id,
            title=routine.title,
            message=routine.message,
            created_at=event.created_at,
        ))
    except PersistenceFailure as exc:
        logger.error("Failed to store notification for routine %s: %s", routine.id, exc)

    notifier: NotificationPort = bot_data["notifier"]
    try:
        await notifier.show_popup(routine.user_id, event)
    except Exception as exc:
        logger.error("Failed to show popup for routine %s: %s", routine.id, exc)


# A late job run catches up on skipped minutes, but never further back than this.
MAX_CATCH_UP_MINUTES = 5


def minutes_to_check(last: datetime | None, now: datetime) -> list[datetime]:
    """Whole minutes after *last* up to and including *now*'s minute."""
    current = now.replace(second=0, microsecond=0)
    if last is None:
        return [current]
    if current <= last:
        return []
    start = max(last + timedelta(minutes=1), current - timedelta(minutes=MAX_CATCH_UP_MINUTES - 1))
    minutes = []
    while start <= current:
        minutes.append(start)
        start += timedelta(minutes=1)
    return minutes


async def check_due_routines(context: ContextTypes.DEFAULT_TYPE) -> None:
    """Repeating job: fire popups for routines due since the previous run."""
    bot_data = context.bot_data
    clock: ClockPort = bot_data["clock"]
    repo = bot_data["repo"]

    minutes = minutes_to_check(bot_data.get("last_due_minute"), clock.now())
    if not minutes:
        return

    try:
        routines = await repo.list_notifying()
    except PersistenceFailure as exc:
        # Minutes stay unchecked; the next run catches up on them.
        logger.error("Due check failed: %s", exc)
        return
    bot_data["last_due_minute"] = minutes[-1]

    if len(minutes) > 1:
        logger.info("Due check catching up %d minute(s)", len(minutes))
    for minute in minutes:
        for routine in due_routines(routines, minute):
            if routine.user_id not in settings.ALLOWED_USER_IDS:
                continue
            await fire_popup(bot_data, routine)


async def _handle_popup_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle the Open / ✕ buttons on a popup."""
    query = update.callback_query
    await query.answer()

    user = query.from_user
    if user is None or user.id not in settings.ALLOWED_USER_IDS:
        return

    _, action, routine_id = query.data.split(":", 2)
    manager = get_popup_manager(context.bot_data, user.id)
    if action == "open":
        manager.activate(routine_id)
    else:
        manager.dismiss(routine_id)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — welcome message."""
    await update.message.reply_text(
        "Welcome to *JIN Routines*!\n\n"
        "I keep track of your daily routines:\n"
        "• /add a routine with a time and repeat days\n"
        "• /today shows what's due, /done checks one off\n"
        "• I'll pop up a reminder when a routine's time comes\n\n"
        "Type /help for the full command list.",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list available commands."""
    await update.message.reply_text(
        "*Available commands:*\n"
        "/add HH:MM Title | days | message | #color — Add a routine\n"
        "/edit <id> HH:MM Title | days | message | #color — Edit a routine\n"
        "/routines — List all routines\n"
        "/today — Routines due today\n"
        "/done <id> — Toggle completion\n"
        "/repeat <id> <day> — Toggle a repeat day\n"
        "/notify <id> — Toggle popups\n"
        "/move <id> <position> — Reorder\n"
        "/fire <id> — Show the popup now\n"
        "/stats — Completion statistics\n"
        "/notifications — Recent popups\n"
        "/read <id> — Mark a notification as read\n"
        "/delete <id> — Delete a routine\n"
        "/help — Show this message",
        parse_mode="Markdown",
    )


def _split_routine_args(text: str) -> tuple[str, str, list[str]]:
    """Split "HH:MM Title | days | message | #color" into time, title and the rest."""
    parts = [p.strip() for p in text.split("|")]
    head = parts[0].split(maxsplit=1)
    if len(head) < 2:
        raise InvalidRoutineError("Expected: HH:MM Title | days | message | #color")
    return head[0], head[1], parts[1:]


def _days_arg(text: str) -> frozenset[str]:
    try:
        return parse_days(text)
    except InvalidDayError as exc:
        raise InvalidRoutineError(str(exc)) from exc


def parse_add_args(user_id: int, text: str) -> Routine:
    """Parse "HH:MM Title | mon,wed | message | #color" into a Routine with an empty id.

    Raises InvalidRoutineError on malformed input.
    """
    time_str, title, rest = _split_routine_args(text)
    days = _days_arg(rest[0]) if rest else frozenset()

    routine = parse_routine({
        "id": "new",
        "user_id": user_id,
        "time": time_str,
        "title": title,
        "repeat_days": sorted(days),
        "message": rest[1] if len(rest) > 1 else "",
        "color": rest[2] if len(rest) > 2 else None,
        "notification": True,
    })
    return replace(routine, id="")


def parse_edit_args(routine: Routine, text: str) -> Routine:
    """Apply "HH:MM Title | days | message | #color" to a copy of *routine*.

    Sections after the title may be left out (or empty) to keep their
    current value. The result is re-validated by parse_routine.
    """
    time_str, title, rest = _split_routine_args(text)
    sections = rest + [""] * (3 - len(rest))
    days = _days_arg(sections[0]) if sections[0] else routine.repeat_days

    return parse_routine({
        "id": routine.id,
        "user_id": routine.user_id,
        "time": time_str,
        "title": title,
        "repeat_days": sorted(days),
        "message": sections[1] or routine.message,
        "color": sections[2] or routine.color,
        "completed": routine.completed,
        "notification": routine.notification,
        "before_image": routine.before_image,
        "after_image": routine.after_image,
        "files": [{"name": f.name, "data": f.data_ref} for f in routine.files],
        "sort_order": routine.sort_order,
        "created_at": routine.created_at,
        "updated_at": routine.updated_at,
    })


@authorized_only
async def cmd_add(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /add HH:MM Title | days | message."""
    repo: RoutineRepository = context.bot_data["repo"]
    text = update.message.text.partition(" ")[2]
    try:
        routine = parse_add_args(update.effective_user.id, text)
    except InvalidRoutineError as exc:
        await update.message.reply_text(
            f"Couldn't add routine: {exc}\nUsage: /add 07:00 Stretch | mon,wed,fri | Time to stretch"
        )
        return

    try:
        routine = await repo.create(routine)
    except PersistenceFailure:
        await update.message.reply_text("Couldn't save the routine. Please try again.")
        return

    await update.message.reply_text(
        f"Added: {format_routine_line(routine)}", parse_mode="Markdown",
    )


@authorized_only
async def cmd_routines(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /routines — list all routines in display order."""
    repo: RoutineRepository = context.bot_data["repo"]
    try:
        routines = await repo.list_for_user(update.effective_user.id)
    except PersistenceFailure as exc:
        logger.error("/routines error: %s", exc)
        await update.message.reply_text("Couldn't load routines. Please try again.")
        return

    if not routines:
        await update.message.reply_text("No routines yet. Use /add to create one.")
        return

    lines = ["*Routines:*\n"]
    lines.extend(format_routine_line(r) for r in sorted_routines(routines))
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_today(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /today — routines scheduled for today, with progress."""
    repo: RoutineRepository = context.bot_data["repo"]
    clock: ClockPort = context.bot_data["clock"]
    try:
        routines = await repo.list_for_user(update.effective_user.id)
    except PersistenceFailure as exc:
        logger.error("/today error: %s", exc)
        await update.message.reply_text("Couldn't load routines. Please try again.")
        return

    today = clock.now().date()
    todays = [r for r in sorted_routines(routines) if is_scheduled_today(r, today)]
    if not todays:
        await update.message.reply_text("Nothing scheduled today.")
        return

    done = sum(1 for r in todays if r.completed)
    lines = [f"*Today* — {done}/{len(todays)} done ({round(done / len(todays) * 100)}%)\n"]
    lines.extend(format_routine_line(r) for r in todays)
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


async def _routine_from_args(
    update: Update, context: ContextTypes.DEFAULT_TYPE, usage: str,
) -> Routine | None:
    """Load the routine named by the first command argument, or reply with an error."""
    repo: RoutineRepository = context.bot_data["repo"]
    if not context.args:
        await update.message.reply_text(f"Usage: {usage}\nUse /routines to see IDs.")
        return None

    routine_id = context.args[0]
    try:
        return await repo.get(routine_id, update.effective_user.id)
    except RoutineStoreError as exc:
        logger.error("Routine lookup %s failed: %s", routine_id, exc)
        await update.message.reply_text(_store_error_text(exc, routine_id), parse_mode="Markdown")
        return None


@authorized_only
async def cmd_done(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /done <id> — toggle completion for the current day."""
    routine = await _routine_from_args(update, context, "/done <routine_id>")
    if routine is None:
        return

    tracker: CompletionTracker = context.bot_data["tracker"]
    try:
        routine = await tracker.toggle_completion(routine)
    except RoutineStoreError as exc:
        logger.error("/done error: %s", exc)
        await update.message.reply_text(_store_error_text(exc, routine.id), parse_mode="Markdown")
        return

    if routine.completed:
        msg = f"✅ Marked '*{md(routine.title)}*' as done."
    else:
        msg = f"↩️ '*{md(routine.title)}*' marked as not done."
    await update.message.reply_text(msg, parse_mode="Markdown")


@authorized_only
async def cmd_repeat(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /repeat <id> <day> — toggle one repeat day."""
    if len(context.args or []) < 2:
        await update.message.reply_text("Usage: /repeat <routine_id> <day>")
        return
    routine = await _routine_from_args(update, context, "/repeat <routine_id> <day>")
    if routine is None:
        return

    try:
        days = toggle_day(routine, context.args[1])
    except InvalidDayError:
        await update.message.reply_text(
            f"Unknown day {context.args[1]!r}. Use e.g. mon, tuesday, sun."
        )
        return

    repo: RoutineRepository = context.bot_data["repo"]
    try:
        routine = await repo.update(replace(routine, repeat_days=days))
    except RoutineStoreError as exc:
        await update.message.reply_text(_store_error_text(exc, routine.id), parse_mode="Markdown")
        return

    await update.message.reply_text(
        f"'*{md(routine.title)}*' now repeats: {format_days(routine.repeat_days)}",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_notify(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /notify <id> — toggle popups for a routine."""
    routine = await _routine_from_args(update, context, "/notify <routine_id>")
    if routine is None:
        return

    repo: RoutineRepository = context.bot_data["repo"]
    try:
        routine = await repo.update(replace(routine, notification=not routine.notification))
    except RoutineStoreError as exc:
        await update.message.reply_text(_store_error_text(exc, routine.id), parse_mode="Markdown")
        return

    state = "on" if routine.notification else "off"
    await update.message.reply_text(f"Popups for '*{md(routine.title)}*' are {state}.", parse_mode="Markdown")


@authorized_only
async def cmd_move(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /move <id> <position> — reorder (positions start at 1)."""
    args = context.args or []
    try:
        routine_id, position = args[0], int(args[1])
    except (IndexError, ValueError):
        await update.message.reply_text("Usage: /move <routine_id> <position>")
        return

    repo: RoutineRepository = context.bot_data["repo"]
    user_id = update.effective_user.id
    try:
        routines = sorted_routines(await repo.list_for_user(user_id))
        moved = move_routine(routines, routine_id, position - 1)
        await repo.set_order(user_id, [r.id for r in moved])
    except RoutineStoreError as exc:
        await update.message.reply_text(_store_error_text(exc, routine_id), parse_mode="Markdown")
        return

    lines = ["*Routines:*\n"]
    lines.extend(format_routine_line(r) for r in moved)
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_fire(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /fire <id> — show the routine popup now."""
    routine = await _routine_from_args(update, context, "/fire <routine_id>")
    if routine is None:
        return
    await fire_popup(context.bot_data, routine)


@authorized_only
async def cmd_stats(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /stats — completion statistics."""
    repo: RoutineRepository = context.bot_data["repo"]
    clock: ClockPort = context.bot_data["clock"]
    user_id = update.effective_user.id
    try:
        routines = await repo.list_for_user(user_id)
        records = await repo.list_records(user_id)
    except PersistenceFailure as exc:
        logger.error("/stats error: %s", exc)
        await update.message.reply_text("Couldn't load statistics. Please try again.")
        return

    stats = completion_stats(routines, records, clock.now().date())
    lines = [
        "*Statistics*",
        f"Completed: {stats.completed_routines}/{stats.total_routines} ({stats.completion_rate}%)",
        f"Today: {stats.today_completed}/{stats.today_routines}",
        f"Streak: {stats.streak} day(s)",
        "",
        "Last 7 days:",
    ]
    lines.extend(f"  {day}: {count}" for day, count in stats.weekly_completions)
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_edit(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /edit <id> HH:MM Title | days | message | #color."""
    usage = "/edit <routine_id> HH:MM Title | days | message | #color"
    routine = await _routine_from_args(update, context, usage)
    if routine is None:
        return

    text = update.message.text.split(maxsplit=2)
    try:
        edited = parse_edit_args(routine, text[2] if len(text) > 2 else "")
    except InvalidRoutineError as exc:
        await update.message.reply_text(f"Couldn't edit routine: {exc}\nUsage: {usage}")
        return

    repo: RoutineRepository = context.bot_data["repo"]
    try:
        edited = await repo.update(edited)
    except RoutineStoreError as exc:
        logger.error("/edit error: %s", exc)
        await update.message.reply_text(_store_error_text(exc, routine.id), parse_mode="Markdown")
        return

    await update.message.reply_text(
        f"Updated:\n{format_routine_detail(edited)}", parse_mode="Markdown",
    )


NOTIFICATION_LIST_LIMIT = 20


@authorized_only
async def cmd_notifications(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /notifications — recent popups, newest first."""
    inbox: NotificationInbox = context.bot_data["inbox"]
    user_id = update.effective_user.id
    try:
        records = await inbox.list_notifications(user_id, limit=NOTIFICATION_LIST_LIMIT)
        unread = await inbox.count_unread(user_id)
    except PersistenceFailure as exc:
        logger.error("/notifications error: %s", exc)
        await update.message.reply_text("Couldn't load notifications. Please try again.")
        return

    if not records:
        await update.message.reply_text("No notifications yet.")
        return

    lines = [f"*Notifications* ({unread} unread)\n"]
    lines.extend(format_notification_line(r) for r in records)
    lines.append("\nUse /read <id> to mark one as read.")
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_read(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /read <id> — mark one notification as read."""
    args = context.args or []
    try:
        notification_id = int(args[0])
    except (IndexError, ValueError):
        await update.message.reply_text("Usage: /read <notification_id>")
        return

    inbox: NotificationInbox = context.bot_data["inbox"]
    try:
        await inbox.mark_notification_read(notification_id, update.effective_user.id)
    except NotificationNotFoundError:
        await update.message.reply_text(
            f"Notification {notification_id} not found. Use /notifications to see IDs."
        )
        return
    except PersistenceFailure as exc:
        logger.error("/read error: %s", exc)
        await update.message.reply_text("Couldn't update the notification. Please try again.")
        return

    await update.message.reply_text(f"Notification {notification_id} marked as read.")


@authorized_only
async def cmd_delete(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /delete <id> — delete a routine and close its popup."""
    routine = await _routine_from_args(update, context, "/delete <routine_id>")
    if routine is None:
        return

    repo: RoutineRepository = context.bot_data["repo"]
    try:
        await repo.delete(routine.id, routine.user_id)
    except RoutineStoreError as exc:
        await update.message.reply_text(_store_error_text(exc, routine.id), parse_mode="Markdown")
        return

    get_popup_manager(context.bot_data, routine.user_id).dismiss(routine.id)
    await update.message.reply_text(f"🗑 Routine *{md(routine.title)}* deleted.", parse_mode="Markdown")


# ---------------------------------------------------------------------------
# Application wiring
# ---------------------------------------------------------------------------


def build_app(
    repo: RoutineRepository | None = None,
    notifier: NotificationPort | None = None,
    clock: ClockPort | None = None,
    inbox: NotificationInbox | None = None,
) -> Application:
    """Build and configure the Telegram Application with all handlers."""
    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).build()

    if repo is None:
        from src.data.db import RoutineDB
        repo = RoutineDB()

    if notifier is None:
        from src.adapters.telegram_notifier import TelegramNotifier
        notifier = TelegramNotifier(app.bot)

    if clock is None:
        from src.adapters.asyncio_clock import AsyncioClock
        clock = AsyncioClock(tz=ZoneInfo(settings.TIMEZONE))

    app.bot_data["repo"] = repo
    app.bot_data["notifier"] = notifier
    app.bot_data["clock"] = clock
    # RoutineDB keeps the notification inbox alongside the routines.
    app.bot_data["inbox"] = inbox if inbox is not None else repo
    app.bot_data["tracker"] = CompletionTracker(repo, clock)

    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("add", cmd_add))
    app.add_handler(CommandHandler("routines", cmd_routines))
    app.add_handler(CommandHandler("today", cmd_today))
    app.add_handler(CommandHandler("done", cmd_done))
    app.add_handler(CommandHandler("repeat", cmd_repeat))
    app.add_handler(CommandHandler("notify", cmd_notify))
    app.add_handler(CommandHandler("move", cmd_move))
    app.add_handler(CommandHandler("fire", cmd_fire))
    app.add_handler(CommandHandler("stats", cmd_stats))
    app.add_handler(CommandHandler("edit", cmd_edit))
    app.add_handler(CommandHandler("notifications", cmd_notifications))
    app.add_handler(CommandHandler("read", cmd_read))
    app.add_handler(CommandHandler("delete", cmd_delete))
    app.add_handler(CallbackQueryHandler(_handle_popup_callback, pattern=r"^notif:(open|close):"))

    app.job_queue.run_repeating(
        check_due_routines,
        interval=settings.DUE_CHECK_INTERVAL_SECONDS,
        first=1,
        name="routine_due_check",
    )

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def main() -> None:
    """Entry point: build the app and start polling."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting JIN Routines bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
