"""
JIN Routines — Routine Database.

Routines and their per-day completion records persist in SQLite across
restarts. Implements RoutineRepository: every lookup is scoped to the owning
user and reports a missing routine, a foreign routine and a storage failure
as distinct errors.

Also implements NotificationInbox: fired popups are kept in the notifications
table with a read flag.

sqlite3 is synchronous; public methods run it via asyncio.to_thread.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import uuid
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, TypeVar

from src.core.routines import parse_routine
from src.data.models import NotificationRecord, Routine, RoutineRecord
from src.ports.routine_port import (
    NotificationNotFoundError,
    PersistenceFailure,
    RoutineNotFoundError,
    RoutineUnauthorizedError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def new_routine_id() -> str:
    return uuid.uuid4().hex[:8]


class RoutineDB:
    """SQLite-backed storage for routines and routine records."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create tables if they don't exist, and migrate schema."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS routines (
                    id           TEXT    PRIMARY KEY,
                    user_id      INTEGER NOT NULL,
                    title        TEXT    NOT NULL,
                    time         TEXT    NOT NULL,
                    repeat_days  TEXT    NOT NULL DEFAULT '[]',
                    message      TEXT    NOT NULL DEFAULT '',
                    color        TEXT    NOT NULL DEFAULT '#000000',
                    completed    INTEGER NOT NULL DEFAULT 0,
                    notification INTEGER NOT NULL DEFAULT 0,
                    before_image TEXT,
                    after_image  TEXT,
                    files        TEXT    NOT NULL DEFAULT '[]',
                    created_at   TEXT    NOT NULL,
                    updated_at   TEXT    NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS routine_records (
                    id           INTEGER PRIMARY KEY AUTOINCREMENT,
                    routine_id   TEXT    NOT NULL,
                    user_id      INTEGER NOT NULL,
                    cycle_date   TEXT    NOT NULL,
                    completed_at TEXT    NOT NULL,
                    memo         TEXT,
                    UNIQUE (routine_id, cycle_date)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS notifications (
                    id           INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id      INTEGER NOT NULL,
                    routine_id   TEXT,
                    title        TEXT    NOT NULL,
                    message      TEXT    NOT NULL DEFAULT '',
                    read         INTEGER NOT NULL DEFAULT 0,
                    created_at   TEXT    NOT NULL
                )
            """)
            # Migrate existing DBs: add new columns if missing
            existing_cols = {
                row[1] for row in conn.execute("PRAGMA table_info(routines)").fetchall()
            }
            if "sort_order" not in existing_cols:
                conn.execute(
                    "ALTER TABLE routines ADD COLUMN sort_order INTEGER NOT NULL DEFAULT 0"
                )
        logger.debug("Routine tables initialized at %s", self._db_path)

    @staticmethod
    def _row_to_routine(row: sqlite3.Row) -> Routine:
        return parse_routine({
            "id": row["id"],
            "user_id": row["user_id"],
            "title": row["title"],
            "time": row["time"],
            "repeat_days": json.loads(row["repeat_days"]),
            "message": row["message"],
            "color": row["color"],
            "completed": bool(row["completed"]),
            "notification": bool(row["notification"]),
            "before_image": row["before_image"],
            "after_image": row["after_image"],
            "files": json.loads(row["files"]),
            "sort_order": row["sort_order"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        })

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> RoutineRecord:
        return RoutineRecord(
            id=row["id"],
            routine_id=row["routine_id"],
            user_id=row["user_id"],
            cycle_date=row["cycle_date"],
            completed_at=row["completed_at"],
            memo=row["memo"],
        )

    @staticmethod
    def _row_to_notification(row: sqlite3.Row) -> NotificationRecord:
        return NotificationRecord(
            id=row["id"],
            user_id=row["user_id"],
            routine_id=row["routine_id"],
            title=row["title"],
            message=row["message"],
            read=bool(row["read"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    @staticmethod
    def _owned_row(conn: sqlite3.Connection, routine_id: str, user_id: int) -> sqlite3.Row:
        row = conn.execute("SELECT * FROM routines WHERE id = ?", (routine_id,)).fetchone()
        if row is None:
            raise RoutineNotFoundError(routine_id)
        if row["user_id"] != user_id:
            raise RoutineUnauthorizedError(routine_id, user_id)
        return row

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as exc:
            logger.error("Routine DB error in %s: %s", fn.__name__, exc)
            raise PersistenceFailure(str(exc)) from exc

    # -- routines -----------------------------------------------------------

    def _create(self, routine: Routine) -> Routine:
        now = datetime.now()
        routine = replace(
            routine,
            id=routine.id or new_routine_id(),
            created_at=routine.created_at or now,
            updated_at=routine.updated_at or now,
        )
        with self._connect() as conn:
            (next_order,) = conn.execute(
                "SELECT COALESCE(MAX(sort_order) + 1, 0) FROM routines WHERE user_id = ?",
                (routine.user_id,),
            ).fetchone()
            routine.sort_order = next_order
            conn.execute(
                """
                INSERT INTO routines
                    (id, user_id, title, time, repeat_days, message, color,
                     completed, notification, before_image, after_image, files,
                     sort_order, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    routine.id, routine.user_id, routine.title, routine.time,
                    json.dumps(sorted(routine.repeat_days)), routine.message, routine.color,
                    int(routine.completed), int(routine.notification),
                    routine.before_image, routine.after_image,
                    json.dumps([{"name": f.name, "data": f.data_ref} for f in routine.files]),
                    routine.sort_order,
                    routine.created_at.isoformat(), routine.updated_at.isoformat(),
                ),
            )
        logger.info("Routine added: %s '%s' at %s", routine.id, routine.title, routine.time)
        return routine

    async def create(self, routine: Routine) -> Routine:
        """Insert a routine. An empty id is replaced with a generated one."""
        return await self._run(self._create, routine)

    def _get(self, routine_id: str, user_id: int) -> Routine:
        with self._connect() as conn:
            row = self._owned_row(conn, routine_id, user_id)
        return self._row_to_routine(row)

    async def get(self, routine_id: str, user_id: int) -> Routine:
        return await self._run(self._get, routine_id, user_id)

    def _list_for_user(self, user_id: int) -> list[Routine]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM routines WHERE user_id = ? ORDER BY sort_order, time",
                (user_id,),
            ).fetchall()
        return [self._row_to_routine(r) for r in rows]

    async def list_for_user(self, user_id: int) -> list[Routine]:
        return await self._run(self._list_for_user, user_id)

    def _list_notifying(self) -> list[Routine]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM routines WHERE notification = 1 ORDER BY user_id, time"
            ).fetchall()
        return [self._row_to_routine(r) for r in rows]

    async def list_notifying(self) -> list[Routine]:
        """All routines with popups enabled, across users (for the due check)."""
        return await self._run(self._list_notifying)

    def _update(self, routine: Routine) -> Routine:
        routine = replace(routine, updated_at=datetime.now())
        with self._connect() as conn:
            self._owned_row(conn, routine.id, routine.user_id)
            conn.execute(
                """
                UPDATE routines SET
                    title = ?, time = ?, repeat_days = ?, message = ?, color = ?,
                    notification = ?, before_image = ?, after_image = ?, files = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    routine.title, routine.time, json.dumps(sorted(routine.repeat_days)),
                    routine.message, routine.color, int(routine.notification),
                    routine.before_image, routine.after_image,
                    json.dumps([{"name": f.name, "data": f.data_ref} for f in routine.files]),
                    routine.updated_at.isoformat(), routine.id,
                ),
            )
        logger.info("Routine %s updated", routine.id)
        return routine

    async def update(self, routine: Routine) -> Routine:
        """Store the editable fields. Completion goes through set_completed."""
        return await self._run(self._update, routine)

    def _set_completed(
        self, routine_id: str, user_id: int, completed: bool, updated_at: datetime,
    ) -> None:
        cycle = updated_at.date().isoformat()
        with self._connect() as conn:
            self._owned_row(conn, routine_id, user_id)
            conn.execute(
                "UPDATE routines SET completed = ?, updated_at = ? WHERE id = ?",
                (int(completed), updated_at.isoformat(), routine_id),
            )
            if completed:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO routine_records
                        (routine_id, user_id, cycle_date, completed_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (routine_id, user_id, cycle, updated_at.isoformat()),
                )
            else:
                conn.execute(
                    "DELETE FROM routine_records WHERE routine_id = ? AND cycle_date = ?",
                    (routine_id, cycle),
                )

    async def set_completed(
        self, routine_id: str, user_id: int, completed: bool, updated_at: datetime,
    ) -> None:
        await self._run(self._set_completed, routine_id, user_id, completed, updated_at)

    def _set_order(self, user_id: int, routine_ids: list[str]) -> None:
        with self._connect() as conn:
            for rid in routine_ids:
                self._owned_row(conn, rid, user_id)
            conn.executemany(
                "UPDATE routines SET sort_order = ? WHERE id = ?",
                [(i, rid) for i, rid in enumerate(routine_ids)],
            )
        logger.info("Reordered %d routines for user %d", len(routine_ids), user_id)

    async def set_order(self, user_id: int, routine_ids: list[str]) -> None:
        """Persist display order; all ids must belong to *user_id*."""
        await self._run(self._set_order, user_id, routine_ids)

    def _delete(self, routine_id: str, user_id: int) -> None:
        with self._connect() as conn:
            self._owned_row(conn, routine_id, user_id)
            conn.execute("DELETE FROM routine_records WHERE routine_id = ?", (routine_id,))
            conn.execute("DELETE FROM routines WHERE id = ?", (routine_id,))
        logger.info("Routine %s deleted", routine_id)

    async def delete(self, routine_id: str, user_id: int) -> None:
        """Permanently delete a routine and its records."""
        await self._run(self._delete, routine_id, user_id)

    # -- records ------------------------------------------------------------

    def _list_records(self, user_id: int) -> list[RoutineRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM routine_records WHERE user_id = ? ORDER BY cycle_date DESC",
                (user_id,),
            ).fetchall()
        return [self._row_to_record(r) for r in rows]

    async def list_records(self, user_id: int) -> list[RoutineRecord]:
        return await self._run(self._list_records, user_id)

    # -- notification inbox -------------------------------------------------

    def _add_notification(self, record: NotificationRecord) -> NotificationRecord:
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO notifications (user_id, routine_id, title, message, read, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    record.user_id, record.routine_id, record.title, record.message,
                    int(record.read), record.created_at.isoformat(),
                ),
            )
            record = replace(record, id=cur.lastrowid)
        logger.debug("Notification %d stored for user %d", record.id, record.user_id)
        return record

    async def add_notification(self, record: NotificationRecord) -> NotificationRecord:
        return await self._run(self._add_notification, record)

    def _list_notifications(self, user_id: int, limit: int | None) -> list[NotificationRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM notifications WHERE user_id = ? "
                "ORDER BY created_at DESC, id DESC LIMIT ?",
                (user_id, -1 if limit is None else limit),
            ).fetchall()
        return [self._row_to_notification(r) for r in rows]

    async def list_notifications(
        self, user_id: int, limit: int | None = None,
    ) -> list[NotificationRecord]:
        """A user's inbox, newest first."""
        return await self._run(self._list_notifications, user_id, limit)

    def _mark_notification_read(self, notification_id: int, user_id: int) -> None:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE notifications SET read = 1 WHERE id = ? AND user_id = ?",
                (notification_id, user_id),
            )
            if cur.rowcount == 0:
                raise NotificationNotFoundError(notification_id)

    async def mark_notification_read(self, notification_id: int, user_id: int) -> None:
        """Mark one inbox entry read; someone else's entry counts as not found."""
        await self._run(self._mark_notification_read, notification_id, user_id)

    def _count_unread(self, user_id: int) -> int:
        with self._connect() as conn:
            (count,) = conn.execute(
                "SELECT COUNT(*) FROM notifications WHERE user_id = ? AND read = 0",
                (user_id,),
            ).fetchone()
        return count

    async def count_unread(self, user_id: int) -> int:
        return await self._run(self._count_unread, user_id)
