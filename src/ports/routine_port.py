"""Routine port — abstract interface for routine persistence.

Core modules depend on this protocol, never on a specific storage backend.
Implementations must report a missing routine, a routine owned by someone
else, and any other storage failure as distinct errors.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from src.data.models import NotificationRecord, Routine, RoutineRecord


class RoutineStoreError(Exception):
    """Base class for every routine persistence error."""


class RoutineNotFoundError(RoutineStoreError):
    """Raised when a routine id is unknown to the store."""

    def __init__(self, routine_id: str) -> None:
        super().__init__(f"Routine {routine_id!r} not found")
        self.routine_id = routine_id


class RoutineUnauthorizedError(RoutineStoreError):
    """Raised when a routine exists but belongs to another user."""

    def __init__(self, routine_id: str, user_id: int) -> None:
        super().__init__(f"User {user_id} may not access routine {routine_id!r}")
        self.routine_id = routine_id
        self.user_id = user_id


class PersistenceFailure(RoutineStoreError):
    """Opaque storage failure. Not retried; surfaced to the caller."""


class RoutineRepository(Protocol):
    """Abstract routine storage used by core modules."""

    async def create(self, routine: Routine) -> Routine: ...

    async def get(self, routine_id: str, user_id: int) -> Routine: ...

    async def list_for_user(self, user_id: int) -> list[Routine]: ...

    async def list_notifying(self) -> list[Routine]: ...

    async def update(self, routine: Routine) -> Routine: ...

    async def set_completed(
        self, routine_id: str, user_id: int, completed: bool, updated_at: datetime
    ) -> None:
        """Store the flag and add (or drop) the RoutineRecord for
        updated_at's date, atomically."""

    async def set_order(self, user_id: int, routine_ids: list[str]) -> None: ...

    async def delete(self, routine_id: str, user_id: int) -> None: ...

    async def list_records(self, user_id: int) -> list[RoutineRecord]: ...


class NotificationNotFoundError(RoutineStoreError):
    """Raised when an inbox entry is unknown or belongs to another user."""

    def __init__(self, notification_id: int) -> None:
        super().__init__(f"Notification {notification_id} not found")
        self.notification_id = notification_id


class NotificationInbox(Protocol):
    """Stored history of fired popups, per user."""

    async def add_notification(self, record: NotificationRecord) -> NotificationRecord: ...

    async def list_notifications(
        self, user_id: int, limit: int | None = None
    ) -> list[NotificationRecord]:
        """Newest first."""

    async def mark_notification_read(self, notification_id: int, user_id: int) -> None: ...

    async def count_unread(self, user_id: int) -> int: ...
