"""
Timer control over a user's time entries.

A user has at most one running entry (``end_at IS NULL``). The service reads
the running entry for early rejection and readable errors, but the partial
unique index on ``time_entries(user_id) WHERE end_at IS NULL`` is what
actually enforces it: a start that loses a race hits that index on insert and
is reported as the same ConflictError the pre-check would have produced.

Nothing about the running timer is kept in process memory; every call
re-reads it from the database.
"""
import uuid
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from zmemory.core.models import TimeEntry, TimelineItem, TimeEntrySource
from zmemory.core.utils import utcnow, ensure_utc, compute_duration_minutes, is_unique_violation
from zmemory.errors import ConflictError, NotFoundError, ValidationError
from zmemory.services.repository import TimeEntryRepository, TimelineItemRepository

logger = logging.getLogger(__name__)


class TimerService:
    """Start/stop/query/edit operations for one request's database session."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.entries = TimeEntryRepository(db)
        self.items = TimelineItemRepository(db)

    # --- Queries ---

    async def get_running_timer(self, user_id: uuid.UUID) -> Optional[TimeEntry]:
        return await self.entries.get_running(user_id)

    async def query_entries_in_window(
        self,
        user_id: uuid.UUID,
        from_: datetime,
        to: datetime,
    ) -> Sequence[TimeEntry]:
        window_start, window_end = ensure_utc(from_), ensure_utc(to)
        if window_end <= window_start:
            raise ValidationError("'to' must be after 'from'", details={"bound": "window"})
        return await self.entries.in_window(user_id, window_start, window_end, utcnow())

    async def list_item_entries(
        self,
        user_id: uuid.UUID,
        timeline_item_id: uuid.UUID,
        from_: Optional[datetime] = None,
        to: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
        item_type: Optional[str] = None,
    ) -> List[TimeEntry]:
        await self._require_item(user_id, timeline_item_id, item_type)
        return await self.entries.for_item(
            user_id, timeline_item_id, ensure_utc(from_), ensure_utc(to), limit, offset
        )

    # --- Timer control ---

    async def start_timer(
        self,
        user_id: uuid.UUID,
        timeline_item_id: uuid.UUID,
        auto_switch: bool = False,
        override_start_at: Optional[datetime] = None,
        item_type: Optional[str] = None,
    ) -> Tuple[TimeEntry, bool]:
        """
        Starts a timer on the item and returns ``(entry, created)``.

        Starting the item that is already running returns that entry with
        ``created=False``. A different running item raises ConflictError,
        unless ``auto_switch`` is set, in which case it is stopped in the same
        transaction as the new insert.
        """
        return await self._start(
            user_id,
            timeline_item_id,
            auto_switch=auto_switch,
            start_at=override_start_at,
            item_type=item_type,
        )

    async def stop_timer(
        self,
        user_id: uuid.UUID,
        timeline_item_id: uuid.UUID,
        override_end_at: Optional[datetime] = None,
    ) -> Optional[TimeEntry]:
        """
        Stops the running timer if it belongs to the item.
        Returns None when nothing is running.
        """
        running = await self.entries.get_running(user_id)
        if running is None:
            return None
        if running.timeline_item_id != timeline_item_id:
            raise NotFoundError("No running timer for this task")

        now = utcnow()
        if override_end_at is None:
            end_at = now
        else:
            end_at = ensure_utc(override_end_at)
            if end_at > now:
                raise ValidationError(
                    "overrideEndAt cannot be in the future",
                    details={"bound": "future", "now": now.isoformat()},
                )
            if end_at <= running.start_at:
                raise ValidationError(
                    "overrideEndAt must be after the timer's start",
                    details={"bound": "before_start", "start_at": running.start_at.isoformat()},
                )

        self._close(running, end_at)
        await self.db.commit()
        logger.info(f"Stopped timer {running.id} for user {user_id} ({running.duration_minutes} min)")
        return await self.entries.get_owned(user_id, running.id)

    # --- Entry maintenance ---

    async def create_time_entry(
        self,
        user_id: uuid.UUID,
        timeline_item_id: uuid.UUID,
        start_at: datetime,
        end_at: Optional[datetime] = None,
        note: Optional[str] = None,
        source: str = TimeEntrySource.MANUAL.value,
        item_type: Optional[str] = None,
    ) -> TimeEntry:
        """
        Records an entry by hand. Without ``end_at`` the entry is a running
        timer and replaces whatever else is running, including an earlier
        run of the same item.
        """
        if end_at is None:
            entry, _ = await self._start(
                user_id,
                timeline_item_id,
                auto_switch=True,
                start_at=start_at,
                item_type=item_type,
                note=note,
                source=source,
                restart=True,
            )
            return entry

        start_at, end_at = ensure_utc(start_at), ensure_utc(end_at)
        if end_at <= start_at:
            raise ValidationError("end_at must be after start_at", details={"bound": "before_start"})
        item = await self._require_item(user_id, timeline_item_id, item_type)
        entry = self._new_entry(user_id, item, start_at, note=note, source=source)
        self._close(entry, end_at)
        await self.entries.insert(entry)
        await self.db.commit()
        return await self.entries.get_owned(user_id, entry.id)

    async def edit_time_entry(
        self,
        user_id: uuid.UUID,
        entry_id: uuid.UUID,
        start_at: Optional[datetime] = None,
        end_at: Optional[datetime] = None,
        note: Optional[str] = None,
    ) -> TimeEntry:
        entry = await self._require_entry(user_id, entry_id)
        new_start = ensure_utc(start_at) if start_at is not None else entry.start_at
        new_end = ensure_utc(end_at) if end_at is not None else entry.end_at
        if new_end is not None and new_end <= new_start:
            raise ValidationError("end_at must be after start_at", details={"bound": "before_start"})

        entry.start_at = new_start
        entry.end_at = new_end
        entry.duration_minutes = compute_duration_minutes(new_start, new_end)
        if note is not None:
            entry.note = note
        await self.db.commit()
        return await self.entries.get_owned(user_id, entry.id)

    async def delete_time_entry(self, user_id: uuid.UUID, entry_id: uuid.UUID) -> None:
        entry = await self._require_entry(user_id, entry_id)
        await self.entries.delete(entry)
        await self.db.commit()
        logger.info(f"Deleted time entry {entry_id} for user {user_id}")

    # --- Internals ---

    async def _start(
        self,
        user_id: uuid.UUID,
        timeline_item_id: uuid.UUID,
        auto_switch: bool,
        start_at: Optional[datetime] = None,
        item_type: Optional[str] = None,
        note: Optional[str] = None,
        source: str = TimeEntrySource.TIMER.value,
        restart: bool = False,
    ) -> Tuple[TimeEntry, bool]:
        now = utcnow()
        start_at = ensure_utc(start_at) if start_at is not None else now
        if start_at > now:
            raise ValidationError(
                "overrideStartAt cannot be in the future",
                details={"bound": "future", "now": now.isoformat()},
            )

        item = await self._require_item(user_id, timeline_item_id, item_type)
        running = await self.entries.get_running(user_id)
        if running is not None:
            if running.timeline_item_id == item.id and not restart:
                return running, False
            if running.timeline_item_id != item.id and not auto_switch:
                raise ConflictError(entry=running)
            self._close(running, now)
            await self.db.flush()
            logger.info(f"Auto-switched user {user_id} from item {running.timeline_item_id} to {item.id}")

        entry = self._new_entry(user_id, item, start_at, note=note, source=source)
        try:
            await self.entries.insert(entry)
        except IntegrityError as exc:
            await self.db.rollback()
            if not is_unique_violation(exc):
                raise
            # Another start for this user committed between our read and insert
            winner = await self.entries.get_running(user_id)
            if winner is not None and winner.timeline_item_id == timeline_item_id and not restart:
                # A duplicate start of the same item won; treat it as a repeat
                return winner, False
            logger.warning(f"Timer start for user {user_id} lost a race to entry {getattr(winner, 'id', None)}")
            raise ConflictError(entry=winner) from exc

        await self.db.commit()
        logger.info(f"Started timer {entry.id} on {item.type} {item.id} for user {user_id}")
        return await self.entries.get_owned(user_id, entry.id), True

    async def _require_item(
        self,
        user_id: uuid.UUID,
        item_id: uuid.UUID,
        item_type: Optional[str] = None,
    ) -> TimelineItem:
        item = await self.items.get_owned(user_id, item_id, item_type)
        if item is None:
            label = item_type.capitalize() if item_type else "Timeline item"
            raise NotFoundError(f"{label} not found")
        return item

    async def _require_entry(self, user_id: uuid.UUID, entry_id: uuid.UUID) -> TimeEntry:
        entry = await self.entries.get_owned(user_id, entry_id)
        if entry is None:
            raise NotFoundError("Time entry not found")
        return entry

    @staticmethod
    def _new_entry(
        user_id: uuid.UUID,
        item: TimelineItem,
        start_at: datetime,
        note: Optional[str] = None,
        source: str = TimeEntrySource.TIMER.value,
    ) -> TimeEntry:
        return TimeEntry(
            id=uuid.uuid4(),
            user_id=user_id,
            timeline_item_id=item.id,
            timeline_item_type=item.type,
            timeline_item_title=item.title,
            category_id_snapshot=item.category_id,
            start_at=start_at,
            end_at=None,
            note=note,
            source=source,
        )

    @staticmethod
    def _close(entry: TimeEntry, end_at: datetime) -> None:
        # end_at must stay strictly after start_at (te_time_order_chk)
        if end_at <= entry.start_at:
            end_at = entry.start_at + timedelta(microseconds=1)
        entry.end_at = end_at
        entry.duration_minutes = compute_duration_minutes(entry.start_at, end_at)
