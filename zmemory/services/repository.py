import uuid
import logging
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import select, func, literal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from zmemory.core.models import TimeEntry, TimelineItem, UTCDateTime

logger = logging.getLogger(__name__)

# Every entry handed to the serializer needs its category joined
ENTRY_LOAD_OPTIONS = (selectinload(TimeEntry.category),)


class TimelineItemRepository:
    """Ownership checks and creation for timeline items."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_owned(
        self,
        user_id: uuid.UUID,
        item_id: uuid.UUID,
        item_type: Optional[str] = None,
    ) -> Optional[TimelineItem]:
        query = select(TimelineItem).where(
            TimelineItem.id == item_id,
            TimelineItem.user_id == user_id,
        )
        if item_type is not None:
            query = query.where(TimelineItem.type == item_type)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def create(
        self,
        user_id: uuid.UUID,
        item_type: str,
        title: str,
        category_id: Optional[uuid.UUID] = None,
    ) -> TimelineItem:
        item = TimelineItem(user_id=user_id, type=item_type, title=title, category_id=category_id)
        self.db.add(item)
        await self.db.commit()
        await self.db.refresh(item)
        return item


class TimeEntryRepository:
    """User-scoped reads and writes against time_entries."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _select(self, user_id: uuid.UUID):
        return (
            select(TimeEntry)
            .options(*ENTRY_LOAD_OPTIONS)
            .where(TimeEntry.user_id == user_id)
            .execution_options(populate_existing=True)
        )

    async def get_running(self, user_id: uuid.UUID) -> Optional[TimeEntry]:
        """The user's row with end_at IS NULL, or None."""
        result = await self.db.execute(self._select(user_id).where(TimeEntry.end_at.is_(None)))
        return result.scalar_one_or_none()

    async def get_owned(self, user_id: uuid.UUID, entry_id: uuid.UUID) -> Optional[TimeEntry]:
        result = await self.db.execute(self._select(user_id).where(TimeEntry.id == entry_id))
        return result.scalar_one_or_none()

    async def insert(self, entry: TimeEntry) -> None:
        """Adds and flushes, so constraint violations surface here as IntegrityError."""
        self.db.add(entry)
        await self.db.flush()

    async def delete(self, entry: TimeEntry) -> None:
        await self.db.delete(entry)
        await self.db.flush()

    async def in_window(
        self,
        user_id: uuid.UUID,
        window_start: datetime,
        window_end: datetime,
        now: datetime,
    ) -> Sequence[TimeEntry]:
        """
        Entries overlapping [window_start, window_end).
        A running entry counts as extending to ``now``.
        """
        effective_end = func.coalesce(TimeEntry.end_at, literal(now, UTCDateTime()))
        result = await self.db.execute(
            self._select(user_id)
            .where(
                TimeEntry.start_at < window_end,
                effective_end >= window_start,
            )
            .order_by(TimeEntry.start_at.asc())
        )
        return result.scalars().all()

    async def for_item(
        self,
        user_id: uuid.UUID,
        item_id: uuid.UUID,
        start_from: Optional[datetime] = None,
        start_to: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[TimeEntry]:
        query = self._select(user_id).where(TimeEntry.timeline_item_id == item_id)
        if start_from is not None:
            query = query.where(TimeEntry.start_at >= start_from)
        if start_to is not None:
            query = query.where(TimeEntry.start_at <= start_to)
        query = query.order_by(TimeEntry.start_at.desc()).offset(offset).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())
