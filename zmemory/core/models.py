from sqlalchemy import (
    String, Text, Integer, Uuid, ForeignKey, Index, CheckConstraint, DateTime, text
)
from sqlalchemy.orm import relationship, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator
from datetime import datetime
from typing import Optional, List
import uuid as uuid_pkg
import enum

from .database import Base
from .utils import ensure_utc, utcnow, RUNNING_TIMER_INDEX

class TimelineItemType(str, enum.Enum):
    """Kinds of timeline items a time entry can point at."""
    TASK = "task"
    ACTIVITY = "activity"
    ROUTINE = "routine"
    HABIT = "habit"
    MEMORY = "memory"

class TimeEntrySource(str, enum.Enum):
    TIMER = "timer"
    MANUAL = "manual"
    IMPORT = "import"

class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that always binds and loads as UTC."""
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return ensure_utc(value)

    def process_result_value(self, value, dialect):
        return ensure_utc(value)

class User(Base):
    """Represents a user of the ZMemory application."""
    __tablename__ = "users"

    id: Mapped[uuid_pkg.UUID] = mapped_column(Uuid, primary_key=True, default=uuid_pkg.uuid4)
    username: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(Text, nullable=False)

class Category(Base):
    """A user-defined category used to colour timeline items and their time entries."""
    __tablename__ = "categories"

    id: Mapped[uuid_pkg.UUID] = mapped_column(Uuid, primary_key=True, default=uuid_pkg.uuid4)
    user_id: Mapped[uuid_pkg.UUID] = mapped_column(Uuid, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

class TimelineItem(Base):
    """Supertype of everything that can be timed: tasks, activities, routines, habits, memories."""
    __tablename__ = "timeline_items"

    id: Mapped[uuid_pkg.UUID] = mapped_column(Uuid, primary_key=True, default=uuid_pkg.uuid4)
    user_id: Mapped[uuid_pkg.UUID] = mapped_column(Uuid, nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    category_id: Mapped[Optional[uuid_pkg.UUID]] = mapped_column(
        Uuid,
        ForeignKey("categories.id", ondelete="SET NULL"),
        nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    # Relationships
    category = relationship("Category")
    time_entries: Mapped[List["TimeEntry"]] = relationship(
        back_populates="timeline_item", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        CheckConstraint(
            "type IN ('task', 'activity', 'routine', 'habit', 'memory')",
            name="timeline_items_type_chk",
        ),
        Index("idx_timeline_items_user_type", "user_id", "type"),
    )

class TimeEntry(Base):
    """
    One timed interval against a timeline item.

    A row with end_at NULL is the user's running timer; the partial unique
    index below allows at most one of those per user.
    """
    __tablename__ = "time_entries"

    id: Mapped[uuid_pkg.UUID] = mapped_column(Uuid, primary_key=True, default=uuid_pkg.uuid4)
    user_id: Mapped[uuid_pkg.UUID] = mapped_column(Uuid, nullable=False)
    timeline_item_id: Mapped[uuid_pkg.UUID] = mapped_column(
        Uuid,
        ForeignKey("timeline_items.id", ondelete="CASCADE"),
        nullable=False
    )
    start_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    source: Mapped[str] = mapped_column(String(16), nullable=False, default=TimeEntrySource.TIMER.value)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Snapshot fields for query performance
    timeline_item_type: Mapped[str] = mapped_column(String(32), nullable=False)
    timeline_item_title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category_id_snapshot: Mapped[Optional[uuid_pkg.UUID]] = mapped_column(
        Uuid,
        ForeignKey("categories.id", ondelete="SET NULL"),
        nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    timeline_item: Mapped["TimelineItem"] = relationship(back_populates="time_entries")
    category = relationship("Category")

    __table_args__ = (
        CheckConstraint("end_at IS NULL OR end_at > start_at", name="te_time_order_chk"),
        CheckConstraint("source IN ('timer', 'manual', 'import')", name="te_source_chk"),
        Index(
            RUNNING_TIMER_INDEX,
            "user_id",
            unique=True,
            postgresql_where=text("end_at IS NULL"),
            sqlite_where=text("end_at IS NULL"),
        ),
        Index("idx_time_entries_user_timeline_item", "user_id", "timeline_item_id"),
        Index("idx_time_entries_user_start", "user_id", "start_at"),
    )
