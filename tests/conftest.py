import os

# Settings are read at import time; point the app at SQLite before anything imports it
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret")

import uuid

import pytest
import pytest_asyncio
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from zmemory.core.database import Base
from zmemory.core.models import TimeEntry, TimelineItem, Category
from zmemory.core.utils import compute_duration_minutes


@pytest.fixture
def db_path(tmp_path):
    """A fresh SQLite file with the full schema, including the running-timer index."""
    path = tmp_path / "zmemory.db"
    engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(engine)
    engine.dispose()
    return path


@pytest.fixture
def sync_engine(db_path):
    engine = create_engine(f"sqlite:///{db_path}")
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_path):
    # NullPool: every session opens its own connection on the running event loop
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def user_id():
    return uuid.uuid4()


@pytest.fixture
def other_user_id():
    return uuid.uuid4()


@pytest.fixture
def make_category(sync_engine):
    def _make(owner_id, name="Deep work", color="#3366ff"):
        with Session(sync_engine, expire_on_commit=False) as s:
            category = Category(user_id=owner_id, name=name, color=color)
            s.add(category)
            s.commit()
            return category
    return _make


@pytest.fixture
def make_item(sync_engine):
    def _make(owner_id, item_type="task", title="Write report", category_id=None):
        with Session(sync_engine, expire_on_commit=False) as s:
            item = TimelineItem(user_id=owner_id, type=item_type, title=title, category_id=category_id)
            s.add(item)
            s.commit()
            return item
    return _make


@pytest.fixture
def make_entry(sync_engine):
    """Inserts a time entry directly, bypassing the service."""
    def _make(owner_id, item, start_at, end_at=None, source="timer", note=None):
        with Session(sync_engine, expire_on_commit=False) as s:
            entry = TimeEntry(
                user_id=owner_id,
                timeline_item_id=item.id,
                timeline_item_type=item.type,
                timeline_item_title=item.title,
                category_id_snapshot=item.category_id,
                start_at=start_at,
                end_at=end_at,
                duration_minutes=compute_duration_minutes(start_at, end_at),
                source=source,
                note=note,
            )
            s.add(entry)
            s.commit()
            return entry
    return _make


@pytest.fixture
def running_entries(sync_engine):
    """Returns the user's rows with end_at NULL, read on a separate connection."""
    def _read(owner_id):
        with Session(sync_engine) as s:
            return s.execute(
                select(TimeEntry).where(TimeEntry.user_id == owner_id, TimeEntry.end_at.is_(None))
            ).scalars().all()
    return _read


@pytest.fixture
def fetch_entry(sync_engine):
    def _fetch(entry_id):
        with Session(sync_engine, expire_on_commit=False) as s:
            return s.get(TimeEntry, entry_id)
    return _fetch
