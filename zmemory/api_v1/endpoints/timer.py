"""
Timer and per-item time entry routes.

The same handlers are mounted under ``/tasks`` and ``/activities``, where the
item must be of that type (the legacy client), and under ``/timeline-items``
for any kind of timeline item.
"""
import uuid
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from zmemory.core.database import get_db
from zmemory.core.models import TimelineItemType
from zmemory.core.settings import settings
from zmemory.auth import require_user_id
from zmemory.services.timer import TimerService
from zmemory import schemas


def build_router(item_type: Optional[str] = None) -> APIRouter:
    router = APIRouter()

    @router.post("/{item_id}/timer/start", response_model=schemas.EntryResponse, status_code=status.HTTP_201_CREATED)
    async def start_timer(
        item_id: uuid.UUID,
        response: Response,
        body: Optional[schemas.StartTimerRequest] = None,
        db: AsyncSession = Depends(get_db),
        user_id: uuid.UUID = Depends(require_user_id)
    ):
        body = body or schemas.StartTimerRequest()
        entry, created = await TimerService(db).start_timer(
            user_id,
            item_id,
            auto_switch=body.auto_switch,
            override_start_at=body.override_start_at,
            item_type=item_type,
        )
        if not created:
            response.status_code = status.HTTP_200_OK
        return {"entry": schemas.serialize_entry(entry)}

    @router.post("/{item_id}/timer/stop", response_model=schemas.EntryResponse)
    async def stop_timer(
        item_id: uuid.UUID,
        body: Optional[schemas.StopTimerRequest] = None,
        db: AsyncSession = Depends(get_db),
        user_id: uuid.UUID = Depends(require_user_id)
    ):
        body = body or schemas.StopTimerRequest()
        entry = await TimerService(db).stop_timer(user_id, item_id, override_end_at=body.override_end_at)
        return {"entry": schemas.serialize_entry(entry) if entry else None}

    @router.get("/{item_id}/time-entries", response_model=schemas.EntriesResponse)
    async def list_time_entries(
        item_id: uuid.UUID,
        from_: Optional[datetime] = Query(None, alias="from", description="Only entries starting at or after this time"),
        to: Optional[datetime] = Query(None, description="Only entries starting at or before this time"),
        limit: int = Query(settings.DEFAULT_PAGE_LIMIT, ge=1, le=settings.MAX_PAGE_LIMIT),
        offset: int = Query(0, ge=0),
        db: AsyncSession = Depends(get_db),
        user_id: uuid.UUID = Depends(require_user_id)
    ):
        entries = await TimerService(db).list_item_entries(
            user_id, item_id, from_=from_, to=to, limit=limit, offset=offset, item_type=item_type
        )
        return {"entries": schemas.serialize_entries(entries)}

    @router.post("/{item_id}/time-entries", response_model=schemas.EntryResponse, status_code=status.HTTP_201_CREATED)
    async def create_time_entry(
        item_id: uuid.UUID,
        entry_in: schemas.TimeEntryCreate,
        db: AsyncSession = Depends(get_db),
        user_id: uuid.UUID = Depends(require_user_id)
    ):
        entry = await TimerService(db).create_time_entry(
            user_id,
            item_id,
            start_at=entry_in.start_at,
            end_at=entry_in.end_at,
            note=entry_in.note,
            source=entry_in.source,
            item_type=item_type,
        )
        return {"entry": schemas.serialize_entry(entry)}

    return router


tasks_router = build_router(TimelineItemType.TASK.value)
activities_router = build_router(TimelineItemType.ACTIVITY.value)
timeline_items_router = build_router()
