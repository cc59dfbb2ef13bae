import uuid
from datetime import datetime
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from zmemory.core.database import get_db
from zmemory.auth import require_user_id
from zmemory.services.timer import TimerService
from zmemory import schemas

router = APIRouter()

@router.get("/running", response_model=schemas.EntryResponse)
async def get_running_timer(
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(require_user_id)
):
    entry = await TimerService(db).get_running_timer(user_id)
    return {"entry": schemas.serialize_entry(entry) if entry else None}

@router.get("/day", response_model=schemas.EntriesResponse)
async def read_entries_in_window(
    from_: datetime = Query(..., alias="from", description="Window start (ISO 8601), inclusive"),
    to: datetime = Query(..., description="Window end (ISO 8601), exclusive"),
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(require_user_id)
):
    """
    Entries overlapping [from, to), oldest first. A running entry is treated
    as lasting until now.
    """
    entries = await TimerService(db).query_entries_in_window(user_id, from_, to)
    return {"entries": schemas.serialize_entries(entries, include_category=True)}

@router.put("/{entry_id}", response_model=schemas.EntryResponse)
async def update_time_entry(
    entry_id: uuid.UUID,
    entry_update: schemas.TimeEntryUpdate,
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(require_user_id)
):
    entry = await TimerService(db).edit_time_entry(
        user_id,
        entry_id,
        start_at=entry_update.start_at,
        end_at=entry_update.end_at,
        note=entry_update.note,
    )
    return {"entry": schemas.serialize_entry(entry)}

@router.delete("/{entry_id}", response_model=schemas.SuccessResponse)
async def delete_time_entry(
    entry_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(require_user_id)
):
    await TimerService(db).delete_time_entry(user_id, entry_id)
    return {"success": True}
