import uuid
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from zmemory.core.database import get_db
from zmemory.auth import require_user_id
from zmemory.errors import NotFoundError
from zmemory.services.repository import TimelineItemRepository
from zmemory import schemas

router = APIRouter()

@router.post("", response_model=schemas.TimelineItem, status_code=status.HTTP_201_CREATED)
async def create_timeline_item(
    item_in: schemas.TimelineItemCreate,
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(require_user_id)
):
    item = await TimelineItemRepository(db).create(
        user_id, item_in.type.value, item_in.title, category_id=item_in.category_id
    )
    return schemas.TimelineItem.model_validate(item)

@router.get("/{item_id}", response_model=schemas.TimelineItem)
async def get_timeline_item(
    item_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(require_user_id)
):
    item = await TimelineItemRepository(db).get_owned(user_id, item_id)
    if item is None:
        raise NotFoundError("Timeline item not found")
    return schemas.TimelineItem.model_validate(item)
