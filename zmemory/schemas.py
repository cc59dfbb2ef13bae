from pydantic import BaseModel, Field, ConfigDict, AliasChoices
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime
import uuid

from zmemory.core.models import TimelineItemType

# Base schemas
class BaseSchema(BaseModel):
    """Base schema for all Pydantic models to inherit from."""
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

# Token schemas
class Token(BaseSchema):
    """Schema for an authentication token."""
    access_token: str
    token_type: str = "bearer"

class User(BaseSchema):
    """Schema for the authenticated user."""
    id: uuid.UUID
    username: str

# Timeline item schemas
class TimelineItemCreate(BaseSchema):
    """Schema for creating a timeline item that can later be timed."""
    type: TimelineItemType = TimelineItemType.TASK
    title: str = Field(..., min_length=1, max_length=500)
    category_id: Optional[uuid.UUID] = None

class TimelineItem(BaseSchema):
    """Schema for a timeline item as returned by the API."""
    id: uuid.UUID
    type: str
    title: str
    category_id: Optional[uuid.UUID] = None
    created_at: datetime

# Timer request bodies
class StartTimerRequest(BaseSchema):
    """Body of a timer start request. Field names follow the web client (camelCase)."""
    auto_switch: bool = Field(False, alias="autoSwitch")
    override_start_at: Optional[datetime] = Field(None, alias="overrideStartAt")

class StopTimerRequest(BaseSchema):
    """Body of a timer stop request."""
    override_end_at: Optional[datetime] = Field(None, alias="overrideEndAt")

# Time entry request bodies
class TimeEntryCreate(BaseSchema):
    """Schema for manually creating a time entry against a timeline item."""
    start_at: datetime = Field(..., validation_alias=AliasChoices("start_at", "started_at"))
    end_at: Optional[datetime] = Field(None, validation_alias=AliasChoices("end_at", "ended_at"))
    note: Optional[str] = Field(None, validation_alias=AliasChoices("note", "notes"))
    source: Literal["timer", "manual", "import"] = "manual"

class TimeEntryUpdate(BaseSchema):
    """Schema for correcting an existing time entry."""
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    note: Optional[str] = None

# Time entry response schemas
class TimeEntry(BaseSchema):
    """Schema for a time entry as stored. Compatibility fields are added by serialize_entry."""
    id: uuid.UUID
    timeline_item_id: uuid.UUID
    timeline_item_type: str
    timeline_item_title: Optional[str] = None
    start_at: datetime
    end_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    note: Optional[str] = None
    source: str
    category_id_snapshot: Optional[uuid.UUID] = None

class CategoryRef(BaseSchema):
    """Category fields joined onto day-view entries."""
    id: uuid.UUID
    name: str
    color: Optional[str] = None

class EntryResponse(BaseSchema):
    entry: Optional[Dict[str, Any]] = None

class EntriesResponse(BaseSchema):
    entries: List[Dict[str, Any]]

class SuccessResponse(BaseSchema):
    success: bool = True

class ErrorResponse(BaseSchema):
    """Body of every error response."""
    error: str
    details: Optional[Any] = None


def serialize_entry(entry, include_category: bool = False) -> Dict[str, Any]:
    """
    Converts a TimeEntry row into its JSON shape.

    Legacy consumers read ``task_id`` (and ``activity_id``) instead of
    ``timeline_item_id``; these keys are derived here and never stored.
    The entry's ``category`` relationship must already be loaded.
    """
    data = TimeEntry.model_validate(entry).model_dump(mode="json")
    category = entry.category
    data["category_name"] = category.name if category else None
    data["category_color"] = category.color if category else None
    if include_category:
        data["category"] = CategoryRef.model_validate(category).model_dump(mode="json") if category else None

    if entry.timeline_item_type == TimelineItemType.TASK.value:
        data["task_id"] = data["timeline_item_id"]
    elif entry.timeline_item_type == TimelineItemType.ACTIVITY.value:
        data["activity_id"] = data["timeline_item_id"]
    return data


def serialize_entries(entries, include_category: bool = False) -> List[Dict[str, Any]]:
    return [serialize_entry(entry, include_category=include_category) for entry in entries]
