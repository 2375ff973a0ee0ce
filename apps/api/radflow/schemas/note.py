"""Pydantic schemas for study discussion notes."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from radflow.db.enums import NoteType


class NoteCreate(BaseModel):
    """Request to add a discussion note."""

    note_text: str = Field(..., min_length=1, max_length=4000)
    note_type: NoteType = NoteType.GENERAL
    priority: str = "normal"
    is_private: bool = False


class NoteRead(BaseModel):
    """Note response."""

    id: UUID
    study_id: UUID
    note_text: str
    note_type: str
    priority: str
    created_by_user_id: UUID | None
    created_by_name: str
    created_by_role: str | None
    copied_from_note_id: UUID | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
