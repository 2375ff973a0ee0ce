"""Pydantic schemas for studies, assignment and cross-organization copy."""

from uuid import UUID

from pydantic import BaseModel, Field

from radflow.db.enums import WorkflowStatus


class WorkflowStatusUpdate(BaseModel):
    status: str
    note: str | None = Field(default=None, max_length=2000)


class StudyAssign(BaseModel):
    doctor_id: UUID
    priority: str = "NORMAL"


class CopyStudyRequest(BaseModel):
    target_organization: str = Field(..., min_length=1, max_length=32)
    reason: str | None = Field(default=None, max_length=1000)
    copy_attachments: bool = True
    copy_reports: bool = True
    copy_notes: bool = True


class RevertRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)


class ResolveRevertRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=2000)


class StudyStatusRead(BaseModel):
    study_id: UUID
    external_id: str
    workflow_status: WorkflowStatus
    current_category: str
