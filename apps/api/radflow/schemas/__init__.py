"""Pydantic schemas for API request/response models."""

from radflow.schemas.auth import UserSession
from radflow.schemas.common import ApiResponse
from radflow.schemas.note import NoteCreate, NoteRead
from radflow.schemas.report import (
    CapturedImage,
    RenderReportRequest,
    ReportContentIn,
    ReportRead,
    ReportSummary,
    ReportUsageRequest,
    StoreDraftRequest,
    StoreFinalizedRequest,
)
from radflow.schemas.study import (
    CopyStudyRequest,
    ResolveRevertRequest,
    RevertRequest,
    StudyAssign,
    StudyStatusRead,
    WorkflowStatusUpdate,
)
from radflow.schemas.verification import VerifyReportRequest
