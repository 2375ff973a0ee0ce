"""Pydantic schemas for reports."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from radflow.db.enums import ExportFormat


class CapturedImage(BaseModel):
    """Key image captured from the viewer (base64 payload)."""

    image_data: str
    view_port_id: str | None = None
    title: str | None = None
    width: int | None = None
    height: int | None = None
    captured_at: datetime | None = None


class ReportContentIn(BaseModel):
    """Report body submitted on draft save / finalize."""

    html_content: str = ""
    placeholders: dict[str, str] = Field(default_factory=dict)
    template_name: str | None = None
    template_id: str | None = None
    template_info: dict | None = None
    captured_images: list[CapturedImage] = Field(default_factory=list)

    def body(self) -> str:
        """Report body; the ``--Content--`` placeholder is the fallback."""
        return self.html_content or self.placeholders.get("--Content--", "")


class StoreDraftRequest(ReportContentIn):
    pass


class StoreFinalizedRequest(ReportContentIn):
    format: ExportFormat = ExportFormat.DOCX


class ReportSummary(BaseModel):
    """Returned by draft save and finalize."""

    report_id: str
    id: UUID
    file_name: str | None
    report_status: str
    report_type: str
    doctor_id: UUID | None
    doctor_name: str
    created_by_user_id: UUID | None
    owner_resolution: str
    study_workflow_status: str
    study_category: str
    requires_verification: bool = False
    next_step: str | None = None
    enrichment: dict = Field(default_factory=dict)  # lab branding / signature, when available
    created_at: datetime


class ReportRead(BaseModel):
    id: UUID
    report_id: str
    study_id: UUID
    doctor_id: UUID | None
    created_by_user_id: UUID | None
    owner_resolution: str
    report_type: str
    report_status: str
    html_content: str
    word_count: int
    character_count: int
    page_count: int
    image_count: int
    export_format: str
    file_name: str | None
    download_url: str | None
    verification_status: str | None
    rejection_reason: str | None
    download_count: int
    print_count: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ReportUsageRequest(BaseModel):
    """Download / print event."""

    usage_type: str = "final"  # draft | final | reprint


class RenderReportRequest(BaseModel):
    format: ExportFormat | None = None
