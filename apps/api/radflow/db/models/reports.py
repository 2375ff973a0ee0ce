"""Report model."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Index, Integer, String, Text, Uuid, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from radflow.db.base import Base
from radflow.db.enums import OwnerResolution, ReportStatus, ReportType
from radflow.db.types import JSONType, utcnow

if TYPE_CHECKING:
    from radflow.db.models.studies import Study


class Report(Base):
    """
    Diagnostic report for a (study, clinician) pair.

    Draft and finalized are the same row transitioning in place; a new row
    is only created when none exists for the pair. History lists are JSON
    arrays capped from the oldest end (see settings.REPORT_*_CAP).

    ``doctor_id`` is the clinician of record; ``created_by_user_id`` is the
    actor, which differs when an admin reports on a clinician's behalf.
    """

    __tablename__ = "reports"
    __table_args__ = (
        Index("idx_reports_study_doctor", "study_id", "doctor_id", "created_at"),
        Index("idx_reports_org_status", "organization_id", "report_status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    report_id: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)

    organization_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True
    )
    organization_identifier: Mapped[str | None] = mapped_column(String(32), nullable=True)
    study_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("studies.id", ondelete="CASCADE"), nullable=False
    )
    patient_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("patients.id", ondelete="SET NULL"), nullable=True
    )
    patient_external_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # Ownership
    doctor_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    owner_resolution: Mapped[str] = mapped_column(
        String(32), default=OwnerResolution.SELF.value, nullable=False
    )

    report_type: Mapped[str] = mapped_column(String(32), default=ReportType.DRAFT.value, nullable=False)
    report_status: Mapped[str] = mapped_column(String(32), default=ReportStatus.DRAFT.value, nullable=False)

    # Content
    html_content: Mapped[str] = mapped_column(Text, default="", nullable=False)
    template_info: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    placeholders: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    captured_images: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)

    # Statistics (recomputed on every save)
    word_count: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"), nullable=False)
    character_count: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"), nullable=False)
    page_count: Mapped[int] = mapped_column(Integer, default=1, server_default=text("1"), nullable=False)
    image_count: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"), nullable=False)

    # Export
    export_format: Mapped[str] = mapped_column(String(8), default="docx", nullable=False)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    download_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    rendered_storage_key: Mapped[str | None] = mapped_column(String(512), nullable=True)

    # Denormalized snapshots
    patient_info: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    study_info: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    # Workflow
    drafted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    finalized_at: Mapped[datetime | None] = mapped_column(nullable=True)
    status_history: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)

    # Verification
    verification_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    verifier_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    verified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    verification_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    corrections: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    verification_history: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)

    # Usage
    download_count: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"), nullable=False)
    last_downloaded_at: Mapped[datetime | None] = mapped_column(nullable=True)
    download_history: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    print_count: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"), nullable=False)
    last_printed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    print_history: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)

    copied_from_report_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False
    )

    study: Mapped[Study] = relationship()
