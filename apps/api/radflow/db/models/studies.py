"""Study aggregate: the study row, its assignments and its status history."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, Uuid, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from radflow.db.base import Base
from radflow.db.enums import DEFAULT_STUDY_STATUS, WorkflowCategory
from radflow.db.types import JSONType, utcnow

if TYPE_CHECKING:
    from radflow.db.models.patients import Patient
    from radflow.db.models.tenancy import Lab


class Study(Base):
    """
    One imaging case.

    ``workflow_status`` and ``current_category`` are written only by
    workflow_status_service. The report summary columns are a denormalized
    view of the reports table, which stays the source of truth.
    """

    __tablename__ = "studies"
    __table_args__ = (
        Index("idx_studies_org_category", "organization_id", "current_category"),
        Index("idx_studies_org_status", "organization_id", "workflow_status"),
        Index("idx_studies_patient", "patient_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    external_id: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)

    # Tenant (nullable for legacy rows; adopted from the first writer)
    organization_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True
    )
    organization_identifier: Mapped[str | None] = mapped_column(String(32), nullable=True)
    source_lab_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("labs.id", ondelete="SET NULL"), nullable=True
    )

    # Patient reference + snapshot
    patient_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("patients.id", ondelete="SET NULL"), nullable=True
    )
    patient_external_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    patient_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    patient_age: Mapped[str | None] = mapped_column(String(32), nullable=True)
    patient_gender: Mapped[str | None] = mapped_column(String(16), nullable=True)

    # Clinical description
    study_instance_uid: Mapped[str | None] = mapped_column(String(128), nullable=True)
    accession_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    study_date: Mapped[datetime | None] = mapped_column(nullable=True)
    modality: Mapped[str | None] = mapped_column(String(32), nullable=True)
    study_description: Mapped[str | None] = mapped_column(String(512), nullable=True)
    exam_description: Mapped[str | None] = mapped_column(String(512), nullable=True)
    series_count: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"), nullable=False)
    instance_count: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"), nullable=False)
    clinical_history: Mapped[str | None] = mapped_column(Text, nullable=True)
    referring_physician: Mapped[dict | None] = mapped_column(JSONType, nullable=True)  # {name, institution, contact_info}
    institution_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    priority: Mapped[str] = mapped_column(String(32), default="NORMAL", server_default=text("'NORMAL'"), nullable=False)

    # Workflow
    workflow_status: Mapped[str] = mapped_column(
        String(64), default=DEFAULT_STUDY_STATUS.value, nullable=False
    )
    current_category: Mapped[str] = mapped_column(
        String(32), default=WorkflowCategory.CREATED.value, nullable=False
    )

    # Report timestamps (stamped once)
    drafted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    finalized_at: Mapped[datetime | None] = mapped_column(nullable=True)
    sent_for_verification_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    downloaded_at: Mapped[datetime | None] = mapped_column(nullable=True)
    printed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    archived_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reporter_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    completed_without_verification: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("FALSE"), nullable=False
    )

    # Verification summary
    verification_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    verified_by_user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    verification_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Revert summary
    is_reverted: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("FALSE"), nullable=False)
    revert_count: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"), nullable=False)
    revert_history: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)

    # Report summary (denormalized)
    has_reports: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("FALSE"), nullable=False)
    latest_report_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    latest_report_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    latest_report_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    report_count: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"), nullable=False)
    last_reported_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_reported_by_user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    report_refs: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)

    # Copy lineage (non-owning; no FK so either side can be archived independently)
    is_copied_study: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("FALSE"), nullable=False)
    copied_from_study_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    copied_from: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    copied_to: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False
    )

    patient: Mapped[Patient | None] = relationship()
    source_lab: Mapped[Lab | None] = relationship()
    assignments: Mapped[list[StudyAssignment]] = relationship(
        back_populates="study",
        order_by="StudyAssignment.assigned_at",
        cascade="all, delete-orphan",
    )
    status_history: Mapped[list[StudyStatusHistory]] = relationship(
        back_populates="study",
        order_by="StudyStatusHistory.changed_at",
        cascade="all, delete-orphan",
    )


class StudyAssignment(Base):
    """Clinician assignment; the most recent row is authoritative."""

    __tablename__ = "study_assignments"
    __table_args__ = (
        Index("idx_study_assignments_study", "study_id", "assigned_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    study_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("studies.id", ondelete="CASCADE"), nullable=False
    )
    assigned_to_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    assigned_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    priority: Mapped[str] = mapped_column(String(32), default="NORMAL", nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(default=utcnow, server_default=func.now(), nullable=False)

    study: Mapped[Study] = relationship(back_populates="assignments")


class StudyStatusHistory(Base):
    """Append-only workflow history (never updated or deleted)."""

    __tablename__ = "study_status_history"
    __table_args__ = (
        Index("idx_study_status_history_study", "study_id", "changed_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    study_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("studies.id", ondelete="CASCADE"), nullable=False
    )
    organization_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    event: Mapped[str] = mapped_column(String(64), nullable=False)  # requested status, e.g. report_finalized
    from_status: Mapped[str | None] = mapped_column(String(64), nullable=True)
    to_status: Mapped[str] = mapped_column(String(64), nullable=False)  # resolved status
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    changed_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    changed_at: Mapped[datetime] = mapped_column(default=utcnow, server_default=func.now(), nullable=False)

    study: Mapped[Study] = relationship(back_populates="status_history")
