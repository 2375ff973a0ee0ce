"""Patient model."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, String, Text, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from radflow.db.base import Base
from radflow.db.types import utcnow


class Patient(Base):
    """
    Patient stub, unique per (organization, external patient ID).

    Workflow fields mirror the active study; they are updated best-effort
    after the study commit and may lag behind it.
    """

    __tablename__ = "patients"
    __table_args__ = (
        UniqueConstraint("organization_id", "patient_external_id", name="uq_patients_org_external_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    organization_identifier: Mapped[str] = mapped_column(String(32), nullable=False)
    patient_external_id: Mapped[str] = mapped_column(String(128), nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    age: Mapped[str | None] = mapped_column(String(32), nullable=True)
    gender: Mapped[str | None] = mapped_column(String(16), nullable=True)
    date_of_birth: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Best-effort mirror of the active study
    current_workflow_status: Mapped[str | None] = mapped_column(String(64), nullable=True)
    active_study_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    last_activity_at: Mapped[datetime | None] = mapped_column(nullable=True)
    status_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, server_default=func.now(), nullable=False)
