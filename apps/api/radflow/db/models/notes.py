"""Study discussion notes."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, String, Text, Uuid, func, text
from sqlalchemy.orm import Mapped, mapped_column

from radflow.db.base import Base
from radflow.db.enums import NoteType
from radflow.db.types import utcnow


class StudyNote(Base):
    """
    Discussion entry on a study.

    ``created_by_name``/``created_by_role`` are denormalized so a note keeps
    its author label after the author reference is dropped (cross-tenant copies).
    """

    __tablename__ = "study_notes"
    __table_args__ = (
        Index("idx_study_notes_study", "study_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True
    )
    study_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("studies.id", ondelete="CASCADE"), nullable=False
    )
    note_text: Mapped[str] = mapped_column(Text, nullable=False)
    note_type: Mapped[str] = mapped_column(String(32), default=NoteType.GENERAL.value, nullable=False)
    priority: Mapped[str] = mapped_column(String(16), default="normal", nullable=False)
    is_private: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("FALSE"), nullable=False)

    created_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_by_name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_by_role: Mapped[str | None] = mapped_column(String(50), nullable=True)

    copied_from_note_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, server_default=func.now(), nullable=False)
