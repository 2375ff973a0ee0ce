"""Tenant, lab, user and clinician profile models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from radflow.db.base import Base
from radflow.db.types import JSONType, utcnow

# Clinicians route finalized reports through a verifier unless turned off.
DEFAULT_DOCTOR_REQUIRES_VERIFICATION = True


class Organization(Base):
    """
    A tenant in the multi-tenant system.

    Studies, reports and patients never cross organizations except through
    the explicit study copy operation.
    """

    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    identifier: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=text("TRUE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, server_default=func.now(), nullable=False)


class Lab(Base):
    """
    Sub-tenant (imaging center) inside an organization.

    ``require_report_verification`` is OR-combined with the clinician's own
    setting when a report is finalized.
    """

    __tablename__ = "labs"
    __table_args__ = (
        UniqueConstraint("organization_id", "identifier", name="uq_labs_org_identifier"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    identifier: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    require_report_verification: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("FALSE"), nullable=False
    )

    # Report branding (optional; used when rendering)
    header_image_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    footer_image_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    branding: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, server_default=func.now(), nullable=False)


class User(Base):
    """Application user; belongs to exactly one organization."""

    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_org_role", "organization_id", "role"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True
    )  # NULL for super_admin
    organization_identifier: Mapped[str | None] = mapped_column(String(32), nullable=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=text("TRUE"), nullable=False)
    token_version: Mapped[int] = mapped_column(Integer, default=1, server_default=text("1"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, server_default=func.now(), nullable=False)

    doctor_profile: Mapped[DoctorProfile | None] = relationship(
        back_populates="user", uselist=False
    )


class DoctorProfile(Base):
    """Per-clinician configuration (verification requirement, signature)."""

    __tablename__ = "doctor_profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    organization_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True
    )
    specialization: Mapped[str | None] = mapped_column(String(255), nullable=True)
    require_report_verification: Mapped[bool] = mapped_column(
        Boolean,
        default=DEFAULT_DOCTOR_REQUIRES_VERIFICATION,
        server_default=text("TRUE"),
        nullable=False,
    )
    signature_storage_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    signature_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, server_default=func.now(), nullable=False)

    user: Mapped[User] = relationship(back_populates="doctor_profile")
