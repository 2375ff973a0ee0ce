"""Resolve the clinician of record for a report.

File naming, report attribution and the per-clinician verification flag
all key off the resolved owner, not the acting user.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from radflow.core.config import settings
from radflow.core.exceptions import InvalidArgument
from radflow.core.structured_logging import build_log_context
from radflow.db.enums import ROLES_REPORT_ON_BEHALF, OwnerResolution
from radflow.db.models import Study, User
from radflow.schemas.auth import UserSession
from radflow.services import audit_service, study_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReportOwner:
    doctor_id: UUID
    doctor_name: str
    resolution: OwnerResolution

    @property
    def degraded(self) -> bool:
        """Attribution fell back to the admin because nobody is assigned."""
        return self.resolution == OwnerResolution.ADMIN_FALLBACK


def resolve_report_owner(
    db: Session,
    acting_user: UserSession,
    study: Study,
) -> ReportOwner:
    """
    Determine who owns a report written by ``acting_user`` on ``study``.

    - Clinicians (and any non-admin role) own what they write.
    - Admins write on behalf of the clinician in the most recent assignment.
    - Admin with no assignment: falls back to the admin (degraded, audited)
      when ALLOW_ADMIN_OWNER_FALLBACK is on, otherwise InvalidArgument.
    """
    if acting_user.role not in ROLES_REPORT_ON_BEHALF:
        return ReportOwner(
            doctor_id=acting_user.user_id,
            doctor_name=acting_user.full_name,
            resolution=OwnerResolution.SELF,
        )

    assignment = study_service.get_latest_assignment(db, study.id)
    if assignment is not None:
        doctor = db.get(User, assignment.assigned_to_user_id)
        if doctor is None:
            logger.warning(
                "Assigned clinician %s not found; keeping assignment id with admin name",
                assignment.assigned_to_user_id,
                extra=build_log_context(study_id=study.id),
            )
        return ReportOwner(
            doctor_id=assignment.assigned_to_user_id,
            doctor_name=doctor.full_name if doctor else acting_user.full_name,
            resolution=OwnerResolution.ASSIGNED,
        )

    if not settings.ALLOW_ADMIN_OWNER_FALLBACK:
        raise InvalidArgument("Study has no assigned clinician; assign it before reporting")

    logger.warning(
        "Admin writing report on unassigned study; attributing to admin",
        extra=build_log_context(
            user_id=acting_user.user_id,
            org_id=study.organization_id,
            study_id=study.id,
            operation="resolve_report_owner",
        ),
    )
    audit_service.log_owner_fallback(
        db,
        org_id=study.organization_id,
        admin_user_id=acting_user.user_id,
        study_id=study.id,
    )
    return ReportOwner(
        doctor_id=acting_user.user_id,
        doctor_name=acting_user.full_name,
        resolution=OwnerResolution.ADMIN_FALLBACK,
    )
