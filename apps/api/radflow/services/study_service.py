"""Study lookup, tenant checks and ingestion-boundary normalization."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from radflow.core.exceptions import InvalidArgument, NotFound, PermissionDenied
from radflow.db.enums import ROLES_CROSS_TENANT
from radflow.db.models import Study, StudyAssignment
from radflow.schemas.auth import UserSession

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "N/A"


# =============================================================================
# Referring physician
# =============================================================================

@dataclass(frozen=True)
class ReferringPhysician:
    name: str = NOT_AVAILABLE
    institution: str = ""
    contact_info: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


def coerce_referring_physician(value: object) -> ReferringPhysician:
    """
    Normalize a referring physician from source data.

    Source rows carry either a bare name string or an object with
    name/institution/contact info; both become a ReferringPhysician.
    """
    if value is None:
        return ReferringPhysician()
    if isinstance(value, ReferringPhysician):
        return value
    if isinstance(value, dict):
        name = value.get("name")
        contact = value.get("contact_info", value.get("contactInfo"))
        return ReferringPhysician(
            name=str(name).strip() if name else NOT_AVAILABLE,
            institution=str(value.get("institution") or ""),
            contact_info=str(contact or ""),
        )
    text = str(value).strip()
    return ReferringPhysician(name=text or NOT_AVAILABLE)


# =============================================================================
# Lookup + access
# =============================================================================

def parse_study_id(study_id: UUID | str | None) -> UUID:
    """Validate a study reference; InvalidArgument when malformed."""
    if isinstance(study_id, UUID):
        return study_id
    try:
        return UUID(str(study_id))
    except (TypeError, ValueError):
        raise InvalidArgument("Invalid study ID")


def get_study(db: Session, study_id: UUID | str) -> Study:
    study = db.get(Study, parse_study_id(study_id))
    if not study:
        raise NotFound("Study not found")
    return study


def get_study_by_external_id(db: Session, external_id: str) -> Study | None:
    return db.execute(
        select(Study).where(Study.external_id == external_id)
    ).scalar_one_or_none()


def check_study_access(study: Study, acting_user: UserSession) -> None:
    """Tenant check; super admins see every organization."""
    if acting_user.role in ROLES_CROSS_TENANT:
        return
    if study.organization_id is None:
        return
    if study.organization_id != acting_user.org_id:
        raise PermissionDenied("Study belongs to a different organization")


def get_study_for_user(
    db: Session,
    study_id: UUID | str,
    acting_user: UserSession,
    *,
    adopt_tenant: bool = False,
) -> Study:
    """
    Load a study the acting user may act on.

    With ``adopt_tenant``, a legacy study with no organization stamped takes
    the acting user's organization (added to the caller's transaction).
    """
    study = get_study(db, study_id)
    check_study_access(study, acting_user)
    if adopt_tenant and study.organization_id is None and acting_user.org_id:
        study.organization_id = acting_user.org_id
        study.organization_identifier = acting_user.organization_identifier
        logger.info("Study %s adopted organization %s", study.id, acting_user.org_id)
    return study


def get_latest_assignment(db: Session, study_id: UUID) -> StudyAssignment | None:
    """Most recent assignment (authoritative)."""
    return db.execute(
        select(StudyAssignment)
        .where(StudyAssignment.study_id == study_id)
        .order_by(StudyAssignment.assigned_at.desc())
        .limit(1)
    ).scalar_one_or_none()
