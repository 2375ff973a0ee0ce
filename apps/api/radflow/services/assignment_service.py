"""Study assignment to a clinician."""

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from radflow.core.config import settings
from radflow.core.exceptions import InvalidArgument, NotFound, PermissionDenied
from radflow.core.structured_logging import build_log_context
from radflow.db.enums import ROLES_CAN_ASSIGN, ROLES_CLINICIAN, AuditEventType, Role, WorkflowStatus
from radflow.db.models import StudyAssignment, User
from radflow.db.transaction import atomic
from radflow.db.types import utcnow
from radflow.schemas.auth import UserSession
from radflow.services import audit_service, study_service, workflow_status_service
from radflow.services.post_commit import run_post_commit_effects

logger = logging.getLogger(__name__)


def assign_study(
    db: Session,
    study_id: UUID | str,
    doctor_id: UUID,
    acting_user: UserSession,
    priority: str = "NORMAL",
) -> StudyAssignment:
    """
    Assign a study to a clinician.

    Appends an assignment row (the latest one is authoritative) and moves
    the study to assigned_to_doctor.
    """
    if acting_user.role not in ROLES_CAN_ASSIGN:
        raise PermissionDenied("Only admins and assignors can assign studies")

    now = utcnow()
    with atomic(db, operation="study assignment", timeout_seconds=settings.STUDY_COMMIT_TIMEOUT_SECONDS):
        study = study_service.get_study_for_user(db, study_id, acting_user, adopt_tenant=True)

        doctor = db.get(User, doctor_id)
        if doctor is None or not doctor.is_active:
            raise NotFound("Clinician not found")
        if not Role.has_value(doctor.role) or Role(doctor.role) not in ROLES_CLINICIAN:
            raise InvalidArgument("Studies can only be assigned to clinicians")
        if study.organization_id and doctor.organization_id != study.organization_id:
            raise PermissionDenied("Clinician belongs to a different organization")

        assignment = StudyAssignment(
            study_id=study.id,
            assigned_to_user_id=doctor.id,
            assigned_by_user_id=acting_user.user_id,
            priority=priority,
            assigned_at=now,
        )
        db.add(assignment)
        study.priority = priority
        result = workflow_status_service.apply_transition(
            db,
            study,
            WorkflowStatus.ASSIGNED_TO_DOCTOR,
            user_id=acting_user.user_id,
            note=f"Assigned to {doctor.full_name}",
            now=now,
        )
        audit_service.log_event(
            db,
            org_id=study.organization_id,
            event_type=AuditEventType.STUDY_ASSIGNED,
            actor_user_id=acting_user.user_id,
            target_id=study.id,
            details={"doctor_id": str(doctor.id), "priority": priority},
        )

    logger.info(
        "Study assigned",
        extra=build_log_context(user_id=acting_user.user_id, study_id=assignment.study_id, operation="assign_study"),
    )
    run_post_commit_effects(db, result["post_commit"])
    return assignment
