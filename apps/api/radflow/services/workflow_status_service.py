"""Study workflow status coordinator.

The only writer of ``Study.workflow_status`` / ``Study.current_category``.
Transitions are applied to the caller's transaction (flushed, never
committed); patient propagation is returned as a post-commit effect.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TypedDict
from uuid import UUID

from sqlalchemy.orm import Session

from radflow.core.config import settings
from radflow.core.exceptions import InvalidArgument
from radflow.core.structured_logging import build_log_context
from radflow.db.enums import (
    DEFAULT_STUDY_STATUS,
    DOWNLOAD_STATUSES,
    PRINT_STATUSES,
    WorkflowStatus,
    category_for,
)
from radflow.db.models import DoctorProfile, Lab, Patient, Study, StudyStatusHistory
from radflow.db.models.tenancy import DEFAULT_DOCTOR_REQUIRES_VERIFICATION
from radflow.db.transaction import atomic
from radflow.db.types import utcnow
from radflow.schemas.auth import UserSession
from radflow.services import study_service
from radflow.services.post_commit import PostCommitEffect, run_post_commit_effects

logger = logging.getLogger(__name__)


# =============================================================================
# Verification requirement
# =============================================================================

@dataclass(frozen=True)
class VerificationRequirement:
    """Lab and clinician verification flags; verification is required if either is set."""

    lab_requires_verification: bool = False
    doctor_requires_verification: bool = False

    @property
    def required(self) -> bool:
        return self.lab_requires_verification or self.doctor_requires_verification


def resolve_verification_requirement(
    db: Session,
    study: Study,
    doctor_id: UUID | None,
) -> VerificationRequirement:
    """
    Read the source lab's and the clinician's verification flags.

    A study with no lab counts as not requiring it; a clinician with no
    profile gets the profile default (required).
    """
    lab_flag = False
    if study.source_lab_id:
        lab = db.get(Lab, study.source_lab_id)
        lab_flag = bool(lab and lab.require_report_verification)

    doctor_flag = False
    if doctor_id:
        profile = db.query(DoctorProfile).filter(DoctorProfile.user_id == doctor_id).first()
        if profile is None:
            doctor_flag = DEFAULT_DOCTOR_REQUIRES_VERIFICATION
        else:
            doctor_flag = bool(profile.require_report_verification)

    return VerificationRequirement(
        lab_requires_verification=lab_flag,
        doctor_requires_verification=doctor_flag,
    )


# =============================================================================
# Transitions
# =============================================================================

class TransitionResult(TypedDict):
    """Result of a workflow transition."""

    event: str
    previous_status: str | None
    status: str
    category: str
    requires_verification: bool | None  # set for report_finalized only
    changed_at: datetime
    post_commit: list[PostCommitEffect]


# Timestamp stamped the first time a study enters the status
_STAMP_ONCE: dict[WorkflowStatus, str] = {
    WorkflowStatus.REPORT_DRAFTED: "drafted_at",
    WorkflowStatus.VERIFICATION_PENDING: "sent_for_verification_at",
    WorkflowStatus.REPORT_COMPLETED: "completed_at",
    WorkflowStatus.ARCHIVED: "archived_at",
    **{status: "downloaded_at" for status in DOWNLOAD_STATUSES},
    **{status: "printed_at" for status in PRINT_STATUSES},
}


def parse_status(status: WorkflowStatus | str) -> WorkflowStatus:
    """Validate a requested status; InvalidArgument for values outside the closed set."""
    if isinstance(status, WorkflowStatus):
        return status
    if not isinstance(status, str) or not WorkflowStatus.has_value(status):
        raise InvalidArgument(f"Unknown workflow status '{status}'")
    return WorkflowStatus(status)


def _stamp_once(study: Study, attr: str, now: datetime) -> None:
    if getattr(study, attr) is None:
        setattr(study, attr, now)


def apply_transition(
    db: Session,
    study: Study,
    target: WorkflowStatus | str,
    *,
    user_id: UUID | None,
    note: str | None = None,
    verification: VerificationRequirement | None = None,
    now: datetime | None = None,
) -> TransitionResult:
    """
    Move a study to ``target`` inside the caller's transaction.

    - report_finalized resolves to verification_pending when the lab or the
      clinician requires verification, else report_completed (stamped
      completed_without_verification). ``verification`` should be resolved
      once by the caller; when omitted it is read for the latest assignee.
    - report_verified resolves to report_completed.
    - every other status maps through the status -> category table.

    Appends exactly one history row per call.
    """
    event = parse_status(target)
    now = now or utcnow()
    previous = study.workflow_status
    resolved = event
    requires_verification: bool | None = None

    if event == WorkflowStatus.REPORT_FINALIZED:
        if verification is None:
            assignment = study_service.get_latest_assignment(db, study.id)
            verification = resolve_verification_requirement(
                db, study, assignment.assigned_to_user_id if assignment else None
            )
        requires_verification = verification.required
        resolved = (
            WorkflowStatus.VERIFICATION_PENDING
            if requires_verification
            else WorkflowStatus.REPORT_COMPLETED
        )
        study.completed_without_verification = not requires_verification
        _stamp_once(study, "finalized_at", now)
    elif event == WorkflowStatus.REPORT_VERIFIED:
        resolved = WorkflowStatus.REPORT_COMPLETED

    category = category_for(resolved)
    study.workflow_status = resolved.value
    study.current_category = category.value

    stamp_attr = _STAMP_ONCE.get(resolved)
    if stamp_attr:
        _stamp_once(study, stamp_attr, now)

    db.add(
        StudyStatusHistory(
            study_id=study.id,
            organization_id=study.organization_id,
            event=event.value,
            from_status=previous,
            to_status=resolved.value,
            category=category.value,
            changed_by_user_id=user_id,
            note=note,
            changed_at=now,
        )
    )
    db.flush()

    logger.info(
        "Study workflow %s -> %s (event %s)",
        previous,
        resolved.value,
        event.value,
        extra=build_log_context(user_id=user_id, org_id=study.organization_id, study_id=study.id),
    )

    return TransitionResult(
        event=event.value,
        previous_status=previous,
        status=resolved.value,
        category=category.value,
        requires_verification=requires_verification,
        changed_at=now,
        post_commit=[patient_sync_effect(study, resolved, note, now)],
    )


def reset_workflow(study: Study) -> None:
    """Initial workflow state for a newly created (or copied) study."""
    study.workflow_status = DEFAULT_STUDY_STATUS.value
    study.current_category = category_for(DEFAULT_STUDY_STATUS).value
    study.drafted_at = None
    study.finalized_at = None
    study.sent_for_verification_at = None
    study.completed_at = None
    study.downloaded_at = None
    study.printed_at = None
    study.archived_at = None
    study.completed_without_verification = False


# =============================================================================
# Patient propagation (best-effort)
# =============================================================================

def patient_sync_effect(
    study: Study,
    status: WorkflowStatus,
    note: str | None,
    changed_at: datetime,
) -> PostCommitEffect:
    """Mirror the study status onto its patient after the study commit."""
    study_id = study.id
    patient_id = study.patient_id

    def _apply(db: Session) -> None:
        if not patient_id:
            return
        patient = db.get(Patient, patient_id)
        if patient is None:
            logger.warning("Patient %s missing for study %s", patient_id, study_id)
            return
        patient.current_workflow_status = status.value
        patient.active_study_id = study_id
        patient.last_activity_at = changed_at
        patient.status_notes = note or f"Study status changed to {status.value}"

    return PostCommitEffect(
        name="patient_status_sync",
        apply=_apply,
        timeout_seconds=settings.PATIENT_SYNC_TIMEOUT_SECONDS,
    )


# =============================================================================
# Standalone operation
# =============================================================================

def update_workflow_status(
    db: Session,
    study_id: UUID | str,
    status: WorkflowStatus | str,
    acting_user: UserSession,
    note: str | None = None,
) -> TransitionResult:
    """Validate, transition, commit, then run post-commit effects."""
    parse_status(status)
    with atomic(
        db,
        operation="study workflow status",
        timeout_seconds=settings.STUDY_COMMIT_TIMEOUT_SECONDS,
    ):
        study = study_service.get_study_for_user(db, study_id, acting_user)
        result = apply_transition(db, study, status, user_id=acting_user.user_id, note=note)
    run_post_commit_effects(db, result["post_commit"])
    return result
