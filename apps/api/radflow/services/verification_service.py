"""Verifier workflow: start, approve / reject, revert to the radiologist."""

from __future__ import annotations

import logging
from typing import TypedDict
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from radflow.core.config import settings
from radflow.core.exceptions import InvalidArgument, NotFound, PermissionDenied
from radflow.core.structured_logging import build_log_context
from radflow.db.enums import (
    ROLES_CAN_ASSIGN,
    ROLES_CAN_VERIFY,
    ROLES_VERIFY_ANY_STATUS,
    VERIFIABLE_STATUSES,
    AuditEventType,
    ReportStatus,
    VerificationStatus,
    WorkflowStatus,
)
from radflow.db.models import Report, Study
from radflow.db.transaction import atomic
from radflow.db.types import utcnow
from radflow.schemas.auth import UserSession
from radflow.services import audit_service, report_service, study_service, workflow_status_service
from radflow.services.post_commit import run_post_commit_effects

logger = logging.getLogger(__name__)

_VERIFIABLE_REPORT_STATUSES = (ReportStatus.FINALIZED.value, ReportStatus.VERIFIED.value)


class VerificationResult(TypedDict):
    study_id: UUID
    report_id: str
    approved: bool
    report_status: str
    study_workflow_status: str
    study_category: str


def _require_verifier(acting_user: UserSession) -> None:
    if acting_user.role not in ROLES_CAN_VERIFY:
        raise PermissionDenied("Only verifiers can verify reports")


def _check_verifiable(study: Study, acting_user: UserSession) -> None:
    if acting_user.role in ROLES_VERIFY_ANY_STATUS:
        return
    if not WorkflowStatus.has_value(study.workflow_status) or (
        WorkflowStatus(study.workflow_status) not in VERIFIABLE_STATUSES
    ):
        raise InvalidArgument(
            f"Study is not awaiting verification (status '{study.workflow_status}')"
        )


def _latest_verifiable_report(db: Session, study_id: UUID) -> Report:
    report = db.execute(
        select(Report)
        .where(
            Report.study_id == study_id,
            Report.report_status.in_(_VERIFIABLE_REPORT_STATUSES),
        )
        .order_by(Report.created_at.desc())
        .limit(1)
    ).scalar_one_or_none()
    if report is None:
        raise NotFound("No finalized report to verify")
    return report


def _append_revert(study: Study, acting_user: UserSession, reason: str, now) -> None:
    study.is_reverted = True
    study.revert_count = (study.revert_count or 0) + 1
    study.revert_history = [
        *(study.revert_history or []),
        {
            "reverted_at": now.isoformat(),
            "reverted_by": str(acting_user.user_id),
            "reason": reason,
            "resolved": False,
        },
    ]


def start_verification(db: Session, study_id: UUID | str, acting_user: UserSession):
    """verification_pending -> verification_in_progress."""
    _require_verifier(acting_user)
    now = utcnow()
    with atomic(db, operation="start verification", timeout_seconds=settings.STUDY_COMMIT_TIMEOUT_SECONDS):
        study = study_service.get_study_for_user(db, study_id, acting_user)
        if study.workflow_status != WorkflowStatus.VERIFICATION_PENDING.value:
            raise InvalidArgument(
                f"Study is not pending verification (status '{study.workflow_status}')"
            )
        report = _latest_verifiable_report(db, study.id)
        report_service.mark_in_review(report, acting_user, now)
        study.verification_status = VerificationStatus.IN_PROGRESS.value
        result = workflow_status_service.apply_transition(
            db,
            study,
            WorkflowStatus.VERIFICATION_IN_PROGRESS,
            user_id=acting_user.user_id,
            note="Verification started",
            now=now,
        )
    run_post_commit_effects(db, result["post_commit"])
    return result


def verify_report(
    db: Session,
    study_id: UUID | str,
    acting_user: UserSession,
    approved: bool,
    notes: str | None = None,
    rejection_reason: str | None = None,
    corrections: list[dict] | None = None,
) -> VerificationResult:
    """
    Approve or reject the study's finalized report.

    Approve: report verified, study report_verified (-> report_completed).
    Reject: report rejected, study report_rejected then sent back to the
    radiologist with a revert entry. Everything commits together.
    """
    _require_verifier(acting_user)
    if not approved and not (rejection_reason or "").strip():
        raise InvalidArgument("Rejection reason is required")

    now = utcnow()
    with atomic(db, operation="report verification", timeout_seconds=settings.STUDY_COMMIT_TIMEOUT_SECONDS):
        study = study_service.get_study_for_user(db, study_id, acting_user)
        _check_verifiable(study, acting_user)
        report = _latest_verifiable_report(db, study.id)

        study.verified_by_user_id = acting_user.user_id
        study.verified_at = now
        study.verification_notes = notes

        if approved:
            report_service.mark_verified(report, acting_user, notes, now)
            study.verification_status = VerificationStatus.VERIFIED.value
            study.rejection_reason = None
            result = workflow_status_service.apply_transition(
                db,
                study,
                WorkflowStatus.REPORT_VERIFIED,
                user_id=acting_user.user_id,
                note=notes or "Report verified",
                now=now,
            )
            event_type = AuditEventType.REPORT_VERIFIED
        else:
            reason = rejection_reason.strip()
            report_service.mark_rejected(report, acting_user, reason, corrections, notes, now)
            study.verification_status = VerificationStatus.REJECTED.value
            study.rejection_reason = reason
            workflow_status_service.apply_transition(
                db,
                study,
                WorkflowStatus.REPORT_REJECTED,
                user_id=acting_user.user_id,
                note=f"Report rejected: {reason}",
                now=now,
            )
            _append_revert(study, acting_user, reason, now)
            result = workflow_status_service.apply_transition(
                db,
                study,
                WorkflowStatus.REVERT_TO_RADIOLOGIST,
                user_id=acting_user.user_id,
                note=f"Reverted to radiologist: {reason}",
                now=now,
            )
            event_type = AuditEventType.REPORT_REJECTED

        study.latest_report_status = report.report_status
        audit_service.log_event(
            db,
            org_id=study.organization_id,
            event_type=event_type,
            actor_user_id=acting_user.user_id,
            target_type="report",
            target_id=report.id,
            details={"study_id": str(study.id), "approved": approved},
        )
        outcome = VerificationResult(
            study_id=study.id,
            report_id=report.report_id,
            approved=approved,
            report_status=report.report_status,
            study_workflow_status=result["status"],
            study_category=result["category"],
        )

    logger.info(
        "Report %s",
        "verified" if approved else "rejected",
        extra=build_log_context(
            user_id=acting_user.user_id,
            study_id=outcome["study_id"],
            operation="verify_report",
        ),
    )
    run_post_commit_effects(db, result["post_commit"])
    return outcome


def revert_to_radiologist(
    db: Session,
    study_id: UUID | str,
    acting_user: UserSession,
    reason: str,
):
    """Send a study back to the radiologist outside the verifier flow."""
    if acting_user.role not in ROLES_CAN_ASSIGN:
        raise PermissionDenied("Only admins and assignors can revert studies")
    if not (reason or "").strip():
        raise InvalidArgument("Revert reason is required")

    now = utcnow()
    with atomic(db, operation="study revert", timeout_seconds=settings.STUDY_COMMIT_TIMEOUT_SECONDS):
        study = study_service.get_study_for_user(db, study_id, acting_user)
        _append_revert(study, acting_user, reason.strip(), now)
        result = workflow_status_service.apply_transition(
            db,
            study,
            WorkflowStatus.REVERT_TO_RADIOLOGIST,
            user_id=acting_user.user_id,
            note=f"Reverted to radiologist: {reason.strip()}",
            now=now,
        )
        audit_service.log_event(
            db,
            org_id=study.organization_id,
            event_type=AuditEventType.STUDY_REVERTED,
            actor_user_id=acting_user.user_id,
            target_id=study.id,
            details={"revert_count": study.revert_count},
        )
    run_post_commit_effects(db, result["post_commit"])
    return result


def resolve_revert(
    db: Session,
    study_id: UUID | str,
    acting_user: UserSession,
    notes: str | None = None,
):
    """Radiologist picks the reverted study back up (-> report_in_progress)."""
    now = utcnow()
    with atomic(db, operation="revert resolution", timeout_seconds=settings.STUDY_COMMIT_TIMEOUT_SECONDS):
        study = study_service.get_study_for_user(db, study_id, acting_user)
        if not study.is_reverted:
            raise InvalidArgument("Study is not reverted")

        history = [dict(entry) for entry in (study.revert_history or [])]
        if history and not history[-1].get("resolved"):
            history[-1].update(
                resolved=True,
                resolved_at=now.isoformat(),
                resolved_by=str(acting_user.user_id),
                resolution_notes=notes,
            )
        study.revert_history = history
        study.is_reverted = False
        result = workflow_status_service.apply_transition(
            db,
            study,
            WorkflowStatus.REPORT_IN_PROGRESS,
            user_id=acting_user.user_id,
            note=notes or "Revert resolved",
            now=now,
        )
    run_post_commit_effects(db, result["post_commit"])
    return result
