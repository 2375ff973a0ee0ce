"""Report lifecycle: draft save, finalize, usage tracking.

Study and report mutate in one transaction. Draft and finalize share one
upsert primitive so the "latest report for (study, clinician) is updated in
place" rule lives in exactly one place.
"""

from __future__ import annotations

import logging
import re
import time
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from radflow.core.config import settings
from radflow.core.exceptions import Conflict, InvalidArgument, NotFound, PermissionDenied
from radflow.core.identifiers import is_well_formed, new_report_id
from radflow.core.structured_logging import build_log_context
from radflow.db.enums import (
    ROLES_CAN_WRITE_REPORTS,
    ROLES_CLINICIAN,
    AuditEventType,
    ExportFormat,
    ReportStatus,
    ReportType,
    VerificationStatus,
    WorkflowStatus,
)
from radflow.db.models import DoctorProfile, Lab, Report, Study
from radflow.db.transaction import atomic
from radflow.db.types import utcnow
from radflow.schemas.auth import UserSession
from radflow.schemas.report import ReportContentIn, ReportSummary
from radflow.services import audit_service, doctor_resolution_service, study_service
from radflow.services import workflow_status_service
from radflow.services.blob_store import get_blob_store
from radflow.services.doctor_resolution_service import ReportOwner
from radflow.services.post_commit import run_post_commit_effects

logger = logging.getLogger(__name__)

NEXT_STEP_VERIFICATION = "Report sent to verifier for approval"
NEXT_STEP_COMPLETED = "Report completed and ready for download"

_FINAL_STATUSES = {ReportStatus.FINALIZED.value, ReportStatus.VERIFIED.value}


# =============================================================================
# Helpers
# =============================================================================

def compute_statistics(body: str, image_count: int) -> dict[str, int]:
    """Word/character/image counts for a report body."""
    return {
        "word_count": len(body.split()),
        "character_count": len(body),
        "page_count": 1,
        "image_count": image_count,
    }


def _name_slug(name: str | None) -> str:
    slug = re.sub(r"\s+", "_", (name or "").strip().lower())
    return slug or "doctor"


def build_file_name(name: str | None, kind: str, extension: str) -> str:
    """``<name>_<kind>_<ms>.<ext>``, e.g. ``jane_doe_final_1718000000000.pdf``."""
    return f"{_name_slug(name)}_{kind}_{time.time_ns() // 1_000_000}.{extension}"


def append_capped(history: list | None, entry: dict, cap: int) -> list:
    """Append and trim from the oldest end. Returns a new list (JSON columns need reassignment)."""
    items = [*(history or []), entry]
    return items[-cap:] if cap > 0 else items


def _history_entry(status: str, user_id: UUID | None, note: str, now: datetime) -> dict:
    return {
        "status": status,
        "changed_at": now.isoformat(),
        "changed_by": str(user_id) if user_id else None,
        "note": note,
    }


def build_patient_info(study: Study, content: ReportContentIn) -> dict:
    age_gender = content.placeholders.get("--agegender--")
    if not age_gender:
        age_gender = " / ".join(part for part in (study.patient_age, study.patient_gender) if part)
    return {
        "patient_id": study.patient_external_id,
        "full_name": study.patient_name,
        "age_gender": age_gender or None,
        "clinical_history": study.clinical_history,
    }


def build_study_info(study: Study, content: ReportContentIn) -> dict:
    physician = study_service.coerce_referring_physician(study.referring_physician)
    referred_by = content.placeholders.get("--referredby--")
    if physician.name == study_service.NOT_AVAILABLE and referred_by:
        physician = study_service.coerce_referring_physician(referred_by)
    return {
        "external_id": study.external_id,
        "study_instance_uid": study.study_instance_uid,
        "accession_number": study.accession_number,
        "modality": study.modality,
        "study_description": study.study_description,
        "exam_description": study.exam_description,
        "study_date": study.study_date.isoformat() if study.study_date else None,
        "referring_physician": physician.to_dict(),
        "referring_physician_name": physician.name,
        "institution_name": study.institution_name,
    }


def find_latest_report(db: Session, study_id: UUID, doctor_id: UUID) -> Report | None:
    """Most recently created report for the (study, clinician) pair."""
    return db.execute(
        select(Report)
        .where(Report.study_id == study_id, Report.doctor_id == doctor_id)
        .order_by(Report.created_at.desc())
        .limit(1)
    ).scalar_one_or_none()


def _report_id_exists(db: Session, report_id: str) -> bool:
    return db.execute(
        select(Report.id).where(Report.report_id == report_id)
    ).first() is not None


def generate_report_id(db: Session, organization_identifier: str | None) -> str:
    """New report ID; regenerated once on collision, then Conflict."""
    for _ in range(2):
        candidate = new_report_id(organization_identifier)
        if not _report_id_exists(db, candidate):
            return candidate
    raise Conflict("Could not allocate a unique report ID")


# =============================================================================
# Upsert primitive
# =============================================================================

def _upsert_report(
    db: Session,
    study: Study,
    owner: ReportOwner,
    acting_user: UserSession,
    content: ReportContentIn,
    target: ReportStatus,
    export_format: ExportFormat,
    now: datetime,
) -> tuple[Report, bool]:
    """
    Create or update the active report for (study, owner) in place.

    Returns (report, created).
    """
    existing = find_latest_report(db, study.id, owner.doctor_id)
    created = existing is None
    previous_status = existing.report_status if existing else None

    if created:
        report = Report(
            report_id=generate_report_id(db, study.organization_identifier),
            organization_id=study.organization_id,
            organization_identifier=study.organization_identifier,
            study_id=study.id,
            patient_id=study.patient_id,
            patient_external_id=study.patient_external_id,
            doctor_id=owner.doctor_id,
            created_by_user_id=acting_user.user_id,
            owner_resolution=owner.resolution.value,
            created_at=now,
        )
        db.add(report)
    else:
        report = existing

    body = content.body()
    images = [img.model_dump(mode="json") for img in content.captured_images]
    images = images[-settings.REPORT_CAPTURED_IMAGES_CAP:]

    report.html_content = body
    report.placeholders = dict(content.placeholders)
    report.template_info = content.template_info or {
        "template_name": content.template_name,
        "template_id": content.template_id,
    }
    report.captured_images = images
    for key, value in compute_statistics(body, len(images)).items():
        setattr(report, key, value)
    report.patient_info = build_patient_info(study, content)
    report.study_info = build_study_info(study, content)

    if target == ReportStatus.DRAFT:
        report.report_type = ReportType.DRAFT.value
        report.report_status = ReportStatus.DRAFT.value
        report.export_format = ExportFormat.DOCX.value
        report.file_name = build_file_name(acting_user.full_name, "draft", "docx")
        report.verification_status = None
        if report.drafted_at is None:
            report.drafted_at = now
        note = "Draft report created" if created else "Draft report updated"
    else:
        report.report_type = ReportType.FINALIZED.value
        report.report_status = ReportStatus.FINALIZED.value
        report.export_format = export_format.value
        report.file_name = build_file_name(owner.doctor_name, "final", export_format.value)
        if report.finalized_at is None:
            report.finalized_at = now
        report.rejection_reason = None
        if created:
            note = "Report created and finalized"
        elif previous_status == ReportStatus.DRAFT.value:
            note = "Draft report finalized"
        else:
            note = "Finalized report updated"

    if owner.degraded:
        note += " (attributed to admin: no assigned clinician)"

    report.status_history = append_capped(
        report.status_history,
        _history_entry(report.report_status, acting_user.user_id, note, now),
        settings.REPORT_STATUS_HISTORY_CAP,
    )
    db.flush()
    return report, created


def _update_study_report_summary(
    study: Study,
    report: Report,
    owner: ReportOwner,
    acting_user: UserSession,
    now: datetime,
) -> None:
    """Denormalized report summary on the study; one ref per report ID."""
    ref = {
        "id": str(report.id),
        "report_id": report.report_id,
        "report_type": report.report_type,
        "report_status": report.report_status,
        "doctor_id": str(report.doctor_id) if report.doctor_id else None,
        "updated_at": now.isoformat(),
    }
    refs = [r for r in (study.report_refs or []) if r.get("id") != ref["id"]]
    refs.append(ref)
    study.report_refs = refs
    study.report_count = len(refs)
    study.has_reports = True
    study.latest_report_id = report.id
    study.latest_report_status = report.report_status
    study.latest_report_type = report.report_type
    study.last_reported_at = now
    study.last_reported_by_user_id = acting_user.user_id
    study.reporter_name = owner.doctor_name


# =============================================================================
# Public operations
# =============================================================================

def _validate_request(study_id: UUID | str, acting_user: UserSession, content: ReportContentIn) -> UUID:
    parsed = study_service.parse_study_id(study_id)
    if not content.body().strip():
        raise InvalidArgument("Report content is required")
    if acting_user.role not in ROLES_CAN_WRITE_REPORTS:
        raise PermissionDenied(f"Role '{acting_user.role.value}' cannot write reports")
    return parsed


def _store_report(
    db: Session,
    study_id: UUID | str,
    acting_user: UserSession,
    content: ReportContentIn,
    target: ReportStatus,
    export_format: ExportFormat = ExportFormat.DOCX,
) -> ReportSummary:
    parsed_id = _validate_request(study_id, acting_user, content)
    now = utcnow()
    is_final = target == ReportStatus.FINALIZED
    operation = "finalized report" if is_final else "draft report"

    with atomic(db, operation=operation, timeout_seconds=settings.STUDY_COMMIT_TIMEOUT_SECONDS):
        study = study_service.get_study_for_user(db, parsed_id, acting_user, adopt_tenant=True)
        owner = doctor_resolution_service.resolve_report_owner(db, acting_user, study)

        report, created = _upsert_report(
            db, study, owner, acting_user, content, target, export_format, now
        )

        verification = None
        if is_final:
            verification = workflow_status_service.resolve_verification_requirement(
                db, study, owner.doctor_id
            )
            report.verification_status = (
                VerificationStatus.PENDING.value if verification.required else None
            )

        _update_study_report_summary(study, report, owner, acting_user, now)
        transition = workflow_status_service.apply_transition(
            db,
            study,
            WorkflowStatus.REPORT_FINALIZED if is_final else WorkflowStatus.REPORT_DRAFTED,
            user_id=acting_user.user_id,
            note=f"Report {report.report_id} {'finalized' if is_final else 'drafted'}",
            verification=verification,
            now=now,
        )

        audit_service.log_event(
            db,
            org_id=study.organization_id,
            event_type=AuditEventType.REPORT_FINALIZED if is_final else AuditEventType.REPORT_DRAFT_SAVED,
            actor_user_id=acting_user.user_id,
            target_type="report",
            target_id=report.id,
            details={
                "created": created,
                "owner_resolution": owner.resolution.value,
                "study_status": transition["status"],
            },
        )

        org_id = study.organization_id
        summary = ReportSummary(
            report_id=report.report_id,
            id=report.id,
            file_name=report.file_name,
            report_status=report.report_status,
            report_type=report.report_type,
            doctor_id=report.doctor_id,
            doctor_name=owner.doctor_name,
            created_by_user_id=report.created_by_user_id,
            owner_resolution=report.owner_resolution,
            study_workflow_status=transition["status"],
            study_category=transition["category"],
            requires_verification=bool(transition["requires_verification"]),
            next_step=(
                (NEXT_STEP_VERIFICATION if transition["requires_verification"] else NEXT_STEP_COMPLETED)
                if is_final
                else None
            ),
            created_at=report.created_at,
        )

    logger.info(
        "Stored %s (%s)",
        operation,
        "created" if created else "updated",
        extra=build_log_context(
            user_id=acting_user.user_id,
            org_id=org_id,
            study_id=parsed_id,
            report_id=summary.id,
            operation=f"store_{target.value}",
        ),
    )

    run_post_commit_effects(db, transition["post_commit"])
    if is_final:
        summary.enrichment = collect_render_enrichment(db, parsed_id, summary.doctor_id)
    return summary


def store_draft(
    db: Session,
    study_id: UUID | str,
    acting_user: UserSession,
    content: ReportContentIn,
) -> ReportSummary:
    """Save (create or update) the draft report for the resolved clinician."""
    return _store_report(db, study_id, acting_user, content, ReportStatus.DRAFT)


def store_finalized(
    db: Session,
    study_id: UUID | str,
    acting_user: UserSession,
    content: ReportContentIn,
    output_format: ExportFormat | str = ExportFormat.DOCX,
) -> ReportSummary:
    """
    Finalize the report for the resolved clinician.

    The study moves to verification_pending or report_completed depending
    on the lab / clinician verification flags.
    """
    try:
        export_format = ExportFormat(output_format)
    except ValueError:
        raise InvalidArgument(f"Unsupported report format '{output_format}'")
    return _store_report(db, study_id, acting_user, content, ReportStatus.FINALIZED, export_format)


# =============================================================================
# Enrichment (non-fatal)
# =============================================================================

def collect_render_enrichment(db: Session, study_id: UUID, doctor_id: UUID | None) -> dict:
    """
    Lab branding and clinician signature for rendering.

    Each lookup degrades independently: failures are logged and the
    corresponding keys are omitted.
    """
    enrichment: dict = {}
    try:
        study = db.get(Study, study_id)
        lab = db.get(Lab, study.source_lab_id) if study and study.source_lab_id else None
        if lab:
            branding = {"lab_name": lab.name, **(lab.branding or {})}
            store = get_blob_store()
            if lab.header_image_key:
                branding["header_url"] = store.presigned_url(lab.header_image_key, "inline")
            if lab.footer_image_key:
                branding["footer_url"] = store.presigned_url(lab.footer_image_key, "inline")
            enrichment["lab_branding"] = branding
    except Exception:
        db.rollback()
        logger.warning("Lab branding unavailable for study %s", study_id, exc_info=True)

    try:
        profile = (
            db.query(DoctorProfile).filter(DoctorProfile.user_id == doctor_id).first()
            if doctor_id
            else None
        )
        if profile:
            signature: dict = {}
            if profile.signature_text:
                signature["text"] = profile.signature_text
            if profile.signature_storage_key:
                signature["url"] = get_blob_store().presigned_url(profile.signature_storage_key, "inline")
            if signature:
                enrichment["doctor_signature"] = signature
    except Exception:
        db.rollback()
        logger.warning("Doctor signature unavailable for doctor %s", doctor_id, exc_info=True)

    return enrichment


# =============================================================================
# Queries
# =============================================================================

def get_report(db: Session, report_ref: UUID | str, acting_user: UserSession) -> Report:
    """Load a report by internal UUID or external report ID, tenant-checked."""
    report = None
    try:
        report = db.get(Report, UUID(str(report_ref)))
    except ValueError:
        if not is_well_formed(str(report_ref)):
            raise InvalidArgument("Invalid report ID")
        report = db.execute(
            select(Report).where(Report.report_id == str(report_ref))
        ).scalar_one_or_none()
    if report is None:
        raise NotFound("Report not found")
    study = db.get(Study, report.study_id)
    if study is not None:
        study_service.check_study_access(study, acting_user)
    return report


def list_study_reports(db: Session, study_id: UUID | str, acting_user: UserSession) -> list[Report]:
    """Reports for a study, newest first."""
    study = study_service.get_study_for_user(db, study_id, acting_user)
    return db.execute(
        select(Report).where(Report.study_id == study.id).order_by(Report.created_at.desc())
    ).scalars().all()


# =============================================================================
# Verification state (called by verification_service)
# =============================================================================

def _verification_entry(action: str, user_id: UUID, now: datetime, notes: str | None, **extra) -> dict:
    entry = {
        "action": action,
        "performed_by": str(user_id),
        "performed_at": now.isoformat(),
        "notes": notes,
    }
    entry.update(extra)
    return entry


def mark_in_review(report: Report, verifier: UserSession, now: datetime) -> None:
    report.verification_status = VerificationStatus.IN_PROGRESS.value
    report.verification_history = append_capped(
        report.verification_history,
        _verification_entry("started", verifier.user_id, now, None),
        settings.REPORT_VERIFICATION_HISTORY_CAP,
    )


def mark_verified(report: Report, verifier: UserSession, notes: str | None, now: datetime) -> None:
    report.report_status = ReportStatus.VERIFIED.value
    report.verification_status = VerificationStatus.VERIFIED.value
    report.verifier_id = verifier.user_id
    report.verified_at = now
    report.verification_notes = notes
    report.rejection_reason = None
    report.verification_history = append_capped(
        report.verification_history,
        _verification_entry("verified", verifier.user_id, now, notes),
        settings.REPORT_VERIFICATION_HISTORY_CAP,
    )
    report.status_history = append_capped(
        report.status_history,
        _history_entry(report.report_status, verifier.user_id, "Report verified", now),
        settings.REPORT_STATUS_HISTORY_CAP,
    )


def mark_rejected(
    report: Report,
    verifier: UserSession,
    reason: str,
    corrections: list[dict] | None,
    notes: str | None,
    now: datetime,
) -> None:
    report.report_status = ReportStatus.REJECTED.value
    report.verification_status = VerificationStatus.REJECTED.value
    report.verifier_id = verifier.user_id
    report.verified_at = now
    report.verification_notes = notes
    report.rejection_reason = reason
    report.corrections = list(corrections or [])
    report.verification_history = append_capped(
        report.verification_history,
        _verification_entry("rejected", verifier.user_id, now, notes, rejection_reason=reason),
        settings.REPORT_VERIFICATION_HISTORY_CAP,
    )
    report.status_history = append_capped(
        report.status_history,
        _history_entry(report.report_status, verifier.user_id, f"Report rejected: {reason}", now),
        settings.REPORT_STATUS_HISTORY_CAP,
    )


# =============================================================================
# Usage tracking
# =============================================================================

def record_report_download(
    db: Session,
    report_ref: UUID | str,
    acting_user: UserSession,
    download_type: str = "final",
) -> Report:
    """Count a download; finalized reports move the study into the download family."""
    now = utcnow()
    effects = []
    with atomic(db, operation="report download", timeout_seconds=settings.STUDY_COMMIT_TIMEOUT_SECONDS):
        report = get_report(db, report_ref, acting_user)
        report.download_count = (report.download_count or 0) + 1
        report.last_downloaded_at = now
        report.download_history = append_capped(
            report.download_history,
            {"downloaded_by": str(acting_user.user_id), "downloaded_at": now.isoformat(), "download_type": download_type},
            settings.REPORT_USAGE_HISTORY_CAP,
        )
        if report.report_status in _FINAL_STATUSES:
            if acting_user.role in ROLES_CLINICIAN:
                target = WorkflowStatus.REPORT_DOWNLOADED_RADIOLOGIST
            elif download_type == "final":
                target = WorkflowStatus.FINAL_REPORT_DOWNLOADED
            else:
                target = WorkflowStatus.REPORT_DOWNLOADED
            study = db.get(Study, report.study_id)
            transition = workflow_status_service.apply_transition(
                db, study, target, user_id=acting_user.user_id, note=f"Report {report.report_id} downloaded", now=now
            )
            effects = transition["post_commit"]
    run_post_commit_effects(db, effects)
    return report


def record_report_print(
    db: Session,
    report_ref: UUID | str,
    acting_user: UserSession,
    print_type: str = "final",
) -> Report:
    """Count a print; the first print is report_printed, later ones report_reprinted."""
    now = utcnow()
    effects = []
    with atomic(db, operation="report print", timeout_seconds=settings.STUDY_COMMIT_TIMEOUT_SECONDS):
        report = get_report(db, report_ref, acting_user)
        is_reprint = (report.print_count or 0) > 0 or print_type == "reprint"
        report.print_count = (report.print_count or 0) + 1
        report.last_printed_at = now
        report.print_history = append_capped(
            report.print_history,
            {"printed_by": str(acting_user.user_id), "printed_at": now.isoformat(), "print_type": print_type},
            settings.REPORT_USAGE_HISTORY_CAP,
        )
        if report.report_status in _FINAL_STATUSES:
            study = db.get(Study, report.study_id)
            transition = workflow_status_service.apply_transition(
                db,
                study,
                WorkflowStatus.REPORT_REPRINTED if is_reprint else WorkflowStatus.REPORT_PRINTED,
                user_id=acting_user.user_id,
                note=f"Report {report.report_id} printed",
                now=now,
            )
            effects = transition["post_commit"]
    run_post_commit_effects(db, effects)
    return report
