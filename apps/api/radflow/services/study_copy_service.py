"""Copy a study (with notes, reports and documents) into another organization.

Creating the patient stub and the study is the only atomic part. Notes,
reports and documents are copied afterwards in their own transactions; a
failure there lowers the returned count and is reported in ``errors``, it
never undoes the study.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TypedDict
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from radflow.core.config import settings
from radflow.core.exceptions import Conflict, InvalidArgument, NotFound, PermissionDenied, RadflowError
from radflow.core.identifiers import new_study_external_id
from radflow.core.structured_logging import build_log_context
from radflow.db.enums import (
    ROLES_CAN_COPY_STUDIES,
    ROLES_CROSS_TENANT,
    AuditEventType,
    OwnerResolution,
    ReportStatus,
    ReportType,
)
from radflow.db.models import Attachment, Lab, Organization, Patient, Report, Study, StudyNote
from radflow.db.transaction import atomic
from radflow.db.types import utcnow
from radflow.schemas.auth import UserSession
from radflow.services import attachment_service, audit_service, report_service, study_service
from radflow.services.blob_store import BlobStore, build_storage_key, get_blob_store
from radflow.services.workflow_status_service import reset_workflow

logger = logging.getLogger(__name__)

# Clinical fields carried over verbatim
_CLINICAL_FIELDS = (
    "patient_external_id",
    "patient_name",
    "patient_age",
    "patient_gender",
    "study_instance_uid",
    "accession_number",
    "study_date",
    "modality",
    "study_description",
    "exam_description",
    "series_count",
    "instance_count",
    "clinical_history",
    "referring_physician",
    "institution_name",
    "priority",
)


@dataclass(frozen=True)
class CopyOptions:
    copy_attachments: bool = True
    copy_reports: bool = True
    copy_notes: bool = True
    reason: str | None = None


class CopyResult(TypedDict):
    study_id: UUID
    external_id: str
    source_external_id: str
    target_organization: str
    patient_id: UUID | None
    notes_copied: int
    reports_copied: int
    attachments_copied: int
    errors: list[str]


# =============================================================================
# Preconditions
# =============================================================================

def _require_copy_role(acting_user: UserSession) -> None:
    if acting_user.role not in ROLES_CAN_COPY_STUDIES:
        raise PermissionDenied("Only administrators can copy studies between organizations")


def _get_target_organization(db: Session, identifier: str) -> Organization:
    org = db.execute(
        select(Organization).where(
            func.upper(Organization.identifier) == identifier.strip().upper()
        )
    ).scalar_one_or_none()
    if org is None or not org.is_active:
        raise NotFound(f"Organization '{identifier}' not found")
    return org


def _get_source_study(db: Session, external_id: str) -> Study:
    if not (external_id or "").strip():
        raise InvalidArgument("Source study ID is required")
    study = study_service.get_study_by_external_id(db, external_id.strip())
    if study is None:
        raise NotFound("Source study not found")
    return study


# =============================================================================
# Atomic phase
# =============================================================================

def _upsert_patient_stub(db: Session, source: Study, target: Organization) -> Patient | None:
    """Reuse the target tenant's patient with the same external id, else create one."""
    source_patient = db.get(Patient, source.patient_id) if source.patient_id else None
    external_id = source.patient_external_id or (source_patient.patient_external_id if source_patient else None)
    if not external_id:
        return None

    patient = db.execute(
        select(Patient).where(
            Patient.organization_id == target.id,
            Patient.patient_external_id == external_id,
        )
    ).scalar_one_or_none()
    if patient is not None:
        return patient

    patient = Patient(
        organization_id=target.id,
        organization_identifier=target.identifier,
        patient_external_id=external_id,
        full_name=source_patient.full_name if source_patient else source.patient_name,
        age=source_patient.age if source_patient else source.patient_age,
        gender=source_patient.gender if source_patient else source.patient_gender,
        date_of_birth=source_patient.date_of_birth if source_patient else None,
    )
    db.add(patient)
    db.flush()
    return patient


def _generate_external_id(db: Session, target: Organization, lab_identifier: str | None) -> str:
    for _ in range(2):
        candidate = new_study_external_id(target.identifier, lab_identifier)
        if study_service.get_study_by_external_id(db, candidate) is None:
            return candidate
    raise Conflict("Could not allocate a unique study ID")


def _create_copy(
    db: Session,
    source: Study,
    target: Organization,
    patient: Patient | None,
    acting_user: UserSession,
    reason: str | None,
    now: datetime,
) -> Study:
    source_lab = db.get(Lab, source.source_lab_id) if source.source_lab_id else None
    lab_identifier = source_lab.identifier if source_lab else None
    target_lab = None
    if lab_identifier:
        target_lab = db.execute(
            select(Lab).where(Lab.organization_id == target.id, Lab.identifier == lab_identifier)
        ).scalar_one_or_none()

    copy = Study(
        external_id=_generate_external_id(db, target, lab_identifier),
        organization_id=target.id,
        organization_identifier=target.identifier,
        source_lab_id=target_lab.id if target_lab else None,
        patient_id=patient.id if patient else None,
        **{field: getattr(source, field) for field in _CLINICAL_FIELDS},
    )
    reset_workflow(copy)
    copy.is_copied_study = True
    copy.copied_from_study_id = source.id
    copy.copied_from = {
        "study_id": str(source.id),
        "external_id": source.external_id,
        "organization_id": str(source.organization_id) if source.organization_id else None,
        "organization_identifier": source.organization_identifier,
        "copied_at": now.isoformat(),
        "copied_by": str(acting_user.user_id),
        "reason": reason,
    }
    db.add(copy)
    db.flush()

    source.copied_to = [
        *(source.copied_to or []),
        {
            "study_id": str(copy.id),
            "external_id": copy.external_id,
            "organization_identifier": target.identifier,
            "copied_at": now.isoformat(),
            "copied_by": str(acting_user.user_id),
            "reason": reason,
        },
    ]
    return copy


# =============================================================================
# Best-effort phases
# =============================================================================

def _copy_notes(db: Session, source_id: UUID, copy: Study) -> int:
    notes = db.query(StudyNote).filter(
        StudyNote.study_id == source_id,
    ).order_by(StudyNote.created_at.asc()).all()
    with atomic(db, operation="study notes copy"):
        for note in notes:
            db.add(StudyNote(
                organization_id=copy.organization_id,
                study_id=copy.id,
                note_text=note.note_text,
                note_type=note.note_type,
                priority=note.priority,
                is_private=note.is_private,
                created_by_user_id=None,
                created_by_name=note.created_by_name,
                created_by_role=note.created_by_role,
                copied_from_note_id=note.id,
                created_at=note.created_at,
            ))
    return len(notes)


def _copy_reports(db: Session, source_id: UUID, copy: Study, acting_user: UserSession, now: datetime) -> int:
    reports = db.query(Report).filter(
        Report.study_id == source_id,
    ).order_by(Report.created_at.asc()).all()
    if not reports:
        return 0

    with atomic(db, operation="study reports copy", timeout_seconds=settings.STUDY_COMMIT_TIMEOUT_SECONDS):
        refs = list(copy.report_refs or [])
        latest = None
        for report in reports:
            study_info = dict(report.study_info or {})
            study_info["external_id"] = copy.external_id
            latest = Report(
                report_id=report_service.generate_report_id(db, copy.organization_identifier),
                organization_id=copy.organization_id,
                organization_identifier=copy.organization_identifier,
                study_id=copy.id,
                patient_id=copy.patient_id,
                patient_external_id=copy.patient_external_id,
                doctor_id=acting_user.user_id,
                created_by_user_id=acting_user.user_id,
                owner_resolution=OwnerResolution.SELF.value,
                report_type=ReportType.DRAFT.value,
                report_status=ReportStatus.DRAFT.value,
                html_content=report.html_content,
                template_info=report.template_info,
                placeholders=report.placeholders,
                captured_images=list(report.captured_images or []),
                word_count=report.word_count,
                character_count=report.character_count,
                page_count=report.page_count,
                image_count=report.image_count,
                export_format=report.export_format,
                file_name=report.file_name,
                patient_info=report.patient_info,
                study_info=study_info,
                drafted_at=now,
                status_history=[{
                    "status": ReportStatus.DRAFT.value,
                    "changed_at": now.isoformat(),
                    "changed_by": str(acting_user.user_id),
                    "note": f"Copied from report {report.report_id} ({report.organization_identifier})",
                }],
                verification_history=[],
                download_history=[],
                print_history=[],
                corrections=[],
                copied_from_report_id=report.id,
                created_at=now,
            )
            db.add(latest)
            db.flush()
            refs.append({
                "id": str(latest.id),
                "report_id": latest.report_id,
                "report_type": latest.report_type,
                "report_status": latest.report_status,
                "doctor_id": str(acting_user.user_id),
                "updated_at": now.isoformat(),
            })

        copy.report_refs = refs
        copy.report_count = len(refs)
        copy.has_reports = True
        copy.latest_report_id = latest.id
        copy.latest_report_status = latest.report_status
        copy.latest_report_type = latest.report_type
    return len(reports)


def _copy_attachments(
    db: Session,
    source_id: UUID,
    copy: Study,
    acting_user: UserSession,
    store: BlobStore | None,
    errors: list[str],
) -> int:
    attachments = attachment_service.list_active_attachments(db, source_id)
    if not attachments:
        return 0
    try:
        store = store or get_blob_store()
    except Exception as exc:
        logger.exception(
            "Blob store unavailable for document copy",
            extra=build_log_context(study_id=copy.id, operation="copy_study"),
        )
        errors.append(f"attachments: storage unavailable ({type(exc).__name__})")
        return 0

    copied = 0
    for attachment in attachments:
        file_name = attachment.file_name
        new_key = build_storage_key(copy.organization_identifier, copy.id, file_name)
        try:
            store.copy(
                attachment.storage_key,
                new_key,
                metadata={
                    "organization": copy.organization_identifier,
                    "study_id": str(copy.id),
                    "copied_from": attachment.storage_key,
                },
            )
            with atomic(db, operation="study document copy"):
                db.add(Attachment(
                    organization_id=copy.organization_id,
                    organization_identifier=copy.organization_identifier,
                    study_id=copy.id,
                    uploaded_by_user_id=acting_user.user_id,
                    file_name=file_name,
                    storage_key=new_key,
                    content_type=attachment.content_type,
                    file_size=attachment.file_size,
                    document_type=attachment.document_type,
                    storage_metadata={
                        **(attachment.storage_metadata or {}),
                        "copied_from_key": attachment.storage_key,
                    },
                    copied_from_attachment_id=attachment.id,
                ))
        except RadflowError as exc:
            logger.error(
                "Document copy failed for %s: %s",
                file_name,
                exc.message,
                extra=build_log_context(study_id=copy.id, operation="copy_study"),
            )
            errors.append(f"attachment '{file_name}': {exc.message}")
            _discard_blob(store, new_key)
            continue
        except Exception as exc:
            logger.exception(
                "Document copy failed for %s",
                file_name,
                extra=build_log_context(study_id=copy.id, operation="copy_study"),
            )
            errors.append(f"attachment '{file_name}': {type(exc).__name__}: {exc}")
            _discard_blob(store, new_key)
            continue
        copied += 1
    return copied


def _discard_blob(store: BlobStore, storage_key: str) -> None:
    try:
        store.delete(storage_key)
    except Exception:
        logger.warning("Could not remove partially copied document %s", storage_key)


# =============================================================================
# Public operations
# =============================================================================

def copy_study(
    db: Session,
    source_external_id: str,
    target_org_identifier: str,
    acting_user: UserSession,
    options: CopyOptions | None = None,
    store: BlobStore | None = None,
) -> CopyResult:
    """
    Copy a study into ``target_org_identifier``.

    The copy gets a new external ID, a fresh workflow (new_study_received,
    no assignments) and a ``copied_from`` back-reference; the source gets a
    ``copied_to`` entry.
    """
    options = options or CopyOptions()
    _require_copy_role(acting_user)
    if not (target_org_identifier or "").strip():
        raise InvalidArgument("Target organization is required")

    source = _get_source_study(db, source_external_id)
    target = _get_target_organization(db, target_org_identifier)
    if source.organization_id == target.id:
        raise InvalidArgument("Cannot copy a study into its own organization")
    if acting_user.role not in ROLES_CROSS_TENANT and target.id != acting_user.org_id:
        raise PermissionDenied("Studies can only be copied into your own organization")

    now = utcnow()
    with atomic(db, operation="study copy", timeout_seconds=settings.STUDY_COMMIT_TIMEOUT_SECONDS):
        patient = _upsert_patient_stub(db, source, target)
        copy = _create_copy(db, source, target, patient, acting_user, options.reason, now)
        audit_service.log_event(
            db,
            org_id=target.id,
            event_type=AuditEventType.STUDY_COPIED,
            actor_user_id=acting_user.user_id,
            target_id=copy.id,
            details={
                "source_study_id": str(source.id),
                "source_organization": source.organization_identifier,
                "reason": options.reason,
            },
        )
        source_id = source.id
        result = CopyResult(
            study_id=copy.id,
            external_id=copy.external_id,
            source_external_id=source.external_id,
            target_organization=target.identifier,
            patient_id=patient.id if patient else None,
            notes_copied=0,
            reports_copied=0,
            attachments_copied=0,
            errors=[],
        )

    log_extra = build_log_context(
        user_id=acting_user.user_id,
        org_id=target.id,
        study_id=result["study_id"],
        operation="copy_study",
    )
    logger.info("Study copied from %s", result["source_external_id"], extra=log_extra)

    if options.copy_notes:
        try:
            result["notes_copied"] = _copy_notes(db, source_id, copy)
        except RadflowError as exc:
            logger.error("Notes copy failed: %s", exc.message, extra=log_extra)
            result["errors"].append(f"notes: {exc.message}")
        except Exception as exc:
            logger.exception("Notes copy failed", extra=log_extra)
            result["errors"].append(f"notes: {type(exc).__name__}")

    if options.copy_reports:
        try:
            result["reports_copied"] = _copy_reports(db, source_id, copy, acting_user, now)
        except RadflowError as exc:
            logger.error("Reports copy failed: %s", exc.message, extra=log_extra)
            result["errors"].append(f"reports: {exc.message}")
        except Exception as exc:
            logger.exception("Reports copy failed", extra=log_extra)
            result["errors"].append(f"reports: {type(exc).__name__}")

    if options.copy_attachments:
        result["attachments_copied"] = _copy_attachments(
            db, source_id, copy, acting_user, store, result["errors"]
        )

    return result


def get_copy_history(db: Session, external_id: str, acting_user: UserSession) -> dict:
    """Copy lineage of a study, from either side."""
    study = study_service.get_study_by_external_id(db, external_id)
    if study is None:
        raise NotFound("Study not found")
    if acting_user.role not in ROLES_CAN_COPY_STUDIES:
        study_service.check_study_access(study, acting_user)
    return {
        "study_id": study.id,
        "external_id": study.external_id,
        "organization_identifier": study.organization_identifier,
        "is_copied_study": study.is_copied_study,
        "copied_from": study.copied_from,
        "copied_to": list(study.copied_to or []),
    }


def lookup_study_for_copy(db: Session, external_id: str, acting_user: UserSession) -> dict:
    """Preview of a study in any organization, for choosing what to copy."""
    _require_copy_role(acting_user)
    study = _get_source_study(db, external_id)
    note_count = db.query(StudyNote).filter(StudyNote.study_id == study.id).count()
    attachment_count = len(attachment_service.list_active_attachments(db, study.id))
    return {
        "study_id": study.id,
        "external_id": study.external_id,
        "organization_identifier": study.organization_identifier,
        "patient_external_id": study.patient_external_id,
        "patient_name": study.patient_name,
        "modality": study.modality,
        "study_description": study.study_description,
        "study_date": study.study_date,
        "workflow_status": study.workflow_status,
        "report_count": study.report_count,
        "note_count": note_count,
        "attachment_count": attachment_count,
    }
