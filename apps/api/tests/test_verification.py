"""Tests for the verifier workflow."""

import pytest
from sqlalchemy import select

from radflow.core.exceptions import InvalidArgument, NotFound, PermissionDenied
from radflow.db.enums import AuditEventType, ReportStatus, Role, WorkflowCategory, WorkflowStatus
from radflow.db.models import AuditLog, Report
from radflow.core.config import settings
from radflow.db.types import utcnow
from radflow.schemas.report import ReportContentIn
from radflow.services import report_service, verification_service


@pytest.fixture
def pending_study(db, make_study, make_user, as_user):
    """Study with a finalized report awaiting verification."""
    clinician = make_user(Role.RADIOLOGIST, full_name="Rita Rad", requires_verification=True)
    study = make_study()
    report_service.store_finalized(
        db, study.id, as_user(clinician), ReportContentIn(html_content="<p>Impression</p>")
    )
    db.refresh(study)
    assert study.workflow_status == WorkflowStatus.VERIFICATION_PENDING.value
    return study


def _report(db, study) -> Report:
    return db.execute(select(Report).where(Report.study_id == study.id)).scalar_one()


def test_start_verification(db, pending_study, verifier, as_user):
    result = verification_service.start_verification(db, pending_study.id, as_user(verifier))

    assert result["status"] == WorkflowStatus.VERIFICATION_IN_PROGRESS.value
    report = _report(db, pending_study)
    assert report.verification_status == "in_progress"
    assert report.verification_history[-1]["action"] == "started"


def test_start_requires_pending(db, make_study, verifier, as_user):
    with pytest.raises(InvalidArgument):
        verification_service.start_verification(db, make_study().id, as_user(verifier))


def test_approve_completes_study(db, pending_study, verifier, as_user):
    outcome = verification_service.verify_report(
        db, pending_study.id, as_user(verifier), approved=True, notes="Agree"
    )

    assert outcome["approved"]
    assert outcome["report_status"] == ReportStatus.VERIFIED.value
    assert outcome["study_workflow_status"] == WorkflowStatus.REPORT_COMPLETED.value
    assert outcome["study_category"] == WorkflowCategory.COMPLETED.value

    db.refresh(pending_study)
    report = _report(db, pending_study)
    assert report.verifier_id == verifier.id
    assert report.verification_notes == "Agree"
    assert pending_study.verified_by_user_id == verifier.id
    assert pending_study.completed_at is not None
    assert not pending_study.completed_without_verification
    assert db.query(AuditLog).filter(AuditLog.event_type == AuditEventType.REPORT_VERIFIED.value).count() == 1


def test_reject_reverts_to_radiologist(db, pending_study, verifier, as_user):
    outcome = verification_service.verify_report(
        db,
        pending_study.id,
        as_user(verifier),
        approved=False,
        rejection_reason="Wrong side",
        corrections=[{"section": "impression", "comment": "left, not right"}],
    )

    assert outcome["report_status"] == ReportStatus.REJECTED.value
    assert outcome["study_workflow_status"] == WorkflowStatus.REVERT_TO_RADIOLOGIST.value

    db.refresh(pending_study)
    report = _report(db, pending_study)
    assert report.rejection_reason == "Wrong side"
    assert report.corrections == [{"section": "impression", "comment": "left, not right"}]
    assert report.verification_history[-1]["rejection_reason"] == "Wrong side"
    assert pending_study.is_reverted
    assert pending_study.revert_count == 1
    assert pending_study.revert_history[-1]["reason"] == "Wrong side"
    assert pending_study.rejection_reason == "Wrong side"


def test_reject_requires_reason(db, pending_study, verifier, as_user):
    with pytest.raises(InvalidArgument):
        verification_service.verify_report(db, pending_study.id, as_user(verifier), approved=False)


def test_verify_requires_verifier_role(db, pending_study, doctor, as_user):
    with pytest.raises(PermissionDenied):
        verification_service.verify_report(db, pending_study.id, as_user(doctor), approved=True)


def test_verify_requires_verifiable_status(db, make_study, doctor, verifier, as_user):
    study = make_study()
    report_service.store_draft(db, study.id, as_user(doctor), ReportContentIn(html_content="<p>x</p>"))
    with pytest.raises(InvalidArgument):
        verification_service.verify_report(db, study.id, as_user(verifier), approved=True)


def test_admin_may_verify_any_status_but_needs_report(db, make_study, admin, as_user):
    with pytest.raises(NotFound):
        verification_service.verify_report(db, make_study().id, as_user(admin), approved=True)


def test_resolve_revert_returns_to_in_progress(db, pending_study, verifier, as_user, make_user):
    verification_service.verify_report(
        db, pending_study.id, as_user(verifier), approved=False, rejection_reason="Incomplete"
    )
    clinician = make_user(Role.RADIOLOGIST)

    result = verification_service.resolve_revert(db, pending_study.id, as_user(clinician), notes="Fixed")

    assert result["status"] == WorkflowStatus.REPORT_IN_PROGRESS.value
    db.refresh(pending_study)
    assert not pending_study.is_reverted
    entry = pending_study.revert_history[-1]
    assert entry["resolved"] and entry["resolution_notes"] == "Fixed"


def test_resolve_revert_requires_reverted_study(db, make_study, doctor, as_user):
    with pytest.raises(InvalidArgument):
        verification_service.resolve_revert(db, make_study().id, as_user(doctor))


def test_manual_revert(db, make_study, admin, as_user):
    study = make_study()
    result = verification_service.revert_to_radiologist(db, study.id, as_user(admin), reason="Re-read priors")

    assert result["status"] == WorkflowStatus.REVERT_TO_RADIOLOGIST.value
    db.refresh(study)
    assert study.revert_count == 1
    assert db.query(AuditLog).filter(AuditLog.event_type == AuditEventType.STUDY_REVERTED.value).count() == 1


def test_manual_revert_requires_reason_and_role(db, make_study, admin, doctor, as_user):
    study = make_study()
    with pytest.raises(InvalidArgument):
        verification_service.revert_to_radiologist(db, study.id, as_user(admin), reason="  ")
    with pytest.raises(PermissionDenied):
        verification_service.revert_to_radiologist(db, study.id, as_user(doctor), reason="x")


def test_verification_history_is_capped(db, pending_study, verifier, as_user, monkeypatch):
    monkeypatch.setattr(settings, "REPORT_VERIFICATION_HISTORY_CAP", 2)
    report = _report(db, pending_study)
    user = as_user(verifier)

    report_service.mark_in_review(report, user, utcnow())
    report_service.mark_rejected(report, user, "Wrong side", None, None, utcnow())
    report_service.mark_verified(report, user, "Fixed", utcnow())

    assert [entry["action"] for entry in report.verification_history] == ["rejected", "verified"]
