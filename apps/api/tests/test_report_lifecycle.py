"""Tests for draft save, finalize and usage tracking."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from radflow.core.exceptions import Conflict, InvalidArgument, PermissionDenied
from radflow.db.enums import (
    OwnerResolution,
    ReportStatus,
    Role,
    VerificationStatus,
    WorkflowCategory,
    WorkflowStatus,
)
from radflow.db.models import DoctorProfile, Report, StudyAssignment
from radflow.db.types import utcnow
from radflow.schemas.report import ReportContentIn
from radflow.services import report_service, workflow_status_service


def _content(text="<p>No acute abnormality.</p>", **extra) -> ReportContentIn:
    return ReportContentIn(html_content=text, **extra)


def _reports(db, study):
    return db.execute(select(Report).where(Report.study_id == study.id)).scalars().all()


# =============================================================================
# Helpers
# =============================================================================

def test_statistics():
    stats = report_service.compute_statistics("one two  three", 2)
    assert stats == {"word_count": 3, "character_count": 14, "page_count": 1, "image_count": 2}


def test_file_name_slug():
    name = report_service.build_file_name("  Jane   Doe ", "final", "pdf")
    assert name.startswith("jane_doe_final_")
    assert name.endswith(".pdf")
    assert report_service.build_file_name(None, "draft", "docx").startswith("doctor_draft_")


def test_append_capped_returns_new_list():
    history = [{"n": 1}, {"n": 2}]
    updated = report_service.append_capped(history, {"n": 3}, cap=2)
    assert updated == [{"n": 2}, {"n": 3}]
    assert history == [{"n": 1}, {"n": 2}]


def test_content_placeholder_fallback():
    content = ReportContentIn(placeholders={"--Content--": "<p>From placeholder</p>"})
    assert content.body() == "<p>From placeholder</p>"


# =============================================================================
# Draft / finalize
# =============================================================================

def test_draft_then_finalize_updates_one_report(db, make_study, doctor, as_user):
    study = make_study()
    user = as_user(doctor)

    draft = report_service.store_draft(db, study.id, user, _content())
    again = report_service.store_draft(db, study.id, user, _content("<p>Revised</p>"))
    final = report_service.store_finalized(db, study.id, user, _content("<p>Final</p>"), output_format="pdf")

    assert draft.report_id == again.report_id == final.report_id
    assert draft.id == final.id
    reports = _reports(db, study)
    assert len(reports) == 1
    report = reports[0]
    assert report.report_status == ReportStatus.FINALIZED.value
    assert report.export_format == "pdf"
    assert report.file_name.startswith("jane_doe_final_")
    assert [entry["note"] for entry in report.status_history] == [
        "Draft report created",
        "Draft report updated",
        "Draft report finalized",
    ]


def test_draft_moves_study_to_draft(db, make_study, doctor, as_user):
    study = make_study()
    summary = report_service.store_draft(db, study.id, as_user(doctor), _content())

    db.refresh(study)
    assert summary.study_workflow_status == WorkflowStatus.REPORT_DRAFTED.value
    assert study.current_category == WorkflowCategory.DRAFT.value
    assert study.drafted_at is not None
    assert study.has_reports and study.report_count == 1
    assert study.latest_report_id == summary.id
    assert summary.next_step is None


def test_finalize_without_verification_completes_study(db, make_study, doctor, as_user):
    study = make_study()
    summary = report_service.store_finalized(db, study.id, as_user(doctor), _content())

    db.refresh(study)
    assert summary.report_status == ReportStatus.FINALIZED.value
    assert summary.study_workflow_status == WorkflowStatus.REPORT_COMPLETED.value
    assert summary.next_step == report_service.NEXT_STEP_COMPLETED
    assert not summary.requires_verification
    assert study.completed_without_verification
    assert study.finalized_at is not None


def test_finalize_with_verification_pending(db, make_study, make_user, as_user):
    checked = make_user(Role.RADIOLOGIST, requires_verification=True)
    study = make_study()
    summary = report_service.store_finalized(db, study.id, as_user(checked), _content())

    assert summary.study_workflow_status == WorkflowStatus.VERIFICATION_PENDING.value
    assert summary.requires_verification
    assert summary.next_step == report_service.NEXT_STEP_VERIFICATION
    report = _reports(db, study)[0]
    assert report.verification_status == "pending"


def test_finalized_at_stamped_once(db, make_study, doctor, as_user, monkeypatch):
    start = utcnow()
    clock = [start]
    monkeypatch.setattr(report_service, "utcnow", lambda: clock[0])
    study = make_study()
    user = as_user(doctor)
    report_service.store_finalized(db, study.id, user, _content())
    db.refresh(study)
    first = study.finalized_at
    report_first = _reports(db, study)[0].finalized_at

    clock[0] = start + timedelta(hours=1)
    report_service.store_finalized(db, study.id, user, _content("<p>Addendum</p>"))
    db.refresh(study)
    assert study.finalized_at == first
    db.expire_all()
    assert _reports(db, study)[0].finalized_at == report_first
    assert _reports(db, study)[0].status_history[-1]["note"] == "Finalized report updated"


def test_new_draft_clears_pending_verification(db, make_study, make_user, as_user):
    checked = make_user(Role.RADIOLOGIST, requires_verification=True)
    study = make_study()
    report_service.store_finalized(db, study.id, as_user(checked), _content())
    assert _reports(db, study)[0].verification_status == VerificationStatus.PENDING.value

    report_service.store_draft(db, study.id, as_user(checked), _content("<p>Reworded</p>"))

    db.expire_all()
    report = _reports(db, study)[0]
    assert report.report_status == ReportStatus.DRAFT.value
    assert report.verification_status is None


@pytest.mark.parametrize("store", [report_service.store_draft, report_service.store_finalized])
def test_failure_mid_write_leaves_no_trace(db, make_study, doctor, as_user, monkeypatch, store):
    study = make_study()

    def broken_transition(*args, **kwargs):
        raise RuntimeError("status write failed")

    monkeypatch.setattr(workflow_status_service, "apply_transition", broken_transition)

    with pytest.raises(RuntimeError):
        store(db, study.id, as_user(doctor), _content())

    db.expire_all()
    assert _reports(db, study) == []
    assert study.workflow_status == WorkflowStatus.NEW_STUDY_RECEIVED.value
    assert not study.has_reports


def test_report_id_collision_regenerates_once(db, make_study, doctor, as_user, monkeypatch):
    taken = report_service.store_draft(db, make_study().id, as_user(doctor), _content()).report_id
    candidates = iter([taken, "RPT-ORGA-FRESH-00000001"])
    monkeypatch.setattr(report_service, "new_report_id", lambda org: next(candidates))

    summary = report_service.store_draft(db, make_study().id, as_user(doctor), _content())

    assert summary.report_id == "RPT-ORGA-FRESH-00000001"


def test_repeated_report_id_collision_is_conflict(db, make_study, doctor, as_user, monkeypatch):
    taken = report_service.store_draft(db, make_study().id, as_user(doctor), _content()).report_id
    monkeypatch.setattr(report_service, "new_report_id", lambda org: taken)
    study = make_study()

    with pytest.raises(Conflict):
        report_service.store_draft(db, study.id, as_user(doctor), _content())

    assert _reports(db, study) == []


def test_report_id_constraint_violation_is_conflict(db, make_study, doctor, as_user, monkeypatch):
    taken = report_service.store_draft(db, make_study().id, as_user(doctor), _content()).report_id
    monkeypatch.setattr(report_service, "new_report_id", lambda org: taken)
    monkeypatch.setattr(report_service, "_report_id_exists", lambda db, report_id: False)
    study = make_study()

    with pytest.raises(Conflict):
        report_service.store_finalized(db, study.id, as_user(doctor), _content())

    db.expire_all()
    assert _reports(db, study) == []
    assert study.workflow_status == WorkflowStatus.NEW_STUDY_RECEIVED.value


def test_admin_draft_attributed_to_assignee(db, make_study, doctor, admin, as_user):
    study = make_study()
    db.add(StudyAssignment(study_id=study.id, assigned_to_user_id=doctor.id, assigned_at=utcnow()))
    db.commit()

    summary = report_service.store_draft(db, study.id, as_user(admin), _content())

    assert summary.doctor_id == doctor.id
    assert summary.created_by_user_id == admin.id
    assert summary.owner_resolution == OwnerResolution.ASSIGNED.value
    assert summary.doctor_name == "Jane Doe"

    final = report_service.store_finalized(db, study.id, as_user(admin), _content())
    assert final.id == summary.id
    assert final.file_name.startswith("jane_doe_final_")


def test_admin_fallback_marks_history(db, make_study, admin, as_user):
    study = make_study()
    summary = report_service.store_draft(db, study.id, as_user(admin), _content())

    assert summary.doctor_id == admin.id
    assert summary.owner_resolution == OwnerResolution.ADMIN_FALLBACK.value
    note = _reports(db, study)[0].status_history[-1]["note"]
    assert note.endswith("(attributed to admin: no assigned clinician)")


def test_newest_report_is_updated(db, make_study, doctor, as_user):
    study = make_study()
    now = utcnow()
    older = Report(report_id="RPT-ORGA-OLD-00000001", study_id=study.id, doctor_id=doctor.id,
                   created_at=now - timedelta(days=2))
    newer = Report(report_id="RPT-ORGA-NEW-00000002", study_id=study.id, doctor_id=doctor.id,
                   created_at=now - timedelta(days=1))
    db.add_all([older, newer])
    db.commit()

    summary = report_service.store_draft(db, study.id, as_user(doctor), _content())

    assert summary.report_id == "RPT-ORGA-NEW-00000002"
    db.refresh(older)
    assert older.html_content == ""


def test_each_clinician_gets_own_report(db, make_study, make_user, doctor, as_user):
    colleague = make_user(Role.RADIOLOGIST, requires_verification=False)
    study = make_study()
    first = report_service.store_draft(db, study.id, as_user(doctor), _content())
    second = report_service.store_draft(db, study.id, as_user(colleague), _content())

    assert first.id != second.id
    db.refresh(study)
    assert study.report_count == 2
    assert {ref["report_id"] for ref in study.report_refs} == {first.report_id, second.report_id}


def test_legacy_study_adopts_writer_tenant(db, make_study, doctor, as_user):
    study = make_study(organization_id=None, organization_identifier=None)
    report_service.store_draft(db, study.id, as_user(doctor), _content())
    db.refresh(study)
    assert study.organization_id == doctor.organization_id


def test_other_tenant_cannot_write(db, make_study, make_user, other_org, as_user):
    outsider = make_user(Role.RADIOLOGIST, org=other_org)
    study = make_study()
    with pytest.raises(PermissionDenied):
        report_service.store_draft(db, study.id, as_user(outsider), _content())
    assert _reports(db, study) == []


def test_empty_body_rejected(db, make_study, doctor, as_user):
    with pytest.raises(InvalidArgument):
        report_service.store_draft(db, make_study().id, as_user(doctor), _content("   "))


def test_role_cannot_write(db, make_study, verifier, as_user):
    with pytest.raises(PermissionDenied):
        report_service.store_draft(db, make_study().id, as_user(verifier), _content())


def test_invalid_format_rejected(db, make_study, doctor, as_user):
    with pytest.raises(InvalidArgument):
        report_service.store_finalized(db, make_study().id, as_user(doctor), _content(), output_format="rtf")


def test_invalid_study_id(db, doctor, as_user):
    with pytest.raises(InvalidArgument):
        report_service.store_draft(db, "not-a-uuid", as_user(doctor), _content())


def test_referring_physician_fallback_from_placeholder(db, make_study, doctor, as_user):
    study = make_study(referring_physician=None)
    report_service.store_draft(
        db, study.id, as_user(doctor), _content(placeholders={"--referredby--": "Dr. Placeholder"})
    )
    report = _reports(db, study)[0]
    assert report.study_info["referring_physician_name"] == "Dr. Placeholder"


# =============================================================================
# Enrichment
# =============================================================================

def test_enrichment_includes_branding_and_signature(db, make_study, make_user, lab, as_user):
    clinician = make_user(Role.RADIOLOGIST, requires_verification=False)
    clinician_profile = clinician_profile_for(db, clinician)
    clinician_profile.signature_text = "Dr. Signed"
    lab.branding = {"primary_color": "#003366"}
    db.commit()

    summary = report_service.store_finalized(db, make_study().id, as_user(clinician), _content())

    assert summary.enrichment["lab_branding"]["lab_name"] == "Central Lab"
    assert summary.enrichment["lab_branding"]["primary_color"] == "#003366"
    assert summary.enrichment["doctor_signature"] == {"text": "Dr. Signed"}


def test_enrichment_failure_does_not_fail_finalize(db, make_study, doctor, lab, as_user, monkeypatch, caplog):
    def broken_store():
        raise RuntimeError("storage offline")

    lab.header_image_key = "labs/header.png"
    db.commit()
    monkeypatch.setattr(report_service, "get_blob_store", broken_store)

    summary = report_service.store_finalized(db, make_study().id, as_user(doctor), _content())

    assert summary.report_status == ReportStatus.FINALIZED.value
    assert "lab_branding" not in summary.enrichment
    assert "Lab branding unavailable" in caplog.text


def clinician_profile_for(db, user):
    return db.query(DoctorProfile).filter(DoctorProfile.user_id == user.id).one()


# =============================================================================
# Usage tracking
# =============================================================================

def test_download_of_draft_does_not_transition(db, make_study, doctor, as_user):
    study = make_study()
    summary = report_service.store_draft(db, study.id, as_user(doctor), _content())

    report = report_service.record_report_download(db, summary.id, as_user(doctor), download_type="draft")

    db.refresh(study)
    assert report.download_count == 1
    assert study.workflow_status == WorkflowStatus.REPORT_DRAFTED.value


def test_clinician_download_of_final(db, make_study, doctor, as_user):
    study = make_study()
    summary = report_service.store_finalized(db, study.id, as_user(doctor), _content())

    report_service.record_report_download(db, summary.report_id, as_user(doctor))

    db.refresh(study)
    assert study.workflow_status == WorkflowStatus.REPORT_DOWNLOADED_RADIOLOGIST.value
    assert study.downloaded_at is not None


def test_lab_download_of_final(db, make_study, make_user, doctor, as_user):
    staff = make_user(Role.LAB_STAFF)
    study = make_study()
    summary = report_service.store_finalized(db, study.id, as_user(doctor), _content())

    report = report_service.record_report_download(db, summary.id, as_user(staff))

    db.refresh(study)
    assert study.workflow_status == WorkflowStatus.FINAL_REPORT_DOWNLOADED.value
    assert report.download_history[-1]["download_type"] == "final"


def test_print_then_reprint(db, make_study, doctor, as_user):
    study = make_study()
    summary = report_service.store_finalized(db, study.id, as_user(doctor), _content())
    user = as_user(doctor)

    report_service.record_report_print(db, summary.id, user)
    db.refresh(study)
    assert study.workflow_status == WorkflowStatus.REPORT_PRINTED.value
    printed_at = study.printed_at

    report = report_service.record_report_print(db, summary.id, user)
    db.refresh(study)
    assert study.workflow_status == WorkflowStatus.REPORT_REPRINTED.value
    assert study.printed_at == printed_at
    assert report.print_count == 2


def test_get_report_by_either_id(db, make_study, doctor, make_user, other_org, as_user):
    summary = report_service.store_draft(db, make_study().id, as_user(doctor), _content())

    assert report_service.get_report(db, summary.id, as_user(doctor)).report_id == summary.report_id
    assert report_service.get_report(db, summary.report_id, as_user(doctor)).id == summary.id

    outsider = make_user(Role.RADIOLOGIST, org=other_org)
    with pytest.raises(PermissionDenied):
        report_service.get_report(db, summary.id, as_user(outsider))
