"""Tests for the study workflow status coordinator."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from radflow.core.exceptions import InvalidArgument, PermissionDenied
from radflow.db.enums import (
    DOWNLOAD_STATUSES,
    STATUS_CATEGORY,
    Role,
    WorkflowCategory,
    WorkflowStatus,
    category_for,
)
from radflow.db.models import Patient, StudyStatusHistory
from radflow.db.types import utcnow
from radflow.services import workflow_status_service
from radflow.services.post_commit import PostCommitEffect, run_post_commit_effects
from radflow.services.workflow_status_service import VerificationRequirement


def _history(db, study):
    return db.execute(
        select(StudyStatusHistory)
        .where(StudyStatusHistory.study_id == study.id)
        .order_by(StudyStatusHistory.changed_at)
    ).scalars().all()


# =============================================================================
# Category table
# =============================================================================

def test_every_status_has_a_category():
    for status in WorkflowStatus:
        assert status in STATUS_CATEGORY


def test_unknown_status_falls_into_all():
    assert category_for("not_a_status") == WorkflowCategory.ALL


@pytest.mark.parametrize("status", list(WorkflowStatus))
def test_transition_is_idempotent(db, make_study, status):
    """Applying the same target twice yields the same pair and keeps the first stamps."""
    study = make_study()
    requirement = VerificationRequirement()

    first = workflow_status_service.apply_transition(
        db, study, status, user_id=None, verification=requirement
    )
    db.commit()
    stamps = {
        attr: getattr(study, attr)
        for attr in ("drafted_at", "finalized_at", "sent_for_verification_at", "completed_at",
                     "downloaded_at", "printed_at", "archived_at")
    }

    second = workflow_status_service.apply_transition(
        db, study, status, user_id=None, verification=requirement
    )
    db.commit()

    assert (first["status"], first["category"]) == (second["status"], second["category"])
    assert (study.workflow_status, study.current_category) == (second["status"], second["category"])
    for attr, value in stamps.items():
        assert getattr(study, attr) == value


def test_unknown_status_rejected_before_mutation(db, make_study):
    study = make_study()
    with pytest.raises(InvalidArgument):
        workflow_status_service.apply_transition(db, study, "teleported", user_id=None)
    assert study.workflow_status == WorkflowStatus.NEW_STUDY_RECEIVED.value
    assert _history(db, study) == []


def test_history_row_per_transition(db, make_study):
    study = make_study()
    start = utcnow()
    workflow_status_service.apply_transition(
        db, study, WorkflowStatus.ASSIGNED_TO_DOCTOR, user_id=None, now=start
    )
    workflow_status_service.apply_transition(
        db, study, WorkflowStatus.REPORT_DRAFTED, user_id=None, now=start + timedelta(seconds=1)
    )
    db.commit()

    rows = _history(db, study)
    assert [r.to_status for r in rows] == ["assigned_to_doctor", "report_drafted"]
    assert rows[0].from_status == "new_study_received"
    assert rows[1].category == WorkflowCategory.DRAFT.value


# =============================================================================
# Verification OR-combination
# =============================================================================

@pytest.mark.parametrize(
    "lab_flag,doctor_flag,expected",
    [
        (False, False, WorkflowStatus.REPORT_COMPLETED),
        (True, False, WorkflowStatus.VERIFICATION_PENDING),
        (False, True, WorkflowStatus.VERIFICATION_PENDING),
        (True, True, WorkflowStatus.VERIFICATION_PENDING),
    ],
)
def test_finalize_uses_or_of_flags(db, make_study, lab_flag, doctor_flag, expected):
    study = make_study()
    result = workflow_status_service.apply_transition(
        db,
        study,
        WorkflowStatus.REPORT_FINALIZED,
        user_id=None,
        verification=VerificationRequirement(lab_flag, doctor_flag),
    )
    assert result["status"] == expected.value
    assert result["event"] == WorkflowStatus.REPORT_FINALIZED.value
    assert result["requires_verification"] is (expected == WorkflowStatus.VERIFICATION_PENDING)
    assert study.completed_without_verification is (expected == WorkflowStatus.REPORT_COMPLETED)
    assert study.finalized_at is not None


def test_resolve_requirement_reads_lab_and_profile(db, make_study, make_user, lab):
    checked = make_user(Role.RADIOLOGIST, requires_verification=True)
    unchecked = make_user(Role.RADIOLOGIST, requires_verification=False)
    no_profile = make_user(Role.RADIOLOGIST)
    study = make_study()

    assert workflow_status_service.resolve_verification_requirement(db, study, checked.id).required
    assert not workflow_status_service.resolve_verification_requirement(db, study, unchecked.id).required
    # Missing profile gets the profile default
    assert workflow_status_service.resolve_verification_requirement(db, study, no_profile.id).required

    lab.require_report_verification = True
    db.commit()
    requirement = workflow_status_service.resolve_verification_requirement(db, study, unchecked.id)
    assert requirement.lab_requires_verification and requirement.required


def test_study_without_lab_does_not_require_verification(db, make_study, make_user, other_org):
    clinician = make_user(Role.RADIOLOGIST, org=other_org, requires_verification=False)
    study = make_study(org=other_org)
    requirement = workflow_status_service.resolve_verification_requirement(db, study, clinician.id)
    assert requirement == VerificationRequirement(False, False)


def test_verified_resolves_to_completed(db, make_study):
    study = make_study()
    result = workflow_status_service.apply_transition(db, study, WorkflowStatus.REPORT_VERIFIED, user_id=None)
    assert result["status"] == WorkflowStatus.REPORT_COMPLETED.value
    assert result["category"] == WorkflowCategory.COMPLETED.value


def test_download_family_stamps_once(db, make_study):
    study = make_study()
    first, *rest = sorted(DOWNLOAD_STATUSES, key=lambda s: s.value)
    workflow_status_service.apply_transition(db, study, first, user_id=None)
    stamped = study.downloaded_at
    for status in rest:
        workflow_status_service.apply_transition(db, study, status, user_id=None)
    assert study.downloaded_at == stamped


# =============================================================================
# Standalone operation + patient propagation
# =============================================================================

def test_update_workflow_status_commits_and_syncs_patient(db, make_study, doctor, as_user):
    study = make_study()
    result = workflow_status_service.update_workflow_status(
        db, study.id, "report_in_progress", as_user(doctor), note="Opened"
    )
    assert result["status"] == "report_in_progress"

    db.expire_all()
    patient = db.get(Patient, study.patient_id)
    assert patient.current_workflow_status == "report_in_progress"
    assert patient.active_study_id == study.id
    assert patient.status_notes == "Opened"


def test_update_workflow_status_checks_tenant(db, make_study, make_user, other_org, as_user):
    outsider = make_user(Role.RADIOLOGIST, org=other_org)
    study = make_study()
    with pytest.raises(PermissionDenied):
        workflow_status_service.update_workflow_status(db, study.id, "report_in_progress", as_user(outsider))


def test_update_workflow_status_rejects_unknown_status(db, make_study, doctor, as_user):
    study = make_study()
    with pytest.raises(InvalidArgument):
        workflow_status_service.update_workflow_status(db, study.id, "bogus", as_user(doctor))


def test_patient_sync_failure_does_not_fail_transition(db, make_study, doctor, as_user, monkeypatch, caplog):
    def broken_effect(study, status, note, changed_at):
        def _apply(session):
            raise RuntimeError("patient store down")
        return PostCommitEffect(name="patient_status_sync", apply=_apply, timeout_seconds=3.0)

    monkeypatch.setattr(workflow_status_service, "patient_sync_effect", broken_effect)
    study = make_study()

    result = workflow_status_service.update_workflow_status(db, study.id, "report_in_progress", as_user(doctor))

    assert result["status"] == "report_in_progress"
    db.expire_all()
    assert db.get(Patient, study.patient_id).current_workflow_status is None
    assert "patient_status_sync failed" in caplog.text


def test_run_post_commit_effects_reports_failures(db):
    calls = []

    def ok(session):
        calls.append("ok")

    def boom(session):
        raise ValueError("nope")

    failed = run_post_commit_effects(db, [
        PostCommitEffect("first", boom, 1.0),
        PostCommitEffect("second", ok, 1.0),
    ])
    assert failed == ["first"]
    assert calls == ["ok"]
