"""Study workflow enums and the status -> category table."""

from enum import Enum


class WorkflowStatus(str, Enum):
    """Fine-grained study workflow status (closed set)."""

    NO_ACTIVE_STUDY = "no_active_study"
    NEW_STUDY_RECEIVED = "new_study_received"
    METADATA_EXTRACTED = "metadata_extracted"
    HISTORY_PENDING = "history_pending"
    HISTORY_CREATED = "history_created"
    HISTORY_VERIFIED = "history_verified"
    PENDING_ASSIGNMENT = "pending_assignment"
    AWAITING_RADIOLOGIST = "awaiting_radiologist"
    ASSIGNED_TO_DOCTOR = "assigned_to_doctor"
    ASSIGNMENT_ACCEPTED = "assignment_accepted"
    DOCTOR_OPENED_REPORT = "doctor_opened_report"
    REPORT_IN_PROGRESS = "report_in_progress"
    PENDING_COMPLETION = "pending_completion"
    REPORT_DRAFTED = "report_drafted"
    DRAFT_SAVED = "draft_saved"
    VERIFICATION_PENDING = "verification_pending"
    VERIFICATION_IN_PROGRESS = "verification_in_progress"
    REPORT_FINALIZED = "report_finalized"
    FINAL_APPROVED = "final_approved"
    REVERT_TO_RADIOLOGIST = "revert_to_radiologist"
    REPORT_COMPLETED = "report_completed"
    URGENT_PRIORITY = "urgent_priority"
    EMERGENCY_CASE = "emergency_case"
    REPRINT_REQUESTED = "reprint_requested"
    CORRECTION_NEEDED = "correction_needed"
    REPORT_REPRINT_NEEDED = "report_reprint_needed"
    REPORT_UPLOADED = "report_uploaded"
    REPORT_DOWNLOADED_RADIOLOGIST = "report_downloaded_radiologist"
    REPORT_DOWNLOADED = "report_downloaded"
    FINAL_REPORT_DOWNLOADED = "final_report_downloaded"
    REPORT_PRINTED = "report_printed"
    REPORT_REPRINTED = "report_reprinted"
    REPORT_VERIFIED = "report_verified"
    REPORT_REJECTED = "report_rejected"
    ARCHIVED = "archived"

    @classmethod
    def has_value(cls, value: str) -> bool:
        return value in cls._value2member_map_


class WorkflowCategory(str, Enum):
    """Coarse worklist bucket derived from WorkflowStatus."""

    ALL = "ALL"
    CREATED = "CREATED"
    HISTORY_CREATED = "HISTORY_CREATED"
    UNASSIGNED = "UNASSIGNED"
    ASSIGNED = "ASSIGNED"
    PENDING = "PENDING"
    DRAFT = "DRAFT"
    VERIFICATION_PENDING = "VERIFICATION_PENDING"
    FINAL = "FINAL"
    COMPLETED = "COMPLETED"
    URGENT = "URGENT"
    REPRINT_NEED = "REPRINT_NEED"
    REVERTED = "REVERTED"


_S = WorkflowStatus
_C = WorkflowCategory

STATUS_CATEGORY: dict[WorkflowStatus, WorkflowCategory] = {
    _S.NO_ACTIVE_STUDY: _C.ALL,
    _S.NEW_STUDY_RECEIVED: _C.CREATED,
    _S.METADATA_EXTRACTED: _C.CREATED,
    _S.HISTORY_PENDING: _C.HISTORY_CREATED,
    _S.HISTORY_CREATED: _C.HISTORY_CREATED,
    _S.HISTORY_VERIFIED: _C.HISTORY_CREATED,
    _S.PENDING_ASSIGNMENT: _C.UNASSIGNED,
    _S.AWAITING_RADIOLOGIST: _C.UNASSIGNED,
    _S.ASSIGNED_TO_DOCTOR: _C.ASSIGNED,
    _S.ASSIGNMENT_ACCEPTED: _C.ASSIGNED,
    _S.DOCTOR_OPENED_REPORT: _C.PENDING,
    _S.REPORT_IN_PROGRESS: _C.PENDING,
    _S.PENDING_COMPLETION: _C.PENDING,
    _S.REVERT_TO_RADIOLOGIST: _C.PENDING,
    _S.REPORT_DRAFTED: _C.DRAFT,
    _S.DRAFT_SAVED: _C.DRAFT,
    _S.VERIFICATION_PENDING: _C.VERIFICATION_PENDING,
    _S.VERIFICATION_IN_PROGRESS: _C.VERIFICATION_PENDING,
    _S.REPORT_FINALIZED: _C.FINAL,
    _S.FINAL_APPROVED: _C.FINAL,
    _S.REPORT_UPLOADED: _C.FINAL,
    _S.REPORT_COMPLETED: _C.COMPLETED,
    _S.REPORT_VERIFIED: _C.COMPLETED,
    _S.REPORT_DOWNLOADED_RADIOLOGIST: _C.COMPLETED,
    _S.REPORT_DOWNLOADED: _C.COMPLETED,
    _S.FINAL_REPORT_DOWNLOADED: _C.COMPLETED,
    _S.REPORT_PRINTED: _C.COMPLETED,
    _S.REPORT_REPRINTED: _C.COMPLETED,
    _S.URGENT_PRIORITY: _C.URGENT,
    _S.EMERGENCY_CASE: _C.URGENT,
    _S.REPRINT_REQUESTED: _C.REPRINT_NEED,
    _S.CORRECTION_NEEDED: _C.REPRINT_NEED,
    _S.REPORT_REPRINT_NEEDED: _C.REPRINT_NEED,
    _S.REPORT_REJECTED: _C.REVERTED,
    _S.ARCHIVED: _C.ALL,
}

DOWNLOAD_STATUSES = frozenset({
    _S.REPORT_DOWNLOADED_RADIOLOGIST,
    _S.REPORT_DOWNLOADED,
    _S.FINAL_REPORT_DOWNLOADED,
})

PRINT_STATUSES = frozenset({_S.REPORT_PRINTED, _S.REPORT_REPRINTED})

# Statuses a verifier may act on
VERIFIABLE_STATUSES = frozenset({
    _S.VERIFICATION_PENDING,
    _S.VERIFICATION_IN_PROGRESS,
    _S.REPORT_FINALIZED,
    _S.REPORT_COMPLETED,
})

DEFAULT_STUDY_STATUS = _S.NEW_STUDY_RECEIVED


def category_for(status: WorkflowStatus | str) -> WorkflowCategory:
    """Category for a status; values outside the table fall into ALL."""
    try:
        return STATUS_CATEGORY.get(WorkflowStatus(status), WorkflowCategory.ALL)
    except ValueError:
        return WorkflowCategory.ALL
