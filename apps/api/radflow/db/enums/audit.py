"""Audit event types."""

from enum import Enum


class AuditEventType(str, Enum):
    REPORT_DRAFT_SAVED = "report_draft_saved"
    REPORT_FINALIZED = "report_finalized"
    REPORT_OWNER_FALLBACK = "report_owner_fallback"
    REPORT_VERIFIED = "report_verified"
    REPORT_REJECTED = "report_rejected"
    REPORT_RENDERED = "report_rendered"
    STUDY_ASSIGNED = "study_assigned"
    STUDY_REVERTED = "study_reverted"
    STUDY_COPIED = "study_copied"
    WORKFLOW_STATUS_CHANGED = "workflow_status_changed"
