"""Enum definitions for application constants."""

from radflow.db.enums.audit import AuditEventType
from radflow.db.enums.auth import Role
from radflow.db.enums.permissions import (
    ROLES_CAN_ASSIGN,
    ROLES_CAN_COPY_STUDIES,
    ROLES_CAN_VERIFY,
    ROLES_CAN_WRITE_REPORTS,
    ROLES_CLINICIAN,
    ROLES_CROSS_TENANT,
    ROLES_REPORT_ON_BEHALF,
    ROLES_VERIFY_ANY_STATUS,
)
from radflow.db.enums.reports import (
    ExportFormat,
    NoteType,
    OwnerResolution,
    ReportStatus,
    ReportType,
    VerificationStatus,
)
from radflow.db.enums.workflow import (
    DEFAULT_STUDY_STATUS,
    DOWNLOAD_STATUSES,
    PRINT_STATUSES,
    STATUS_CATEGORY,
    VERIFIABLE_STATUSES,
    WorkflowCategory,
    WorkflowStatus,
    category_for,
)
