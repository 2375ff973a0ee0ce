"""Report-related enums."""

from enum import Enum


class ReportType(str, Enum):
    DRAFT = "draft"
    FINALIZED = "finalized"
    RADIOLOGIST_REPORT = "radiologist-report"
    PRELIMINARY = "preliminary"
    ADDENDUM = "addendum"


class ReportStatus(str, Enum):
    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    FINALIZED = "finalized"
    VERIFIED = "verified"
    REJECTED = "rejected"
    ARCHIVED = "archived"


class VerificationStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    VERIFIED = "verified"
    REJECTED = "rejected"


class OwnerResolution(str, Enum):
    """How the clinician of record was chosen for a report."""

    SELF = "self"  # acting user is the owner
    ASSIGNED = "assigned"  # admin acting; latest assignment's clinician
    ADMIN_FALLBACK = "admin_fallback"  # admin acting, no assignment; degraded


class ExportFormat(str, Enum):
    DOCX = "docx"
    PDF = "pdf"


class NoteType(str, Enum):
    GENERAL = "general"
    CLINICAL = "clinical"
    TECHNICAL = "technical"
    ADMINISTRATIVE = "administrative"
    QUALITY = "quality"
    FOLLOW_UP = "follow_up"
