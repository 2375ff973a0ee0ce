"""SQLAlchemy ORM models."""

from radflow.db.models.attachments import Attachment
from radflow.db.models.audit import AuditLog
from radflow.db.models.notes import StudyNote
from radflow.db.models.patients import Patient
from radflow.db.models.reports import Report
from radflow.db.models.studies import Study, StudyAssignment, StudyStatusHistory
from radflow.db.models.tenancy import DoctorProfile, Lab, Organization, User

__all__ = [
    "Attachment",
    "AuditLog",
    "DoctorProfile",
    "Lab",
    "Organization",
    "Patient",
    "Report",
    "Study",
    "StudyAssignment",
    "StudyNote",
    "StudyStatusHistory",
    "User",
]
