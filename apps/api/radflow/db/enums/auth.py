"""Auth-related enums."""

from enum import Enum


class Role(str, Enum):
    """
    User roles.

    - SUPER_ADMIN: Platform operator across all organizations
    - ADMIN: Organization admin (assignment, reporting on behalf of clinicians)
    - GROUP_ID: Group coordinator for a set of labs
    - ASSIGNOR: Assigns studies to radiologists
    - RADIOLOGIST / DOCTOR_ACCOUNT: Clinicians who author reports
    - TYPIST: Transcribes reports for a linked radiologist
    - VERIFIER: Reviews finalized reports before completion
    - PHYSICIAN: Referring physician (read-only access to own studies)
    - LAB_STAFF: Lab front desk (uploads, downloads)
    """

    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    GROUP_ID = "group_id"
    ASSIGNOR = "assignor"
    RADIOLOGIST = "radiologist"
    TYPIST = "typist"
    VERIFIER = "verifier"
    PHYSICIAN = "physician"
    LAB_STAFF = "lab_staff"
    DOCTOR_ACCOUNT = "doctor_account"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_
