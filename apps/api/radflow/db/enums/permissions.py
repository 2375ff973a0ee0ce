"""Role permission helper sets."""

from radflow.db.enums.auth import Role

# Roles that author reports in their own name
ROLES_CLINICIAN = {Role.RADIOLOGIST, Role.DOCTOR_ACCOUNT}

# Roles that write reports on behalf of the assigned clinician
ROLES_REPORT_ON_BEHALF = {Role.ADMIN, Role.SUPER_ADMIN}

# Roles that can save draft / finalized reports
ROLES_CAN_WRITE_REPORTS = {
    Role.RADIOLOGIST,
    Role.DOCTOR_ACCOUNT,
    Role.TYPIST,
    Role.ADMIN,
    Role.SUPER_ADMIN,
}

# Roles that can approve or reject finalized reports
ROLES_CAN_VERIFY = {Role.VERIFIER, Role.ADMIN, Role.SUPER_ADMIN}

# Roles that skip the "study must be awaiting verification" check
ROLES_VERIFY_ANY_STATUS = {Role.ADMIN, Role.SUPER_ADMIN}

# Roles that can assign studies and send them back to the radiologist
ROLES_CAN_ASSIGN = {Role.ASSIGNOR, Role.ADMIN, Role.SUPER_ADMIN}

# Roles that can copy studies between organizations
ROLES_CAN_COPY_STUDIES = {Role.ADMIN, Role.SUPER_ADMIN}

# Roles that can copy into any organization (others only into their own)
ROLES_CROSS_TENANT = {Role.SUPER_ADMIN}
