"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel

from radflow.db.enums import Role


class UserSession(BaseModel):
    """
    Acting-user context for authenticated requests.

    Returned by the get_current_session dependency and passed into every
    service operation. Services only authorize (tenant + role); they never
    authenticate.
    """
    user_id: UUID
    org_id: UUID | None  # None for super_admin
    organization_identifier: str | None
    role: Role  # Validated enum
    email: str
    full_name: str
