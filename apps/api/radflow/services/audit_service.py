"""Audit logging service - report and study lifecycle event tracking.

Guidelines:
- Use IDs instead of raw data (no report text, no patient names)
- Entries are added to the caller's transaction; the caller commits
"""

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from radflow.db.enums import AuditEventType
from radflow.db.models import AuditLog


def log_event(
    db: Session,
    org_id: UUID | None,
    event_type: AuditEventType,
    actor_user_id: UUID | None = None,
    target_type: str = "study",
    target_id: UUID | None = None,
    details: dict[str, Any] | None = None,
) -> AuditLog:
    """
    Add an audit event to the current transaction.

    Args:
        db: Database session
        org_id: Organization context
        event_type: Type of event (from AuditEventType)
        actor_user_id: User who performed the action (None for system)
        target_type: Type of entity affected ('study', 'report')
        target_id: ID of the affected entity
        details: Additional context (identifiers and flags only)
    """
    entry = AuditLog(
        organization_id=org_id,
        actor_user_id=actor_user_id,
        event_type=event_type.value,
        target_type=target_type,
        target_id=target_id,
        details=details,
    )
    db.add(entry)
    return entry


def log_owner_fallback(
    db: Session,
    org_id: UUID | None,
    admin_user_id: UUID,
    study_id: UUID,
) -> AuditLog:
    """Admin wrote a report on a study with no assigned clinician (degraded attribution)."""
    return log_event(
        db=db,
        org_id=org_id,
        event_type=AuditEventType.REPORT_OWNER_FALLBACK,
        actor_user_id=admin_user_id,
        target_type="study",
        target_id=study_id,
        details={"degraded": True, "reason": "no_assignment"},
    )


def list_events(
    db: Session,
    org_id: UUID | None,
    target_type: str | None = None,
    target_id: UUID | None = None,
) -> list[AuditLog]:
    """List audit events for an organization, oldest first."""
    query = db.query(AuditLog).filter(AuditLog.organization_id == org_id)
    if target_type:
        query = query.filter(AuditLog.target_type == target_type)
    if target_id:
        query = query.filter(AuditLog.target_id == target_id)
    return query.order_by(AuditLog.created_at.asc()).all()
