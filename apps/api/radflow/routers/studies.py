"""Studies router - workflow status, assignment, cross-organization copy."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from radflow.core.deps import get_current_session, get_db, require_csrf_header, require_roles
from radflow.db.enums import ROLES_CAN_COPY_STUDIES
from radflow.schemas.auth import UserSession
from radflow.schemas.common import ApiResponse
from radflow.schemas.study import CopyStudyRequest, StudyAssign, StudyStatusRead, WorkflowStatusUpdate
from radflow.services import (
    assignment_service,
    attachment_service,
    study_copy_service,
    study_service,
    workflow_status_service,
)
from radflow.services.study_copy_service import CopyOptions

router = APIRouter()


def transition_data(result) -> dict:
    """Serializable view of a transition result (post-commit effects dropped)."""
    return {key: value for key, value in result.items() if key != "post_commit"}


# =============================================================================
# Cross-organization copy (by external study ID)
# =============================================================================

@router.get("/studies/lookup/{external_id}", response_model=ApiResponse[dict])
def lookup_study_for_copy(
    external_id: str,
    session: UserSession = Depends(require_roles(ROLES_CAN_COPY_STUDIES)),
    db: Session = Depends(get_db),
):
    preview = study_copy_service.lookup_study_for_copy(db, external_id, session)
    return ApiResponse(message="Study found", data=preview)


@router.post(
    "/studies/by-external-id/{external_id}/copy",
    response_model=ApiResponse[dict],
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def copy_study(
    external_id: str,
    data: CopyStudyRequest,
    session: UserSession = Depends(require_roles(ROLES_CAN_COPY_STUDIES)),
    db: Session = Depends(get_db),
):
    """Copy a study into another organization."""
    result = study_copy_service.copy_study(
        db,
        external_id,
        data.target_organization,
        session,
        CopyOptions(
            copy_attachments=data.copy_attachments,
            copy_reports=data.copy_reports,
            copy_notes=data.copy_notes,
            reason=data.reason,
        ),
    )
    message = f"Study copied to {result['target_organization']}"
    if result["errors"]:
        message += f" with {len(result['errors'])} warning(s)"
    return ApiResponse(message=message, data=dict(result))


@router.get("/studies/by-external-id/{external_id}/copy-history", response_model=ApiResponse[dict])
def get_copy_history(
    external_id: str,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    history = study_copy_service.get_copy_history(db, external_id, session)
    return ApiResponse(message="Copy history", data=history)


# =============================================================================
# Workflow + assignment
# =============================================================================

@router.get("/studies/{study_id}/status", response_model=ApiResponse[StudyStatusRead])
def get_status(
    study_id: str,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    study = study_service.get_study_for_user(db, study_id, session)
    return ApiResponse(
        message="Study status",
        data=StudyStatusRead(
            study_id=study.id,
            external_id=study.external_id,
            workflow_status=study.workflow_status,
            current_category=study.current_category,
        ),
    )


@router.patch(
    "/studies/{study_id}/status",
    response_model=ApiResponse[dict],
    dependencies=[Depends(require_csrf_header)],
)
def update_status(
    study_id: str,
    data: WorkflowStatusUpdate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    result = workflow_status_service.update_workflow_status(db, study_id, data.status, session, data.note)
    return ApiResponse(message=f"Study status updated to {result['status']}", data=transition_data(result))


@router.post(
    "/studies/{study_id}/assign",
    response_model=ApiResponse[dict],
    dependencies=[Depends(require_csrf_header)],
)
def assign_study(
    study_id: str,
    data: StudyAssign,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    assignment = assignment_service.assign_study(db, study_id, data.doctor_id, session, data.priority)
    return ApiResponse(
        message="Study assigned",
        data={
            "study_id": assignment.study_id,
            "assigned_to_user_id": assignment.assigned_to_user_id,
            "priority": assignment.priority,
            "assigned_at": assignment.assigned_at,
        },
    )


# =============================================================================
# Documents
# =============================================================================

@router.get("/attachments/{attachment_id}/download-url", response_model=ApiResponse[dict])
def get_attachment_download_url(
    attachment_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    url = attachment_service.get_download_url(db, attachment_id, session)
    return ApiResponse(message="Download URL", data={"url": url})
