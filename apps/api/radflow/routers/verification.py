"""Verification router - verifier approve / reject and radiologist reverts."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from radflow.core.deps import get_current_session, get_db, require_csrf_header, require_roles
from radflow.db.enums import ROLES_CAN_VERIFY
from radflow.routers.studies import transition_data
from radflow.schemas.auth import UserSession
from radflow.schemas.common import ApiResponse
from radflow.schemas.study import ResolveRevertRequest, RevertRequest
from radflow.schemas.verification import VerifyReportRequest
from radflow.services import verification_service

router = APIRouter(dependencies=[Depends(require_csrf_header)])


@router.post("/studies/{study_id}/verification/start", response_model=ApiResponse[dict])
def start_verification(
    study_id: str,
    session: UserSession = Depends(require_roles(ROLES_CAN_VERIFY)),
    db: Session = Depends(get_db),
):
    result = verification_service.start_verification(db, study_id, session)
    return ApiResponse(message="Verification started", data=transition_data(result))


@router.post("/studies/{study_id}/verification", response_model=ApiResponse[dict])
def verify_report(
    study_id: str,
    data: VerifyReportRequest,
    session: UserSession = Depends(require_roles(ROLES_CAN_VERIFY)),
    db: Session = Depends(get_db),
):
    """Approve or reject the study's finalized report."""
    result = verification_service.verify_report(
        db,
        study_id,
        session,
        approved=data.approved,
        notes=data.notes,
        rejection_reason=data.rejection_reason,
        corrections=data.corrections,
    )
    message = "Report verified" if data.approved else "Report rejected and sent back to radiologist"
    return ApiResponse(message=message, data=dict(result))


@router.post("/studies/{study_id}/revert", response_model=ApiResponse[dict])
def revert_to_radiologist(
    study_id: str,
    data: RevertRequest,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    result = verification_service.revert_to_radiologist(db, study_id, session, data.reason)
    return ApiResponse(message="Study reverted to radiologist", data=transition_data(result))


@router.post("/studies/{study_id}/revert/resolve", response_model=ApiResponse[dict])
def resolve_revert(
    study_id: str,
    data: ResolveRevertRequest,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    result = verification_service.resolve_revert(db, study_id, session, data.notes)
    return ApiResponse(message="Revert resolved", data=transition_data(result))
