"""Notes router - study discussion notes."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from radflow.core.deps import get_current_session, get_db, require_csrf_header
from radflow.schemas.auth import UserSession
from radflow.schemas.common import ApiResponse
from radflow.schemas.note import NoteCreate, NoteRead
from radflow.services import note_service

router = APIRouter()


@router.get("/studies/{study_id}/notes", response_model=ApiResponse[list[NoteRead]])
def list_notes(
    study_id: str,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    notes = note_service.list_notes(db, study_id, session)
    return ApiResponse(message=f"{len(notes)} note(s)", data=[NoteRead.model_validate(n) for n in notes])


@router.post(
    "/studies/{study_id}/notes",
    response_model=ApiResponse[NoteRead],
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_note(
    study_id: str,
    data: NoteCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    note = note_service.create_note(
        db,
        study_id,
        session,
        note_text=data.note_text,
        note_type=data.note_type,
        priority=data.priority,
        is_private=data.is_private,
    )
    return ApiResponse(message="Note added", data=NoteRead.model_validate(note))
