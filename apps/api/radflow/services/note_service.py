"""Study discussion notes."""

from uuid import UUID

import nh3
from sqlalchemy.orm import Session

from radflow.core.exceptions import InvalidArgument
from radflow.db.enums import NoteType
from radflow.db.models import StudyNote
from radflow.schemas.auth import UserSession
from radflow.services import study_service

# Rich text allowed in notes
ALLOWED_TAGS = {"p", "br", "strong", "em", "ul", "ol", "li", "a", "blockquote", "code", "pre"}
ALLOWED_ATTRIBUTES = {"a": {"href", "target"}}


def sanitize_html(html: str) -> str:
    """Strip everything but the safe rich text tags."""
    return nh3.clean(html, tags=ALLOWED_TAGS, attributes=ALLOWED_ATTRIBUTES)


def create_note(
    db: Session,
    study_id: UUID | str,
    acting_user: UserSession,
    note_text: str,
    note_type: NoteType | str = NoteType.GENERAL,
    priority: str = "normal",
    is_private: bool = False,
) -> StudyNote:
    """Add a note to a study."""
    study = study_service.get_study_for_user(db, study_id, acting_user)
    clean_text = sanitize_html(note_text).strip()
    if not clean_text:
        raise InvalidArgument("Note text is required")

    type_str = note_type.value if isinstance(note_type, NoteType) else note_type
    note = StudyNote(
        organization_id=study.organization_id,
        study_id=study.id,
        note_text=clean_text,
        note_type=type_str,
        priority=priority,
        is_private=is_private,
        created_by_user_id=acting_user.user_id,
        created_by_name=acting_user.full_name,
        created_by_role=acting_user.role.value,
    )
    db.add(note)
    db.commit()
    db.refresh(note)
    return note


def list_notes(db: Session, study_id: UUID | str, acting_user: UserSession) -> list[StudyNote]:
    """Notes for a study, newest first. Private notes are visible to their author only."""
    study = study_service.get_study_for_user(db, study_id, acting_user)
    notes = db.query(StudyNote).filter(
        StudyNote.study_id == study.id,
    ).order_by(StudyNote.created_at.desc()).all()
    return [
        n for n in notes
        if not n.is_private or n.created_by_user_id == acting_user.user_id
    ]
