"""Study documents (attachments): listing and signed download URLs."""

import uuid

from sqlalchemy.orm import Session

from radflow.core.exceptions import NotFound
from radflow.db.models import Attachment
from radflow.schemas.auth import UserSession
from radflow.services import study_service
from radflow.services.blob_store import BlobStore, build_storage_key, get_blob_store

__all__ = [
    "build_storage_key",
    "get_attachment",
    "get_download_url",
    "list_active_attachments",
]


def list_active_attachments(db: Session, study_id: uuid.UUID) -> list[Attachment]:
    """Active attachments for a study, oldest first."""
    return db.query(Attachment).filter(
        Attachment.study_id == study_id,
        Attachment.is_active.is_(True),
    ).order_by(Attachment.created_at.asc()).all()


def get_attachment(
    db: Session,
    attachment_id: uuid.UUID,
    acting_user: UserSession,
) -> Attachment:
    """Load an active attachment the user may see."""
    attachment = db.get(Attachment, attachment_id)
    if attachment is None or not attachment.is_active:
        raise NotFound("Attachment not found")
    study_service.check_study_access(study_service.get_study(db, attachment.study_id), acting_user)
    return attachment


def get_download_url(
    db: Session,
    attachment_id: uuid.UUID,
    acting_user: UserSession,
    store: BlobStore | None = None,
) -> str:
    """Signed download URL for an attachment."""
    attachment = get_attachment(db, attachment_id, acting_user)
    return (store or get_blob_store()).presigned_url(attachment.storage_key, "download")
