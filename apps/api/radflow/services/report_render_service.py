"""Render a stored report to DOCX/PDF and keep the result in the blob store."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from radflow.core.config import settings
from radflow.core.exceptions import InvalidArgument, RadflowError
from radflow.core.structured_logging import build_log_context
from radflow.db.enums import AuditEventType, ExportFormat
from radflow.db.models import Report
from radflow.db.transaction import atomic
from radflow.schemas.auth import UserSession
from radflow.services import audit_service, report_service
from radflow.services.blob_store import BlobStore, build_storage_key, get_blob_store
from radflow.services.document_renderer import (
    DocumentRenderer,
    RenderImage,
    RenderRequest,
    get_document_renderer,
)

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_NAME = "default"

_MEDIA_TYPES = {
    ExportFormat.DOCX.value: "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ExportFormat.PDF.value: "application/pdf",
}


def build_render_request(report: Report, output_format: ExportFormat, enrichment: dict) -> RenderRequest:
    """Placeholders and key images for the renderer; branding goes in as extra placeholders."""
    placeholders = {str(k): str(v) for k, v in (report.placeholders or {}).items() if v is not None}
    placeholders["--Content--"] = report.html_content or placeholders.get("--Content--", "")

    branding = enrichment.get("lab_branding") or {}
    if branding.get("lab_name"):
        placeholders["--labname--"] = str(branding["lab_name"])
    if branding.get("header_url"):
        placeholders["--headerimage--"] = branding["header_url"]
    if branding.get("footer_url"):
        placeholders["--footerimage--"] = branding["footer_url"]

    signature = enrichment.get("doctor_signature") or {}
    if signature.get("text"):
        placeholders["--signature--"] = signature["text"]
    if signature.get("url"):
        placeholders["--signatureimage--"] = signature["url"]

    images = {
        f"Image{index}": RenderImage(
            data=image.get("image_data", ""),
            width=image.get("width"),
            height=image.get("height"),
        )
        for index, image in enumerate(report.captured_images or [], start=1)
        if image.get("image_data")
    }

    template_info = report.template_info or {}
    return RenderRequest(
        template_name=template_info.get("template_name") or DEFAULT_TEMPLATE_NAME,
        study_id=str(report.study_id),
        output_format=output_format.value,
        placeholders=placeholders,
        images=images,
    )


def render_report(
    db: Session,
    report_ref: UUID | str,
    acting_user: UserSession,
    output_format: ExportFormat | str | None = None,
    renderer: DocumentRenderer | None = None,
    store: BlobStore | None = None,
) -> Report:
    """
    Render ``report_ref`` and store the document.

    Sets ``rendered_storage_key`` and a signed ``download_url`` on the report.
    Lab branding and signature are added when available; their absence
    never fails the render.
    """
    report = report_service.get_report(db, report_ref, acting_user)
    try:
        fmt = ExportFormat(output_format or report.export_format or ExportFormat.DOCX.value)
    except ValueError:
        raise InvalidArgument(f"Unsupported report format '{output_format}'")

    enrichment = report_service.collect_render_enrichment(db, report.study_id, report.doctor_id)
    request = build_render_request(report, fmt, enrichment)

    document = (renderer or get_document_renderer()).render(request)
    store = store or get_blob_store()

    file_name = document.file_name or (report.file_name or f"{report.report_id}.{fmt.value}")
    if not file_name.endswith(f".{fmt.value}"):
        file_name = f"{file_name.rsplit('.', 1)[0]}.{fmt.value}"
    storage_key = build_storage_key(
        report.organization_identifier or "shared",
        report.study_id,
        file_name,
    )
    store.put(
        storage_key,
        document.content,
        document.content_type or _MEDIA_TYPES[fmt.value],
        metadata={"report_id": report.report_id, "format": fmt.value},
    )

    try:
        with atomic(db, operation="rendered report", timeout_seconds=settings.STUDY_COMMIT_TIMEOUT_SECONDS):
            report.rendered_storage_key = storage_key
            report.download_url = store.presigned_url(storage_key, "download")
            report.export_format = fmt.value
            audit_service.log_event(
                db,
                org_id=report.organization_id,
                event_type=AuditEventType.REPORT_RENDERED,
                actor_user_id=acting_user.user_id,
                target_type="report",
                target_id=report.id,
                details={"format": fmt.value},
            )
    except RadflowError:
        store.delete(storage_key)
        raise

    logger.info(
        "Report rendered",
        extra=build_log_context(
            user_id=acting_user.user_id,
            study_id=report.study_id,
            report_id=report.id,
            operation="render_report",
        ),
    )
    return report
