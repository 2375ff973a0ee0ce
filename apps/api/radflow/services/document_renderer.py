"""Client for the external document renderer (placeholders + images -> DOCX/PDF)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx

from radflow.core.config import settings
from radflow.core.exceptions import DownstreamUnavailable, InvalidArgument

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "pdf": "application/pdf",
}


@dataclass(frozen=True)
class RenderImage:
    data: str  # base64
    width: int | None = None
    height: int | None = None


@dataclass
class RenderRequest:
    template_name: str
    study_id: str
    output_format: str = "docx"
    placeholders: dict[str, str] = field(default_factory=dict)
    images: dict[str, RenderImage] = field(default_factory=dict)

    def to_payload(self) -> dict:
        return {
            "templateName": self.template_name,
            "studyId": self.study_id,
            "outputFormat": self.output_format,
            "placeholders": {k: "" if v is None else str(v) for k, v in self.placeholders.items()},
            "images": {
                name: {
                    key: value
                    for key, value in (("data", img.data), ("width", img.width), ("height", img.height))
                    if value is not None
                }
                for name, img in self.images.items()
            },
        }


@dataclass(frozen=True)
class RenderedDocument:
    content: bytes
    content_type: str
    file_name: str | None = None


class DocumentRenderer:
    """
    Synchronous HTTP client for the renderer service.

    The renderer ignores unknown placeholder keys and accepts an empty
    images map. Failures are not retried.
    """

    def __init__(self, base_url: str | None = None, timeout: float | None = None, transport=None):
        self.base_url = base_url or settings.DOCUMENT_RENDERER_URL
        self.timeout = timeout or settings.RENDERER_TIMEOUT_SECONDS
        self._transport = transport

    def render(self, request: RenderRequest) -> RenderedDocument:
        if request.output_format not in CONTENT_TYPES:
            raise InvalidArgument(f"Unsupported output format '{request.output_format}'")
        if not request.study_id:
            raise InvalidArgument("study_id is required to render a report")

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(self.base_url, json=request.to_payload())
        except httpx.TimeoutException as exc:
            logger.warning("Document renderer timed out for study %s", request.study_id)
            raise DownstreamUnavailable("Document renderer timed out") from exc
        except httpx.HTTPError as exc:
            logger.warning("Document renderer unreachable: %s", exc.__class__.__name__)
            raise DownstreamUnavailable("Document renderer unavailable") from exc

        if response.status_code in (400, 404):
            raise InvalidArgument(_error_message(response) or "Renderer rejected the request")
        if response.status_code >= 400:
            logger.warning("Document renderer returned %s", response.status_code)
            raise DownstreamUnavailable(
                "Document renderer failed", detail=_error_message(response)
            )

        return RenderedDocument(
            content=response.content,
            content_type=response.headers.get("content-type", CONTENT_TYPES[request.output_format]),
            file_name=_file_name_from_headers(response.headers),
        )


def _error_message(response: httpx.Response) -> str | None:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or None
    return data.get("message") if isinstance(data, dict) else None


def _file_name_from_headers(headers: httpx.Headers) -> str | None:
    disposition = headers.get("content-disposition") or ""
    for part in disposition.split(";"):
        part = part.strip()
        if part.startswith("filename="):
            return part.split("=", 1)[1].strip('"')
    return None


def get_document_renderer() -> DocumentRenderer:
    return DocumentRenderer()
