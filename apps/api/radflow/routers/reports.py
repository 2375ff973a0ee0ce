"""Reports router - draft save, finalize, usage tracking and rendering."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from radflow.core.deps import get_current_session, get_db, require_csrf_header
from radflow.schemas.auth import UserSession
from radflow.schemas.common import ApiResponse
from radflow.schemas.report import (
    RenderReportRequest,
    ReportContentIn,
    ReportRead,
    ReportSummary,
    ReportUsageRequest,
    StoreDraftRequest,
    StoreFinalizedRequest,
)
from radflow.services import report_render_service, report_service

router = APIRouter()


def _content(data: StoreDraftRequest) -> ReportContentIn:
    return ReportContentIn.model_validate(data.model_dump(exclude={"format"}))


# =============================================================================
# Draft / finalize
# =============================================================================

@router.post(
    "/studies/{study_id}/reports/draft",
    response_model=ApiResponse[ReportSummary],
    dependencies=[Depends(require_csrf_header)],
)
def store_draft(
    study_id: str,
    data: StoreDraftRequest,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Save the draft report for this study (created or updated in place)."""
    summary = report_service.store_draft(db, study_id, session, _content(data))
    return ApiResponse(message="Draft report saved", data=summary)


@router.post(
    "/studies/{study_id}/reports/finalize",
    response_model=ApiResponse[ReportSummary],
    dependencies=[Depends(require_csrf_header)],
)
def store_finalized(
    study_id: str,
    data: StoreFinalizedRequest,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Finalize the report; the study moves to verification or completion."""
    summary = report_service.store_finalized(db, study_id, session, _content(data), data.format)
    return ApiResponse(message="Report finalized", data=summary)


# =============================================================================
# Queries
# =============================================================================

@router.get("/studies/{study_id}/reports", response_model=ApiResponse[list[ReportRead]])
def list_study_reports(
    study_id: str,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    reports = report_service.list_study_reports(db, study_id, session)
    return ApiResponse(
        message=f"{len(reports)} report(s)",
        data=[ReportRead.model_validate(r) for r in reports],
    )


@router.get("/reports/{report_id}", response_model=ApiResponse[ReportRead])
def get_report(
    report_id: str,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    report = report_service.get_report(db, report_id, session)
    return ApiResponse(message="Report found", data=ReportRead.model_validate(report))


# =============================================================================
# Usage
# =============================================================================

@router.post(
    "/reports/{report_id}/download",
    response_model=ApiResponse[ReportRead],
    dependencies=[Depends(require_csrf_header)],
)
def record_download(
    report_id: str,
    data: ReportUsageRequest,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    report = report_service.record_report_download(db, report_id, session, data.usage_type)
    return ApiResponse(message="Download recorded", data=ReportRead.model_validate(report))


@router.post(
    "/reports/{report_id}/print",
    response_model=ApiResponse[ReportRead],
    dependencies=[Depends(require_csrf_header)],
)
def record_print(
    report_id: str,
    data: ReportUsageRequest,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    report = report_service.record_report_print(db, report_id, session, data.usage_type)
    return ApiResponse(message="Print recorded", data=ReportRead.model_validate(report))


@router.post(
    "/reports/{report_id}/render",
    response_model=ApiResponse[ReportRead],
    dependencies=[Depends(require_csrf_header)],
)
def render_report(
    report_id: str,
    data: RenderReportRequest,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Render to DOCX/PDF; the response carries a signed download URL."""
    report = report_render_service.render_report(db, report_id, session, data.format)
    return ApiResponse(message="Report rendered", data=ReportRead.model_validate(report))
