"""API routers."""

from radflow.routers.notes import router as notes_router
from radflow.routers.reports import router as reports_router
from radflow.routers.studies import router as studies_router
from radflow.routers.verification import router as verification_router

__all__ = [
    "notes_router",
    "reports_router",
    "studies_router",
    "verification_router",
]
