"""Structured logging helpers (PHI-safe)."""

from typing import Any


def build_log_context(
    *,
    user_id: Any = None,
    org_id: Any = None,
    study_id: Any = None,
    report_id: Any = None,
    operation: str | None = None,
) -> dict[str, Any]:
    """Return a PHI-safe log context dict (identifiers only, never names or report text)."""
    context: dict[str, Any] = {}
    if user_id:
        context["user_id"] = str(user_id)
    if org_id:
        context["org_id"] = str(org_id)
    if study_id:
        context["study_id"] = str(study_id)
    if report_id:
        context["report_id"] = str(report_id)
    if operation:
        context["operation"] = operation
    return context
