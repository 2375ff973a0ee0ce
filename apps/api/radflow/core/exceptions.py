"""Domain error taxonomy.

Services raise these; the API layer maps them to HTTP responses in one place
(see ``radflow.main``). Validation and authorization errors are raised before
any transaction starts.
"""

from typing import Any


class RadflowError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, *, detail: Any = None):
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class InvalidArgument(RadflowError):
    """Malformed or missing required input. Never retried."""

    status_code = 400
    default_message = "Invalid request"


class PermissionDenied(RadflowError):
    """Tenant mismatch or insufficient role."""

    status_code = 403
    default_message = "Access denied"


class NotFound(RadflowError):
    status_code = 404
    default_message = "Not found"


class Conflict(RadflowError):
    """Identity collision on insert."""

    status_code = 409
    default_message = "Conflict"


class DownstreamUnavailable(RadflowError):
    """Blob store or document renderer unreachable or timed out."""

    status_code = 502
    default_message = "Downstream service unavailable, try again"


class Internal(RadflowError):
    status_code = 500
    default_message = "Internal server error"
