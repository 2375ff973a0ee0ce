"""Pydantic schemas for report verification."""

from pydantic import BaseModel, Field, model_validator


class VerifyReportRequest(BaseModel):
    approved: bool
    notes: str | None = Field(default=None, max_length=4000)
    rejection_reason: str | None = Field(default=None, max_length=2000)
    corrections: list[dict] = Field(default_factory=list)

    @model_validator(mode="after")
    def _reason_required_on_reject(self):
        if not self.approved and not (self.rejection_reason or "").strip():
            raise ValueError("rejection_reason is required when rejecting a report")
        return self
