"""Shared response envelope."""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Result envelope returned by every operation endpoint."""

    success: bool = True
    message: str
    data: T | None = None
