"""Shared API envelope and error payload schemas."""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Consistent JSON envelope for API responses."""

    data: T


class StepErrorDetail(BaseModel):
    """``detail`` body of an HTTP error raised by a failed merge step."""

    step: str
    reason: str
