"""Response envelope shared by all endpoints."""

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

DataT = TypeVar("DataT")


class ApiResponse(BaseModel, Generic[DataT]):
    """Success envelope: numeric status, payload and a human-readable message."""

    status: int = Field(..., description="HTTP status code of the response")
    data: DataT | None = Field(default=None, description="Response payload")
    message: str = Field(default="Success", description="Human-readable message")
    success: bool = Field(default=True, description="True for status codes below 400")


class ErrorResponse(BaseModel):
    """Error envelope produced by the exception handlers."""

    status: int
    message: str
    success: bool = False
    errors: list = Field(default_factory=list)
