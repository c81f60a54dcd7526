"""Unified API response format and error codes."""

import math
from typing import Any
from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, Field

from utils.timezone import now_utc


class APIError(BaseModel):
    """Error details in API response."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")


class APIMeta(BaseModel):
    """Metadata included in every API response. Paging fields only on lists."""

    timestamp: datetime = Field(..., description="Response timestamp (UTC)")
    request_id: str = Field(..., description="Unique request identifier for tracing")
    page: int | None = None
    limit: int | None = None
    total: int | None = None
    total_pages: int | None = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


class APIResponse(BaseModel):
    """
    Unified response format for all API endpoints.

    Every endpoint returns this structure, making client parsing predictable.
    """

    success: bool
    data: Any | None = None
    error: APIError | None = None
    meta: APIMeta


def _meta(request_id: str | None, pagination: Pagination | None = None) -> APIMeta:
    meta = APIMeta(timestamp=now_utc(), request_id=request_id or str(uuid4()))
    if pagination is not None:
        meta.page = pagination.page
        meta.limit = pagination.limit
        meta.total = pagination.total
        meta.total_pages = pagination.total_pages
    return meta


def success_response(
    data: Any,
    request_id: str | None = None,
    pagination: Pagination | None = None,
) -> APIResponse:
    """Create a success response."""
    return APIResponse(success=True, data=data, error=None, meta=_meta(request_id, pagination))


def paginated_response(
    items: list[Any],
    total: int,
    page: int,
    limit: int,
    request_id: str | None = None,
) -> APIResponse:
    """Success response for a page of a list, with paging meta."""
    return success_response(
        items,
        request_id=request_id,
        pagination=Pagination(page=page, limit=limit, total=total),
    )


def error_response(code: str, message: str, request_id: str | None = None) -> APIResponse:
    """Create an error response."""
    return APIResponse(
        success=False,
        data=None,
        error=APIError(code=code, message=message),
        meta=_meta(request_id),
    )


class ErrorCodes:
    """Standard error codes for consistent error handling."""

    # Authentication & Authorization
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    ACCOUNT_INACTIVE = "ACCOUNT_INACTIVE"
    RATE_LIMITED = "RATE_LIMITED"
    FEATURE_NOT_AVAILABLE = "FEATURE_NOT_AVAILABLE"

    # Resource Errors
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"

    # Validation Errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"

    # Scheduling
    SCHEDULING_CONFLICT = "SCHEDULING_CONFLICT"

    # Payments
    PAYMENT_GATEWAY_ERROR = "PAYMENT_GATEWAY_ERROR"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"

    # Infrastructure
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
