"""HTTP interface: response envelope, routers and error mapping."""

from api.base import (
    APIError,
    APIMeta,
    APIResponse,
    Pagination,
    success_response,
    paginated_response,
    error_response,
    ErrorCodes,
)
