"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from clients.stripe_client import PaymentGatewayError
from core.exceptions import QuoteTotalsError, SchedulingConflictError

logger = logging.getLogger(__name__)


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _json(request: Request, status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_response(code, message, request_id=_request_id(request)).model_dump(mode="json"),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app.

    Starlette picks the handler for the most specific class in the
    exception's MRO, so the ValueError subclasses below win over the
    generic ValueError handler.
    """

    @app.exception_handler(SchedulingConflictError)
    async def scheduling_conflict_handler(request: Request, exc: SchedulingConflictError):
        return _json(request, 409, ErrorCodes.SCHEDULING_CONFLICT, str(exc))

    @app.exception_handler(QuoteTotalsError)
    async def quote_totals_handler(request: Request, exc: QuoteTotalsError):
        return _json(request, 422, ErrorCodes.VALIDATION_ERROR, str(exc))

    @app.exception_handler(PaymentGatewayError)
    async def payment_gateway_handler(request: Request, exc: PaymentGatewayError):
        logger.error(f"Payment gateway error: {exc}")
        return _json(request, 502, ErrorCodes.PAYMENT_GATEWAY_ERROR, "Payment provider rejected the request")

    @app.exception_handler(ValidationError)
    async def payload_validation_handler(request: Request, exc: ValidationError):
        return _json(request, 422, ErrorCodes.VALIDATION_ERROR, str(exc.errors(include_url=False)))

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        message = str(exc)
        if "not found" in message.lower():
            return _json(request, 404, ErrorCodes.NOT_FOUND, message)
        return _json(request, 400, ErrorCodes.INVALID_REQUEST, message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _json(request, 422, ErrorCodes.VALIDATION_ERROR, str(exc.errors()))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return _json(request, 500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")
