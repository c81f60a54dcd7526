"""GET /api/data - unified read endpoint."""

from uuid import UUID

from fastapi import APIRouter, Query, Request
from pydantic import AwareDatetime

from api.base import success_response, paginated_response
from core.config import BusinessConfig
from core.models import BookingStatus, PaymentStatus, QuoteStatus


VALID_TYPES = {"customers", "bookings", "quotes", "payments"}


def _uuid(value: str, name: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise ValueError(f"'{name}' must be a UUID")


def _status(enum_cls, value: str | None):
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        valid = ", ".join(s.value for s in enum_cls)
        raise ValueError(f"Unknown status '{value}'. Valid statuses: {valid}")


def create_data_router(services: dict, config: BusinessConfig) -> APIRouter:
    router = APIRouter()

    customer_svc = services["customer"]
    booking_svc = services["booking"]
    quote_svc = services["quote"]
    payment_svc = services["payment"]

    # -------------------------------------------------------------------------
    # Convenience routes (must be registered before the generic /data route)
    # -------------------------------------------------------------------------

    @router.get("/data/bookings/calendar")
    async def bookings_calendar(
        request: Request,
        start: AwareDatetime = Query(...),
        end: AwareDatetime = Query(...),
    ):
        bookings = booking_svc.list_calendar(start, end)
        return success_response(
            [b.model_dump(mode="json") for b in bookings],
            request_id=getattr(request.state, "request_id", None),
        ).model_dump(mode="json")

    # -------------------------------------------------------------------------
    # Generic data endpoint
    # -------------------------------------------------------------------------

    @router.get("/data")
    async def get_data(
        request: Request,
        type: str | None = Query(None),
        id: str | None = Query(None),
        search: str | None = Query(None),
        status: str | None = Query(None),
        customer_id: str | None = Query(None),
        start: AwareDatetime | None = Query(None),
        end: AwareDatetime | None = Query(None),
        page: int | None = Query(None, ge=1),
        limit: int | None = Query(None, ge=1),
    ):
        if type is None:
            raise ValueError("'type' query parameter is required")

        if type not in VALID_TYPES:
            raise ValueError(f"Unknown type '{type}'. Valid types: {', '.join(sorted(VALID_TYPES))}")

        request_id = getattr(request.state, "request_id", None)
        page, limit = config.clamp_page(page, limit)
        customer_uuid = _uuid(customer_id, "customer_id") if customer_id else None

        if type == "customers":
            if id:
                return _customer_detail(customer_svc, _uuid(id, "id"), request_id)
            items, total = customer_svc.list(search=search, page=page, limit=limit)

        elif type == "bookings":
            if id:
                return _single(booking_svc.get_by_id(_uuid(id, "id")), "Booking", id, request_id)
            items, total = booking_svc.list(
                status=_status(BookingStatus, status),
                customer_id=customer_uuid,
                start=start,
                end=end,
                page=page,
                limit=limit,
            )

        elif type == "quotes":
            if id:
                return _single(quote_svc.get_by_id(_uuid(id, "id")), "Quote", id, request_id)
            items, total = quote_svc.list(
                status=_status(QuoteStatus, status),
                customer_id=customer_uuid,
                page=page,
                limit=limit,
            )

        else:
            items, total = payment_svc.list(
                status=_status(PaymentStatus, status),
                page=page,
                limit=limit,
            )

        return paginated_response(
            [item.model_dump(mode="json") for item in items],
            total=total,
            page=page,
            limit=limit,
            request_id=request_id,
        ).model_dump(mode="json")

    return router


def _customer_detail(customer_svc, customer_id: UUID, request_id: str | None):
    detail = customer_svc.get_detail(customer_id)
    return success_response(detail.model_dump(mode="json"), request_id=request_id).model_dump(mode="json")


def _single(entity, label: str, id: str, request_id: str | None):
    if entity is None:
        raise ValueError(f"{label} {id} not found")
    return success_response(entity.model_dump(mode="json"), request_id=request_id).model_dump(mode="json")
