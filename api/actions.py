"""POST /api/actions - unified mutation endpoint."""

from uuid import UUID

from fastapi import APIRouter, Request
from pydantic import BaseModel

from api.base import success_response
from core.models import (
    CustomerCreate, CustomerUpdate,
    BookingCreate, BookingUpdate,
    QuoteCreate, QuoteUpdate, QuoteSendRequest,
    PaymentIntentCreate,
    PlanChange, SubscriptionCancel,
)


class ActionRequest(BaseModel):
    domain: str
    action: str
    data: dict


def _pop_id(data: dict, key: str = "id") -> UUID:
    if key not in data:
        raise ValueError(f"'{key}' is required")
    try:
        return UUID(str(data.pop(key)))
    except ValueError:
        raise ValueError(f"'{key}' must be a UUID")


def create_actions_router(services: dict) -> APIRouter:
    router = APIRouter()

    handlers = {
        "customer": CustomerHandler(services["customer"]),
        "booking": BookingHandler(services["booking"]),
        "quote": QuoteHandler(services["quote"]),
        "payment": PaymentHandler(services["payment"]),
        "subscription": SubscriptionHandler(services["subscription"]),
    }

    @router.post("/actions")
    async def perform_action(request: Request, body: ActionRequest):
        handler = handlers.get(body.domain)
        if handler is None:
            raise ValueError(
                f"Unknown domain '{body.domain}'. "
                f"Valid domains: {', '.join(sorted(handlers.keys()))}"
            )

        if body.action not in handler.ALLOWED_ACTIONS:
            raise ValueError(
                f"Action '{body.action}' not allowed on '{body.domain}'. "
                f"Allowed: {', '.join(sorted(handler.ALLOWED_ACTIONS))}"
            )

        method = getattr(handler, f"_handle_{body.action}")
        result = method(dict(body.data))
        return success_response(
            result,
            request_id=getattr(request.state, "request_id", None),
        ).model_dump(mode="json")

    return router


# =============================================================================
# HANDLER CLASSES
# =============================================================================


class CustomerHandler:
    ALLOWED_ACTIONS = {"create", "update", "delete"}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        customer = self.service.create(CustomerCreate(**data))
        return customer.model_dump(mode="json")

    def _handle_update(self, data: dict):
        customer_id = _pop_id(data)
        customer = self.service.update(customer_id, CustomerUpdate(**data))
        return customer.model_dump(mode="json")

    def _handle_delete(self, data: dict):
        customer_id = _pop_id(data)
        if not self.service.delete(customer_id):
            raise ValueError(f"Customer {customer_id} not found")
        return {"deleted": True}


class BookingHandler:
    ALLOWED_ACTIONS = {"create", "update", "cancel"}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        booking = self.service.create(BookingCreate(**data))
        return booking.model_dump(mode="json")

    def _handle_update(self, data: dict):
        booking_id = _pop_id(data)
        booking = self.service.update(booking_id, BookingUpdate(**data))
        return booking.model_dump(mode="json")

    def _handle_cancel(self, data: dict):
        booking_id = _pop_id(data)
        booking = self.service.cancel(booking_id, data.get("reason"))
        return booking.model_dump(mode="json")


class QuoteHandler:
    ALLOWED_ACTIONS = {"create", "update", "delete", "send"}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        quote = self.service.create(QuoteCreate(**data))
        return quote.model_dump(mode="json")

    def _handle_update(self, data: dict):
        quote_id = _pop_id(data)
        quote = self.service.update(quote_id, QuoteUpdate(**data))
        return quote.model_dump(mode="json")

    def _handle_delete(self, data: dict):
        quote_id = _pop_id(data)
        if not self.service.delete(quote_id):
            raise ValueError(f"Quote {quote_id} not found")
        return {"deleted": True}

    def _handle_send(self, data: dict):
        quote_id = _pop_id(data)
        channels = QuoteSendRequest(**data)
        quote = self.service.send(quote_id, send_email=channels.send_email, send_sms=channels.send_sms)
        return quote.model_dump(mode="json")


class PaymentHandler:
    ALLOWED_ACTIONS = {"create_intent"}

    def __init__(self, service):
        self.service = service

    def _handle_create_intent(self, data: dict):
        result = self.service.create_intent(PaymentIntentCreate(**data))
        return result.model_dump(mode="json")


class SubscriptionHandler:
    ALLOWED_ACTIONS = {"change_plan", "cancel"}

    def __init__(self, service):
        self.service = service

    def _handle_change_plan(self, data: dict):
        change = PlanChange(**data)
        user = self.service.change_plan(change.tier, change.billing_period)
        return {
            "subscription_tier": user.subscription_tier.value,
            "subscription_status": user.subscription_status.value,
            "stripe_subscription_id": user.stripe_subscription_id,
        }

    def _handle_cancel(self, data: dict):
        cancel = SubscriptionCancel(**data)
        user = self.service.cancel(immediately=cancel.immediately)
        return {
            "subscription_status": user.subscription_status.value,
            "subscription_ends_at": user.subscription_ends_at.isoformat() if user.subscription_ends_at else None,
        }
