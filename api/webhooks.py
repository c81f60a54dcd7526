"""POST /webhooks/stripe - Stripe event delivery.

Public route (no session); the Stripe-Signature header is the only
authentication. Handlers run synchronously, so a 500 makes Stripe retry.
"""

import logging

from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

from api.base import success_response, error_response, ErrorCodes
from clients.stripe_client import WebhookSignatureError, verify_webhook_signature

logger = logging.getLogger(__name__)


def create_webhooks_router(payment_service, webhook_secret: str) -> APIRouter:
    router = APIRouter(tags=["webhooks"])

    @router.post("/stripe")
    async def stripe_webhook(request: Request):
        request_id = getattr(request.state, "request_id", None)
        payload = await request.body()

        try:
            event = verify_webhook_signature(
                payload,
                request.headers.get("Stripe-Signature"),
                webhook_secret,
            )
        except WebhookSignatureError as e:
            logger.warning(f"Rejected Stripe webhook: {e}")
            return JSONResponse(
                status_code=400,
                content=error_response(
                    ErrorCodes.INVALID_SIGNATURE, "Invalid signature", request_id=request_id
                ).model_dump(mode="json"),
            )

        try:
            handled = payment_service.handle_event(event)
        except Exception:
            logger.exception(f"Stripe webhook {event.get('type')} ({event.get('id')}) failed")
            return JSONResponse(
                status_code=500,
                content=error_response(
                    ErrorCodes.INTERNAL_ERROR, "Webhook handler failed", request_id=request_id
                ).model_dump(mode="json"),
            )

        return success_response(
            {"received": True, "handled": handled}, request_id=request_id
        ).model_dump(mode="json")

    return router
