"""HTTP routes for authentication and the account profile."""

import ipaddress
from dataclasses import asdict

from fastapi import APIRouter, Request, Response, Query
from fastapi.responses import JSONResponse

from auth.config import AuthConfig
from auth.service import AuthService
from auth.types import MagicLinkRequest, ProfileUpdate, SignupRequest
from auth.exceptions import (
    AccountExistsError,
    RateLimitedError,
    InvalidTokenError,
    UserInactiveError,
)
from api.base import success_response, error_response, ErrorCodes


def _get_client_ip(request: Request) -> str | None:
    """Extract valid IP address from request, or None if invalid."""
    if not request.client:
        return None
    host = request.client.host
    try:
        ipaddress.ip_address(host)
        return host
    except ValueError:
        return None


def _error(status_code: int, code: str, message: str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content=error_response(code, message).model_dump(mode="json"),
    )


def _rate_limited(e: RateLimitedError) -> JSONResponse:
    return _error(
        429,
        ErrorCodes.RATE_LIMITED,
        f"Too many requests. Please wait {e.retry_after_seconds} seconds.",
        headers={"Retry-After": str(e.retry_after_seconds)},
    )


def create_auth_router(auth_service: AuthService, config: AuthConfig) -> APIRouter:
    """Create auth router with injected service."""
    router = APIRouter(tags=["auth"])

    @router.post("/signup")
    async def signup(request: Request, body: SignupRequest):
        """Create an account on a free trial and email a login link."""
        try:
            result = auth_service.signup(
                body,
                ip_address=_get_client_ip(request),
                user_agent=request.headers.get("User-Agent"),
            )
        except RateLimitedError as e:
            return _rate_limited(e)
        except AccountExistsError as e:
            return _error(409, ErrorCodes.ALREADY_EXISTS, str(e))

        return success_response(asdict(result))

    @router.post("/request-link")
    async def request_magic_link(request: Request, body: MagicLinkRequest):
        """Request magic link email.

        Returns:
            - sent=True, needs_signup=False: Email sent to existing user
            - sent=False, needs_signup=True: User doesn't exist, redirect to signup
        """
        try:
            result = auth_service.request_magic_link(
                email=body.email,
                ip_address=_get_client_ip(request),
                user_agent=request.headers.get("User-Agent"),
            )
        except RateLimitedError as e:
            return _rate_limited(e)

        return success_response(asdict(result))

    @router.get("/verify")
    async def verify_magic_link(
        request: Request,
        response: Response,
        token: str = Query(None),
    ):
        """Verify magic link token and create session.

        Sets session_token cookie on success.
        """
        if not token:
            return _error(400, ErrorCodes.INVALID_REQUEST, "Token parameter is required")

        try:
            result = auth_service.verify_magic_link(
                token=token,
                ip_address=_get_client_ip(request),
                user_agent=request.headers.get("User-Agent"),
            )
        except InvalidTokenError:
            return _error(401, ErrorCodes.INVALID_TOKEN, "Invalid or expired token")
        except UserInactiveError:
            return _error(403, ErrorCodes.ACCOUNT_INACTIVE, "Account is deactivated")

        response.set_cookie(
            key="session_token",
            value=result.session.token,
            httponly=True,
            secure=config.session_cookie_secure,
            samesite="lax",
            max_age=int((result.session.expires_at - result.session.created_at).total_seconds()),
        )

        return success_response({
            "user": {
                "id": str(result.user.id),
                "email": result.user.email,
                "business_name": result.user.business_name,
            }
        })

    @router.post("/logout")
    async def logout(request: Request, response: Response):
        """Logout - revoke session and clear cookie."""
        session_token = request.cookies.get("session_token")

        if session_token:
            auth_service.logout(
                session_token=session_token,
                ip_address=_get_client_ip(request),
            )

        response.delete_cookie(key="session_token")

        return success_response({"message": "Logged out successfully"})

    @router.get("/me")
    async def get_current_user(request: Request):
        """Full profile of the authenticated account."""
        if not hasattr(request.state, "user_id"):
            return _error(401, ErrorCodes.NOT_AUTHENTICATED, "Authentication required")

        user = auth_service.get_profile(request.state.user_id)
        return success_response(user.model_dump(mode="json"))

    @router.patch("/me")
    async def update_current_user(request: Request, body: ProfileUpdate):
        """Update the authenticated account's business profile."""
        if not hasattr(request.state, "user_id"):
            return _error(401, ErrorCodes.NOT_AUTHENTICATED, "Authentication required")

        try:
            user = auth_service.update_profile(
                request.state.user_id, body, ip_address=_get_client_ip(request)
            )
        except AccountExistsError as e:
            return _error(409, ErrorCodes.ALREADY_EXISTS, str(e))

        return success_response(user.model_dump(mode="json"))

    return router
