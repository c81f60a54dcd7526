"""Session middleware - authenticates requests and scopes them to one account."""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from auth.database import AuthDatabase
from auth.session import SessionManager
from auth.exceptions import SessionExpiredError
from api.base import error_response, ErrorCodes
from utils.user_context import set_current_user_id, clear_current_user_id


def _reject(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_response(code, message).model_dump(mode="json"),
    )


class AuthMiddleware(BaseHTTPMiddleware):
    """Validates the session cookie and sets the account context.

    For protected routes:
    1. Reads the token from the 'session_token' cookie
    2. Validates (and slides) the session
    3. Rejects deactivated accounts when an AuthDatabase is given
    4. Sets user_id on request.state and in the user context, which
       PostgresClient turns into the RLS setting
    5. Clears the context after the request, success or not

    Public paths bypass authentication entirely. Stripe webhooks are public
    here and authenticated by their signature instead.
    """

    PUBLIC_PATHS = [
        "/auth/signup",
        "/auth/request-link",
        "/auth/verify",
        "/auth/logout",
        "/webhooks/",
        "/health",
        "/docs",
        "/openapi.json",
    ]

    def __init__(self, app, session_manager: SessionManager, accounts: AuthDatabase | None = None):
        super().__init__(app)
        self._session_manager = session_manager
        self._accounts = accounts

    def _is_public_path(self, path: str) -> bool:
        return any(path == public or path.startswith(public) for public in self.PUBLIC_PATHS)

    async def dispatch(self, request: Request, call_next):
        if self._is_public_path(request.url.path):
            return await call_next(request)

        session_token = request.cookies.get("session_token")
        if not session_token:
            return _reject(401, ErrorCodes.NOT_AUTHENTICATED, "Authentication required")

        try:
            session = self._session_manager.validate_session(session_token)
        except SessionExpiredError:
            return _reject(401, ErrorCodes.SESSION_EXPIRED, "Session has expired")

        if self._accounts is not None:
            user = self._accounts.get_user_by_id(session.user_id)
            if user is None or not user.is_active:
                self._session_manager.revoke_session(session_token)
                return _reject(403, ErrorCodes.ACCOUNT_INACTIVE, "Account is deactivated")

        set_current_user_id(session.user_id)
        request.state.user_id = session.user_id
        request.state.session = session

        try:
            return await call_next(request)
        finally:
            clear_current_user_id()
