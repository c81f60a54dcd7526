"""Accounts and passwordless authentication."""

from auth.exceptions import (
    AuthError,
    AccountExistsError,
    InvalidTokenError,
    RateLimitedError,
    SessionExpiredError,
    UserInactiveError,
)
from auth.types import (
    User,
    Session,
    SignupRequest,
    ProfileUpdate,
    MagicLinkRequest,
    MagicLinkToken,
    AuthenticatedUser,
)
from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.rate_limiter import RateLimiter, RateLimitScope
from auth.security_logger import SecurityLogger, SecurityEvent
from auth.session import SessionManager
from auth.service import AuthService, MagicLinkResult
from auth.security_middleware import AuthMiddleware
from auth.api import create_auth_router
