"""Request-scoped account identity, carried through the call stack in a contextvar.

The Postgres client reads it on every query to set the row-level security
context, so every service call sees only the current tradie's records.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from uuid import UUID

_current_user_id: ContextVar[UUID | None] = ContextVar("current_user_id", default=None)


def get_current_user_id() -> UUID:
    """
    Account ID of the current request.

    Raises RuntimeError when unset: user-scoped code running outside an
    authenticated request (or a background job without user_context) is a bug.
    """
    user_id = _current_user_id.get()
    if user_id is None:
        raise RuntimeError(
            "No user context set. User-scoped code was called outside of an "
            "authenticated request or user_context() block."
        )
    return user_id


def peek_current_user_id() -> UUID | None:
    """Account ID of the current request, or None. Never raises."""
    return _current_user_id.get()


def set_current_user_id(user_id: UUID) -> None:
    """Set by AuthMiddleware once the session is validated."""
    _current_user_id.set(user_id)


def clear_current_user_id() -> None:
    """Cleared by AuthMiddleware in a finally block after every request."""
    _current_user_id.set(None)


@contextmanager
def user_context(user_id: UUID):
    """
    Temporarily act as a given account.

    Used by tests, by the reminder worker as it walks accounts, and by the
    Stripe webhook, which arrives unauthenticated and carries the account
    in the payment intent's metadata.

    Example:
        with user_context(account_id):
            reminder_service.process_due(notifier)
    """
    previous = _current_user_id.get()
    set_current_user_id(user_id)
    try:
        yield
    finally:
        if previous is None:
            clear_current_user_id()
        else:
            set_current_user_id(previous)
