"""Pydantic models for the auth and account domain."""

import re
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from core.models.subscription import SubscriptionStatus, SubscriptionTier

ABN_WEIGHTS = (10, 1, 3, 5, 7, 9, 11, 13, 15, 17, 19)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def is_valid_abn(abn: str) -> bool:
    """
    Australian Business Number checksum.

    Subtract 1 from the first digit, weight each digit, and the weighted
    sum must be divisible by 89. Spaces are ignored.
    """
    digits = re.sub(r"\s", "", abn)
    if len(digits) != 11 or not digits.isdigit():
        return False
    values = [int(d) for d in digits]
    values[0] -= 1
    return sum(v * w for v, w in zip(values, ABN_WEIGHTS)) % 89 == 0


def _normalise_abn(value: str | None) -> str | None:
    if value is None:
        return None
    digits = re.sub(r"\s", "", value)
    if not is_valid_abn(digits):
        raise ValueError("Invalid ABN")
    return digits


class User(BaseModel):
    """A tradie account: login identity, business profile and subscription."""

    id: UUID
    email: EmailStr
    is_active: bool = True
    business_name: str | None = None
    phone: str | None = None
    trade_type: str | None = None
    abn: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    postcode: str | None = None
    timezone: str = "Australia/Sydney"
    working_hours_start: int = 7
    working_hours_end: int = 17
    working_days: list[str] = Field(
        default_factory=lambda: ["monday", "tuesday", "wednesday", "thursday", "friday"]
    )
    email_notifications: bool = True
    sms_notifications: bool = True
    subscription_tier: SubscriptionTier = SubscriptionTier.STARTER
    subscription_status: SubscriptionStatus = SubscriptionStatus.TRIAL
    trial_ends_at: datetime | None = None
    subscription_ends_at: datetime | None = None
    stripe_customer_id: str | None = None
    stripe_subscription_id: str | None = None
    created_at: datetime
    last_login_at: datetime | None = None

    model_config = {"from_attributes": True}

    @property
    def display_name(self) -> str:
        return self.business_name or self.email


class SignupRequest(BaseModel):
    """New account. Email is the only required field; the rest seed the profile."""

    email: EmailStr
    business_name: str | None = Field(None, min_length=2, max_length=255)
    phone: str | None = Field(None, max_length=50)
    trade_type: str | None = Field(None, max_length=100)
    abn: str | None = None

    @field_validator("abn")
    @classmethod
    def check_abn(cls, value: str | None) -> str | None:
        return _normalise_abn(value)


class ProfileUpdate(BaseModel):
    """Editable profile fields. All optional."""

    business_name: str | None = Field(None, min_length=2, max_length=255)
    phone: str | None = Field(None, max_length=50)
    trade_type: str | None = Field(None, max_length=100)
    abn: str | None = None
    address: str | None = Field(None, max_length=500)
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=50)
    postcode: str | None = Field(None, max_length=10)
    timezone: str | None = Field(None, max_length=64)
    working_hours_start: int | None = Field(None, ge=0, le=23)
    working_hours_end: int | None = Field(None, ge=0, le=23)
    working_days: list[str] | None = None
    email_notifications: bool | None = None
    sms_notifications: bool | None = None

    @field_validator("abn")
    @classmethod
    def check_abn(cls, value: str | None) -> str | None:
        return _normalise_abn(value)

    @field_validator("working_days")
    @classmethod
    def check_working_days(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        days = [d.lower() for d in value]
        unknown = [d for d in days if d not in WEEKDAYS]
        if unknown:
            raise ValueError(f"Unknown working days: {', '.join(unknown)}")
        return days

    @model_validator(mode="after")
    def check_hours_order(self) -> "ProfileUpdate":
        start, end = self.working_hours_start, self.working_hours_end
        if start is not None and end is not None and end <= start:
            raise ValueError("working_hours_end must be after working_hours_start")
        return self


class Session(BaseModel):
    """An active user session."""

    token: str = Field(..., description="Session token (opaque string)")
    user_id: UUID
    created_at: datetime
    expires_at: datetime
    last_activity_at: datetime


class MagicLinkRequest(BaseModel):
    email: EmailStr


class MagicLinkToken(BaseModel):
    """A magic link token awaiting verification."""

    token: str = Field(..., description="URL-safe token")
    user_id: UUID
    email: EmailStr
    created_at: datetime
    expires_at: datetime
    used: bool  # Required - fail closed, no default


class AuthenticatedUser(BaseModel):
    """User info returned after successful authentication."""

    user: User
    session: Session
