"""Customer (client of the tradie) domain models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, EmailStr, field_validator

from core.models.booking import Booking
from core.models.quote import Quote


class PreferredContact(str, Enum):
    """How the customer wants to be reached."""

    PHONE = "phone"
    EMAIL = "email"
    SMS = "sms"


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class CustomerCreate(BaseModel):
    """Data required to create a customer."""

    name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr | None = None
    phone: str = Field(..., min_length=10, max_length=50)
    address: str | None = Field(None, max_length=500)
    suburb: str | None = Field(None, max_length=100)
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=50)
    postcode: str | None = Field(None, max_length=10)
    notes: str | None = Field(None, max_length=10000)
    property_type: str | None = Field(None, max_length=100)
    preferred_contact: PreferredContact | None = None
    tags: list[str] = Field(default_factory=list)

    @field_validator("email", mode="before")
    @classmethod
    def blank_email_is_none(cls, value):
        return _blank_to_none(value)


class CustomerUpdate(BaseModel):
    """Data that can be updated on a customer. All fields optional."""

    name: str | None = Field(None, min_length=2, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(None, min_length=10, max_length=50)
    address: str | None = Field(None, max_length=500)
    suburb: str | None = Field(None, max_length=100)
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=50)
    postcode: str | None = Field(None, max_length=10)
    notes: str | None = Field(None, max_length=10000)
    property_type: str | None = Field(None, max_length=100)
    preferred_contact: PreferredContact | None = None
    tags: list[str] | None = None

    @field_validator("email", mode="before")
    @classmethod
    def blank_email_is_none(cls, value):
        return _blank_to_none(value)


class Customer(BaseModel):
    """Full customer entity as stored."""

    id: UUID
    user_id: UUID
    name: str
    email: str | None
    phone: str
    address: str | None
    suburb: str | None
    city: str | None
    state: str | None
    postcode: str | None
    notes: str | None
    property_type: str | None
    preferred_contact: PreferredContact | None
    tags: list[str] = Field(default_factory=list)
    last_contacted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    model_config = {"from_attributes": True}

    @property
    def full_address(self) -> str | None:
        """Single-line address for display, or None when nothing is on file."""
        parts = [p for p in [self.address, self.suburb, self.city, self.state, self.postcode] if p]
        return ", ".join(parts) if parts else None

    @property
    def first_name(self) -> str:
        """Greeting name used in messages ("Hi Sam")."""
        return self.name.split()[0] if self.name.strip() else self.name


class CustomerDetail(BaseModel):
    """A customer with their most recent bookings and quotes."""

    customer: Customer
    recent_bookings: list[Booking] = Field(default_factory=list)
    recent_quotes: list[Quote] = Field(default_factory=list)
