"""Business configuration: tax, quote validity, reminders, trial, paging."""

import os
from decimal import Decimal

from pydantic import BaseModel, Field


class BusinessConfig(BaseModel):
    """
    Non-secret business settings.

    Defaults fit an Australian sole trader: 10% GST, AUD, Sydney time.
    """

    gst_rate_percent: Decimal = Field(
        default=Decimal("10"),
        description="Tax applied to quote subtotals",
        ge=0,
        le=100,
    )
    currency: str = Field(default="AUD", min_length=3, max_length=3)
    display_timezone: str = Field(
        default="Australia/Sydney",
        description="Timezone used when rendering dates for customers",
    )

    quote_validity_days: int = Field(default=30, ge=1, le=365)

    reminder_lead_hours: int = Field(
        default=24,
        description="How long before a booking starts its reminder goes out",
        ge=1,
        le=168,
    )
    reminder_batch_size: int = Field(default=100, ge=1, le=1000)

    trial_days: int = Field(default=14, ge=0, le=90)

    default_page_size: int = Field(default=20, ge=1, le=100)
    max_page_size: int = Field(default=100, ge=1, le=500)

    app_base_url: str = Field(
        default="http://localhost:8000",
        description="Base URL for links sent to customers (quote view pages)",
    )

    @classmethod
    def from_env(cls) -> "BusinessConfig":
        """Defaults, overridden by TRIAL_DAYS and APP_BASE_URL when set."""
        overrides = {}
        if os.getenv("TRIAL_DAYS"):
            overrides["trial_days"] = int(os.environ["TRIAL_DAYS"])
        if os.getenv("APP_BASE_URL"):
            overrides["app_base_url"] = os.environ["APP_BASE_URL"].rstrip("/")
        return cls(**overrides)

    def clamp_page(self, page: int | None, limit: int | None) -> tuple[int, int]:
        """Normalise paging params: page >= 1, 1 <= limit <= max_page_size."""
        page = max(page or 1, 1)
        limit = limit or self.default_page_size
        limit = min(max(limit, 1), self.max_page_size)
        return page, limit
