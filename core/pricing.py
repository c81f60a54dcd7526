"""
Quote arithmetic: line items, discount, GST and deposit.

All amounts are integer cents. Rates and percentages are Decimal, and every
intermediate product is Decimal, so nothing passes through binary floating
point. Rounding is half away from zero (decimal.ROUND_HALF_UP) to the cent.

    subtotal = sum(line totals) - discount
    tax      = round(subtotal * tax_rate / 100)
    total    = subtotal + tax
    deposit  = round(total * deposit_percent / 100)   # only if a percentage is given
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import NamedTuple, Sequence

from pydantic import BaseModel, Field, model_validator

from core.exceptions import QuoteTotalsError

# Australian GST
GST_RATE_PERCENT = Decimal("10")

_HUNDRED = Decimal("100")


def round_half_up(value: Decimal) -> int:
    """Round a Decimal amount of cents to a whole cent, halves away from zero."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _as_decimal(value: Decimal | int | str | float) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() first so 10.1 becomes Decimal("10.1"), not its binary expansion
    return Decimal(str(value))


class LineItem(BaseModel):
    """
    One billable row on a quote.

    total_cents must equal quantity x unit price (rounded to the cent). If it
    is omitted it is derived; if it is supplied and disagrees, validation fails.
    """

    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(..., gt=0)
    unit_price_cents: int = Field(..., gt=0)
    total_cents: int | None = Field(None, gt=0)
    notes: str | None = Field(None, max_length=1000)

    @model_validator(mode="after")
    def check_total_matches(self) -> "LineItem":
        """Derive total_cents when missing; reject it when inconsistent."""
        expected = round_half_up(self.quantity * self.unit_price_cents)
        if self.total_cents is None:
            if expected <= 0:
                raise ValueError("Line item total must be positive")
            self.total_cents = expected
        elif self.total_cents != expected:
            raise ValueError(
                f"Line item total {self.total_cents} does not equal "
                f"quantity x unit price ({expected})"
            )
        return self


class QuoteTotals(BaseModel):
    """Derived totals for a quote. Never stored apart from its inputs."""

    line_items_total_cents: int
    discount_cents: int
    subtotal_cents: int
    tax_rate_percent: Decimal
    tax_cents: int
    total_cents: int
    deposit_percent: Decimal | None = None
    deposit_cents: int | None = None

    model_config = {"frozen": True}


def compute_totals(
    line_items: Sequence[LineItem],
    discount_cents: int = 0,
    tax_rate_percent: Decimal | int | str = GST_RATE_PERCENT,
    deposit_percent: Decimal | int | str | None = None,
) -> QuoteTotals:
    """
    Compute subtotal, tax, total and deposit for a quote.

    Args:
        line_items: Validated line items (their totals are summed, not re-derived)
        discount_cents: Flat discount taken off the line items before tax
        tax_rate_percent: Tax rate as a percentage (10 = 10% GST)
        deposit_percent: Optional deposit as a percentage of the grand total

    Returns:
        QuoteTotals

    Raises:
        QuoteTotalsError: Negative discount, discount larger than the line
            items, negative tax rate, or deposit outside 0-100.
    """
    if discount_cents < 0:
        raise QuoteTotalsError("Discount cannot be negative")

    rate = _as_decimal(tax_rate_percent)
    if rate < 0:
        raise QuoteTotalsError("Tax rate cannot be negative")

    deposit_rate = None
    if deposit_percent is not None:
        deposit_rate = _as_decimal(deposit_percent)
        if deposit_rate < 0 or deposit_rate > _HUNDRED:
            raise QuoteTotalsError("Deposit percentage must be between 0 and 100")

    line_items_total = sum(item.total_cents for item in line_items)

    # Rejected, not clamped: a discount bigger than the work is a data entry error
    if discount_cents > line_items_total:
        raise QuoteTotalsError(
            f"Discount ({discount_cents}) exceeds line item total ({line_items_total})"
        )

    subtotal = line_items_total - discount_cents
    tax = round_half_up(Decimal(subtotal) * rate / _HUNDRED)
    total = subtotal + tax

    deposit = None
    if deposit_rate is not None:
        deposit = round_half_up(Decimal(total) * deposit_rate / _HUNDRED)

    return QuoteTotals(
        line_items_total_cents=line_items_total,
        discount_cents=discount_cents,
        subtotal_cents=subtotal,
        tax_rate_percent=rate,
        tax_cents=tax,
        total_cents=total,
        deposit_percent=deposit_rate,
        deposit_cents=deposit,
    )


class GstBreakdown(NamedTuple):
    subtotal_cents: int
    gst_cents: int
    total_cents: int


def calculate_gst(amount_cents: int, rate_percent: Decimal | int = GST_RATE_PERCENT) -> GstBreakdown:
    """GST on top of a GST-exclusive amount."""
    gst = round_half_up(Decimal(amount_cents) * _as_decimal(rate_percent) / _HUNDRED)
    return GstBreakdown(amount_cents, gst, amount_cents + gst)


def calculate_gst_inclusive(total_cents: int, rate_percent: Decimal | int = GST_RATE_PERCENT) -> GstBreakdown:
    """Split a GST-inclusive price into its exclusive amount and GST."""
    rate = _as_decimal(rate_percent)
    subtotal = round_half_up(Decimal(total_cents) * _HUNDRED / (_HUNDRED + rate))
    return GstBreakdown(subtotal, total_cents - subtotal, total_cents)


def generate_quote_number(sequence: int, year: int) -> str:
    """QT-YYYY-NNNN, e.g. QT-2025-0042."""
    return f"QT-{year}-{sequence:04d}"
