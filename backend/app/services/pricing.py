from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from app.models import PriceBreakdown
from app.services.errors import InvalidAmountError

GST_RATE = Decimal("0.18")
CENT = Decimal("0.01")


def round2(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_amount(raw: Any) -> Decimal:
    """Parse a catalog amount without rounding it.

    Floats go through ``str`` so ``99.9`` stays ``99.9`` instead of its binary
    expansion.
    """
    if isinstance(raw, bool) or raw is None:
        raise InvalidAmountError("Service amount must be a number")
    if isinstance(raw, Decimal):
        value = raw
    elif isinstance(raw, (int, float)):
        value = Decimal(str(raw))
    elif isinstance(raw, str):
        try:
            value = Decimal(raw.strip())
        except InvalidOperation as exc:
            raise InvalidAmountError(f"Service amount is not numeric: {raw!r}") from exc
    else:
        raise InvalidAmountError("Service amount must be a number")
    if not value.is_finite():
        raise InvalidAmountError("Service amount must be finite")
    if value <= 0:
        raise InvalidAmountError("Service amount must be greater than 0")
    return value


def price(base_amount: Any) -> PriceBreakdown:
    service_amount = parse_amount(base_amount)
    gst_amount = round2(service_amount * GST_RATE)
    total_amount = round2(service_amount + gst_amount)
    return PriceBreakdown(
        service_amount=service_amount,
        gst_amount=gst_amount,
        total_amount=total_amount,
    )
