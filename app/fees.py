# app/fees.py
"""Fee tier validation, lookup and deposit computation.

Active tiers partition the price axis into half-open brackets
``[min_price, max_price)``; a null ``max_price`` is the unbounded top tier.
Money is kept in integer VND and rates are `Decimal`, so deposits are computed
without floating point and rounded half-up to a whole currency unit.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Iterable, List
from .errors import FieldValidationError

# matches the Numeric(5, 4) column so a stored rate is never rounded
RATE_STEP = Decimal("0.0001")


def _as_decimal(value, field: str) -> Decimal:
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise FieldValidationError(field, f"{field} must be a number")
    if not d.is_finite():
        raise FieldValidationError(field, f"{field} must be a number")
    return d


def validate_fee_tier(min_price, max_price, deposit_rate) -> None:
    if min_price is None:
        raise FieldValidationError("min_price", "min_price is required")
    if min_price < 0:
        raise FieldValidationError("min_price", "min_price must be >= 0")
    if max_price is not None and max_price <= min_price:
        raise FieldValidationError("max_price", "max_price must be greater than min_price")
    if deposit_rate is None:
        raise FieldValidationError("deposit_rate", "deposit_rate is required")
    rate = _as_decimal(deposit_rate, "deposit_rate")
    if rate < 0 or rate > 1:
        raise FieldValidationError("deposit_rate", "deposit_rate must be between 0 and 1")
    if rate != rate.quantize(RATE_STEP):
        raise FieldValidationError("deposit_rate", "deposit_rate allows at most 4 decimal places")


def sort_tiers(tiers: Iterable) -> List:
    return sorted(tiers, key=lambda t: (t.min_price, t.id or 0))


def _matches(tier, price) -> bool:
    return tier.min_price <= price and (tier.max_price is None or price < tier.max_price)


def resolve_tier(price, tiers: Iterable):
    """Return the active tier containing ``price``, or None.

    Overlapping active tiers are a data error; the first match in ascending
    ``min_price`` order wins.
    """
    if price is None or price < 0:
        raise FieldValidationError("price", "price must be >= 0")
    for tier in sort_tiers(t for t in tiers if t.active):
        if _matches(tier, price):
            return tier
    return None


def compute_deposit(price, tier) -> int:
    rate = _as_decimal(tier.deposit_rate, "deposit_rate")
    amount = Decimal(int(price)) * rate
    return int(amount.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _overlaps(a, b) -> bool:
    a_hi = a.max_price if a.max_price is not None else float("inf")
    b_hi = b.max_price if b.max_price is not None else float("inf")
    return a.min_price < b_hi and b.min_price < a_hi


def find_overlapping(candidate, tiers: Iterable):
    """First active tier, in ascending order, whose range intersects ``candidate``."""
    for tier in sort_tiers(t for t in tiers if t.active):
        if tier is not candidate and _overlaps(tier, candidate):
            return tier
    return None
