from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from cafe_pos.app.core.config import settings
from cafe_pos.app.core.errors import InvalidPriceError
from cafe_pos.app.schemas.catalog import SizeVariant


VARIANT_FACTORS: dict[SizeVariant, Decimal] = {
    SizeVariant.S: Decimal("0.85"),
    SizeVariant.M: Decimal("1"),
    SizeVariant.L: Decimal("1.25"),
    SizeVariant.SINGLE: Decimal("1"),
}

# Prices are whole currency units (no minor units).
UNIT = Decimal("1")


def to_money(value: Any) -> Decimal:
    """Coerce *value* to a finite, non-negative Decimal price."""
    if isinstance(value, bool):
        raise InvalidPriceError(f"Price must be a number, got {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidPriceError(f"Price must be a number, got {value!r}")
    if not amount.is_finite():
        raise InvalidPriceError(f"Price must be finite, got {value!r}")
    if amount < 0:
        raise InvalidPriceError(f"Price must be non-negative, got {amount}")
    return amount


def price_for_variant(base_price: Any, variant: SizeVariant) -> Decimal:
    """Unit price of a product sold in *variant*.

    Always computed from the base price, so re-applying a variant never
    compounds an earlier scaling.
    """
    base = to_money(base_price)
    factor = VARIANT_FACTORS[SizeVariant(variant)]
    if factor == 1:
        return base
    return (base * factor).quantize(UNIT, rounding=ROUND_HALF_UP)


def is_size_eligible(category: str) -> bool:
    wanted = category.strip().casefold()
    return any(wanted == c.strip().casefold() for c in settings.SIZE_ELIGIBLE_CATEGORIES)


def default_variant(category: str) -> SizeVariant:
    return SizeVariant.M if is_size_eligible(category) else SizeVariant.SINGLE
