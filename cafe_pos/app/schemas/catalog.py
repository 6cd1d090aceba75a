from __future__ import annotations

import logging
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


class SizeVariant(str, Enum):
    S = "S"
    M = "M"
    L = "L"
    SINGLE = "single"


# ─── Backend wire shapes ─────────────────────────────────────────────────────


class Product(BaseModel):
    """Read-only product reference data as fetched from the backend."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    category: str
    price: Decimal
    stock: int
    active: bool = True

    @field_validator("stock")
    @classmethod
    def stock_non_negative(cls, v: int) -> int:
        if v < 0:
            logger.warning("Backend reported negative stock (%s); treating as 0", v)
            return 0
        return v


class AddOn(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: int
    name: str
    category: str
    additional_price: Decimal

    @field_validator("additional_price")
    @classmethod
    def price_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Add-on price must be non-negative")
        return v


# ─── API output ──────────────────────────────────────────────────────────────


class ProductOut(BaseModel):
    id: int
    name: str
    category: str
    price: Decimal
    stock: int
    active: bool
    in_cart: int
    remaining_stock: int
    size_eligible: bool


class AddOnOut(BaseModel):
    id: int
    name: str
    category: str
    additional_price: Decimal
