from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, PlainSerializer, field_validator
from pydantic.alias_generators import to_camel


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    TRANSFER = "transfer"


def _money_number(value: Decimal) -> int | float:
    return int(value) if value == value.to_integral_value() else float(value)


# The backend expects amounts as JSON numbers, not strings
Money = Annotated[
    Decimal, PlainSerializer(_money_number, return_type=int | float, when_used="json")
]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ─── Sale create request (sent to the backend) ───────────────────────────────


class SaleAddOnPayload(_CamelModel):
    add_on_id: int
    additional_price: Money


class SaleLinePayload(_CamelModel):
    product_id: int
    quantity: int
    subtotal: Money
    add_ons: list[SaleAddOnPayload] = []

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be greater than zero")
        return v


class SalePayload(_CamelModel):
    operator_id: int
    customer_id: int | None = None
    payment_method: PaymentMethod
    total: Money
    observations: str = ""
    lines: list[SaleLinePayload]

    @field_validator("lines")
    @classmethod
    def at_least_one_line(cls, v: list[SaleLinePayload]) -> list[SaleLinePayload]:
        if not v:
            raise ValueError("Sale must contain at least one line")
        return v

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ─── Sale create response ────────────────────────────────────────────────────


class SaleResponse(_CamelModel):
    success: bool
    sale_id: int | str | None = None
    error: str | None = None
