from __future__ import annotations

from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, field_validator

from cafe_pos.app.schemas.catalog import SizeVariant
from cafe_pos.app.schemas.sale import PaymentMethod


# ─── Requests ────────────────────────────────────────────────────────────────


class CartItemAdd(BaseModel):
    product_id: int
    variant: SizeVariant | None = None


class CartLineUpdate(BaseModel):
    quantity: int | None = None
    variant: SizeVariant | None = None


class AddOnAttach(BaseModel):
    add_on_id: int


class CartDetailsUpdate(BaseModel):
    operator_id: int | None = None
    customer_id: int | None = None
    payment_method: PaymentMethod | None = None


class CheckoutRequest(BaseModel):
    operator_id: int | None = None
    customer_id: int | None = None
    payment_method: PaymentMethod | None = None
    observations: str = ""

    @field_validator("observations")
    @classmethod
    def strip_observations(cls, v: str) -> str:
        return v.strip()


# ─── Responses ───────────────────────────────────────────────────────────────


class CartLineOut(BaseModel):
    line_id: str
    kind: Literal["product", "addOn"]
    item_id: int
    name: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    variant: SizeVariant | None = None
    base_price: Decimal | None = None
    parent_line_id: str | None = None


class CartOut(BaseModel):
    lines: list[CartLineOut]
    total: Decimal
    item_count: int
    operator_id: int | None
    customer_id: int | None
    payment_method: PaymentMethod


class ReceiptOut(BaseModel):
    sale_id: int | str | None
    total: Decimal
    payment_method: PaymentMethod
    drawer_credited: bool
    dropped_add_ons: list[str] = []
    warnings: list[str] = []
