from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict


class DrawerStatus(str, Enum):
    CLOSED = "closed"
    OPEN = "open"


class MovementKind(str, Enum):
    OPENING = "opening"
    SALE = "sale"
    MANUAL_ADJUSTMENT = "manualAdjustment"
    CLOSING = "closing"


class Movement(BaseModel):
    """One append-only ledger entry of a drawer session."""

    model_config = ConfigDict(frozen=True)

    kind: MovementKind
    description: str
    amount: Decimal
    timestamp: datetime
    tender: str | None = None
    affects_cash: bool = False
    variance: Decimal | None = None


class ClosingReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    opened_at: datetime | None
    closed_at: datetime
    opening_float: Decimal
    cumulative_cash_sales: Decimal
    cumulative_card_sales: Decimal
    cumulative_sales: Decimal
    expected_cash: Decimal
    current_cash_balance: Decimal
    variance: Decimal
    notes: str | None = None


class DrawerState(BaseModel):
    """Full drawer record, as persisted per register and business day."""

    register_id: str
    status: DrawerStatus = DrawerStatus.CLOSED
    opened_at: datetime | None = None
    closed_at: datetime | None = None
    opening_float: Decimal = Decimal("0")
    current_cash_balance: Decimal = Decimal("0")
    cumulative_cash_sales: Decimal = Decimal("0")
    cumulative_card_sales: Decimal = Decimal("0")
    cumulative_sales: Decimal = Decimal("0")
    ledger: list[Movement] = []
    last_closing: ClosingReport | None = None


# ─── API requests ────────────────────────────────────────────────────────────


class DrawerOpenRequest(BaseModel):
    opening_float: Decimal


class DrawerAdjustmentRequest(BaseModel):
    description: str
    amount: Decimal


class DrawerCloseRequest(BaseModel):
    notes: str | None = None
