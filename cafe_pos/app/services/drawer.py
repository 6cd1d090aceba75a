"""Cash drawer session for one register and business day.

State machine: ``closed --open(float >= 0)--> open --close()--> closed``.
All mutation goes through the operations below; callers only read. After
every transition the whole state is written to the store and a
``drawerChanged`` event is published. A failed write is logged and recorded
but never undoes or alters the in-memory state.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError

from cafe_pos.app.core.config import settings
from cafe_pos.app.core.errors import InvalidStateError, ValidationError
from cafe_pos.app.core.events import EventBus, EventType
from cafe_pos.app.schemas.drawer import (
    ClosingReport,
    DrawerState,
    DrawerStatus,
    Movement,
    MovementKind,
)
from cafe_pos.app.schemas.sale import PaymentMethod
from cafe_pos.app.services.drawer_store import DrawerStateStore

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def business_day(moment: datetime) -> date:
    """Calendar day of *moment* in the register's local time zone."""
    return moment.astimezone(ZoneInfo(settings.TIMEZONE)).date()


def _parse_amount(value: Any, label: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{label} must be a number, got {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{label} must be a number, got {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"{label} must be a finite number, got {value!r}")
    return amount


class CashDrawerSession:
    def __init__(
        self,
        register_id: str | None = None,
        store: DrawerStateStore | None = None,
        bus: EventBus | None = None,
        clock: Clock = _utc_now,
    ) -> None:
        self.register_id = register_id or settings.REGISTER_ID
        self._store = store
        self._bus = bus
        self._clock = clock
        self._business_day: date | None = None

        self._status = DrawerStatus.CLOSED
        self._opened_at: datetime | None = None
        self._closed_at: datetime | None = None
        self._opening_float = ZERO
        self._cash_balance = ZERO
        self._cash_sales = ZERO
        self._card_sales = ZERO
        self._total_sales = ZERO
        self._ledger: list[Movement] = []
        self._last_closing: ClosingReport | None = None

        self.last_persist_error: str | None = None

    @classmethod
    def restore(
        cls,
        store: DrawerStateStore,
        register_id: str | None = None,
        bus: EventBus | None = None,
        clock: Clock = _utc_now,
    ) -> CashDrawerSession:
        """Build the session from persisted state.

        A drawer left open resumes under the day it was opened on, however
        late the restart happens; otherwise today's closed record is loaded.
        """
        session = cls(register_id=register_id, store=store, bus=bus, clock=clock)
        day = business_day(clock())
        try:
            found = store.load_open(session.register_id)
            if found is not None:
                day, state = found
            else:
                state = store.load(session.register_id, day)
        except SQLAlchemyError:
            logger.exception("Could not load drawer state for %s on %s", session.register_id, day)
            state = None
        if state is not None:
            session._apply(state)
            logger.info(
                "Restored drawer %s (%s, business day %s)",
                session.register_id, state.status.value, day,
            )
        session._business_day = day
        return session

    # ── Read accessors ──────────────────────────────────────────────────

    @property
    def status(self) -> DrawerStatus:
        return self._status

    @property
    def is_open(self) -> bool:
        return self._status == DrawerStatus.OPEN

    @property
    def opened_at(self) -> datetime | None:
        return self._opened_at

    @property
    def closed_at(self) -> datetime | None:
        return self._closed_at

    @property
    def opening_float(self) -> Decimal:
        return self._opening_float

    @property
    def current_cash_balance(self) -> Decimal:
        return self._cash_balance

    @property
    def cumulative_cash_sales(self) -> Decimal:
        return self._cash_sales

    @property
    def cumulative_card_sales(self) -> Decimal:
        return self._card_sales

    @property
    def cumulative_sales(self) -> Decimal:
        return self._total_sales

    @property
    def ledger(self) -> tuple[Movement, ...]:
        return tuple(self._ledger)

    @property
    def last_closing(self) -> ClosingReport | None:
        return self._last_closing

    def cash_movement_total(self) -> Decimal:
        return sum((m.amount for m in self._ledger if m.affects_cash), ZERO)

    def snapshot(self) -> DrawerState:
        return DrawerState(
            register_id=self.register_id,
            status=self._status,
            opened_at=self._opened_at,
            closed_at=self._closed_at,
            opening_float=self._opening_float,
            current_cash_balance=self._cash_balance,
            cumulative_cash_sales=self._cash_sales,
            cumulative_card_sales=self._card_sales,
            cumulative_sales=self._total_sales,
            ledger=list(self._ledger),
            last_closing=self._last_closing,
        )

    # ── Transitions ─────────────────────────────────────────────────────

    def open(self, opening_float: Any) -> DrawerState:
        if self.is_open:
            raise InvalidStateError("The drawer is already open; close it before opening again")
        amount = _parse_amount(opening_float, "Opening float")
        if amount < 0:
            raise ValidationError(f"Opening float cannot be negative, got {amount}")

        now = self._clock()
        self._status = DrawerStatus.OPEN
        self._opened_at = now
        self._closed_at = None
        self._business_day = business_day(now)
        self._opening_float = amount
        self._cash_balance = amount
        self._cash_sales = ZERO
        self._card_sales = ZERO
        self._total_sales = ZERO
        self._ledger = [
            Movement(
                kind=MovementKind.OPENING,
                description="Drawer opened",
                amount=amount,
                timestamp=now,
            )
        ]
        logger.info("Drawer %s opened with %s", self.register_id, amount)
        return self._commit("opened")

    def credit_sale(
        self,
        amount: Any,
        tender: PaymentMethod | str,
        description: str | None = None,
    ) -> Movement:
        self._require_open("credit a sale")
        value = _parse_amount(amount, "Sale amount")
        if value <= 0:
            raise ValidationError(f"Sale amount must be greater than zero, got {value}")
        try:
            method = PaymentMethod(tender)
        except ValueError:
            method = None
        if method not in (PaymentMethod.CASH, PaymentMethod.CARD):
            raise ValidationError(f"Only cash or card sales go through the drawer, got {tender!r}")

        is_cash = method == PaymentMethod.CASH
        if is_cash:
            self._cash_balance += value
            self._cash_sales += value
        else:
            self._card_sales += value
        self._total_sales += value

        movement = Movement(
            kind=MovementKind.SALE,
            description=description or f"Sale ({method.value})",
            amount=value,
            timestamp=self._clock(),
            tender=method.value,
            affects_cash=is_cash,
        )
        self._ledger.append(movement)
        self._commit("sale")
        return movement

    def record_adjustment(self, description: str, signed_amount: Any) -> Movement:
        """Manual cash-in (positive) or cash-out (negative)."""
        self._require_open("record an adjustment")
        if not description or not str(description).strip():
            raise ValidationError("An adjustment needs a description")
        value = _parse_amount(signed_amount, "Adjustment amount")
        if value == 0:
            raise ValidationError("Adjustment amount cannot be zero")

        self._cash_balance += value
        movement = Movement(
            kind=MovementKind.MANUAL_ADJUSTMENT,
            description=str(description).strip(),
            amount=value,
            timestamp=self._clock(),
            affects_cash=True,
        )
        self._ledger.append(movement)
        self._commit("adjustment")
        return movement

    def close(self, notes: str | None = None) -> ClosingReport:
        if not self.is_open:
            raise InvalidStateError("The drawer is already closed")

        now = self._clock()
        expected = self._opening_float + self._cash_sales
        variance = self._cash_balance - expected
        report = ClosingReport(
            opened_at=self._opened_at,
            closed_at=now,
            opening_float=self._opening_float,
            cumulative_cash_sales=self._cash_sales,
            cumulative_card_sales=self._card_sales,
            cumulative_sales=self._total_sales,
            expected_cash=expected,
            current_cash_balance=self._cash_balance,
            variance=variance,
            notes=notes,
        )
        self._ledger.append(
            Movement(
                kind=MovementKind.CLOSING,
                description=notes or "Drawer closed",
                amount=self._cash_balance,
                timestamp=now,
                variance=variance,
            )
        )

        # Ledger stays readable until the next open starts a fresh one
        self._status = DrawerStatus.CLOSED
        self._opened_at = None
        self._closed_at = now
        self._opening_float = ZERO
        self._cash_balance = ZERO
        self._cash_sales = ZERO
        self._card_sales = ZERO
        self._total_sales = ZERO
        self._last_closing = report

        if variance < 0:
            logger.warning("Drawer %s closed short by %s", self.register_id, -variance)
        else:
            logger.info("Drawer %s closed, variance %s", self.register_id, variance)
        self._commit("closed")
        return report

    # ── Internals ───────────────────────────────────────────────────────

    def _require_open(self, action: str) -> None:
        if not self.is_open:
            raise InvalidStateError(f"Cannot {action}: the drawer is closed")

    def _apply(self, state: DrawerState) -> None:
        self.register_id = state.register_id
        self._status = state.status
        self._opened_at = state.opened_at
        self._closed_at = state.closed_at
        self._opening_float = state.opening_float
        self._cash_balance = state.current_cash_balance
        self._cash_sales = state.cumulative_cash_sales
        self._card_sales = state.cumulative_card_sales
        self._total_sales = state.cumulative_sales
        self._ledger = list(state.ledger)
        self._last_closing = state.last_closing

    def _commit(self, action: str) -> DrawerState:
        state = self.snapshot()
        if self._store is not None:
            day = self._business_day or business_day(self._clock())
            try:
                self._store.save(state, day)
            except SQLAlchemyError as exc:
                logger.exception("Failed to persist drawer %s after %s", self.register_id, action)
                self.last_persist_error = str(exc)
            else:
                self.last_persist_error = None
        if self._bus is not None:
            self._bus.publish(
                EventType.DRAWER_CHANGED,
                {
                    "action": action,
                    "status": state.status.value,
                    "currentCashBalance": state.current_cash_balance,
                },
            )
        return state
