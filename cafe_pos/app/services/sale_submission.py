"""Checkout: turn the cart into a sale, send it, then settle cart, stock and drawer.

Lifecycle: ``idle -> submitting -> confirmed | failed``. A failed submission
leaves the cart untouched so the operator can retry by hand; nothing is
retried automatically.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

import httpx

from cafe_pos.app.core.errors import (
    InvalidStateError,
    OrphanAddOnError,
    PosError,
    SaleSubmissionError,
    ValidationError,
)
from cafe_pos.app.core.events import EventBus, EventType
from cafe_pos.app.schemas.sale import (
    PaymentMethod,
    SaleAddOnPayload,
    SaleLinePayload,
    SalePayload,
)
from cafe_pos.app.services.backend_client import BackendApiError, BackendClient
from cafe_pos.app.services.cart import AddOnLine, CartLine, CartStore, ProductLine
from cafe_pos.app.services.catalog import ProductCatalog
from cafe_pos.app.services.drawer import CashDrawerSession

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
DRAWER_TENDERS = (PaymentMethod.CASH, PaymentMethod.CARD)


class SubmissionState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class SaleReceipt:
    sale_id: int | str | None
    total: Decimal
    payment_method: PaymentMethod
    drawer_credited: bool
    dropped_add_ons: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


def build_sale_payload(
    lines: Iterable[CartLine],
    operator_id: int,
    customer_id: int | None,
    payment_method: PaymentMethod,
    observations: str = "",
) -> tuple[SalePayload, list[OrphanAddOnError]]:
    """Snapshot cart lines into the sale-create shape.

    Add-on lines are folded under their parent product line. An add-on whose
    parent is missing is dropped (and excluded from the total) and reported
    back instead of failing the whole sale.
    """
    lines = list(lines)
    product_lines = [line for line in lines if isinstance(line, ProductLine)]
    if not product_lines:
        raise ValidationError("The cart has no products to sell")
    add_ons_by_parent: dict[str, list[SaleAddOnPayload]] = {
        line.line_id: [] for line in product_lines
    }
    orphans: list[OrphanAddOnError] = []
    total = sum((line.subtotal for line in product_lines), ZERO)

    for line in lines:
        if not isinstance(line, AddOnLine):
            continue
        bucket = add_ons_by_parent.get(line.parent_line_id)
        if bucket is None:
            fault = OrphanAddOnError(line.line_id, line.parent_line_id)
            logger.warning("Dropping add-on '%s' from sale: %s", line.name, fault)
            orphans.append(fault)
            continue
        bucket.append(SaleAddOnPayload(add_on_id=line.add_on_id, additional_price=line.subtotal))
        total += line.subtotal

    payload = SalePayload(
        operator_id=operator_id,
        customer_id=customer_id,
        payment_method=payment_method,
        total=total,
        observations=observations,
        lines=[
            SaleLinePayload(
                product_id=line.product_id,
                quantity=line.quantity,
                subtotal=line.subtotal,
                add_ons=add_ons_by_parent[line.line_id],
            )
            for line in product_lines
        ],
    )
    return payload, orphans


class SaleSubmission:
    def __init__(
        self,
        client: BackendClient,
        catalog: ProductCatalog | None = None,
        drawer: CashDrawerSession | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self._client = client
        self._catalog = catalog
        self._drawer = drawer
        self._bus = bus
        self.state = SubmissionState.IDLE
        self.last_error: str | None = None
        self.last_receipt: SaleReceipt | None = None

    @property
    def busy(self) -> bool:
        return self.state == SubmissionState.SUBMITTING

    def reset(self) -> None:
        if self.busy:
            raise InvalidStateError("A sale is being submitted; wait for it to finish")
        self.state = SubmissionState.IDLE
        self.last_error = None

    async def submit(
        self,
        cart: CartStore,
        operator_id: int | None,
        customer_id: int | None = None,
        payment_method: PaymentMethod | str = PaymentMethod.CASH,
        observations: str = "",
    ) -> SaleReceipt:
        if self.busy:
            raise InvalidStateError("A sale is already being submitted")
        if cart.is_empty:
            raise ValidationError("Cannot submit an empty cart")
        if operator_id is None:
            raise ValidationError("Assign an operator before submitting the sale")
        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise ValidationError(f"Unknown payment method '{payment_method}'")

        if self._catalog is not None and self._catalog.last_refreshed_at is not None:
            cart.revalidate(self._catalog.snapshot())

        payload, orphans = build_sale_payload(
            cart.lines, operator_id, customer_id, method, observations
        )

        self.state = SubmissionState.SUBMITTING
        self.last_error = None
        # The cart must stay exactly as sent until the backend answers
        cart.locked = True
        try:
            response = await self._client.create_sale(payload)
        except BackendApiError as exc:
            self._fail(str(exc))
            raise SaleSubmissionError(f"Sale rejected: {exc}", exc.status_code) from exc
        except httpx.HTTPStatusError as exc:
            reason = f"Backend error {exc.response.status_code} while saving the sale"
            self._fail(reason)
            raise SaleSubmissionError(reason, exc.response.status_code) from exc
        except httpx.HTTPError as exc:
            reason = f"Could not reach the backend: {exc}"
            self._fail(reason)
            raise SaleSubmissionError(reason) from exc
        except Exception:
            self._fail("Unexpected error while saving the sale")
            raise
        finally:
            cart.locked = False

        # Resumed after the await: the drawer may have changed meanwhile.
        self.state = SubmissionState.CONFIRMED
        warnings = [str(fault) for fault in orphans]
        sold: dict[int, int] = {}
        for line in payload.lines:
            sold[line.product_id] = sold.get(line.product_id, 0) + line.quantity

        cart.clear()
        if self._catalog is not None:
            self._catalog.apply_sale(sold)

        drawer_credited = False
        if method in DRAWER_TENDERS and self._drawer is not None:
            if self._drawer.is_open:
                try:
                    self._drawer.credit_sale(
                        payload.total, method, description=f"Sale {response.sale_id}"
                    )
                    drawer_credited = True
                except PosError as exc:
                    warnings.append(f"Drawer not credited: {exc}")
                    logger.warning("Sale %s not credited to drawer: %s", response.sale_id, exc)
            else:
                warnings.append("Drawer is closed; the sale was saved but not credited to it")
                logger.warning(
                    "Drawer closed: sale %s (%s) not credited", response.sale_id, payload.total
                )

        receipt = SaleReceipt(
            sale_id=response.sale_id,
            total=payload.total,
            payment_method=method,
            drawer_credited=drawer_credited,
            dropped_add_ons=tuple(fault.line_id for fault in orphans),
            warnings=tuple(warnings),
        )
        self.last_receipt = receipt
        logger.info("Sale %s confirmed: %s (%s)", receipt.sale_id, receipt.total, method.value)
        if self._bus is not None:
            self._bus.publish(
                EventType.SALE_COMPLETED,
                {
                    "saleId": receipt.sale_id,
                    "total": receipt.total,
                    "paymentMethod": method.value,
                    "drawerCredited": drawer_credited,
                },
            )
        return receipt

    def _fail(self, reason: str) -> None:
        self.state = SubmissionState.FAILED
        self.last_error = reason
        logger.error("Sale submission failed: %s", reason)
