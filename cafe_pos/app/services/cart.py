"""In-memory cart for the active point-of-sale session.

The cart is owned by one register and never persisted. Lines are immutable
values: every mutation checks its invariant first and then swaps the line in
one step, so a rejected operation always leaves the previous lines intact.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from decimal import Decimal
from uuid import uuid4

from cafe_pos.app.core.config import settings
from cafe_pos.app.core.errors import (
    InvalidOperationError,
    InvalidStateError,
    OutOfStockError,
    ValidationError,
)
from cafe_pos.app.core.events import EventBus, EventType
from cafe_pos.app.schemas.catalog import AddOn, Product, SizeVariant
from cafe_pos.app.schemas.sale import PaymentMethod
from cafe_pos.app.services.pricing import (
    default_variant,
    is_size_eligible,
    price_for_variant,
    to_money,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def _new_line_id() -> str:
    return uuid4().hex


@dataclass(frozen=True)
class ProductLine:
    line_id: str
    product_id: int
    name: str
    category: str
    base_price: Decimal
    variant: SizeVariant
    quantity: int = 1

    @property
    def unit_price(self) -> Decimal:
        return price_for_variant(self.base_price, self.variant)

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class AddOnLine:
    line_id: str
    add_on_id: int
    name: str
    additional_price: Decimal
    parent_line_id: str
    quantity: int = 1

    @property
    def unit_price(self) -> Decimal:
        return self.additional_price

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


CartLine = ProductLine | AddOnLine


class CartStore:
    """Cart lines plus the checkout details of the current customer."""

    def __init__(
        self,
        bus: EventBus | None = None,
        product_lookup: Callable[[int], Product | None] | None = None,
        low_stock_threshold: int | None = None,
    ) -> None:
        self._bus = bus
        self._product_lookup = product_lookup
        self._low_stock_threshold = (
            settings.LOW_STOCK_THRESHOLD if low_stock_threshold is None else low_stock_threshold
        )
        self._lines: list[CartLine] = []
        # Latest known snapshot of every product referenced by a line
        self._products: dict[int, Product] = {}
        self.customer_id: int | None = None
        self.payment_method: PaymentMethod = PaymentMethod.CASH
        self.operator_id: int | None = None
        # Set while a checkout is awaiting the backend
        self.locked = False

    # ── Read accessors ──────────────────────────────────────────────────

    @property
    def lines(self) -> tuple[CartLine, ...]:
        return tuple(self._lines)

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def find_line(self, line_id: str) -> CartLine | None:
        return next((line for line in self._lines if line.line_id == line_id), None)

    def add_ons_for(self, parent_line_id: str) -> list[AddOnLine]:
        return [
            line for line in self._lines
            if isinstance(line, AddOnLine) and line.parent_line_id == parent_line_id
        ]

    def quantity_for(self, product_id: int) -> int:
        return sum(
            line.quantity for line in self._lines
            if isinstance(line, ProductLine) and line.product_id == product_id
        )

    def remaining_stock(self, product: Product) -> int:
        return product.stock - self.quantity_for(product.id)

    def total(self) -> Decimal:
        return sum((line.subtotal for line in self._lines), ZERO)

    # ── Mutations ───────────────────────────────────────────────────────

    def add_product(
        self, product: Product, requested_variant: SizeVariant | str | None = None
    ) -> ProductLine:
        """Add one unit of *product*, merging into a line of the same variant."""
        self._require_unlocked()
        if not product.active:
            raise InvalidOperationError(f"'{product.name}' is not available for sale")
        variant = self._resolve_variant(product, requested_variant)
        base_price = to_money(product.price)

        in_cart = self.quantity_for(product.id)
        if in_cart >= product.stock:
            raise OutOfStockError(product.name, product.stock, in_cart + 1)

        self._products[product.id] = product
        existing = next(
            (
                line for line in self._lines
                if isinstance(line, ProductLine)
                and line.product_id == product.id
                and line.variant == variant
            ),
            None,
        )
        if existing is not None:
            line = replace(existing, quantity=existing.quantity + 1)
            self._swap(existing, line)
        else:
            line = ProductLine(
                line_id=_new_line_id(),
                product_id=product.id,
                name=product.name,
                category=product.category,
                base_price=base_price,
                variant=variant,
            )
            self._lines.append(line)

        remaining = product.stock - (in_cart + 1)
        if 0 < remaining <= self._low_stock_threshold:
            logger.info("Low stock for %s: %s left", product.name, remaining)
            self._publish(
                EventType.LOW_STOCK,
                {"productId": product.id, "name": product.name, "remaining": remaining},
            )
        return line

    def set_quantity(self, line_id: str, quantity: int) -> CartLine | None:
        """Set a line's quantity. Zero or less removes the line."""
        return self.update_line(line_id, quantity=quantity)

    def set_variant(self, line_id: str, variant: SizeVariant | str) -> ProductLine:
        return self.update_line(line_id, variant=variant)

    def update_line(
        self,
        line_id: str,
        quantity: int | None = None,
        variant: SizeVariant | str | None = None,
    ) -> CartLine | None:
        """Apply a quantity and/or variant change as one step.

        Both changes are checked before the line is touched, so a rejected
        quantity never leaves a new variant behind. A quantity of zero or
        less removes the line and its add-ons.
        """
        self._require_unlocked()
        line = self._require_line(line_id)
        if quantity is not None:
            if isinstance(quantity, bool) or not isinstance(quantity, int):
                raise ValidationError(f"Quantity must be a whole number, got {quantity!r}")
            if quantity <= 0:
                self._remove(line)
                return None

        updated = line
        if variant is not None:
            updated = self._with_variant(line, variant)
        if quantity is not None:
            if isinstance(line, ProductLine):
                self._check_quantity(line, quantity)
            updated = replace(updated, quantity=quantity)

        self._swap(line, updated)
        return updated

    def attach_add_on(self, parent_line_id: str, add_on: AddOn) -> AddOnLine:
        self._require_unlocked()
        parent = self.find_line(parent_line_id)
        if parent is None:
            raise InvalidOperationError(f"Line {parent_line_id} is not in the cart")
        if not isinstance(parent, ProductLine):
            raise InvalidOperationError(
                f"Add-ons can only be attached to products, not to add-on '{parent.name}'"
            )
        siblings = self.add_ons_for(parent_line_id)
        if any(s.add_on_id == add_on.id for s in siblings):
            raise InvalidOperationError(
                f"'{add_on.name}' is already attached to '{parent.name}'"
            )

        line = AddOnLine(
            line_id=_new_line_id(),
            add_on_id=add_on.id,
            name=add_on.name,
            additional_price=to_money(add_on.additional_price),
            parent_line_id=parent.line_id,
        )
        # Keep add-ons grouped right after their parent for display
        anchor = siblings[-1] if siblings else parent
        self._lines.insert(self._lines.index(anchor) + 1, line)
        return line

    def remove_line(self, line_id: str) -> None:
        self._require_unlocked()
        self._remove(self._require_line(line_id))

    def clear(self) -> None:
        """Empty the cart. The assigned operator stays with the register."""
        self._require_unlocked()
        self._lines = []
        self._products = {}
        self.customer_id = None
        self.payment_method = PaymentMethod.CASH

    def revalidate(self, products: Mapping[int, Product]) -> None:
        """Check every product line against the latest stock snapshot."""
        for product_id in {ln.product_id for ln in self._lines if isinstance(ln, ProductLine)}:
            line = next(
                ln for ln in self._lines
                if isinstance(ln, ProductLine) and ln.product_id == product_id
            )
            product = products.get(product_id)
            if product is None or not product.active:
                raise InvalidOperationError(f"'{line.name}' is no longer available for sale")
            in_cart = self.quantity_for(product_id)
            if in_cart > product.stock:
                raise OutOfStockError(product.name, product.stock, in_cart)
        for product_id in list(self._products):
            if product_id in products:
                self._products[product_id] = products[product_id]

    # ── Internals ───────────────────────────────────────────────────────

    def _require_unlocked(self) -> None:
        if self.locked:
            raise InvalidStateError("A sale is being submitted; the cart cannot change now")

    def _require_line(self, line_id: str) -> CartLine:
        line = self.find_line(line_id)
        if line is None:
            raise InvalidOperationError(f"Line {line_id} is not in the cart")
        return line

    def _swap(self, old: CartLine, new: CartLine) -> None:
        self._lines[self._lines.index(old)] = new

    def _remove(self, line: CartLine) -> None:
        doomed = {line.line_id}
        if isinstance(line, ProductLine):
            doomed.update(a.line_id for a in self.add_ons_for(line.line_id))
        self._lines = [ln for ln in self._lines if ln.line_id not in doomed]
        if isinstance(line, ProductLine) and self.quantity_for(line.product_id) == 0:
            self._products.pop(line.product_id, None)

    def _latest_product(self, product_id: int) -> Product:
        product = self._product_lookup(product_id) if self._product_lookup else None
        if product is None:
            product = self._products[product_id]
        return product

    def _check_quantity(self, line: ProductLine, quantity: int) -> None:
        product = self._latest_product(line.product_id)
        if not product.active:
            raise InvalidOperationError(f"'{line.name}' is no longer available for sale")
        others = self.quantity_for(line.product_id) - line.quantity
        if others + quantity > product.stock:
            raise OutOfStockError(line.name, product.stock, others + quantity)

    def _with_variant(self, line: CartLine, variant: SizeVariant | str) -> ProductLine:
        if not isinstance(line, ProductLine):
            raise InvalidOperationError(f"Add-on '{line.name}' has no size options")
        if not is_size_eligible(line.category):
            raise InvalidOperationError(
                f"'{line.name}' ({line.category}) is not sold in sizes"
            )
        chosen = self._parse_variant(variant)
        if chosen == SizeVariant.SINGLE:
            raise InvalidOperationError(f"'{line.name}' must be sold as S, M or L")
        return replace(line, variant=chosen)

    @staticmethod
    def _parse_variant(variant: SizeVariant | str) -> SizeVariant:
        try:
            return SizeVariant(variant)
        except ValueError:
            raise ValidationError(f"Unknown size '{variant}'; expected S, M, L or single")

    def _resolve_variant(
        self, product: Product, requested: SizeVariant | str | None
    ) -> SizeVariant:
        if requested is None:
            return default_variant(product.category)
        variant = self._parse_variant(requested)
        if is_size_eligible(product.category):
            if variant == SizeVariant.SINGLE:
                raise InvalidOperationError(f"'{product.name}' must be sold as S, M or L")
        elif variant != SizeVariant.SINGLE:
            raise InvalidOperationError(
                f"'{product.name}' ({product.category}) is not sold in sizes"
            )
        return variant

    def _publish(self, event_type: EventType, detail: dict) -> None:
        if self._bus is not None:
            self._bus.publish(event_type, detail)
