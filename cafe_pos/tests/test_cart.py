"""Tests for CartStore: stock bounds, variants, add-ons and totals."""

from __future__ import annotations

from decimal import Decimal

import pytest

from cafe_pos.app.core.errors import (
    InvalidOperationError,
    InvalidPriceError,
    InvalidStateError,
    OutOfStockError,
    ValidationError,
)
from cafe_pos.app.core.events import Event, EventBus, EventType
from cafe_pos.app.schemas.catalog import AddOn, Product, SizeVariant
from cafe_pos.app.schemas.sale import PaymentMethod
from cafe_pos.app.services.cart import AddOnLine, CartStore, ProductLine


def _with_stock(product: Product, stock: int) -> Product:
    return product.model_copy(update={"stock": stock})


class TestAddProduct:
    def test_first_add_creates_line_with_default_variant(
        self, cart: CartStore, coffee: Product, croissant: Product
    ) -> None:
        drink = cart.add_product(coffee)
        pastry = cart.add_product(croissant)
        assert drink.variant == SizeVariant.M
        assert drink.unit_price == Decimal("2500")
        assert pastry.variant == SizeVariant.SINGLE
        assert len(cart.lines) == 2

    def test_same_product_and_variant_merges(self, cart: CartStore, coffee: Product) -> None:
        cart.add_product(coffee)
        line = cart.add_product(coffee)
        assert len(cart.lines) == 1
        assert line.quantity == 2
        assert cart.total() == Decimal("5000")

    def test_different_variant_gets_its_own_line(self, cart: CartStore, coffee: Product) -> None:
        cart.add_product(coffee, SizeVariant.S)
        cart.add_product(coffee, SizeVariant.L)
        assert len(cart.lines) == 2
        assert cart.quantity_for(coffee.id) == 2
        assert cart.total() == Decimal("2125") + Decimal("3125")

    def test_stock_is_never_exceeded(self, cart: CartStore, coffee: Product) -> None:
        scarce = _with_stock(coffee, 3)
        for _ in range(3):
            cart.add_product(scarce)
        with pytest.raises(OutOfStockError) as exc_info:
            cart.add_product(scarce)
        assert exc_info.value.available == 3
        assert exc_info.value.requested == 4
        assert cart.quantity_for(coffee.id) == 3

    def test_room_freed_by_lowering_quantity_can_be_refilled(
        self, cart: CartStore, coffee: Product
    ) -> None:
        scarce = _with_stock(coffee, 3)
        line = None
        for _ in range(3):
            line = cart.add_product(scarce)
        with pytest.raises(OutOfStockError):
            cart.add_product(scarce)
        cart.set_quantity(line.line_id, 2)
        refilled = cart.add_product(scarce)
        assert refilled.quantity == 3

    def test_stock_counts_across_variants(self, cart: CartStore, coffee: Product) -> None:
        scarce = _with_stock(coffee, 2)
        cart.add_product(scarce, SizeVariant.S)
        cart.add_product(scarce, SizeVariant.L)
        with pytest.raises(OutOfStockError):
            cart.add_product(scarce, SizeVariant.M)

    def test_zero_stock_rejected(self, cart: CartStore, croissant: Product) -> None:
        with pytest.raises(OutOfStockError):
            cart.add_product(_with_stock(croissant, 0))
        assert cart.is_empty

    def test_inactive_product_rejected(self, cart: CartStore, croissant: Product) -> None:
        retired = croissant.model_copy(update={"active": False})
        with pytest.raises(InvalidOperationError):
            cart.add_product(retired)

    def test_invalid_price_rejected(self, cart: CartStore, croissant: Product) -> None:
        broken = croissant.model_copy(update={"price": Decimal("-10")})
        with pytest.raises(InvalidPriceError):
            cart.add_product(broken)
        assert cart.is_empty

    def test_single_on_sized_product_rejected(self, cart: CartStore, coffee: Product) -> None:
        with pytest.raises(InvalidOperationError):
            cart.add_product(coffee, SizeVariant.SINGLE)

    def test_size_on_unsized_product_rejected(self, cart: CartStore, croissant: Product) -> None:
        with pytest.raises(InvalidOperationError):
            cart.add_product(croissant, SizeVariant.L)

    def test_unknown_variant_rejected(self, cart: CartStore, coffee: Product) -> None:
        with pytest.raises(ValidationError):
            cart.add_product(coffee, "XL")

    def test_low_stock_event(
        self, cart: CartStore, coffee: Product, events: list[Event]
    ) -> None:
        cart.add_product(_with_stock(coffee, 3))
        low = [e for e in events if e.type == EventType.LOW_STOCK]
        assert len(low) == 1
        assert low[0].detail == {"productId": 1, "name": "Café Americano", "remaining": 2}

    def test_no_low_stock_event_when_plenty_left(
        self, cart: CartStore, coffee: Product, events: list[Event]
    ) -> None:
        cart.add_product(coffee)
        assert events == []


class TestSetQuantity:
    def test_updates_quantity(self, cart: CartStore, coffee: Product) -> None:
        line = cart.add_product(coffee)
        updated = cart.set_quantity(line.line_id, 4)
        assert updated is not None
        assert updated.quantity == 4
        assert cart.total() == Decimal("10000")

    def test_zero_removes_line(self, cart: CartStore, croissant: Product) -> None:
        line = cart.add_product(croissant)
        assert cart.set_quantity(line.line_id, 0) is None
        assert cart.is_empty

    def test_over_stock_rejected_and_line_untouched(
        self, cart: CartStore, coffee: Product
    ) -> None:
        line = cart.add_product(_with_stock(coffee, 3))
        with pytest.raises(OutOfStockError):
            cart.set_quantity(line.line_id, 4)
        assert cart.find_line(line.line_id) == line

    def test_checks_sum_across_lines_of_same_product(
        self, cart: CartStore, coffee: Product
    ) -> None:
        scarce = _with_stock(coffee, 3)
        small = cart.add_product(scarce, SizeVariant.S)
        cart.add_product(scarce, SizeVariant.L)
        with pytest.raises(OutOfStockError):
            cart.set_quantity(small.line_id, 3)
        cart.set_quantity(small.line_id, 2)
        assert cart.quantity_for(coffee.id) == 3

    def test_uses_latest_stock_from_lookup(self, bus: EventBus, coffee: Product) -> None:
        latest = {coffee.id: _with_stock(coffee, 2)}
        store = CartStore(bus=bus, product_lookup=latest.get)
        line = store.add_product(coffee)
        with pytest.raises(OutOfStockError):
            store.set_quantity(line.line_id, 3)

    def test_deactivated_product_cannot_grow(self, bus: EventBus, coffee: Product) -> None:
        latest = {coffee.id: coffee}
        store = CartStore(bus=bus, product_lookup=latest.get)
        line = store.add_product(coffee)
        latest[coffee.id] = coffee.model_copy(update={"active": False})
        with pytest.raises(InvalidOperationError):
            store.set_quantity(line.line_id, 2)
        assert store.find_line(line.line_id) == line

    def test_non_integer_rejected(self, cart: CartStore, coffee: Product) -> None:
        line = cart.add_product(coffee)
        with pytest.raises(ValidationError):
            cart.set_quantity(line.line_id, 1.5)  # type: ignore[arg-type]

    def test_unknown_line(self, cart: CartStore) -> None:
        with pytest.raises(InvalidOperationError):
            cart.set_quantity("missing", 1)


class TestSetVariant:
    def test_switching_back_restores_price(self, cart: CartStore, coffee: Product) -> None:
        line = cart.add_product(coffee)
        cart.set_variant(line.line_id, SizeVariant.S)
        assert cart.find_line(line.line_id).unit_price == Decimal("2125")
        cart.set_variant(line.line_id, SizeVariant.L)
        assert cart.find_line(line.line_id).unit_price == Decimal("3125")
        cart.set_variant(line.line_id, SizeVariant.S)
        cart.set_variant(line.line_id, SizeVariant.M)
        restored = cart.find_line(line.line_id)
        assert restored.unit_price == Decimal("2500")
        assert restored.base_price == Decimal("2500")

    def test_scales_subtotal_with_quantity(self, cart: CartStore, cappuccino: Product) -> None:
        line = cart.add_product(cappuccino)
        cart.set_quantity(line.line_id, 2)
        cart.set_variant(line.line_id, "L")
        assert cart.total() == Decimal("8750")

    def test_unsized_product_rejected(self, cart: CartStore, croissant: Product) -> None:
        line = cart.add_product(croissant)
        with pytest.raises(InvalidOperationError):
            cart.set_variant(line.line_id, SizeVariant.L)

    def test_single_rejected_on_sized_product(self, cart: CartStore, coffee: Product) -> None:
        line = cart.add_product(coffee)
        with pytest.raises(InvalidOperationError):
            cart.set_variant(line.line_id, SizeVariant.SINGLE)

    def test_add_on_line_rejected(
        self, cart: CartStore, coffee: Product, oat_milk: AddOn
    ) -> None:
        parent = cart.add_product(coffee)
        extra = cart.attach_add_on(parent.line_id, oat_milk)
        with pytest.raises(InvalidOperationError):
            cart.set_variant(extra.line_id, SizeVariant.L)

    def test_unknown_variant(self, cart: CartStore, coffee: Product) -> None:
        line = cart.add_product(coffee)
        with pytest.raises(ValidationError):
            cart.set_variant(line.line_id, "grande")


class TestUpdateLine:
    def test_variant_and_quantity_in_one_step(self, cart: CartStore, coffee: Product) -> None:
        line = cart.add_product(coffee)
        updated = cart.update_line(line.line_id, quantity=2, variant=SizeVariant.L)
        assert updated.variant == SizeVariant.L
        assert updated.quantity == 2
        assert cart.total() == Decimal("6250")

    def test_rejected_quantity_keeps_old_variant(self, cart: CartStore, coffee: Product) -> None:
        line = cart.add_product(_with_stock(coffee, 3))
        with pytest.raises(OutOfStockError):
            cart.update_line(line.line_id, quantity=999, variant=SizeVariant.L)
        assert cart.find_line(line.line_id) == line
        assert cart.total() == Decimal("2500")

    def test_rejected_variant_keeps_old_quantity(self, cart: CartStore, croissant: Product) -> None:
        line = cart.add_product(croissant)
        with pytest.raises(InvalidOperationError):
            cart.update_line(line.line_id, quantity=2, variant=SizeVariant.L)
        assert cart.find_line(line.line_id).quantity == 1

    def test_zero_quantity_removes_whatever_the_variant(
        self, cart: CartStore, coffee: Product
    ) -> None:
        line = cart.add_product(coffee)
        assert cart.update_line(line.line_id, quantity=0, variant=SizeVariant.S) is None
        assert cart.is_empty


class TestLocked:
    def test_every_mutation_is_refused(
        self, cart: CartStore, coffee: Product, croissant: Product, oat_milk: AddOn
    ) -> None:
        line = cart.add_product(coffee)
        cart.locked = True
        with pytest.raises(InvalidStateError):
            cart.add_product(croissant)
        with pytest.raises(InvalidStateError):
            cart.set_quantity(line.line_id, 2)
        with pytest.raises(InvalidStateError):
            cart.set_variant(line.line_id, SizeVariant.L)
        with pytest.raises(InvalidStateError):
            cart.attach_add_on(line.line_id, oat_milk)
        with pytest.raises(InvalidStateError):
            cart.remove_line(line.line_id)
        with pytest.raises(InvalidStateError):
            cart.clear()
        assert cart.lines == (line,)

    def test_reads_still_work(self, cart: CartStore, coffee: Product) -> None:
        cart.add_product(coffee)
        cart.locked = True
        assert cart.total() == Decimal("2500")
        assert cart.quantity_for(coffee.id) == 1


class TestAddOns:
    def test_attach_places_add_ons_after_parent(
        self,
        cart: CartStore,
        coffee: Product,
        croissant: Product,
        oat_milk: AddOn,
        extra_shot: AddOn,
    ) -> None:
        drink = cart.add_product(coffee)
        pastry = cart.add_product(croissant)
        milk = cart.attach_add_on(drink.line_id, oat_milk)
        shot = cart.attach_add_on(drink.line_id, extra_shot)
        assert [ln.line_id for ln in cart.lines] == [
            drink.line_id, milk.line_id, shot.line_id, pastry.line_id,
        ]
        assert isinstance(milk, AddOnLine)
        assert milk.parent_line_id == drink.line_id
        assert cart.total() == Decimal("2500") + Decimal("1800") + Decimal("500") + Decimal("600")

    def test_add_ons_do_not_consume_stock(
        self, cart: CartStore, coffee: Product, oat_milk: AddOn
    ) -> None:
        drink = cart.add_product(coffee)
        cart.attach_add_on(drink.line_id, oat_milk)
        assert cart.quantity_for(coffee.id) == 1

    def test_duplicate_add_on_rejected(
        self, cart: CartStore, coffee: Product, oat_milk: AddOn
    ) -> None:
        drink = cart.add_product(coffee)
        cart.attach_add_on(drink.line_id, oat_milk)
        with pytest.raises(InvalidOperationError):
            cart.attach_add_on(drink.line_id, oat_milk)

    def test_parent_must_exist(self, cart: CartStore, oat_milk: AddOn) -> None:
        with pytest.raises(InvalidOperationError):
            cart.attach_add_on("missing", oat_milk)
        assert cart.is_empty

    def test_cannot_attach_to_add_on(
        self, cart: CartStore, coffee: Product, oat_milk: AddOn, extra_shot: AddOn
    ) -> None:
        drink = cart.add_product(coffee)
        milk = cart.attach_add_on(drink.line_id, oat_milk)
        with pytest.raises(InvalidOperationError):
            cart.attach_add_on(milk.line_id, extra_shot)

    def test_removing_parent_cascades(
        self,
        cart: CartStore,
        coffee: Product,
        croissant: Product,
        oat_milk: AddOn,
        extra_shot: AddOn,
    ) -> None:
        drink = cart.add_product(coffee)
        pastry = cart.add_product(croissant)
        cart.attach_add_on(drink.line_id, oat_milk)
        cart.attach_add_on(drink.line_id, extra_shot)
        cart.remove_line(drink.line_id)
        assert [ln.line_id for ln in cart.lines] == [pastry.line_id]
        assert not any(isinstance(ln, AddOnLine) for ln in cart.lines)

    def test_zero_quantity_on_parent_cascades(
        self, cart: CartStore, coffee: Product, oat_milk: AddOn
    ) -> None:
        drink = cart.add_product(coffee)
        cart.attach_add_on(drink.line_id, oat_milk)
        cart.set_quantity(drink.line_id, 0)
        assert cart.is_empty

    def test_removing_add_on_keeps_parent_and_siblings(
        self, cart: CartStore, coffee: Product, oat_milk: AddOn, extra_shot: AddOn
    ) -> None:
        drink = cart.add_product(coffee)
        milk = cart.attach_add_on(drink.line_id, oat_milk)
        shot = cart.attach_add_on(drink.line_id, extra_shot)
        cart.remove_line(milk.line_id)
        assert [ln.line_id for ln in cart.lines] == [drink.line_id, shot.line_id]


class TestTotalsAndClear:
    def test_total_matches_sum_of_subtotals_after_many_edits(
        self, cart: CartStore, coffee: Product, cappuccino: Product, oat_milk: AddOn
    ) -> None:
        a = cart.add_product(coffee)
        b = cart.add_product(cappuccino, SizeVariant.S)
        cart.attach_add_on(a.line_id, oat_milk)
        for variant in ("S", "L", "M", "L", "S"):
            cart.set_variant(b.line_id, variant)
        cart.set_quantity(a.line_id, 3)
        cart.set_quantity(b.line_id, 2)
        assert cart.total() == sum(ln.subtotal for ln in cart.lines)
        assert cart.total() == Decimal("7500") + Decimal("5950") + Decimal("500")

    def test_empty_cart_total_is_zero(self, cart: CartStore) -> None:
        assert cart.total() == Decimal("0")

    def test_clear_keeps_operator(self, cart: CartStore, coffee: Product) -> None:
        cart.operator_id = 7
        cart.customer_id = 3
        cart.payment_method = PaymentMethod.CARD
        cart.add_product(coffee)
        cart.clear()
        assert cart.is_empty
        assert cart.operator_id == 7
        assert cart.customer_id is None
        assert cart.payment_method == PaymentMethod.CASH


class TestRevalidate:
    def test_passes_when_stock_suffices(self, cart: CartStore, coffee: Product) -> None:
        cart.add_product(coffee)
        cart.revalidate({coffee.id: coffee})

    def test_stock_dropped_below_cart_quantity(self, cart: CartStore, coffee: Product) -> None:
        line = cart.add_product(coffee)
        cart.set_quantity(line.line_id, 3)
        with pytest.raises(OutOfStockError):
            cart.revalidate({coffee.id: _with_stock(coffee, 2)})
        assert cart.quantity_for(coffee.id) == 3

    def test_product_no_longer_sold(self, cart: CartStore, coffee: Product) -> None:
        cart.add_product(coffee)
        with pytest.raises(InvalidOperationError):
            cart.revalidate({})

    def test_lines_are_product_lines(self, cart: CartStore, coffee: Product) -> None:
        cart.add_product(coffee)
        assert all(isinstance(ln, ProductLine) for ln in cart.lines)
