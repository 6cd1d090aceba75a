from __future__ import annotations

import httpx
from fastapi import APIRouter, Depends, HTTPException, status

from cafe_pos.app.api.deps import get_register, to_http_error
from cafe_pos.app.core.errors import InvalidStateError, PosError
from cafe_pos.app.schemas.catalog import AddOnOut, ProductOut
from cafe_pos.app.schemas.pos import (
    AddOnAttach,
    CartDetailsUpdate,
    CartItemAdd,
    CartLineOut,
    CartLineUpdate,
    CartOut,
    CheckoutRequest,
    ReceiptOut,
)
from cafe_pos.app.services.backend_client import BackendApiError
from cafe_pos.app.services.cart import CartLine, CartStore, ProductLine
from cafe_pos.app.services.pricing import is_size_eligible
from cafe_pos.app.services.register import Register

router = APIRouter()


def _line_out(line: CartLine) -> CartLineOut:
    if isinstance(line, ProductLine):
        return CartLineOut(
            line_id=line.line_id,
            kind="product",
            item_id=line.product_id,
            name=line.name,
            quantity=line.quantity,
            unit_price=line.unit_price,
            subtotal=line.subtotal,
            variant=line.variant,
            base_price=line.base_price,
        )
    return CartLineOut(
        line_id=line.line_id,
        kind="addOn",
        item_id=line.add_on_id,
        name=line.name,
        quantity=line.quantity,
        unit_price=line.unit_price,
        subtotal=line.subtotal,
        parent_line_id=line.parent_line_id,
    )


def _cart_out(cart: CartStore) -> CartOut:
    return CartOut(
        lines=[_line_out(line) for line in cart.lines],
        total=cart.total(),
        item_count=sum(line.quantity for line in cart.lines if isinstance(line, ProductLine)),
        operator_id=cart.operator_id,
        customer_id=cart.customer_id,
        payment_method=cart.payment_method,
    )


# ─── Catalog ─────────────────────────────────────────────────────────────────


@router.get("/products", response_model=list[ProductOut])
async def get_products(register: Register = Depends(get_register)) -> list[ProductOut]:
    cart = register.cart
    return [
        ProductOut(
            id=p.id,
            name=p.name,
            category=p.category,
            price=p.price,
            stock=p.stock,
            active=p.active,
            in_cart=cart.quantity_for(p.id),
            remaining_stock=cart.remaining_stock(p),
            size_eligible=is_size_eligible(p.category),
        )
        for p in register.catalog.products()
    ]


@router.post("/products/refresh", response_model=list[ProductOut])
async def refresh_products(register: Register = Depends(get_register)) -> list[ProductOut]:
    try:
        await register.catalog.refresh()
    except (httpx.HTTPError, BackendApiError) as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Could not load products from the backend: {e}",
        )
    return await get_products(register)


@router.get("/add-ons", response_model=list[AddOnOut])
async def get_add_ons(register: Register = Depends(get_register)) -> list[AddOnOut]:
    return [
        AddOnOut(id=a.id, name=a.name, category=a.category, additional_price=a.additional_price)
        for a in register.catalog.add_ons()
    ]


# ─── Cart ────────────────────────────────────────────────────────────────────


@router.get("/cart", response_model=CartOut)
async def get_cart(register: Register = Depends(get_register)) -> CartOut:
    return _cart_out(register.cart)


@router.patch("/cart", response_model=CartOut)
async def update_cart_details(
    payload: CartDetailsUpdate, register: Register = Depends(get_register)
) -> CartOut:
    cart = register.cart
    if cart.locked:
        raise to_http_error(
            InvalidStateError("A sale is being submitted; the cart cannot change now")
        )
    fields = payload.model_fields_set
    if "operator_id" in fields:
        cart.operator_id = payload.operator_id
    if "customer_id" in fields:
        cart.customer_id = payload.customer_id
    if payload.payment_method is not None:
        cart.payment_method = payload.payment_method
    return _cart_out(cart)


@router.post("/cart/items", response_model=CartOut, status_code=status.HTTP_201_CREATED)
async def add_cart_item(
    payload: CartItemAdd, register: Register = Depends(get_register)
) -> CartOut:
    product = register.catalog.get(payload.product_id)
    if product is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Product {payload.product_id} not found",
        )
    try:
        register.cart.add_product(product, payload.variant)
    except PosError as e:
        raise to_http_error(e)
    return _cart_out(register.cart)


@router.patch("/cart/lines/{line_id}", response_model=CartOut)
async def update_cart_line(
    line_id: str, payload: CartLineUpdate, register: Register = Depends(get_register)
) -> CartOut:
    try:
        register.cart.update_line(line_id, quantity=payload.quantity, variant=payload.variant)
    except PosError as e:
        raise to_http_error(e)
    return _cart_out(register.cart)


@router.delete("/cart/lines/{line_id}", response_model=CartOut)
async def delete_cart_line(
    line_id: str, register: Register = Depends(get_register)
) -> CartOut:
    try:
        register.cart.remove_line(line_id)
    except PosError as e:
        raise to_http_error(e)
    return _cart_out(register.cart)


@router.post(
    "/cart/lines/{line_id}/add-ons",
    response_model=CartOut,
    status_code=status.HTTP_201_CREATED,
)
async def attach_add_on(
    line_id: str, payload: AddOnAttach, register: Register = Depends(get_register)
) -> CartOut:
    add_on = register.catalog.get_add_on(payload.add_on_id)
    if add_on is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Add-on {payload.add_on_id} not found",
        )
    try:
        register.cart.attach_add_on(line_id, add_on)
    except PosError as e:
        raise to_http_error(e)
    return _cart_out(register.cart)


@router.delete("/cart", response_model=CartOut)
async def clear_cart(register: Register = Depends(get_register)) -> CartOut:
    try:
        register.cart.clear()
    except PosError as e:
        raise to_http_error(e)
    return _cart_out(register.cart)


# ─── Checkout ────────────────────────────────────────────────────────────────


@router.post("/checkout", response_model=ReceiptOut)
async def checkout(
    payload: CheckoutRequest, register: Register = Depends(get_register)
) -> ReceiptOut:
    cart = register.cart
    operator_id = payload.operator_id if payload.operator_id is not None else cart.operator_id
    customer_id = payload.customer_id if payload.customer_id is not None else cart.customer_id
    method = payload.payment_method or cart.payment_method
    try:
        receipt = await register.submission.submit(
            cart,
            operator_id=operator_id,
            customer_id=customer_id,
            payment_method=method,
            observations=payload.observations,
        )
    except PosError as e:
        raise to_http_error(e)
    return ReceiptOut(
        sale_id=receipt.sale_id,
        total=receipt.total,
        payment_method=receipt.payment_method,
        drawer_credited=receipt.drawer_credited,
        dropped_add_ons=list(receipt.dropped_add_ons),
        warnings=list(receipt.warnings),
    )
