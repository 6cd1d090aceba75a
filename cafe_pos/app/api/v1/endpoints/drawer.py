from __future__ import annotations

from fastapi import APIRouter, Depends, status

from cafe_pos.app.api.deps import get_register, to_http_error
from cafe_pos.app.core.errors import PosError
from cafe_pos.app.schemas.drawer import (
    ClosingReport,
    DrawerAdjustmentRequest,
    DrawerCloseRequest,
    DrawerOpenRequest,
    DrawerState,
)
from cafe_pos.app.services.register import Register

router = APIRouter()


@router.get("", response_model=DrawerState)
async def get_drawer(register: Register = Depends(get_register)) -> DrawerState:
    return register.drawer.snapshot()


@router.post("/open", response_model=DrawerState, status_code=status.HTTP_201_CREATED)
async def open_drawer(
    payload: DrawerOpenRequest, register: Register = Depends(get_register)
) -> DrawerState:
    try:
        return register.drawer.open(payload.opening_float)
    except PosError as e:
        raise to_http_error(e)


@router.post("/adjustments", response_model=DrawerState, status_code=status.HTTP_201_CREATED)
async def add_adjustment(
    payload: DrawerAdjustmentRequest, register: Register = Depends(get_register)
) -> DrawerState:
    try:
        register.drawer.record_adjustment(payload.description, payload.amount)
    except PosError as e:
        raise to_http_error(e)
    return register.drawer.snapshot()


@router.post("/close", response_model=ClosingReport)
async def close_drawer(
    payload: DrawerCloseRequest | None = None, register: Register = Depends(get_register)
) -> ClosingReport:
    try:
        return register.drawer.close(notes=payload.notes if payload else None)
    except PosError as e:
        raise to_http_error(e)
