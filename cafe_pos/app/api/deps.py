from __future__ import annotations

from fastapi import HTTPException, status

from cafe_pos.app.core.errors import (
    InvalidOperationError,
    InvalidStateError,
    OutOfStockError,
    PosError,
    SaleSubmissionError,
)
from cafe_pos.app.services.register import Register, build_register

_register: Register | None = None


def get_register() -> Register:
    """Process-wide register: one cart and one drawer per running service."""
    global _register
    if _register is None:
        _register = build_register()
    return _register


def to_http_error(exc: PosError) -> HTTPException:
    """Map a rejected operation to a status code, keeping its reason as detail."""
    if isinstance(exc, SaleSubmissionError):
        code = status.HTTP_502_BAD_GATEWAY
    elif isinstance(exc, (OutOfStockError, InvalidOperationError, InvalidStateError)):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(exc))
