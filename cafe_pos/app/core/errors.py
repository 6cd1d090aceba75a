"""Error taxonomy for the point-of-sale core.

All errors subclass ``ValueError`` so callers that already translate
``ValueError`` into a user-facing message keep working. Every error carries
a specific, human-readable reason; none of them is fatal to the process and
the cart or drawer is always left in its last valid state.
"""

from __future__ import annotations


class PosError(ValueError):
    """Base class for rejected point-of-sale operations."""


class ValidationError(PosError):
    """Caller-supplied data violates a precondition."""


class InvalidPriceError(ValidationError):
    """A base price is negative, non-finite or not a number."""


class OutOfStockError(PosError):
    """The cart would hold more units of a product than its stock."""

    def __init__(self, product_name: str, available: int, requested: int) -> None:
        self.product_name = product_name
        self.available = available
        self.requested = requested
        super().__init__(
            f"Not enough stock for '{product_name}': "
            f"{available} available, {requested} requested"
        )


class InvalidOperationError(PosError):
    """The cart operation does not apply to the targeted line or product."""


class InvalidStateError(PosError):
    """The operation is not allowed in the current state-machine state."""


class OrphanAddOnError(PosError):
    """An add-on line references a parent line that is not in the cart."""

    def __init__(self, line_id: str, parent_line_id: str) -> None:
        self.line_id = line_id
        self.parent_line_id = parent_line_id
        super().__init__(
            f"Add-on line {line_id} references missing parent line {parent_line_id}"
        )


class SaleSubmissionError(PosError):
    """The backend rejected the sale or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)
