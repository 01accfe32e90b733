"""
Exception hierarchy for the stock services.

Services raise these; the ``errors`` blueprint turns them into JSON responses.
Catch :class:`StockError` to handle every domain failure at once, or a
specific subclass for fine-grained control.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class StockError(Exception):
    """
    Base exception for all domain failures.

    ``status_code`` is the HTTP status the API answers with and ``code`` is a
    stable identifier clients may switch on.
    """

    status_code: int = 500
    code: str = "stock_error"
    #: Expected, caller-recoverable failures are not logged as errors.
    expected: bool = True

    def __init__(self, message: str | None = None) -> None:
        if message is None:
            message = "An unspecified stock error occurred."
        super().__init__(message)
        self.message = message

    def extra(self) -> dict[str, Any]:
        """Additional fields merged into the JSON error body."""

        return {}


class InvalidInput(StockError):
    """A field is missing, malformed, or outside its allowed values."""

    status_code = 400
    code = "invalid_input"


class Conflict(StockError):
    """A business key (the CAS number) is already taken."""

    status_code = 400
    code = "conflict"


class NotFound(StockError):
    """The referenced product does not exist."""

    status_code = 404
    code = "not_found"


class InsufficientStock(StockError):
    """
    Raised when an OUT movement would take the balance below zero.

    Carries the balance at the time of the check and the requested quantity
    so the caller can show both.
    """

    status_code = 400
    code = "insufficient_stock"

    def __init__(self, current_stock: Decimal, requested: Decimal) -> None:
        super().__init__("Insufficient stock. Stock cannot go below zero.")
        self.current_stock = current_stock
        self.requested = requested

    def extra(self) -> dict[str, Any]:
        return {
            "currentStock": float(self.current_stock),
            "requested": float(self.requested),
        }


class Internal(StockError):
    """Storage or unexpected failure."""

    status_code = 500
    code = "internal"
    expected = False
