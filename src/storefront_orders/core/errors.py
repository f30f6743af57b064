"""Domain exceptions raised by the service layer.

Routes translate these into HTTP responses; nothing in ``services`` knows
about status codes.
"""

from __future__ import annotations

from typing import Any


class StorefrontError(RuntimeError):
    """Base class for all domain errors."""


class NotFoundError(StorefrontError):
    """Raised when an order, product or alert does not exist."""

    def __init__(self, entity: str, key: Any) -> None:
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} {key} not found")


class InvalidTransitionError(StorefrontError):
    """Raised when the order state machine rejects a status change."""

    def __init__(self, current: str, requested: str) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move order from '{current}' to '{requested}'")


class InsufficientStockError(StorefrontError):
    """Raised when checkout lines fail the availability check.

    ``errors`` holds one dict per failing line with ``product_id``,
    ``current_stock`` and ``message``.
    """

    def __init__(self, errors: list[dict[str, Any]]) -> None:
        self.errors = errors
        super().__init__(f"{len(errors)} cart line(s) cannot be fulfilled")


class ReturnWindowExpiredError(StorefrontError):
    """Raised when a return is requested after the return window closed."""


class PersistenceError(StorefrontError):
    """Raised when storage keeps failing and the caller should retry later."""


class InvalidCouponError(StorefrontError):
    """Raised when a coupon code is unknown, inactive, expired or used up."""
