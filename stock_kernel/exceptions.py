"""
Typed exception hierarchy for the stock kernel.

Every error raised by the kernel is a subclass of ``StockKernelError`` and
carries:

  1. A typed class, so callers catch by type instead of parsing messages.
  2. A ``code`` class attribute, a stable machine-readable identifier.
  3. A ``retryable`` flag telling the caller whether the same request may
     succeed if simply re-submitted against a fresh balance.
  4. Structured attributes (item id, actor id, ...) for logs and API bodies.

Hierarchy:

    StockKernelError (base)
    |
    +-- PermissionDeniedError
    +-- ItemError
    |   +-- ItemNotFoundError
    |   +-- ItemAlreadyExistsError
    +-- MovementError
    |   +-- InvariantViolationError
    |   +-- ImmutabilityViolationError
    +-- ConcurrencyError
    |   +-- ConcurrentModificationError
    +-- StoreUnavailableError
    +-- BatchError
    |   +-- BatchTooLargeError
    +-- InvalidQueryError

Error codes:

    PERMISSION_DENIED          actor lacks the required movement action
    ITEM_NOT_FOUND             no inventory item with the given id
    ITEM_ALREADY_EXISTS        product already has an inventory item
    INVARIANT_VIOLATION        proposed movement breaks a stock invariant
    IMMUTABILITY_VIOLATION     attempt to modify or delete an audit record
    CONCURRENT_MODIFICATION    balance changed between read and write (retry)
    STORE_UNAVAILABLE          timeout, disconnect or pool exhaustion (retry)
    BATCH_TOO_LARGE            batch exceeds the configured maximum size
    INVALID_QUERY              malformed query parameters
"""

from typing import Any


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses define a ``code`` class attribute.  ``retryable`` is False
    unless the subclass represents a transient condition.
    """

    code: str = "STOCK_KERNEL_ERROR"
    retryable: bool = False


class PermissionDeniedError(StockKernelError):
    """Actor is not allowed to perform the requested movement action."""

    code: str = "PERMISSION_DENIED"

    def __init__(self, actor_id: Any, action: str):
        self.actor_id = str(actor_id) if actor_id is not None else None
        self.action = action
        super().__init__(f"Actor {self.actor_id} is not permitted to {action}")


# Item-related exceptions


class ItemError(StockKernelError):
    """Base exception for inventory item errors."""

    code: str = "ITEM_ERROR"


class ItemNotFoundError(ItemError):
    """Inventory item with the given id does not exist."""

    code: str = "ITEM_NOT_FOUND"

    def __init__(self, item_id: Any):
        self.item_id = str(item_id)
        super().__init__(f"Inventory item not found: {item_id}")


class ItemAlreadyExistsError(ItemError):
    """An inventory item already exists for the product."""

    code: str = "ITEM_ALREADY_EXISTS"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Inventory item already exists for product: {product_id}")


# Movement-related exceptions


class MovementError(StockKernelError):
    """Base exception for stock movement errors."""

    code: str = "MOVEMENT_ERROR"


class InvariantViolationError(MovementError):
    """
    Proposed movement violates a stock invariant.

    ``kind`` is the rejection kind produced by the invariant enforcer
    (e.g. ``NEGATIVE_RESULTING_STOCK``).
    """

    code: str = "INVARIANT_VIOLATION"

    def __init__(self, item_id: Any, kind: str, detail: str):
        self.item_id = str(item_id)
        self.kind = kind
        self.detail = detail
        super().__init__(f"Movement rejected for item {item_id} ({kind}): {detail}")


class ImmutabilityViolationError(MovementError):
    """Attempted to modify or delete an immutable audit record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Concurrency exceptions


class ConcurrencyError(StockKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"
    retryable: bool = True


class ConcurrentModificationError(ConcurrencyError):
    """
    The balance changed between the read and the compare-and-set write.

    The caller should re-read the balance and retry.  Nothing was written.
    """

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(
        self,
        item_id: Any,
        expected_stock: int | None = None,
        actual_stock: int | None = None,
    ):
        self.item_id = str(item_id)
        self.expected_stock = expected_stock
        self.actual_stock = actual_stock
        msg = f"Concurrent modification of inventory item {item_id}"
        if expected_stock is not None and actual_stock is not None:
            msg += f": expected stock {expected_stock}, found {actual_stock}"
        super().__init__(msg)


class StoreUnavailableError(StockKernelError):
    """The data store timed out, disconnected, or ran out of connections."""

    code: str = "STORE_UNAVAILABLE"
    retryable: bool = True

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Store unavailable during {operation}: {reason}")


# Batch exceptions


class BatchError(StockKernelError):
    """Base exception for batch processing errors."""

    code: str = "BATCH_ERROR"


class BatchTooLargeError(BatchError):
    """Batch contains more requests than the configured maximum."""

    code: str = "BATCH_TOO_LARGE"

    def __init__(self, size: int, max_size: int):
        self.size = size
        self.max_size = max_size
        super().__init__(f"Batch of {size} requests exceeds maximum of {max_size}")


class InvalidQueryError(StockKernelError):
    """Query parameters are malformed (negative limit, inverted range, ...)."""

    code: str = "INVALID_QUERY"

    def __init__(self, parameter: str, reason: str):
        self.parameter = parameter
        self.reason = reason
        super().__init__(f"Invalid query parameter {parameter}: {reason}")
