"""
Typed Exception Hierarchy for the Inventory Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Stock movements are rejected for precise, recoverable reasons: a checkout
needs to know whether it hit an out-of-stock product, a duplicate batch
number, or a lock conflict it can simply retry. Parsing message strings for
that is fragile, so every error here:

  1. Has its own class (catch by type, not by message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (requested, available, ...)

Example:
    try:
        adjuster.record_sale(product_id, 12, order_ref="A-100", user_id=uid)
    except InsufficientStockError as e:
        offer_partial(e.available)
        api_response(code=e.code, unfulfilled=e.unfulfilled)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InventoryKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidArgumentError
    |
    +-- BatchError
    |   +-- DuplicateBatchNumberError
    |   +-- BatchNotFoundError
    |   +-- BatchNotEmptyError
    |   +-- BatchProductMismatchError
    |
    +-- ProductError
    |   +-- ProductNotFoundError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentModificationError
    |       +-- LockTimeoutError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ReplayError
        +-- ReplayMismatchError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                      | When Raised
-------------|---------------------------|------------------------------------------
Validation   | INVALID_ARGUMENT          | Negative qty/cost, malformed batch number
-------------|---------------------------|------------------------------------------
Batch        | DUPLICATE_BATCH_NUMBER    | Batch number already used for the product
             | BATCH_NOT_FOUND           | Batch id unknown or archived
             | BATCH_NOT_EMPTY           | Delete attempted with stock remaining
             | BATCH_PRODUCT_MISMATCH    | Batch belongs to a different product
-------------|---------------------------|------------------------------------------
Product      | PRODUCT_NOT_FOUND         | Product id unknown to the catalog
-------------|---------------------------|------------------------------------------
Stock        | INSUFFICIENT_STOCK        | Subtract exceeds on-hand, override off
-------------|---------------------------|------------------------------------------
Concurrency  | CONCURRENT_MODIFICATION   | Version conflict after bounded retries
             | LOCK_TIMEOUT              | Product lock not acquired in time
-------------|---------------------------|------------------------------------------
Immutability | IMMUTABILITY_VIOLATION    | UPDATE/DELETE of a ledger row
-------------|---------------------------|------------------------------------------
Replay       | REPLAY_MISMATCH           | Ledger replay disagrees with live batches

Data-quality problems found while reporting (unsourced COGS, negative
stock) are NOT exceptions: they are returned as ``DataQualityWarning``
values on the report (see ``inventory_engines.margin``).

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Validation / not-found errors are raised before any mutation. Nothing
   needs to be rolled back by the caller.

2. ConcurrencyError is safe to retry. The QuantityAdjuster already retries
   version conflicts internally; a ConcurrentModificationError reaching the
   caller means the bounded retries were exhausted.

3. ImmutabilityViolationError indicates a programming error or tampering.
   Corrections to the ledger are new entries, never edits.
"""


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_KERNEL_ERROR"


# Validation


class ValidationError(InventoryKernelError):
    """Base exception for rejected input."""

    code: str = "VALIDATION_ERROR"


class InvalidArgumentError(ValidationError):
    """An argument failed validation before any state was touched."""

    code: str = "INVALID_ARGUMENT"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field}={value!r}: {reason}")


# Batches


class BatchError(InventoryKernelError):
    """Base exception for batch-related errors."""

    code: str = "BATCH_ERROR"


class DuplicateBatchNumberError(BatchError):
    """Batch number already exists for the product."""

    code: str = "DUPLICATE_BATCH_NUMBER"

    def __init__(self, product_id: str, batch_number: str):
        self.product_id = product_id
        self.batch_number = batch_number
        super().__init__(
            f"Batch number {batch_number!r} already exists for product {product_id}"
        )


class BatchNotFoundError(BatchError):
    """Batch with given ID was not found (or has been archived)."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Batch not found: {batch_id}")


class BatchNotEmptyError(BatchError):
    """Batch still holds stock and cannot be deleted."""

    code: str = "BATCH_NOT_EMPTY"

    def __init__(self, batch_id: str, quantity_on_hand: int):
        self.batch_id = batch_id
        self.quantity_on_hand = quantity_on_hand
        super().__init__(
            f"Cannot delete batch {batch_id} with remaining quantity "
            f"{quantity_on_hand}"
        )


class BatchProductMismatchError(BatchError):
    """Targeted batch does not belong to the product named in the request."""

    code: str = "BATCH_PRODUCT_MISMATCH"

    def __init__(self, batch_id: str, expected_product_id: str, actual_product_id: str):
        self.batch_id = batch_id
        self.expected_product_id = expected_product_id
        self.actual_product_id = actual_product_id
        super().__init__(
            f"Batch {batch_id} belongs to product {actual_product_id}, "
            f"not {expected_product_id}"
        )


# Products


class ProductError(InventoryKernelError):
    """Base exception for product lookups."""

    code: str = "PRODUCT_ERROR"


class ProductNotFoundError(ProductError):
    """Product id is unknown to the catalog."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


# Stock


class StockError(InventoryKernelError):
    """Base exception for stock-level policy violations."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """
    A subtract would drive stock below zero and negative stock is not allowed.

    ``unfulfilled`` is the part of the request no batch could source, so the
    caller can choose between partial fulfilment and rejection.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        product_id: str,
        requested: int,
        available: int,
        batch_id: str | None = None,
    ):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        self.unfulfilled = requested - max(available, 0)
        self.batch_id = batch_id
        target = f"batch {batch_id}" if batch_id else f"product {product_id}"
        super().__init__(
            f"Insufficient stock on {target}: requested {requested}, "
            f"available {available}"
        )


# Concurrency


class ConcurrencyError(InventoryKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(ConcurrencyError):
    """Lock or version conflict that survived the internal retries."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str = ""):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        message = f"Concurrent modification of {entity_type} {entity_id}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class LockTimeoutError(ConcurrentModificationError):
    """The per-product lock could not be acquired within the timeout."""

    code: str = "LOCK_TIMEOUT"

    def __init__(self, product_id: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            "Product",
            product_id,
            f"lock not acquired within {timeout_seconds}s",
        )


# Immutability


class ImmutabilityError(InventoryKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Replay


class ReplayError(InventoryKernelError):
    """Base exception for ledger replay verification."""

    code: str = "REPLAY_ERROR"


class ReplayMismatchError(ReplayError):
    """Replaying the ledger did not reproduce a batch's live quantity."""

    code: str = "REPLAY_MISMATCH"

    def __init__(self, product_id: str, batch_id: str, replayed: int, live: int):
        self.product_id = product_id
        self.batch_id = batch_id
        self.replayed = replayed
        self.live = live
        super().__init__(
            f"Replay mismatch on batch {batch_id} of product {product_id}: "
            f"ledger gives {replayed}, batch holds {live}"
        )
