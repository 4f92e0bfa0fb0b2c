"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The adjustment ledger is the audit trail for every unit of stock and the
input to replay and COGS reporting. A corrected count is a NEW entry; an
edited or deleted entry would silently change historical profit figures.

Batches are mutable in exactly one respect: their quantity on hand (plus
bookkeeping columns). Their identity and cost, which reporting replays
against, are fixed at creation.

SQLAlchemy fires events before UPDATE/DELETE statements are emitted:

    session.flush()
         |
         v
    [before_update] --> _check_*() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity               | What is frozen                                  | When
---------------------|-------------------------------------------------|--------
InventoryAdjustment  | Every column; DELETE forbidden                  | Always
ProductBatch         | product_id, batch_number, purchase cost,        | Always
                     | currency, created_at                            |

Raw SQL (``DELETE FROM ...``) bypasses these listeners; tests use that to
clean up committed data.

===============================================================================
USAGE
===============================================================================

    from inventory_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

    # TESTS ONLY
    unregister_immutability_listeners()
"""

from sqlalchemy import event
from sqlalchemy.orm import attributes

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

BATCH_FROZEN_FIELDS = frozenset({
    "product_id",
    "batch_number",
    "purchase_cost_cents",
    "currency",
    "created_at",
})


def _block(entity_type: str, entity_id: str, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_adjustment_immutability(mapper, connection, target):
    """Ledger entries can never be updated."""
    _block(
        "InventoryAdjustment",
        str(target.id),
        "UPDATE",
        "Ledger entries are append-only; record a correcting entry instead",
    )


def _check_adjustment_delete(mapper, connection, target):
    """Ledger entries can never be deleted."""
    _block(
        "InventoryAdjustment",
        str(target.id),
        "DELETE",
        "Ledger entries cannot be deleted",
    )


def _check_batch_identity_immutability(mapper, connection, target):
    """Only quantity and bookkeeping columns of a batch may change."""
    for field in BATCH_FROZEN_FIELDS:
        history = attributes.get_history(target, field)
        if history.has_changes() and history.deleted:
            _block(
                "ProductBatch",
                str(target.id),
                "UPDATE",
                f"Field '{field}' is fixed at batch creation",
            )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call this after the models are importable and before any writes.
    Registering twice is harmless.
    """
    from inventory_kernel.models.inventory_adjustment import InventoryAdjustmentModel
    from inventory_kernel.models.product_batch import ProductBatchModel

    listeners = (
        (InventoryAdjustmentModel, "before_update", _check_adjustment_immutability),
        (InventoryAdjustmentModel, "before_delete", _check_adjustment_delete),
        (ProductBatchModel, "before_update", _check_batch_identity_immutability),
    )
    for target, event_name, listener_fn in listeners:
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that intentionally violate the rules.
    """
    from inventory_kernel.models.inventory_adjustment import InventoryAdjustmentModel
    from inventory_kernel.models.product_batch import ProductBatchModel

    _safe_remove_listener(InventoryAdjustmentModel, "before_update", _check_adjustment_immutability)
    _safe_remove_listener(InventoryAdjustmentModel, "before_delete", _check_adjustment_delete)
    _safe_remove_listener(ProductBatchModel, "before_update", _check_batch_identity_immutability)
