"""
QuantityAdjuster -- the only writer of batch quantities.

Responsibility:
    Apply add / subtract / recount / sale / transfer operations to batches and
    append the matching ledger entries, atomically.

Architecture position:
    Services -- orchestrates BatchStore, AdjustmentLedger and the FIFO engine.
    Defines its own transaction boundary (auto_commit=True by default).

Invariants enforced:
    - The product lock is held for the whole read-modify-write-commit.
    - Batches are re-read row-locked inside the lock; a concurrent writer in
      another process surfaces as StaleDataError (version_id_col) and the
      operation is retried with backoff before ConcurrentModificationError.
    - Every successful stock movement appends one ledger row per batch
      touched, all sharing one movement_id and one created_at.
    - A failing operation leaves batches and ledger unchanged (SAVEPOINT).
    - Without ``allow_negative_stock`` no batch is driven below zero.

Failure modes:
    - InvalidArgumentError, ProductNotFoundError, BatchNotFoundError,
      BatchProductMismatchError, InsufficientStockError,
      ConcurrentModificationError / LockTimeoutError.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from inventory_config import InventorySettings
from inventory_engines.fifo import AllocationResult, BatchLayer, allocate_fifo
from inventory_kernel.domain.catalog import ProductCatalog
from inventory_kernel.domain.causes import (
    AdjustmentCause,
    Other,
    Receiving,
    Recount,
    Sale,
    Transfer,
)
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.money import Money
from inventory_kernel.exceptions import (
    BatchProductMismatchError,
    ConcurrentModificationError,
    InsufficientStockError,
    InvalidArgumentError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.models.inventory_adjustment import (
    AdjustmentType,
    InventoryAdjustmentModel,
)
from inventory_kernel.models.product_batch import ProductBatchModel
from inventory_kernel.services.adjustment_ledger import AdjustmentLedger
from inventory_kernel.services.batch_store import UNSET, BatchStore, validate_quantity
from inventory_services.product_locks import ProductLockRegistry

logger = get_logger("services.quantity_adjuster")

T = TypeVar("T")

MANUAL_ADJUSTMENT = "Manual adjustment"


def batch_layer(batch: ProductBatchModel) -> BatchLayer:
    """Allocator view of a batch row."""
    return BatchLayer(
        batch_id=batch.id,
        batch_number=batch.batch_number,
        created_at=batch.created_at,
        unit_cost=batch.purchase_cost,
        quantity=batch.quantity_on_hand,
    )


@dataclass(frozen=True)
class NewBatch:
    """Attributes of a batch created by ``add``."""

    batch_number: str
    purchase_cost: Money
    expiration_date: date | None = None


@dataclass(frozen=True)
class AdjustmentResult:
    """
    Outcome of one adjuster operation.

    ``batches`` and ``entries`` are in the order they were touched;
    ``unfulfilled`` is non-zero only for a partial subtract.
    """

    movement_id: UUID
    batches: tuple[ProductBatchModel, ...] = ()
    entries: tuple[InventoryAdjustmentModel, ...] = ()
    allocation: AllocationResult | None = None
    unfulfilled: int = 0

    @property
    def batch(self) -> ProductBatchModel | None:
        return self.batches[0] if self.batches else None

    @property
    def quantity_changed(self) -> int:
        return sum(e.quantity_adjusted for e in self.entries)

    @property
    def negative_stock(self) -> bool:
        return any(e.negative_stock for e in self.entries)


@dataclass(frozen=True)
class AdjustmentRequest:
    """One line of a bulk adjustment."""

    adjustment_type: AdjustmentType
    product_id: str
    quantity: int
    batch_id: UUID | None = None
    cause: AdjustmentCause | None = None
    new_batch: NewBatch | None = None
    allow_partial: bool = False


@dataclass
class _Movement:
    """Rows accumulated while one movement is applied; all share one timestamp."""

    movement_id: UUID
    created_at: datetime
    batches: list[ProductBatchModel] = field(default_factory=list)
    entries: list[InventoryAdjustmentModel] = field(default_factory=list)

    def result(self, allocation: AllocationResult | None = None, unfulfilled: int = 0) -> AdjustmentResult:
        return AdjustmentResult(
            movement_id=self.movement_id,
            batches=tuple(self.batches),
            entries=tuple(self.entries),
            allocation=allocation,
            unfulfilled=unfulfilled,
        )


class QuantityAdjuster:
    """
    Transactional quantity mutations.

    Set auto_commit=False to let the caller own the transaction; the
    SAVEPOINT still guarantees the operation is all-or-nothing.
    """

    def __init__(
        self,
        session: Session,
        settings: InventorySettings | None = None,
        clock: Clock | None = None,
        catalog: ProductCatalog | None = None,
        locks: ProductLockRegistry | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._settings = settings or InventorySettings.with_defaults()
        self._clock = clock or SystemClock()
        self._catalog = catalog
        self._locks = locks or ProductLockRegistry.shared()
        self._auto_commit = auto_commit
        self._batches = BatchStore(session, self._clock)
        self._ledger = AdjustmentLedger(session, self._clock)

    @property
    def settings(self) -> InventorySettings:
        return self._settings

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def create_batch(
        self,
        product_id: str,
        batch_number: str,
        purchase_cost: Money,
        quantity: int,
        user_id: str,
        expiration_date: date | None = None,
        cause: AdjustmentCause | None = None,
    ) -> AdjustmentResult:
        """Create a batch; a positive opening quantity is recorded as an add."""
        self._check_product(product_id)
        self._check_user(user_id)
        validate_quantity("quantity", quantity)
        new_batch = NewBatch(batch_number, purchase_cost, expiration_date)
        opening_cause = cause or Receiving()

        def apply(movement: _Movement) -> AdjustmentResult:
            self._create(movement, product_id, new_batch, quantity, opening_cause, user_id)
            return movement.result()

        return self._run("create_batch", [product_id], user_id, apply)

    def add(
        self,
        product_id: str,
        quantity: int,
        user_id: str,
        batch_id: UUID | None = None,
        new_batch: NewBatch | None = None,
        cause: AdjustmentCause | None = None,
    ) -> AdjustmentResult:
        """Add units to an existing batch, or to a new one described by ``new_batch``."""
        self._check_product(product_id)
        self._check_user(user_id)
        return self._run(
            "add",
            [product_id],
            user_id,
            lambda movement: self._add(movement, product_id, quantity, user_id, batch_id, new_batch, cause),
        )

    def subtract(
        self,
        product_id: str,
        quantity: int,
        user_id: str,
        batch_id: UUID | None = None,
        cause: AdjustmentCause | None = None,
        allow_partial: bool = False,
    ) -> AdjustmentResult:
        """
        Remove units from one batch (``batch_id``) or across batches in FIFO order.

        Raises:
            InsufficientStockError: not enough stock and neither the
                negative-stock override nor ``allow_partial`` applies.
        """
        self._check_product(product_id)
        self._check_user(user_id)
        return self._run(
            "subtract",
            [product_id],
            user_id,
            lambda movement: self._subtract(
                movement, product_id, quantity, user_id, batch_id, cause, allow_partial
            ),
        )

    def recount(
        self,
        product_id: str,
        batch_id: UUID,
        counted_quantity: int,
        user_id: str,
        note: str | None = None,
    ) -> AdjustmentResult:
        """Set a batch to the physically counted quantity."""
        self._check_product(product_id)
        self._check_user(user_id)
        return self._run(
            "recount",
            [product_id],
            user_id,
            lambda movement: self._recount(movement, product_id, batch_id, counted_quantity, user_id, note),
        )

    def record_sale(
        self,
        product_id: str,
        quantity: int,
        order_ref: str | None,
        user_id: str,
        allow_partial: bool = False,
    ) -> AdjustmentResult:
        """Point-of-sale entry: FIFO subtract attributed to ``order_ref``."""
        return self.subtract(
            product_id,
            quantity,
            user_id,
            cause=Sale(order_ref),
            allow_partial=allow_partial,
        )

    def transfer(
        self,
        product_id: str,
        from_batch_id: UUID,
        to_batch_id: UUID,
        quantity: int,
        user_id: str,
        transfer_ref: str | None = None,
    ) -> AdjustmentResult:
        """Move units between two batches of the same product."""
        self._check_product(product_id)
        self._check_user(user_id)
        validate_quantity("quantity", quantity, allow_zero=False)
        if from_batch_id == to_batch_id:
            raise InvalidArgumentError("to_batch_id", str(to_batch_id), "must differ from from_batch_id")
        cause = Transfer(transfer_ref)

        def apply(movement: _Movement) -> AdjustmentResult:
            source = self._owned_batch(product_id, from_batch_id)
            target = self._owned_batch(product_id, to_batch_id)
            available = source.quantity_on_hand
            if quantity > available and not self._settings.allow_negative_stock:
                raise InsufficientStockError(product_id, quantity, available, batch_id=str(from_batch_id))
            self._debit(movement, source, quantity, cause, user_id)
            self._credit(movement, target, quantity, cause, user_id)
            return movement.result()

        return self._run("transfer", [product_id], user_id, apply)

    def bulk_adjust(self, requests: Sequence[AdjustmentRequest], user_id: str) -> list[AdjustmentResult]:
        """Apply several requests atomically: all succeed or none is kept."""
        if not requests:
            raise InvalidArgumentError("requests", [], "must not be empty")
        self._check_user(user_id)
        for request in requests:
            self._check_product(request.product_id)

        def apply(movement: _Movement) -> list[AdjustmentResult]:
            results = []
            for request in requests:
                line = _Movement(uuid4(), movement.created_at)
                results.append(self._dispatch(line, request, user_id))
                movement.batches.extend(line.batches)
                movement.entries.extend(line.entries)
            return results

        return self._run("bulk_adjust", [r.product_id for r in requests], user_id, apply)

    def update_batch(
        self,
        batch_id: UUID,
        user_id: str,
        *,
        expiration_date: date | None | object = UNSET,
    ) -> ProductBatchModel:
        """Correct batch metadata (expiration date); no ledger entry is written."""
        self._check_user(user_id)
        product_id = self._batches.get_batch(batch_id).product_id
        return self._run(
            "update_batch",
            [product_id],
            user_id,
            lambda movement: self._batches.update_batch(batch_id, expiration_date=expiration_date),
        )

    def delete_batch(self, batch_id: UUID, user_id: str) -> ProductBatchModel:
        """Archive an empty batch (BatchNotEmptyError otherwise)."""
        self._check_user(user_id)
        product_id = self._batches.get_batch(batch_id).product_id
        return self._run(
            "delete_batch",
            [product_id],
            user_id,
            lambda movement: self._batches.delete_batch(batch_id),
        )

    # ------------------------------------------------------------------
    # Transaction boundary
    # ------------------------------------------------------------------

    def _run(
        self,
        operation: str,
        product_ids: Iterable[str],
        user_id: str,
        apply: Callable[[_Movement], T],
    ) -> T:
        product_ids = list(product_ids)
        movement_id = uuid4()
        with LogContext.bind(
            actor_id=user_id,
            product_id=product_ids[0] if len(set(product_ids)) == 1 else None,
            movement_id=movement_id,
        ):
            t0 = time.monotonic()
            attempt = 0
            try:
                with self._locks.hold_many(product_ids, self._settings.lock_timeout_seconds):
                    while True:
                        movement = _Movement(movement_id, self._clock.now())
                        try:
                            with self._session.begin_nested():
                                result = apply(movement)
                            if self._auto_commit:
                                self._session.commit()
                            break
                        except StaleDataError as exc:
                            attempt += 1
                            if attempt > self._settings.max_conflict_retries:
                                raise ConcurrentModificationError(
                                    "product",
                                    ",".join(sorted(set(product_ids))),
                                    f"version conflict persisted after {attempt - 1} retries",
                                ) from exc
                            delay = self._settings.retry_backoff_seconds * (2 ** (attempt - 1))
                            logger.warning(
                                "adjustment_version_conflict",
                                extra={"operation": operation, "attempt": attempt, "retry_in_s": delay},
                            )
                            if delay:
                                time.sleep(delay)
            except Exception:
                if self._auto_commit:
                    self._session.rollback()
                logger.warning(
                    "adjustment_failed",
                    extra={
                        "operation": operation,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                    exc_info=True,
                )
                raise

            logger.info(
                "adjustment_completed",
                extra={
                    "operation": operation,
                    "entries": len(movement.entries),
                    "quantity_changed": sum(e.quantity_adjusted for e in movement.entries),
                    "negative_stock": any(e.negative_stock for e in movement.entries),
                    "retries": attempt,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            return result

    # ------------------------------------------------------------------
    # Operation bodies (run inside _run)
    # ------------------------------------------------------------------

    def _dispatch(self, movement: _Movement, request: AdjustmentRequest, user_id: str) -> AdjustmentResult:
        kind = AdjustmentType(request.adjustment_type)
        if kind is AdjustmentType.ADD:
            return self._add(
                movement, request.product_id, request.quantity, user_id,
                request.batch_id, request.new_batch, request.cause,
            )
        if kind is AdjustmentType.SUBTRACT:
            return self._subtract(
                movement, request.product_id, request.quantity, user_id,
                request.batch_id, request.cause, request.allow_partial,
            )
        if request.batch_id is None:
            raise InvalidArgumentError("batch_id", None, "recount requires a batch")
        note = request.cause.ref if request.cause is not None else None
        return self._recount(movement, request.product_id, request.batch_id, request.quantity, user_id, note)

    def _create(
        self,
        movement: _Movement,
        product_id: str,
        new_batch: NewBatch,
        quantity: int,
        cause: AdjustmentCause,
        user_id: str,
    ) -> ProductBatchModel:
        self._check_currency(new_batch.purchase_cost)
        batch = self._batches.create_batch(
            product_id,
            new_batch.batch_number,
            new_batch.purchase_cost,
            quantity,
            new_batch.expiration_date,
        )
        movement.batches.append(batch)
        if quantity > 0:
            movement.entries.append(
                self._ledger.record(
                    batch=batch,
                    adjustment_type=AdjustmentType.ADD,
                    quantity_before=0,
                    quantity_adjusted=quantity,
                    cause=cause,
                    user_id=user_id,
                    movement_id=movement.movement_id,
                    created_at=movement.created_at,
                )
            )
        return batch

    def _add(
        self,
        movement: _Movement,
        product_id: str,
        quantity: int,
        user_id: str,
        batch_id: UUID | None,
        new_batch: NewBatch | None,
        cause: AdjustmentCause | None,
    ) -> AdjustmentResult:
        validate_quantity("quantity", quantity, allow_zero=False)
        if (batch_id is None) == (new_batch is None):
            raise InvalidArgumentError("batch_id", batch_id, "exactly one of batch_id or new_batch is required")
        if new_batch is not None:
            self._create(movement, product_id, new_batch, quantity, cause or Receiving(), user_id)
        else:
            batch = self._owned_batch(product_id, batch_id)
            self._credit(movement, batch, quantity, cause or Other(MANUAL_ADJUSTMENT), user_id)
        return movement.result()

    def _subtract(
        self,
        movement: _Movement,
        product_id: str,
        quantity: int,
        user_id: str,
        batch_id: UUID | None,
        cause: AdjustmentCause | None,
        allow_partial: bool,
    ) -> AdjustmentResult:
        validate_quantity("quantity", quantity, allow_zero=False)
        cause = cause or Other(MANUAL_ADJUSTMENT)
        if batch_id is not None:
            return self._subtract_targeted(movement, product_id, batch_id, quantity, cause, user_id, allow_partial)
        return self._subtract_fifo(movement, product_id, quantity, cause, user_id, allow_partial)

    def _subtract_targeted(
        self,
        movement: _Movement,
        product_id: str,
        batch_id: UUID,
        quantity: int,
        cause: AdjustmentCause,
        user_id: str,
        allow_partial: bool,
    ) -> AdjustmentResult:
        batch = self._owned_batch(product_id, batch_id)
        available = max(batch.quantity_on_hand, 0)
        take = quantity
        if quantity > available and not self._settings.allow_negative_stock:
            if not allow_partial or available == 0:
                raise InsufficientStockError(product_id, quantity, available, batch_id=str(batch_id))
            take = available
        self._debit(movement, batch, take, cause, user_id)
        return movement.result(unfulfilled=quantity - take)

    def _subtract_fifo(
        self,
        movement: _Movement,
        product_id: str,
        quantity: int,
        cause: AdjustmentCause,
        user_id: str,
        allow_partial: bool,
    ) -> AdjustmentResult:
        batches = self._batches.lock_batches_for_product(product_id)
        allocation = allocate_fifo(
            [batch_layer(b) for b in batches], quantity, currency=self._settings.currency
        )
        available = allocation.allocated
        debits = {a.batch_id: a.quantity for a in allocation.allocations}

        unfulfilled = 0
        if allocation.unfulfilled:
            if self._settings.allow_negative_stock and batches:
                newest = batches[-1].id
                debits[newest] = debits.get(newest, 0) + allocation.unfulfilled
            elif allow_partial and available > 0:
                unfulfilled = allocation.unfulfilled
            else:
                raise InsufficientStockError(product_id, quantity, available)

        for batch in batches:
            if batch.id in debits:
                self._debit(movement, batch, debits[batch.id], cause, user_id)
        return movement.result(allocation=allocation, unfulfilled=unfulfilled)

    def _recount(
        self,
        movement: _Movement,
        product_id: str,
        batch_id: UUID,
        counted_quantity: int,
        user_id: str,
        note: str | None,
    ) -> AdjustmentResult:
        validate_quantity("counted_quantity", counted_quantity)
        batch = self._owned_batch(product_id, batch_id)
        before = batch.quantity_on_hand
        self._batches.apply_quantity(batch, counted_quantity)
        movement.batches.append(batch)
        movement.entries.append(
            self._ledger.record(
                batch=batch,
                adjustment_type=AdjustmentType.RECOUNT,
                quantity_before=before,
                quantity_adjusted=counted_quantity - before,
                cause=Recount(note),
                user_id=user_id,
                movement_id=movement.movement_id,
                created_at=movement.created_at,
            )
        )
        return movement.result()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _credit(
        self,
        movement: _Movement,
        batch: ProductBatchModel,
        quantity: int,
        cause: AdjustmentCause,
        user_id: str,
    ) -> None:
        before = batch.quantity_on_hand
        self._batches.apply_quantity(batch, before + quantity)
        movement.batches.append(batch)
        movement.entries.append(
            self._ledger.record(
                batch=batch,
                adjustment_type=AdjustmentType.ADD,
                quantity_before=before,
                quantity_adjusted=quantity,
                cause=cause,
                user_id=user_id,
                movement_id=movement.movement_id,
                created_at=movement.created_at,
            )
        )

    def _debit(
        self,
        movement: _Movement,
        batch: ProductBatchModel,
        quantity: int,
        cause: AdjustmentCause,
        user_id: str,
    ) -> None:
        before = batch.quantity_on_hand
        after = before - quantity
        self._batches.apply_quantity(batch, after)
        if after < 0:
            logger.warning(
                "negative_stock_recorded",
                extra={"batch_id": str(batch.id), "quantity_before": before, "quantity_after": after},
            )
        movement.batches.append(batch)
        movement.entries.append(
            self._ledger.record(
                batch=batch,
                adjustment_type=AdjustmentType.SUBTRACT,
                quantity_before=before,
                quantity_adjusted=-quantity,
                cause=cause,
                user_id=user_id,
                movement_id=movement.movement_id,
                created_at=movement.created_at,
                negative_stock=after < 0,
            )
        )

    def _owned_batch(self, product_id: str, batch_id: UUID) -> ProductBatchModel:
        batch = self._batches.lock_batch(batch_id)
        if batch.product_id != str(product_id):
            raise BatchProductMismatchError(str(batch_id), str(product_id), batch.product_id)
        return batch

    def _check_product(self, product_id: str) -> None:
        if not product_id:
            raise InvalidArgumentError("product_id", product_id, "must not be empty")
        if self._catalog is not None:
            self._catalog.get_product(str(product_id))

    def _check_user(self, user_id: str) -> None:
        if user_id is None or not str(user_id).strip():
            raise InvalidArgumentError("user_id", user_id, "must not be empty")

    def _check_currency(self, cost: Money) -> None:
        if isinstance(cost, Money) and cost.currency != self._settings.currency:
            raise InvalidArgumentError(
                "purchase_cost",
                str(cost),
                f"currency must be {self._settings.currency}",
            )


__all__ = [
    "AdjustmentRequest",
    "AdjustmentResult",
    "NewBatch",
    "QuantityAdjuster",
    "batch_layer",
]
