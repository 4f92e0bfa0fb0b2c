"""
AdjustmentLedger -- append-only record of every quantity change.

Responsibility:
    Append ledger entries and answer time-ordered queries over them.  The
    ledger is the source of truth for audit and for replaying batch
    quantities; COGS reporting reads nothing else but batch costs.

Architecture position:
    Kernel > Services.  Flush-only; the caller owns the transaction.

Invariants enforced:
    - Append-only: this class has no update/delete operations, and
      db/immutability.py blocks them at the ORM level.
    - Per-product ``sequence`` is allocated as max+1 while the product lock is
      held, and is unique per product.
    - Every query is ordered (created_at, sequence) ascending.
    - quantity_after == quantity_before + quantity_adjusted.

Failure modes:
    - InvalidArgumentError for an inconsistent entry.
    - Database errors propagate; the QuantityAdjuster rolls back the batch
      mutation that preceded the failed append.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import func, select

from inventory_kernel.domain.causes import (
    AdjustmentCause,
    CauseKind,
    cause_from_parts,
    parse_reason,
)
from inventory_kernel.exceptions import InvalidArgumentError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.inventory_adjustment import (
    AdjustmentType,
    InventoryAdjustmentModel,
)
from inventory_kernel.models.product_batch import ProductBatchModel
from inventory_kernel.selectors.sequence import QuerySequence
from inventory_kernel.services.base import BaseService

logger = get_logger("services.adjustment_ledger")

_REPLAY_ORDER = (
    InventoryAdjustmentModel.created_at.asc(),
    InventoryAdjustmentModel.sequence.asc(),
)


class AdjustmentLedger(BaseService):
    """
    Durable, append-only adjustment log.

    Contract:
        ``append`` assigns id, sequence and (if missing) created_at, then
        flushes.  Query methods return lazy ``QuerySequence`` objects.
    """

    def next_sequence(self, product_id: str) -> int:
        stmt = select(func.max(InventoryAdjustmentModel.sequence)).where(
            InventoryAdjustmentModel.product_id == str(product_id)
        )
        current = self.session.scalar(stmt)
        return (current or 0) + 1

    def append(self, entry: InventoryAdjustmentModel) -> InventoryAdjustmentModel:
        """
        Persist a new entry and return it with id and sequence assigned.

        Fields a bare entry may omit are derived before validation:
        ``cause_kind``/``cause_ref`` from ``reason`` (and vice versa),
        ``quantity_before`` from the batch's last ledger row (0 if none),
        ``quantity_after`` from the other two, and a fresh ``movement_id``.
        """
        if entry.id is not None and self.session.get(InventoryAdjustmentModel, entry.id):
            raise InvalidArgumentError("id", str(entry.id), "ledger entries are append-only")
        self._complete(entry)

        entry.sequence = self.next_sequence(entry.product_id)
        if entry.created_at is None:
            entry.created_at = self.clock.now()
        if entry.negative_stock is None:
            entry.negative_stock = False

        self.session.add(entry)
        self.session.flush()

        logger.info(
            "ledger_entry_appended",
            extra={
                "adjustment_id": str(entry.id),
                "product_id": entry.product_id,
                "batch_id": str(entry.batch_id) if entry.batch_id else None,
                "movement_id": str(entry.movement_id),
                "sequence": entry.sequence,
                "adjustment_type": entry.adjustment_type,
                "quantity_adjusted": entry.quantity_adjusted,
                "cause_kind": entry.cause_kind,
                "negative_stock": entry.negative_stock,
            },
        )
        return entry

    def _complete(self, entry: InventoryAdjustmentModel) -> None:
        """Fill derivable fields and reject an entry that cannot be stored."""
        for name in ("product_id", "user_id"):
            value = getattr(entry, name)
            if value is None or not str(value).strip():
                raise InvalidArgumentError(name, value, "is required")
        try:
            entry.adjustment_type = AdjustmentType(entry.adjustment_type).value
        except ValueError:
            raise InvalidArgumentError(
                "adjustment_type", entry.adjustment_type, "must be add, subtract or recount"
            ) from None
        if not isinstance(entry.quantity_adjusted, int) or isinstance(entry.quantity_adjusted, bool):
            raise InvalidArgumentError("quantity_adjusted", entry.quantity_adjusted, "must be an integer")

        if entry.cause_kind is None:
            if not entry.reason or not entry.reason.strip():
                raise InvalidArgumentError("reason", entry.reason, "reason or cause_kind is required")
            cause = parse_reason(entry.reason)
            entry.cause_kind = cause.kind.value
            entry.cause_ref = cause.ref
        else:
            try:
                cause = cause_from_parts(entry.cause_kind, entry.cause_ref)
            except ValueError:
                raise InvalidArgumentError("cause_kind", entry.cause_kind, "unknown cause kind") from None
            entry.cause_kind = cause.kind.value
            if not entry.reason:
                entry.reason = cause.reason

        if entry.movement_id is None:
            entry.movement_id = uuid4()

        if entry.quantity_before is None:
            if entry.quantity_after is not None:
                entry.quantity_before = entry.quantity_after - entry.quantity_adjusted
            else:
                entry.quantity_before = self._last_quantity(entry.batch_id)
        if entry.quantity_after is None:
            entry.quantity_after = entry.quantity_before + entry.quantity_adjusted
        if entry.quantity_before + entry.quantity_adjusted != entry.quantity_after:
            raise InvalidArgumentError(
                "quantity_after",
                entry.quantity_after,
                f"must equal quantity_before ({entry.quantity_before}) + "
                f"quantity_adjusted ({entry.quantity_adjusted})",
            )

    def _last_quantity(self, batch_id: UUID | None) -> int:
        if batch_id is None:
            return 0
        stmt = (
            select(InventoryAdjustmentModel.quantity_after)
            .where(InventoryAdjustmentModel.batch_id == batch_id)
            .order_by(
                InventoryAdjustmentModel.created_at.desc(),
                InventoryAdjustmentModel.sequence.desc(),
            )
            .limit(1)
        )
        return self.session.scalar(stmt) or 0

    def record(
        self,
        *,
        batch: ProductBatchModel,
        adjustment_type: AdjustmentType,
        quantity_before: int,
        quantity_adjusted: int,
        cause: AdjustmentCause,
        user_id: str,
        movement_id: UUID,
        negative_stock: bool = False,
        created_at: datetime | None = None,
    ) -> InventoryAdjustmentModel:
        """
        Build the entry for a change just applied to ``batch`` and append it.

        Rows of one movement pass the same ``created_at`` so a date window
        never splits them.
        """
        entry = InventoryAdjustmentModel(
            product_id=batch.product_id,
            batch_id=batch.id,
            movement_id=movement_id,
            adjustment_type=AdjustmentType(adjustment_type).value,
            quantity_adjusted=quantity_adjusted,
            quantity_before=quantity_before,
            quantity_after=quantity_before + quantity_adjusted,
            cause_kind=cause.kind.value,
            cause_ref=cause.ref,
            reason=cause.reason,
            unit_cost_cents=batch.purchase_cost_cents,
            negative_stock=negative_stock,
            user_id=str(user_id),
            created_at=created_at or self.clock.now(),
        )
        return self.append(entry)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _filtered(
        self,
        *,
        product_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ):
        stmt = select(InventoryAdjustmentModel)
        if product_id is not None:
            stmt = stmt.where(InventoryAdjustmentModel.product_id == str(product_id))
        if start is not None:
            stmt = stmt.where(InventoryAdjustmentModel.created_at >= start)
        if end is not None:
            stmt = stmt.where(InventoryAdjustmentModel.created_at <= end)
        return stmt

    def query_by_product(
        self,
        product_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> QuerySequence[InventoryAdjustmentModel]:
        """Entries for one product, start/end inclusive, replay order."""
        stmt = self._filtered(product_id=product_id, start=start, end=end)
        return QuerySequence(self.session, stmt.order_by(*_REPLAY_ORDER))

    def query_all(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        product_id: str | None = None,
    ) -> QuerySequence[InventoryAdjustmentModel]:
        stmt = self._filtered(product_id=product_id, start=start, end=end)
        return QuerySequence(
            self.session,
            stmt.order_by(*_REPLAY_ORDER, InventoryAdjustmentModel.product_id.asc()),
        )

    def query_by_reason_prefix(self, prefix: str) -> QuerySequence[InventoryAdjustmentModel]:
        """Entries whose rendered reason starts with ``prefix`` (e.g. "Sale")."""
        stmt = select(InventoryAdjustmentModel).where(
            InventoryAdjustmentModel.reason.startswith(prefix, autoescape=True)
        )
        return QuerySequence(
            self.session,
            stmt.order_by(*_REPLAY_ORDER, InventoryAdjustmentModel.product_id.asc()),
        )

    def query_by_cause(
        self,
        kind: CauseKind | str,
        *,
        product_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        adjustment_type: AdjustmentType | None = None,
    ) -> QuerySequence[InventoryAdjustmentModel]:
        stmt = self._filtered(product_id=product_id, start=start, end=end).where(
            InventoryAdjustmentModel.cause_kind == CauseKind(kind).value
        )
        if adjustment_type is not None:
            stmt = stmt.where(
                InventoryAdjustmentModel.adjustment_type == AdjustmentType(adjustment_type).value
            )
        return QuerySequence(
            self.session,
            stmt.order_by(*_REPLAY_ORDER, InventoryAdjustmentModel.product_id.asc()),
        )

    def query_by_movement(self, movement_id: UUID) -> QuerySequence[InventoryAdjustmentModel]:
        stmt = select(InventoryAdjustmentModel).where(
            InventoryAdjustmentModel.movement_id == movement_id
        )
        return QuerySequence(self.session, stmt.order_by(*_REPLAY_ORDER))

    def query_by_batch(self, batch_id: UUID) -> QuerySequence[InventoryAdjustmentModel]:
        stmt = select(InventoryAdjustmentModel).where(
            InventoryAdjustmentModel.batch_id == batch_id
        )
        return QuerySequence(self.session, stmt.order_by(*_REPLAY_ORDER))
