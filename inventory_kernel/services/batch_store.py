"""
BatchStore -- data access for product batches.

Responsibility:
    Create, read, correct, archive and (on behalf of the QuantityAdjuster) re-quantify
    batches, scoped by product.  Pure data access: no stock policy lives here.

Architecture position:
    Kernel > Services.  Flush-only; the caller owns the transaction.

Invariants enforced:
    - Batch numbers are unique within a product (checked up front, and by the
      UniqueConstraint when two writers race).
    - purchase cost and quantity are >= 0 at creation.
    - FIFO order is (created_at, id) ascending.
    - Every mutation bumps updated_at (and, through version_id_col, version).
    - A batch with stock cannot be deleted.

Failure modes:
    - InvalidArgumentError, DuplicateBatchNumberError, BatchNotFoundError,
      BatchNotEmptyError.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from inventory_kernel.domain.money import Money
from inventory_kernel.exceptions import (
    BatchNotEmptyError,
    BatchNotFoundError,
    DuplicateBatchNumberError,
    InvalidArgumentError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.product_batch import ProductBatchModel
from inventory_kernel.selectors.sequence import QuerySequence
from inventory_kernel.services.base import BaseService

logger = get_logger("services.batch_store")

MAX_BATCH_NUMBER_LENGTH = 100
_BATCH_NUMBER_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9 ._/#:-]*$")

# Marks an omitted keyword where None is a meaningful value
UNSET = object()


class BatchOrder(str, Enum):
    FIFO = "fifo"
    EXPIRATION = "expiration"
    NEWEST = "newest"


def validate_batch_number(batch_number: str) -> str:
    if not isinstance(batch_number, str):
        raise InvalidArgumentError("batch_number", batch_number, "must be a string")
    value = batch_number.strip()
    if not value:
        raise InvalidArgumentError("batch_number", batch_number, "must not be empty")
    if len(value) > MAX_BATCH_NUMBER_LENGTH:
        raise InvalidArgumentError(
            "batch_number",
            batch_number,
            f"must be at most {MAX_BATCH_NUMBER_LENGTH} characters",
        )
    if not _BATCH_NUMBER_PATTERN.match(value):
        raise InvalidArgumentError(
            "batch_number", batch_number, "contains unsupported characters"
        )
    return value


def validate_quantity(field: str, quantity: int, *, allow_zero: bool = True) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidArgumentError(field, quantity, "must be an integer")
    if quantity < 0 or (quantity == 0 and not allow_zero):
        bound = "non-negative" if allow_zero else "positive"
        raise InvalidArgumentError(field, quantity, f"must be {bound}")
    return quantity


def _order_by(order: BatchOrder):
    if order is BatchOrder.FIFO:
        return (ProductBatchModel.created_at.asc(), ProductBatchModel.id.asc())
    if order is BatchOrder.NEWEST:
        return (ProductBatchModel.created_at.desc(), ProductBatchModel.id.desc())
    return (
        ProductBatchModel.expiration_date.is_(None),
        ProductBatchModel.expiration_date.asc(),
        ProductBatchModel.created_at.asc(),
        ProductBatchModel.id.asc(),
    )


class BatchStore(BaseService):
    """
    Batch persistence scoped by product.

    Contract:
        Quantities are changed only via ``apply_quantity``, which the
        QuantityAdjuster calls while holding the product lock.

    Non-goals:
        - No ledger writes; no negative-stock policy.
    """

    def create_batch(
        self,
        product_id: str,
        batch_number: str,
        purchase_cost: Money,
        quantity_on_hand: int,
        expiration_date: date | None = None,
    ) -> ProductBatchModel:
        """
        Insert a new batch.

        Raises:
            InvalidArgumentError: negative cost/quantity, malformed number.
            DuplicateBatchNumberError: number already used for the product.
        """
        if not product_id:
            raise InvalidArgumentError("product_id", product_id, "must not be empty")
        number = validate_batch_number(batch_number)
        if not isinstance(purchase_cost, Money):
            raise InvalidArgumentError(
                "purchase_cost", purchase_cost, "must be a Money value"
            )
        if purchase_cost.is_negative:
            raise InvalidArgumentError(
                "purchase_cost", str(purchase_cost), "must be non-negative"
            )
        validate_quantity("quantity_on_hand", quantity_on_hand)
        if expiration_date is not None and not isinstance(expiration_date, date):
            raise InvalidArgumentError(
                "expiration_date", expiration_date, "must be a date"
            )

        if self.find_by_number(product_id, number) is not None:
            logger.warning(
                "batch_number_duplicate",
                extra={"product_id": product_id, "batch_number": number},
            )
            raise DuplicateBatchNumberError(product_id, number)

        now = self.clock.now()
        batch = ProductBatchModel(
            product_id=str(product_id),
            batch_number=number,
            purchase_cost_cents=purchase_cost.minor_units,
            currency=purchase_cost.currency,
            quantity_on_hand=quantity_on_hand,
            expiration_date=expiration_date,
            created_at=now,
            updated_at=now,
        )
        try:
            with self.session.begin_nested():
                self.session.add(batch)
                self.session.flush()
        except IntegrityError as exc:
            logger.warning(
                "batch_number_duplicate",
                extra={"product_id": product_id, "batch_number": number},
            )
            raise DuplicateBatchNumberError(product_id, number) from exc

        logger.info(
            "batch_created",
            extra={
                "batch_id": str(batch.id),
                "product_id": product_id,
                "batch_number": number,
                "purchase_cost_cents": purchase_cost.minor_units,
                "quantity_on_hand": quantity_on_hand,
            },
        )
        return batch

    def get_batch(self, batch_id: UUID, *, include_archived: bool = False) -> ProductBatchModel:
        """Raises BatchNotFoundError for unknown (or archived) batches."""
        batch = self.session.get(ProductBatchModel, batch_id)
        if batch is None or (batch.is_archived and not include_archived):
            raise BatchNotFoundError(str(batch_id))
        return batch

    def find_by_number(self, product_id: str, batch_number: str) -> ProductBatchModel | None:
        stmt = select(ProductBatchModel).where(
            ProductBatchModel.product_id == str(product_id),
            ProductBatchModel.batch_number == batch_number,
        )
        return self.session.scalars(stmt).first()

    def get_batches_for_product(
        self,
        product_id: str,
        order: BatchOrder = BatchOrder.FIFO,
        *,
        with_stock_only: bool = False,
        include_archived: bool = False,
    ) -> QuerySequence[ProductBatchModel]:
        """Lazy, restartable sequence of the product's batches."""
        stmt = select(ProductBatchModel).where(
            ProductBatchModel.product_id == str(product_id)
        )
        if not include_archived:
            stmt = stmt.where(ProductBatchModel.archived_at.is_(None))
        if with_stock_only:
            stmt = stmt.where(ProductBatchModel.quantity_on_hand > 0)
        stmt = stmt.order_by(*_order_by(BatchOrder(order)))
        return QuerySequence(self.session, stmt)

    def lock_batches_for_product(self, product_id: str) -> list[ProductBatchModel]:
        """
        Re-read every live batch of the product in FIFO order, row-locked.

        ``FOR UPDATE`` is effective on PostgreSQL; SQLite serialises writers at
        BEGIN IMMEDIATE instead.  populate_existing discards identity-map state
        loaded before the lock was taken.
        """
        stmt = (
            select(ProductBatchModel)
            .where(
                ProductBatchModel.product_id == str(product_id),
                ProductBatchModel.archived_at.is_(None),
            )
            .order_by(*_order_by(BatchOrder.FIFO))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return list(self.session.scalars(stmt))

    def lock_batch(self, batch_id: UUID) -> ProductBatchModel:
        stmt = (
            select(ProductBatchModel)
            .where(ProductBatchModel.id == batch_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        batch = self.session.scalars(stmt).first()
        if batch is None or batch.is_archived:
            raise BatchNotFoundError(str(batch_id))
        return batch

    def total_on_hand(self, product_id: str) -> int:
        """Product stock: the sum of its live batch quantities."""
        stmt = select(func.coalesce(func.sum(ProductBatchModel.quantity_on_hand), 0)).where(
            ProductBatchModel.product_id == str(product_id),
            ProductBatchModel.archived_at.is_(None),
        )
        return int(self.session.scalar(stmt) or 0)

    def apply_quantity(self, batch: ProductBatchModel, quantity_on_hand: int) -> ProductBatchModel:
        """
        Set a batch's quantity.  QuantityAdjuster only.

        No policy checks: negative values are the adjuster's decision.
        """
        previous = batch.quantity_on_hand
        batch.quantity_on_hand = quantity_on_hand
        batch.updated_at = self.clock.now()
        self.session.flush()
        logger.debug(
            "batch_quantity_applied",
            extra={
                "batch_id": str(batch.id),
                "quantity_before": previous,
                "quantity_after": quantity_on_hand,
                "version": batch.version,
            },
        )
        return batch

    def delete_batch(self, batch_id: UUID) -> ProductBatchModel:
        """
        Archive an empty batch.

        The row stays (with archived_at set) so ledger history can still be
        replayed against its cost; it disappears from every live query.

        Raises:
            BatchNotFoundError: unknown or already archived.
            BatchNotEmptyError: quantity_on_hand != 0.
        """
        batch = self.lock_batch(batch_id)
        if batch.quantity_on_hand != 0:
            logger.warning(
                "batch_delete_rejected",
                extra={
                    "batch_id": str(batch_id),
                    "quantity_on_hand": batch.quantity_on_hand,
                },
            )
            raise BatchNotEmptyError(str(batch_id), batch.quantity_on_hand)

        now = self.clock.now()
        batch.archived_at = now
        batch.updated_at = now
        self.session.flush()
        logger.info(
            "batch_archived",
            extra={"batch_id": str(batch_id), "product_id": batch.product_id},
        )
        return batch

    def update_batch(
        self,
        batch_id: UUID,
        *,
        expiration_date: date | None | object = UNSET,
    ) -> ProductBatchModel:
        """
        Correct a batch's metadata.

        Only ``expiration_date`` may change (``None`` clears it); cost, number
        and product are fixed at creation.  Quantities go through
        ``apply_quantity``.

        Raises:
            BatchNotFoundError: unknown or archived.
            InvalidArgumentError: nothing to change, or not a date.
        """
        if expiration_date is UNSET:
            raise InvalidArgumentError("expiration_date", None, "no field to update")
        if expiration_date is not None and (
            not isinstance(expiration_date, date) or isinstance(expiration_date, datetime)
        ):
            raise InvalidArgumentError("expiration_date", expiration_date, "must be a date")

        batch = self.lock_batch(batch_id)
        previous = batch.expiration_date
        if previous == expiration_date:
            return batch
        batch.expiration_date = expiration_date
        batch.updated_at = self.clock.now()
        self.session.flush()
        logger.info(
            "batch_updated",
            extra={
                "batch_id": str(batch_id),
                "product_id": batch.product_id,
                "expiration_before": previous.isoformat() if previous else None,
                "expiration_after": expiration_date.isoformat() if expiration_date else None,
            },
        )
        return batch
