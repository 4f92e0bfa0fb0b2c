"""
Module: inventory_kernel.models.product_batch
Responsibility: ORM persistence for product batches (lots).  Each batch is a
    discrete quantity of one product received at one unit cost, tracked
    independently for FIFO costing and expiration.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/money.py only.

Invariants enforced:
    B1 -- Batch number unique within a product (UniqueConstraint; archived
          batches keep their number).
    B2 -- purchase cost >= 0 and fixed at creation (db/immutability.py).
    B3 -- quantity_on_hand >= 0, except rows written under the negative-stock
          override; enforced by the QuantityAdjuster, the only writer.
    B4 -- FIFO order is (created_at, id) ascending; indexed.
    B5 -- Lost updates are detected through version_id_col; a stale write
          raises StaleDataError.

Audit relevance:
    Deleting a batch only archives it (archived_at), so historical ledger rows
    can still be replayed against its cost.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import BigInteger, Date, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UTCDateTime
from inventory_kernel.domain.money import Money


class ProductBatchModel(Base):
    """
    Persistent storage for product batches.

    Contract:
        Rows are created by BatchStore.create_batch and their quantity is
        changed only through BatchStore on behalf of the QuantityAdjuster.

    Guarantees:
        - (product_id, batch_number) is unique.
        - ``version`` increments on every UPDATE.

    Non-goals:
        - Product stock is never stored; it is the sum of quantity_on_hand.
    """

    __tablename__ = "product_batches"

    __table_args__ = (
        UniqueConstraint("product_id", "batch_number", name="uq_batch_product_number"),
        # Query: FIFO walk for one product
        Index("idx_batch_product_fifo", "product_id", "created_at", "id"),
        # Query: expiring / expired batches
        Index("idx_batch_expiration", "expiration_date"),
    )

    product_id: Mapped[str] = mapped_column(String(64), nullable=False)

    batch_number: Mapped[str] = mapped_column(String(100), nullable=False)

    # INVARIANT B2: fixed at creation
    purchase_cost_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    # INVARIANT B3
    quantity_on_hand: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # INVARIANT B4: FIFO key
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    archived_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # INVARIANT B5
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def purchase_cost(self) -> Money:
        return Money(self.purchase_cost_cents, self.currency)

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    @property
    def stock_value(self) -> Money:
        return self.purchase_cost * self.quantity_on_hand

    def __repr__(self) -> str:
        return (
            f"<ProductBatch {self.batch_number}: product={self.product_id} "
            f"qty={self.quantity_on_hand} @ {self.purchase_cost}>"
        )
