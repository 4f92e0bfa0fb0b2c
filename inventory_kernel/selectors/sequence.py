"""Lazy, restartable query results."""

from collections.abc import Iterator
from typing import Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

T = TypeVar("T")


class QuerySequence(Generic[T]):
    """
    A finite sequence backed by a SELECT statement.

    Nothing is read until iteration starts.  Every ``iter()`` re-executes the
    statement, so the sequence can be walked any number of times and always
    reflects the session's current view.  Rows are streamed in batches of
    ``yield_per``.
    """

    def __init__(self, session: Session, stmt: Select, yield_per: int = 200):
        self._session = session
        self._stmt = stmt
        self._yield_per = yield_per

    def __iter__(self) -> Iterator[T]:
        result = self._session.scalars(
            self._stmt.execution_options(yield_per=self._yield_per)
        )
        try:
            yield from result
        finally:
            result.close()

    def all(self) -> list[T]:
        return list(self)

    def first(self) -> T | None:
        return self._session.scalars(self._stmt.limit(1)).first()

    def count(self) -> int:
        count_stmt = select(func.count()).select_from(
            self._stmt.order_by(None).subquery()
        )
        return self._session.scalar(count_stmt) or 0

    def __bool__(self) -> bool:
        return self.first() is not None

    @property
    def statement(self) -> Select:
        return self._stmt
