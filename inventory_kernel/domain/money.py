"""
Money -- fixed-point monetary value object.

Responsibility:
    Represents unit costs, prices, revenue and COGS as integer minor units
    (cents) paired with a currency code.  All arithmetic is integer
    arithmetic, so COGS and margin sums reproduce exactly across runs and
    across implementations.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - minor_units is always an ``int`` (never float, never Decimal).
    - Arithmetic never mixes currencies.
    - Conversion from a major-unit amount rounds ROUND_HALF_UP to the cent
      exactly once, at the boundary (``Money.of``).

Failure modes:
    - TypeError when minor_units is not an int, or when operands are not Money.
    - ValueError on malformed currency codes or mixed-currency arithmetic.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

MINOR_UNITS_PER_MAJOR = 100
_CENT = Decimal("0.01")


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount in integer minor units.

    Contract:
        Pairs an integer number of cents with its currency -- they are NEVER
        separated.

    Guarantees:
        - Immutable and hashable (frozen dataclass with slots).
        - Same-currency constraint on every arithmetic operation.

    Non-goals:
        - Does NOT perform currency conversion.
        - Does NOT support currencies with other than two decimal places.
    """

    minor_units: int
    currency: str = "USD"

    def __post_init__(self) -> None:
        if isinstance(self.minor_units, bool) or not isinstance(self.minor_units, int):
            raise TypeError(
                f"minor_units must be int, got {type(self.minor_units).__name__}"
            )
        code = self.currency.upper().strip() if isinstance(self.currency, str) else ""
        if len(code) != 3 or not code.isalpha():
            raise ValueError(f"Invalid currency code: {self.currency!r}")
        object.__setattr__(self, "currency", code)

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str = "USD") -> Money:
        """
        Create Money from a major-unit amount ("4.00", Decimal("19.99"), 5).

        Raises:
            ValueError: If amount cannot be parsed as a decimal number.
            TypeError: If amount is a float.
        """
        if isinstance(amount, float):
            raise TypeError("Money.of does not accept float; pass str or Decimal")
        try:
            value = Decimal(str(amount))
        except InvalidOperation as e:
            raise ValueError(f"Invalid amount: {amount!r}") from e
        if not value.is_finite():
            raise ValueError(f"Invalid amount: {amount!r}")
        cents = (value.quantize(_CENT, rounding=ROUND_HALF_UP) * MINOR_UNITS_PER_MAJOR)
        return cls(minor_units=int(cents), currency=currency)

    @classmethod
    def from_minor(cls, minor_units: int, currency: str = "USD") -> Money:
        return cls(minor_units=minor_units, currency=currency)

    @classmethod
    def zero(cls, currency: str = "USD") -> Money:
        return cls(minor_units=0, currency=currency)

    @property
    def amount(self) -> Decimal:
        """Major-unit Decimal, exact (e.g. 10500 cents -> Decimal('105.00'))."""
        return (Decimal(self.minor_units) / MINOR_UNITS_PER_MAJOR).quantize(_CENT)

    @property
    def is_zero(self) -> bool:
        return self.minor_units == 0

    @property
    def is_positive(self) -> bool:
        return self.minor_units > 0

    @property
    def is_negative(self) -> bool:
        return self.minor_units < 0

    def _require_same_currency(self, other: Money, op: str) -> None:
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot {op} Money with different currencies: "
                f"{self.currency} and {other.currency}"
            )

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other, "add")
        return Money(self.minor_units + other.minor_units, self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other, "subtract")
        return Money(self.minor_units - other.minor_units, self.currency)

    def __mul__(self, quantity: int) -> Money:
        """Scale by an integer unit count (unit cost x quantity)."""
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            return NotImplemented
        return Money(self.minor_units * quantity, self.currency)

    __rmul__ = __mul__

    def __neg__(self) -> Money:
        return Money(-self.minor_units, self.currency)

    def __abs__(self) -> Money:
        return Money(abs(self.minor_units), self.currency)

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other, "compare")
        return self.minor_units < other.minor_units

    def __le__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other, "compare")
        return self.minor_units <= other.minor_units

    def __gt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other, "compare")
        return self.minor_units > other.minor_units

    def __ge__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other, "compare")
        return self.minor_units >= other.minor_units

    def __str__(self) -> str:
        return f"{self.amount} {self.currency}"
