"""
Adjustment causes -- the structured "why" behind every ledger entry.

Each stock movement carries exactly one cause variant.  The ledger stores the
variant as ``(cause_kind, cause_ref)`` and also stores the rendered ``reason``
text, whose format ("Sale (Order: ord-123)", "Stock In (PO: po-9)") is what
point-of-sale screens and older exports expect.  Reports select sales by
``cause_kind``; ``parse_reason`` exists for ingesting legacy reason strings.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar

from inventory_kernel.exceptions import InvalidArgumentError


class CauseKind(str, Enum):
    SALE = "sale"
    RECEIVING = "receiving"
    INITIAL_LOAD = "initial_load"
    RECOUNT = "recount"
    DAMAGE = "damage"
    THEFT = "theft"
    TRANSFER = "transfer"
    RETURN = "return"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class Sale:
    order_ref: str | None = None
    kind: ClassVar[CauseKind] = CauseKind.SALE

    @property
    def ref(self) -> str | None:
        return self.order_ref

    @property
    def reason(self) -> str:
        return f"Sale (Order: {self.order_ref})" if self.order_ref else "Sale"


@dataclass(frozen=True, slots=True)
class Receiving:
    po_ref: str | None = None
    kind: ClassVar[CauseKind] = CauseKind.RECEIVING

    @property
    def ref(self) -> str | None:
        return self.po_ref

    @property
    def reason(self) -> str:
        return f"Stock In (PO: {self.po_ref})" if self.po_ref else "Stock In"


@dataclass(frozen=True, slots=True)
class InitialLoad:
    kind: ClassVar[CauseKind] = CauseKind.INITIAL_LOAD

    @property
    def ref(self) -> None:
        return None

    @property
    def reason(self) -> str:
        return "Initial stock"


@dataclass(frozen=True, slots=True)
class _Noted:
    """Causes whose only payload is an optional free-text note."""

    note: str | None = None
    label: ClassVar[str] = ""

    @property
    def ref(self) -> str | None:
        return self.note

    @property
    def reason(self) -> str:
        return f"{self.label}: {self.note}" if self.note else self.label


@dataclass(frozen=True, slots=True)
class Recount(_Noted):
    kind: ClassVar[CauseKind] = CauseKind.RECOUNT
    label: ClassVar[str] = "Recount"


@dataclass(frozen=True, slots=True)
class Damage(_Noted):
    kind: ClassVar[CauseKind] = CauseKind.DAMAGE
    label: ClassVar[str] = "Damage"


@dataclass(frozen=True, slots=True)
class Theft(_Noted):
    kind: ClassVar[CauseKind] = CauseKind.THEFT
    label: ClassVar[str] = "Theft"


@dataclass(frozen=True, slots=True)
class Transfer:
    transfer_ref: str | None = None
    kind: ClassVar[CauseKind] = CauseKind.TRANSFER

    @property
    def ref(self) -> str | None:
        return self.transfer_ref

    @property
    def reason(self) -> str:
        return f"Transfer (Ref: {self.transfer_ref})" if self.transfer_ref else "Transfer"


@dataclass(frozen=True, slots=True)
class Return:
    order_ref: str | None = None
    kind: ClassVar[CauseKind] = CauseKind.RETURN

    @property
    def ref(self) -> str | None:
        return self.order_ref

    @property
    def reason(self) -> str:
        return f"Return (Order: {self.order_ref})" if self.order_ref else "Return"


@dataclass(frozen=True, slots=True)
class Other:
    note: str
    kind: ClassVar[CauseKind] = CauseKind.OTHER

    def __post_init__(self) -> None:
        if not self.note or not self.note.strip():
            raise InvalidArgumentError("note", self.note, "Other cause requires a note")

    @property
    def ref(self) -> str:
        return self.note

    @property
    def reason(self) -> str:
        return self.note


AdjustmentCause = (
    Sale | Receiving | InitialLoad | Recount | Damage | Theft | Transfer | Return | Other
)

_BY_KIND: dict[CauseKind, type] = {
    CauseKind.SALE: Sale,
    CauseKind.RECEIVING: Receiving,
    CauseKind.INITIAL_LOAD: InitialLoad,
    CauseKind.RECOUNT: Recount,
    CauseKind.DAMAGE: Damage,
    CauseKind.THEFT: Theft,
    CauseKind.TRANSFER: Transfer,
    CauseKind.RETURN: Return,
    CauseKind.OTHER: Other,
}


def cause_from_parts(kind: CauseKind | str, ref: str | None) -> AdjustmentCause:
    """Rebuild a cause from its persisted (cause_kind, cause_ref) columns."""
    cause_cls = _BY_KIND[CauseKind(kind)]
    if cause_cls is InitialLoad:
        return InitialLoad()
    if cause_cls is Other:
        return Other(ref or "Other")
    return cause_cls(ref)


_REF_PATTERN = re.compile(r"\((?:[A-Za-z ]+):\s*(?P<ref>[^)]+)\)\s*$")

# Checked in order; first matching prefix wins
_LEGACY_PREFIXES: tuple[tuple[tuple[str, ...], CauseKind], ...] = (
    (("sale",), CauseKind.SALE),
    (("stock in", "received", "receiving", "purchase"), CauseKind.RECEIVING),
    (("initial",), CauseKind.INITIAL_LOAD),
    (("recount", "cycle_count", "cycle count", "stock count", "correction"), CauseKind.RECOUNT),
    (("damage", "spoilage", "defective"), CauseKind.DAMAGE),
    (("theft",), CauseKind.THEFT),
    (("transfer",), CauseKind.TRANSFER),
    (("return",), CauseKind.RETURN),
)


def parse_reason(reason: str) -> AdjustmentCause:
    """
    Map a legacy free-text reason onto a cause variant.

    "Sale (Order: ord-12345)" -> Sale("ord-12345"); unrecognised text becomes
    Other(text).
    """
    text = (reason or "").strip()
    lowered = text.lower()
    match = _REF_PATTERN.search(text)
    ref = match.group("ref").strip() if match else None

    for prefixes, kind in _LEGACY_PREFIXES:
        if lowered.startswith(prefixes):
            if kind is CauseKind.INITIAL_LOAD:
                return InitialLoad()
            if kind in (CauseKind.RECOUNT, CauseKind.DAMAGE, CauseKind.THEFT) and ref is None:
                _, _, note = text.partition(":")
                return _BY_KIND[kind](note.strip() or None)
            return _BY_KIND[kind](ref)

    if not text:
        raise InvalidArgumentError("reason", reason, "reason must not be empty")
    return Other(text)
