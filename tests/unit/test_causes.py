"""Adjustment cause variants and their persisted / legacy text forms."""

import pytest

from inventory_kernel.domain.causes import (
    CauseKind,
    Damage,
    InitialLoad,
    Other,
    Receiving,
    Recount,
    Sale,
    Theft,
    Transfer,
    cause_from_parts,
    parse_reason,
)
from inventory_kernel.exceptions import InvalidArgumentError


class TestReasonText:

    @pytest.mark.parametrize(
        "cause, reason",
        [
            (Sale("ord-123"), "Sale (Order: ord-123)"),
            (Sale(), "Sale"),
            (Receiving("po-9"), "Stock In (PO: po-9)"),
            (InitialLoad(), "Initial stock"),
            (Recount("shelf 3"), "Recount: shelf 3"),
            (Damage(), "Damage"),
            (Transfer("t-1"), "Transfer (Ref: t-1)"),
            (Other("Manual adjustment"), "Manual adjustment"),
        ],
    )
    def test_rendered_reason(self, cause, reason):
        assert cause.reason == reason

    def test_sale_reason_starts_with_sale(self):
        assert Sale("x").reason.startswith("Sale")

    def test_other_requires_note(self):
        with pytest.raises(InvalidArgumentError):
            Other("  ")


class TestPersistedParts:

    def test_round_trip_through_columns(self):
        for cause in (Sale("o-1"), Receiving(None), InitialLoad(), Theft("night"), Other("x")):
            assert cause_from_parts(cause.kind.value, cause.ref) == cause

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError):
            cause_from_parts("gift", None)


class TestLegacyReasons:

    def test_sale_with_order(self):
        assert parse_reason("Sale (Order: ord-12345)") == Sale("ord-12345")

    def test_receiving_synonyms(self):
        assert parse_reason("Stock In (PO: po-7)") == Receiving("po-7")
        assert parse_reason("Purchase order received").kind is CauseKind.RECEIVING

    def test_recount_note(self):
        assert parse_reason("Recount: aisle 4") == Recount("aisle 4")
        assert parse_reason("cycle_count") == Recount(None)

    def test_unrecognised_becomes_other(self):
        assert parse_reason("Gift to staff") == Other("Gift to staff")

    def test_empty_rejected(self):
        with pytest.raises(InvalidArgumentError):
            parse_reason("")
