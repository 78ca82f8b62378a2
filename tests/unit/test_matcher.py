from __future__ import annotations

from decimal import Decimal

from roster_recon.models.roster import FeeInstallment
from roster_recon.models.upload import FeePayload, NormalizedRecord
from roster_recon.services.matcher import match


def _rec(row: int, roll: str) -> NormalizedRecord:
    return NormalizedRecord(row, roll, FeePayload((FeeInstallment(1, Decimal("1")),)))


def test_match_partitions_in_file_order(roster_store):
    roster = roster_store.entries()
    records = [_rec(1, "R003"), _rec(2, "R001"), _rec(3, "R003"), _rec(4, "007"), _rec(5, "X")]
    matched, unmatched = match(records, roster)
    assert [r.row_number for r, _ in matched] == [2, 4]
    assert [e.roll_number for _, e in matched] == ["R001", "007"]
    # duplicates preserved, order preserved
    assert unmatched == ("R003", "R003", "X")


def test_match_does_not_mutate_roster(roster_store):
    roster = roster_store.entries()
    before = dict(roster)
    match([_rec(1, "R001"), _rec(2, "NOPE")], roster)
    assert roster == before


def test_match_empty():
    assert match([], {}) == ((), ())
