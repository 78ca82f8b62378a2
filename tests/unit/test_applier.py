from __future__ import annotations

import threading
import time
from decimal import Decimal

from roster_recon.db.roster_store import InMemoryRosterStore
from roster_recon.errors import PersistenceError
from roster_recon.models.roster import FeeInstallment, KitItemState, RosterEntry
from roster_recon.models.upload import FeePayload, KitPayload, NormalizedRecord
from roster_recon.models.upload_result import WriteStatsAccumulator
from roster_recon.services.applier import apply
from roster_recon.services.locks import KeyedLocks
from roster_recon.services.matcher import match

"""Update applier tests (ordering, duplicates, failures, concurrency)."""


def _fee_rec(row: int, roll: str, amount: str, number: int = 1) -> NormalizedRecord:
    return NormalizedRecord(row, roll, FeePayload((FeeInstallment(number, Decimal(amount), paid=True),)))


def _matched(store: InMemoryRosterStore, records: list[NormalizedRecord]):
    return match(records, store.snapshot(r.roll_number for r in records)).matched


class FailingStore(InMemoryRosterStore):
    """Fails every persist for the given roll numbers."""

    def __init__(self, *args, fail_rolls=(), **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_rolls = set(fail_rolls)

    def persist(self, entry: RosterEntry) -> None:
        if entry.roll_number in self.fail_rolls:
            raise PersistenceError(f"disk full writing {entry.roll_number}")
        super().persist(entry)


class SlowStore(InMemoryRosterStore):
    """Records how many writes to the same roll number overlap."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._active: dict[str, int] = {}
        self._guard = threading.Lock()
        self.max_overlap: dict[str, int] = {}

    def persist(self, entry: RosterEntry) -> None:
        with self._guard:
            n = self._active.get(entry.roll_number, 0) + 1
            self._active[entry.roll_number] = n
            self.max_overlap[entry.roll_number] = max(self.max_overlap.get(entry.roll_number, 0), n)
        try:
            time.sleep(0.005)
            super().persist(entry)
        finally:
            with self._guard:
                self._active[entry.roll_number] -= 1


def test_duplicate_roll_numbers_last_row_wins(roster_store):
    records = [_fee_rec(1, "R001", "100"), _fee_rec(2, "R001", "200")]
    outcome = apply(_matched(roster_store, records), roster_store, locks=KeyedLocks())
    assert outcome.applied_count == 2  # records, not students
    assert outcome.failed_writes == ()
    stored = roster_store.lookup("R001")
    assert stored.fee_record[0].amount == Decimal("200")
    assert roster_store.write_count == 2


def test_positions_three_and_seven_last_one_wins(roster_store):
    records = [
        _fee_rec(2, "R002", "10", number=3),
        _fee_rec(3, "R001", "300"),
        _fee_rec(4, "007", "40"),
        _fee_rec(5, "R002", "11", number=3),
        _fee_rec(7, "R001", "700"),
    ]
    outcome = apply(_matched(roster_store, records), roster_store, max_workers=4, locks=KeyedLocks())
    assert outcome.applied_count == 5
    assert roster_store.lookup("R001").fee_record[0].amount == Decimal("700")
    r002 = roster_store.lookup("R002")
    assert [i.number for i in r002.fee_record] == [1, 2, 3]
    assert r002.fee_record[2].amount == Decimal("11")


def test_duplicates_of_different_payload_fields_accumulate(roster_store):
    records = [
        NormalizedRecord(1, "R001", KitPayload({"bag": KitItemState(True, 1)})),
        NormalizedRecord(2, "R001", KitPayload({"bottle": KitItemState(True, 2)})),
    ]
    apply(_matched(roster_store, records), roster_store, locks=KeyedLocks())
    assert roster_store.lookup("R001").kit_record == {
        "bag": KitItemState(True, 1),
        "bottle": KitItemState(True, 2),
    }


def test_failed_write_is_recorded_and_batch_continues(roster_entries):
    store = FailingStore(roster_entries, fail_rolls={"R002"})
    records = [_fee_rec(2, "R001", "1"), _fee_rec(3, "R002", "1"), _fee_rec(4, "007", "1")]
    outcome = apply(_matched(store, records), store, max_workers=3, locks=KeyedLocks())
    assert outcome.applied_count == 2
    assert len(outcome.failed_writes) == 1
    fw = outcome.failed_writes[0]
    assert (fw.row_number, fw.roll_number) == (3, "R002")
    assert "disk full" in fw.message
    # the failed entry is unchanged
    assert store.lookup("R002") == roster_entries[1]


def test_failure_on_one_duplicate_keeps_later_rows(roster_entries):
    store = FailingStore(roster_entries)
    calls = {"n": 0}
    original = store.persist

    def flaky(entry):
        calls["n"] += 1
        if calls["n"] == 1:
            raise PersistenceError("timeout")
        original(entry)

    store.persist = flaky  # type: ignore[method-assign]
    records = [_fee_rec(1, "R001", "100"), _fee_rec(2, "R001", "200")]
    outcome = apply(_matched(store, records), store, max_workers=1, locks=KeyedLocks())
    assert outcome.applied_count == 1
    assert [f.row_number for f in outcome.failed_writes] == [1]
    assert store.lookup("R001").fee_record[0].amount == Decimal("200")


def test_apply_is_idempotent(roster_store):
    records = [_fee_rec(1, "R001", "100"), _fee_rec(2, "R002", "900", number=2)]
    apply(_matched(roster_store, records), roster_store, locks=KeyedLocks())
    first = roster_store.entries()
    apply(_matched(roster_store, records), roster_store, locks=KeyedLocks())
    assert roster_store.entries() == first


def test_reapplying_identical_value_still_counts(roster_store):
    records = [_fee_rec(1, "R001", "100")]
    apply(_matched(roster_store, records), roster_store, locks=KeyedLocks())
    outcome = apply(_matched(roster_store, records), roster_store, locks=KeyedLocks())
    assert outcome.applied_count == 1


def test_empty_matched_writes_nothing(roster_store):
    outcome = apply([], roster_store)
    assert outcome.applied_count == 0
    assert roster_store.write_count == 0


def test_on_write_and_stats_called_per_attempt(roster_entries):
    store = FailingStore(roster_entries, fail_rolls={"007"})
    seen = []
    stats = WriteStatsAccumulator()
    records = [_fee_rec(1, "R001", "1"), _fee_rec(2, "007", "1"), _fee_rec(3, "R001", "2")]
    outcome = apply(
        _matched(store, records),
        store,
        max_workers=2,
        on_write=lambda: seen.append(1),
        stats=stats,
        locks=KeyedLocks(),
    )
    assert len(seen) == 3
    assert len(stats.write_times) == 3
    assert len(outcome.write_seconds) == 3


def test_writes_to_same_student_never_overlap(roster_entries):
    store = SlowStore(roster_entries)
    records = [_fee_rec(i, "R001" if i % 2 else "R002", str(i)) for i in range(1, 21)]
    locks = KeyedLocks()
    matched = _matched(store, records)

    threads = [
        threading.Thread(target=apply, args=(matched, store), kwargs={"locks": locks, "max_workers": 4})
        for _ in range(3)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert store.max_overlap == {"R001": 1, "R002": 1}
    assert store.write_count == 60
    assert len(locks) == 0


def test_concurrent_uploads_to_same_student_do_not_lose_updates(roster_store):
    locks = KeyedLocks()
    fee_records = [_fee_rec(1, "R001", "500")]
    kit_records = [NormalizedRecord(1, "R001", KitPayload({"cap": KitItemState(True, 1)}))]
    # both runs take their snapshot before either writes
    fee_matched = _matched(roster_store, fee_records)
    kit_matched = _matched(roster_store, kit_records)

    t1 = threading.Thread(target=apply, args=(fee_matched, roster_store), kwargs={"locks": locks})
    t2 = threading.Thread(target=apply, args=(kit_matched, roster_store), kwargs={"locks": locks})
    t1.start()
    t2.start()
    t1.join()
    t2.join()

    stored = roster_store.lookup("R001")
    assert stored.fee_record[0].amount == Decimal("500")
    assert stored.kit_record == {"cap": KitItemState(True, 1)}
