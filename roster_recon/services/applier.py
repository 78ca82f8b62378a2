from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from ..db.roster_store import RosterStore
from ..errors import PersistenceError
from ..models.roster import RosterEntry
from ..models.upload import NormalizedRecord
from ..models.upload_result import ApplyOutcome, FailedWrite, WriteStatsAccumulator
from .locks import DEFAULT_LOCKS, KeyedLocks
from .merge import merge_payload

"""Update applier: write matched records to the roster store.

Records are grouped by roll number. Groups run concurrently on a thread pool; inside a
group the records are applied one by one in file order while the roll number's lock is
held, so the last row of a duplicated roll number wins. Each group re-reads the entry
from the store under the lock, which keeps a concurrent upload's writes to the same
student from being lost.

A failed write is recorded and skipped; it neither aborts the batch nor counts as
applied or not-found.
"""

__all__ = [
    "apply",
]

logger = logging.getLogger(__name__)


@dataclass
class _GroupResult:
    applied: int = 0
    failures: list[FailedWrite] = field(default_factory=list)


def _apply_group(
    roll_number: str,
    items: list[tuple[NormalizedRecord, RosterEntry]],
    store: RosterStore,
    locks: KeyedLocks,
    on_write: Callable[[], None] | None,
    stats: WriteStatsAccumulator,
) -> _GroupResult:
    result = _GroupResult()
    with locks.hold(roll_number):
        try:
            current = store.lookup(roll_number)
        except PersistenceError as e:
            logger.warning("roster lookup failed roll=%s: %s", roll_number, e)
            for record, _ in items:
                result.failures.append(FailedWrite(record.row_number, roll_number, f"lookup failed: {e}"))
                if on_write is not None:
                    on_write()
            return result

        working = current if current is not None else items[0][1]
        for record, _ in items:
            candidate = merge_payload(working, record.payload)
            started = time.perf_counter()
            try:
                store.persist(candidate)
            except PersistenceError as e:
                logger.warning("write failed roll=%s row=%d: %s", roll_number, record.row_number, e)
                result.failures.append(FailedWrite(record.row_number, roll_number, str(e)))
                continue
            finally:
                stats.add_write_time(time.perf_counter() - started)
                if on_write is not None:
                    on_write()
            working = candidate
            result.applied += 1
    return result


def apply(
    matched: Sequence[tuple[NormalizedRecord, RosterEntry]],
    store: RosterStore,
    *,
    locks: KeyedLocks = DEFAULT_LOCKS,
    max_workers: int = 4,
    on_write: Callable[[], None] | None = None,
    stats: WriteStatsAccumulator | None = None,
) -> ApplyOutcome:
    """Apply matched records; one store write per record.

    Args:
        matched: (record, snapshot entry) pairs in file order
        store: Roster store receiving the writes
        locks: Per-roll-number lock arena (process-wide by default)
        max_workers: Thread pool size; 1 applies everything on the calling thread
        on_write: Called after every attempted write (progress display)
        stats: Receives per-write latencies

    Returns:
        ApplyOutcome whose applied_count counts records, not distinct students
    """
    stats = stats if stats is not None else WriteStatsAccumulator()
    groups: dict[str, list[tuple[NormalizedRecord, RosterEntry]]] = {}
    for record, entry in matched:
        groups.setdefault(record.roll_number, []).append((record, entry))

    if not groups:
        return ApplyOutcome(applied_count=0)

    if max_workers <= 1 or len(groups) == 1:
        results = [
            _apply_group(roll, items, store, locks, on_write, stats) for roll, items in groups.items()
        ]
    else:
        with ThreadPoolExecutor(max_workers=min(max_workers, len(groups))) as pool:
            futures = [
                pool.submit(_apply_group, roll, items, store, locks, on_write, stats)
                for roll, items in groups.items()
            ]
            # Collected in submission order so the outcome does not depend on scheduling
            results = [f.result() for f in futures]

    applied = sum(r.applied for r in results)
    failures = sorted((f for r in results for f in r.failures), key=lambda f: f.row_number)
    logger.debug("apply records=%d applied=%d failed=%d", len(matched), applied, len(failures))
    return ApplyOutcome(
        applied_count=applied,
        failed_writes=tuple(failures),
        write_seconds=tuple(stats.write_times),
    )
