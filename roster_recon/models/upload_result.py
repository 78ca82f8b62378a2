from __future__ import annotations

import statistics
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .roster import KitRef
from .upload import RejectedRow, UploadKind

"""Result models of one upload run.

UploadResult is what the dashboard renders (FeeUploadResult / KitUploadResult);
ApplyOutcome is the applier's hand-off to the reporter; RunMetrics feeds the SUMMARY line.
"""

__all__ = [
    "FailedWrite",
    "ApplyOutcome",
    "UploadResult",
    "RunMetrics",
    "WriteStatsAccumulator",
    "DEFAULT_REJECTED_COUNT_FIELD",
    "DEFAULT_FAILED_WRITE_COUNT_FIELD",
]

DEFAULT_REJECTED_COUNT_FIELD = "rejectedCount"
DEFAULT_FAILED_WRITE_COUNT_FIELD = "failedWriteCount"


@dataclass(frozen=True)
class FailedWrite:
    """A matched record whose roster write failed. Not a not-found row."""
    row_number: int
    roll_number: str
    message: str


@dataclass(frozen=True)
class ApplyOutcome:
    applied_count: int  # matched records written, duplicates counted individually
    failed_writes: tuple[FailedWrite, ...] = ()
    write_seconds: tuple[float, ...] = ()


@dataclass(frozen=True)
class UploadResult:
    """Reconciliation report of one upload run.

    Invariant: updated_count + len(not_found_roll_numbers) + rejected_count
    + failed_write_count == total_rows.
    """
    kind: UploadKind
    message: str
    updated_count: int
    not_found_roll_numbers: tuple[str, ...]  # file order, duplicates kept
    rejected_rows: tuple[RejectedRow, ...] = ()
    failed_writes: tuple[FailedWrite, ...] = ()
    total_rows: int = 0
    existed_kits: tuple[KitRef, ...] | None = None  # kit uploads only

    @property
    def rejected_count(self) -> int:
        return len(self.rejected_rows)

    @property
    def failed_write_count(self) -> int:
        return len(self.failed_writes)

    @property
    def fully_applied(self) -> bool:
        return self.updated_count == self.total_rows

    def to_response(
        self,
        rejected_count_field: str | None = DEFAULT_REJECTED_COUNT_FIELD,
        failed_write_count_field: str | None = DEFAULT_FAILED_WRITE_COUNT_FIELD,
    ) -> dict[str, Any]:
        """Render the UI-facing response.

        The first three keys are the stable renderer contract. The two count fields are
        additive extensions whose names come from configuration; passing None omits them.
        """
        body: dict[str, Any] = {
            "message": self.message,
            "updatedCount": self.updated_count,
            "NOT_FOUND_ROLL_NUMBERS": list(self.not_found_roll_numbers),
        }
        if self.existed_kits is not None:
            body["EXISTED_KITS"] = [k.to_dict() for k in self.existed_kits]
        if rejected_count_field:
            body[rejected_count_field] = self.rejected_count
        if failed_write_count_field:
            body[failed_write_count_field] = self.failed_write_count
        return body


@dataclass(frozen=True)
class RunMetrics:
    """Timing of one run, for the SUMMARY line only."""
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    total_writes: int = 0
    avg_write_seconds: float = 0.0
    p95_write_seconds: float = 0.0


@dataclass
class WriteStatsAccumulator:
    """Collects per-write latencies from applier worker threads."""
    write_times: list[float] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def add_write_time(self, elapsed_seconds: float) -> None:
        with self._lock:
            self.write_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        """Return (total_writes, avg_write_seconds, p95_write_seconds)."""
        with self._lock:
            times = list(self.write_times)
        if not times:
            return (0, 0.0, 0.0)
        total = len(times)
        avg = statistics.mean(times)
        if total == 1:
            p95 = times[0]
        else:
            p95 = statistics.quantiles(times, n=20, method="inclusive")[18]
        return (total, avg, p95)
