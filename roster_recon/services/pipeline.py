from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..db.roster_store import RosterStore
from ..errors import FormatError, PersistenceError
from ..excel.reader import read_upload_file
from ..logging.error_log import ErrorLogBuffer
from ..logging.init import upload_logger
from ..models.config_models import ReconConfig
from ..models.error_record import UPLOAD_LEVEL_ROW, ErrorRecord
from ..models.roster import KitRef
from ..models.upload import UploadKind, UploadRow
from ..models.upload_result import RunMetrics, UploadResult, WriteStatsAccumulator
from .applier import apply
from .locks import DEFAULT_LOCKS, KeyedLocks
from .matcher import match
from .normalizer import build_upload_rows, kit_names, normalize
from .progress import ProgressTracker
from .reporter import report

"""Upload pipeline: rows -> normalize -> match -> apply -> report.

Entry points per domain (process_fee_upload / process_kit_upload) plus a file-based one.
Each call is one stateless run over a roster snapshot taken after normalization.
FormatError is the only exception that aborts a run, and it is raised before any store
write; every per-row problem ends up in the returned UploadResult and in the error log.
"""

__all__ = [
    "process_fee_upload",
    "process_kit_upload",
    "process_upload_file",
    "run_upload",
    "run_upload_file",
]

logger = logging.getLogger(__name__)

InputRows = Sequence[UploadRow] | Sequence[Mapping[str, Any]]


def _as_upload_rows(
    rows: InputRows,
    config: ReconConfig,
    row_numbers: Sequence[int] | None = None,
) -> list[UploadRow]:
    if all(isinstance(r, UploadRow) for r in rows):
        return list(rows)  # type: ignore[arg-type]
    if any(isinstance(r, UploadRow) for r in rows):
        raise TypeError("rows must be all UploadRow or all mappings, not a mix")
    return build_upload_rows(rows, config.upload.roll_number_headers, row_numbers)  # type: ignore[arg-type]


def _log_row_errors(
    error_log: ErrorLogBuffer,
    source: str,
    kind: UploadKind,
    result: UploadResult,
    not_found_rows: Sequence[tuple[int, str]],
) -> None:
    for rej in result.rejected_rows:
        error_log.append(
            ErrorRecord.create(source, kind.value, rej.row_number, rej.roll_number, rej.error_type, rej.message)
        )
    for row_number, roll in not_found_rows:
        error_log.append(
            ErrorRecord.create(source, kind.value, row_number, roll, "NOT_FOUND", "roll number not on roster")
        )
    for fw in result.failed_writes:
        error_log.append(
            ErrorRecord.create(source, kind.value, fw.row_number, fw.roll_number, "PERSISTENCE_FAILURE", fw.message)
        )


def _flush(error_log: ErrorLogBuffer, log: logging.LoggerAdapter) -> None:
    try:
        path = error_log.flush()
    except OSError as e:
        # The run's outcome is already decided; losing the log must not change it
        log.warning("could not write error log: %s", e)
        return
    if path is not None:
        log.info("error log written: %s", path)


def run_upload(
    rows: InputRows,
    kind: UploadKind,
    store: RosterStore,
    *,
    config: ReconConfig | None = None,
    source: str = "<rows>",
    row_numbers: Sequence[int] | None = None,
    error_log: ErrorLogBuffer | None = None,
    locks: KeyedLocks = DEFAULT_LOCKS,
) -> tuple[UploadResult, RunMetrics]:
    """Run one upload through the whole pipeline.

    Args:
        rows: UploadRows, or header-keyed mappings (roll-number column found by alias)
        kind: Fee or kit upload
        store: Roster store (snapshot source and write target)
        config: Engine configuration (defaults when omitted)
        source: Name recorded in the error log (usually the file name)
        row_numbers: Sheet row numbers for mapping rows (default: 1-based positions)
        error_log: Error log buffer; flushed at the end of the run
        locks: Per-roll-number lock arena shared by concurrent runs

    Returns:
        (UploadResult, RunMetrics)

    Raises:
        FormatError: Header problems; nothing was written
        PersistenceError: The roster snapshot could not be read; nothing was written
    """
    config = config or ReconConfig()
    error_log = error_log if error_log is not None else ErrorLogBuffer(config.error_log_dir)
    start_time = datetime.now(UTC)
    log = upload_logger(logger, kind.value, source)

    try:
        upload_rows = _as_upload_rows(rows, config, row_numbers)
        records, rejected = normalize(upload_rows, kind, dayfirst=config.upload.date_dayfirst)
        kits = kit_names(upload_rows) if kind is UploadKind.KIT else []
    except FormatError as e:
        log.error("upload rejected: %s", e)
        error_log.append(
            ErrorRecord.create(source, kind.value, UPLOAD_LEVEL_ROW, None, "FORMAT_ERROR", str(e))
        )
        _flush(error_log, log)
        raise

    log.info(
        "rows=%d valid=%d rejected=%d", len(upload_rows), len(records), len(rejected),
    )

    roster = store.snapshot(r.roll_number for r in records)
    matched, unmatched = match(records, roster)

    existed_kits: list[KitRef] | None = None
    if kind is UploadKind.KIT:
        existed_kits = []
        if kits:
            try:
                existed_kits = store.register_kits(kits)
            except PersistenceError as e:
                log.warning("kit catalog not updated: %s", e)

    stats = WriteStatsAccumulator()
    with ProgressTracker(len(matched), description=f"Applying {kind.value} updates") as progress:
        outcome = apply(
            matched,
            store,
            locks=locks,
            max_workers=config.upload.max_workers,
            on_write=progress.advance,
            stats=stats,
        )

    result = report(
        kind,
        outcome.applied_count,
        unmatched,
        rejected,
        outcome.failed_writes,
        existed_kits,
    )

    not_found_rows = [(r.row_number, r.roll_number) for r in records if r.roll_number not in roster]
    if result.rejected_rows or not_found_rows or result.failed_writes:
        log.warning(
            "not_found=%d rejected=%d failed_writes=%d",
            len(not_found_rows), result.rejected_count, result.failed_write_count,
        )
    _log_row_errors(error_log, source, kind, result, not_found_rows)
    _flush(error_log, log)

    end_time = datetime.now(UTC)
    total_writes, avg_write, p95_write = stats.get_stats()
    metrics = RunMetrics(
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=(end_time - start_time).total_seconds(),
        total_writes=total_writes,
        avg_write_seconds=avg_write,
        p95_write_seconds=p95_write,
    )
    log.debug(
        "writes=%d avg_write_sec=%.4f p95_write_sec=%.4f", total_writes, avg_write, p95_write,
    )
    return result, metrics


def run_upload_file(
    path: Path,
    kind: UploadKind,
    store: RosterStore,
    *,
    config: ReconConfig | None = None,
    sheet: str | int = 0,
    error_log: ErrorLogBuffer | None = None,
    locks: KeyedLocks = DEFAULT_LOCKS,
) -> tuple[UploadResult, RunMetrics]:
    """Read a workbook and run it. Unreadable files raise SpreadsheetFormatError."""
    config = config or ReconConfig()
    error_log = error_log if error_log is not None else ErrorLogBuffer(config.error_log_dir)
    log = upload_logger(logger, kind.value, path.name)
    try:
        sheet_data = read_upload_file(path, sheet=sheet)
    except FormatError as e:
        log.error("upload rejected: %s", e)
        error_log.append(
            ErrorRecord.create(path.name, kind.value, UPLOAD_LEVEL_ROW, None, "FORMAT_ERROR", str(e))
        )
        _flush(error_log, log)
        raise
    return run_upload(
        sheet_data.rows,
        kind,
        store,
        config=config,
        source=path.name,
        row_numbers=sheet_data.row_numbers,
        error_log=error_log,
        locks=locks,
    )


def process_fee_upload(
    rows: InputRows,
    store: RosterStore,
    *,
    config: ReconConfig | None = None,
    error_log: ErrorLogBuffer | None = None,
) -> UploadResult:
    """Apply a fee-installment upload and return its reconciliation report."""
    result, _ = run_upload(rows, UploadKind.FEE, store, config=config, error_log=error_log)
    return result


def process_kit_upload(
    rows: InputRows,
    store: RosterStore,
    *,
    config: ReconConfig | None = None,
    error_log: ErrorLogBuffer | None = None,
) -> UploadResult:
    """Apply a kit-distribution upload and return its reconciliation report."""
    result, _ = run_upload(rows, UploadKind.KIT, store, config=config, error_log=error_log)
    return result


def process_upload_file(
    path: Path,
    kind: UploadKind,
    store: RosterStore,
    *,
    config: ReconConfig | None = None,
    sheet: str | int = 0,
) -> UploadResult:
    result, _ = run_upload_file(path, kind, store, config=config, sheet=sheet)
    return result
