from __future__ import annotations

import threading
from datetime import UTC, datetime
from pathlib import Path

from ..models.error_record import ErrorRecord

"""Error log buffering.

- JSON Lines, fixed ErrorRecord schema (no extra keys)
- One file per buffer: `<logs_dir>/errors-YYYYMMDD-HHMMSS.log` (UTC), created on first flush
- Records are buffered for the whole run and written once at the end
"""

__all__ = [
    "ErrorRecord",
    "ErrorLogBuffer",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class ErrorLogBuffer:
    """In-memory buffer for error records. flush() appends them as JSON Lines."""

    def __init__(self, logs_dir: Path | str | None = None) -> None:
        self._logs_dir = Path(logs_dir) if logs_dir is not None else LOGS_DIR
        self._records: list[ErrorRecord] = []
        self._file_path: Path | None = None
        self._lock = threading.Lock()

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"errors-{stamp}.log"
        return self._file_path

    @property
    def records(self) -> list[ErrorRecord]:
        with self._lock:
            return list(self._records)

    def append(self, record: ErrorRecord) -> None:
        with self._lock:
            self._records.append(record)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def flush(self) -> Path | None:
        """Write buffered records; returns the file written, None when nothing was buffered."""
        with self._lock:
            if not self._records:
                return None
            pending = list(self._records)
            self._records.clear()
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in pending:
                f.write(r.to_json_line() + "\n")
        return fp
