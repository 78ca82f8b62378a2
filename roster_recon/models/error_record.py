from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the JSON Lines error log.

Every rejected row, not-found row, failed write and whole-upload format error of a run is
written as one ErrorRecord. row=-1 marks upload-level errors where no single row applies.
"""

__all__ = [
    "ErrorRecord",
    "UPLOAD_LEVEL_ROW",
]

UPLOAD_LEVEL_ROW = -1


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: Upload source name (file name, or "<rows>" for in-memory uploads)
        kind: Upload kind, "fee" or "kit"
        row: Sheet row number. -1 for upload-level errors
        roll_number: Roll number involved, None when unknown or empty
        error_type: Error classification in UPPER_SNAKE_CASE format
        message: Human readable description
    """
    timestamp: str
    file: str
    kind: str
    row: int
    roll_number: str | None
    error_type: str
    message: str

    @staticmethod
    def create(
        file: str,
        kind: str,
        row: int,
        roll_number: str | None,
        error_type: str,
        message: str,
    ) -> ErrorRecord:
        """Create a new ErrorRecord stamped with the current UTC time."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            kind=kind,
            row=row,
            roll_number=roll_number,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        # dataclass -> dict keeps the key set fixed (no extra keys)
        return json.dumps(asdict(self), ensure_ascii=False)
