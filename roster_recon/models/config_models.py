from __future__ import annotations

from dataclasses import dataclass, field

from .upload_result import DEFAULT_FAILED_WRITE_COUNT_FIELD, DEFAULT_REJECTED_COUNT_FIELD

"""Config dataclasses for the reconciliation engine.

Built by roster_recon/config/loader.py from config/recon.yml. Every section has defaults
so library callers can run without a config file.
"""

DEFAULT_ROLL_NUMBER_HEADERS: tuple[str, ...] = (
    "roll number",
    "roll no",
    "rollno",
    "roll",
    "rollnumber",
    "roll num",
    "student roll no",
)


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection fallback.

    Environment variables (DATABASE_URL / PGDSN / PGHOST ...) take precedence.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class RosterTableConfig:
    """Where the roster lives in PostgreSQL."""
    table: str = "students"
    roll_column: str = "roll_no"
    name_column: str = "name"
    fee_column: str = "fee_record"  # JSONB
    kit_column: str = "kit_record"  # JSONB
    kits_table: str = "kits"


@dataclass(frozen=True)
class UploadConfig:
    roll_number_headers: tuple[str, ...] = DEFAULT_ROLL_NUMBER_HEADERS  # canonical forms
    date_dayfirst: bool = False
    max_workers: int = 4


@dataclass(frozen=True)
class ResponseConfig:
    """Names of the additive count fields in the UI response (None = omit)."""
    rejected_count_field: str | None = DEFAULT_REJECTED_COUNT_FIELD
    failed_write_count_field: str | None = DEFAULT_FAILED_WRITE_COUNT_FIELD


@dataclass(frozen=True)
class ReconConfig:
    """Root configuration object."""
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    roster: RosterTableConfig = field(default_factory=RosterTableConfig)
    upload: UploadConfig = field(default_factory=UploadConfig)
    response: ResponseConfig = field(default_factory=ResponseConfig)
    error_log_dir: str = "./logs"
