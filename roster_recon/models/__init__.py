"""Domain models for the bulk roster reconciliation engine.

Roster (system of record), upload-run transients, results and configuration.
"""

from .config_models import DatabaseConfig, ReconConfig, ResponseConfig, RosterTableConfig, UploadConfig
from .error_record import ErrorRecord
from .roster import FeeInstallment, KitItemState, KitRef, RosterEntry, normalize_roll_number
from .upload import FeePayload, KitPayload, NormalizedRecord, RejectedRow, UploadKind, UploadRow
from .upload_result import ApplyOutcome, FailedWrite, RunMetrics, UploadResult

__all__ = [
    # Configuration models
    "DatabaseConfig",
    "ReconConfig",
    "ResponseConfig",
    "RosterTableConfig",
    "UploadConfig",
    # Roster models
    "FeeInstallment",
    "KitItemState",
    "KitRef",
    "RosterEntry",
    "normalize_roll_number",
    # Upload run models
    "FeePayload",
    "KitPayload",
    "NormalizedRecord",
    "RejectedRow",
    "UploadKind",
    "UploadRow",
    "ApplyOutcome",
    "FailedWrite",
    "RunMetrics",
    "UploadResult",
    "ErrorRecord",
]
