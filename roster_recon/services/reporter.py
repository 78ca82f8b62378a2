from __future__ import annotations

from collections.abc import Sequence

from ..models.roster import KitRef
from ..models.upload import RejectedRow, UploadKind
from ..models.upload_result import FailedWrite, UploadResult

"""Reconciliation reporter: aggregate one run into an UploadResult.

Pure and infallible. The not-found list is passed through untouched (order and
duplicates); deciding whether to show a warning is left to the UI.
"""

__all__ = [
    "render_message",
    "report",
]


def render_message(kind: UploadKind, applied_count: int) -> str:
    noun = "record" if applied_count == 1 else "records"
    return f"{kind.label} uploaded successfully: {applied_count} {noun} updated"


def report(
    kind: UploadKind,
    applied_count: int,
    unmatched: Sequence[str],
    rejected: Sequence[RejectedRow] = (),
    failed_writes: Sequence[FailedWrite] = (),
    existed_kits: Sequence[KitRef] | None = None,
) -> UploadResult:
    """Build the UploadResult of a run.

    total_rows is derived from the four outcomes, each input row having exactly one.
    """
    return UploadResult(
        kind=kind,
        message=render_message(kind, applied_count),
        updated_count=applied_count,
        not_found_roll_numbers=tuple(unmatched),
        rejected_rows=tuple(rejected),
        failed_writes=tuple(failed_writes),
        total_rows=applied_count + len(unmatched) + len(rejected) + len(failed_writes),
        existed_kits=tuple(existed_kits) if existed_kits is not None else None,
    )
