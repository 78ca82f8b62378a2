from __future__ import annotations

from ..models.upload_result import RunMetrics, UploadResult

"""SUMMARY line rendering.

Format:
SUMMARY kind={fee|kit} rows={total} updated={n} not_found={n} rejected={n}
failed_writes={n} elapsed_sec={elapsed}
"""


def _format_seconds(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # avoid scientific notation for very small numbers
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_summary_line(result: UploadResult, metrics: RunMetrics | None = None) -> str:
    """Render the SUMMARY line of one run.

    Examples:
        >>> from roster_recon.models.upload import UploadKind
        >>> r = UploadResult(kind=UploadKind.FEE, message="ok", updated_count=1,
        ...                  not_found_roll_numbers=("R003",), total_rows=2)
        >>> render_summary_line(r)
        'SUMMARY kind=fee rows=2 updated=1 not_found=1 rejected=0 failed_writes=0 elapsed_sec=0'
    """
    elapsed = metrics.elapsed_seconds if metrics is not None else 0.0
    return (
        f"SUMMARY kind={result.kind.value} "
        f"rows={result.total_rows} "
        f"updated={result.updated_count} "
        f"not_found={len(result.not_found_roll_numbers)} "
        f"rejected={result.rejected_count} "
        f"failed_writes={result.failed_write_count} "
        f"elapsed_sec={_format_seconds(elapsed)}"
    )
