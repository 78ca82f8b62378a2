from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from roster_recon.models.upload import UploadKind
from roster_recon.models.upload_result import RunMetrics, UploadResult, WriteStatsAccumulator
from roster_recon.services.summary import _format_seconds, render_summary_line


def _metrics(elapsed: float) -> RunMetrics:
    start = datetime.now(UTC)
    return RunMetrics(start_time=start, end_time=start + timedelta(seconds=elapsed), elapsed_seconds=elapsed)


def test_summary_line_format():
    result = UploadResult(
        kind=UploadKind.KIT,
        message="Kits uploaded successfully: 3 records updated",
        updated_count=3,
        not_found_roll_numbers=("R9",),
        total_rows=4,
    )
    line = render_summary_line(result, _metrics(1.5))
    assert line == "SUMMARY kind=kit rows=4 updated=3 not_found=1 rejected=0 failed_writes=0 elapsed_sec=1.5"


def test_summary_line_without_metrics():
    result = UploadResult(kind=UploadKind.FEE, message="m", updated_count=0, not_found_roll_numbers=())
    assert render_summary_line(result).endswith("elapsed_sec=0")


@pytest.mark.parametrize(
    "value, expected",
    [(0, "0"), (2.0, "2"), (0.1234, "0.123"), (0.000512, "0.000512"), (12.5, "12.5")],
)
def test_format_seconds(value, expected):
    assert _format_seconds(value) == expected


def test_write_stats_accumulator():
    acc = WriteStatsAccumulator()
    assert acc.get_stats() == (0, 0.0, 0.0)
    acc.add_write_time(0.5)
    assert acc.get_stats() == (1, 0.5, 0.5)
    for t in (0.1, 0.2, 0.3):
        acc.add_write_time(t)
    total, avg, p95 = acc.get_stats()
    assert total == 4
    assert avg == pytest.approx(0.275)
    assert 0.3 <= p95 <= 0.5
