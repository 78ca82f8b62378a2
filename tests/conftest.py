# Shared pytest fixtures
from __future__ import annotations

import tempfile
from collections.abc import Callable
from datetime import date
from decimal import Decimal
from pathlib import Path

import pandas as pd
import pytest

from roster_recon.db.roster_store import InMemoryRosterStore
from roster_recon.models.config_models import ReconConfig, UploadConfig
from roster_recon.models.roster import FeeInstallment, KitItemState, RosterEntry


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def recon_config(tmp_path: Path) -> ReconConfig:
    return ReconConfig(upload=UploadConfig(max_workers=4), error_log_dir=str(tmp_path / "logs"))


@pytest.fixture()
def roster_entries() -> list[RosterEntry]:
    return [
        RosterEntry(roll_number="R001", name="Asha"),
        RosterEntry(
            roll_number="R002",
            name="Bilal",
            fee_record=(
                FeeInstallment(number=1, amount=Decimal("1000"), due_date=date(2024, 4, 1), paid=True),
                FeeInstallment(number=2, amount=Decimal("1000"), due_date=date(2024, 7, 1)),
            ),
            kit_record={"bag": KitItemState(assigned=True, quantity=1)},
        ),
        RosterEntry(roll_number="007", name="Chitra"),
    ]


@pytest.fixture()
def roster_store(roster_entries: list[RosterEntry]) -> InMemoryRosterStore:
    return InMemoryRosterStore(roster_entries)


@pytest.fixture()
def sample_config_yaml() -> str:
    return """database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: institute
roster:
  table: students
  roll_column: roll_no
upload:
  roll_number_headers: [Roll No, Roll_Number]
  max_workers: 2
response:
  rejected_count_field: rejectedCount
  failed_write_count_field: failedWriteCount
error_log_dir: ./logs
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "recon.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def make_xlsx(tmp_path: Path) -> Callable[[str, list[list[object]]], Path]:
    """Write rows (first row = header) to an .xlsx file and return its path."""
    def _make(name: str, rows: list[list[object]]) -> Path:
        p = tmp_path / name
        with pd.ExcelWriter(p, engine="openpyxl") as writer:
            pd.DataFrame(rows).to_excel(writer, sheet_name="Sheet1", header=False, index=False)
        return p
    return _make
