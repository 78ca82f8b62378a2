from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from .roster import FeeInstallment, KitItemState, canonical_kit_name

"""Transient models of one upload run.

UploadRow (raw) -> NormalizedRecord (typed payload) or RejectedRow (format failure).
None of these outlive the run that created them.
"""

__all__ = [
    "UploadKind",
    "UploadRow",
    "FeePayload",
    "KitPayload",
    "Payload",
    "NormalizedRecord",
    "RejectedRow",
    "canonical_header",
]


def canonical_header(header: Any) -> str:
    """Canonical column name: lower-case, ``_ - .`` as spaces, whitespace collapsed.

    A kit column's canonical header is also its kit name.
    """
    return canonical_kit_name(header)


class UploadKind(Enum):
    """Domain of an upload run; the value doubles as the label in logs."""
    FEE = "fee"
    KIT = "kit"

    @property
    def label(self) -> str:
        return "Fee installments" if self is UploadKind.FEE else "Kits"


@dataclass(frozen=True)
class UploadRow:
    """One raw spreadsheet line.

    row_number is the sheet row (header = row 1, so the first data row is 2) when the
    row came from a file, and the 1-based position otherwise.
    """
    row_number: int
    roll_number: Any  # raw, unnormalized cell value
    cells: dict[str, Any]  # column name -> cell value, roll-number column excluded


@dataclass(frozen=True)
class FeePayload:
    installments: tuple[FeeInstallment, ...]


@dataclass(frozen=True)
class KitPayload:
    items: dict[str, KitItemState]  # canonical kit name -> state


Payload = Union[FeePayload, KitPayload]


@dataclass(frozen=True)
class NormalizedRecord:
    row_number: int
    roll_number: str  # normalized
    payload: Payload


@dataclass(frozen=True)
class RejectedRow:
    """A row that failed validation; counted apart from not-found rows."""
    row_number: int
    roll_number: str | None  # raw value as text, None when the cell was empty
    error_type: str  # UPPER_SNAKE
    message: str
