from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, NamedTuple

import pandas as pd

from ..errors import HeaderMismatchError, MissingRollColumnError
from ..models.config_models import DEFAULT_ROLL_NUMBER_HEADERS
from ..models.roster import FeeInstallment, KitItemState, canonical_kit_name, normalize_roll_number
from ..models.upload import (
    FeePayload,
    KitPayload,
    NormalizedRecord,
    Payload,
    RejectedRow,
    UploadKind,
    UploadRow,
    canonical_header,
)

"""Row normalizer: raw upload rows -> typed NormalizedRecords.

Pure and deterministic. Header problems (rows with differing column sets, duplicate or
ambiguous columns, no usable payload columns) raise a FormatError for the whole upload
before any row is looked at. Row problems reject that row only. Duplicate roll numbers
are kept as separate records; the applier resolves them in file order.
"""

__all__ = [
    "NormalizeResult",
    "build_upload_rows",
    "check_headers",
    "kit_names",
    "normalize",
]


class NormalizeResult(NamedTuple):
    records: tuple[NormalizedRecord, ...]
    rejected: tuple[RejectedRow, ...]


class _RowError(Exception):
    def __init__(self, error_type: str, message: str) -> None:
        super().__init__(message)
        self.error_type = error_type


# ---------------------------------------------------------------------------
# UploadRow construction
# ---------------------------------------------------------------------------

def build_upload_rows(
    records: Sequence[Mapping[str, Any]],
    roll_headers: Iterable[str] = DEFAULT_ROLL_NUMBER_HEADERS,
    row_numbers: Sequence[int] | None = None,
) -> list[UploadRow]:
    """Split header-keyed mappings into UploadRows (roll number + remaining cells).

    The roll-number column is part of the header set: every row must carry it under the
    same canonical name as the first row.

    Raises:
        MissingRollColumnError: no row carries a roll-number column
        HeaderMismatchError: a row carries more than one roll-number column, lacks the
            roll-number column other rows carry, or names it differently
    """
    aliases = {canonical_header(h) for h in roll_headers}
    rows: list[UploadRow] = []
    first_roll_header: str | None = None
    for pos, record in enumerate(records):
        row_number = row_numbers[pos] if row_numbers is not None else pos + 1
        roll_keys = [k for k in record if canonical_header(k) in aliases]
        if len(roll_keys) > 1:
            raise HeaderMismatchError(
                f"row {row_number}: more than one roll number column {sorted(map(str, roll_keys))}"
            )
        roll_header = canonical_header(roll_keys[0]) if roll_keys else None
        if pos == 0:
            first_roll_header = roll_header
        elif roll_header != first_roll_header:
            raise HeaderMismatchError(
                f"row {row_number} roll number column {roll_header!r} differs from row "
                f"{rows[0].row_number} ({first_roll_header!r}); every row must contain the same columns"
            )
        roll_value = record[roll_keys[0]] if roll_keys else None
        cells = {str(k): v for k, v in record.items() if k not in roll_keys}
        rows.append(UploadRow(row_number=row_number, roll_number=roll_value, cells=cells))
    if rows and first_roll_header is None:
        raise MissingRollColumnError(
            f"no roll number column found (expected one of: {', '.join(sorted(aliases))})"
        )
    return rows


# ---------------------------------------------------------------------------
# Header checks
# ---------------------------------------------------------------------------

def _header_set(row: UploadRow) -> frozenset[str]:
    names = [canonical_header(k) for k in row.cells]
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        raise HeaderMismatchError(f"row {row.row_number}: duplicate columns {dupes}")
    return frozenset(names)


def check_headers(rows: Sequence[UploadRow]) -> frozenset[str]:
    """Require every row to carry the same canonical column set; return that set."""
    if not rows:
        return frozenset()
    expected = _header_set(rows[0])
    for row in rows[1:]:
        current = _header_set(row)
        if current != expected:
            missing = sorted(expected - current)
            extra = sorted(current - expected)
            raise HeaderMismatchError(
                f"row {row.row_number} columns differ from row {rows[0].row_number}: "
                f"missing={missing} extra={extra}; every row must contain the same columns"
            )
    return expected


# ---------------------------------------------------------------------------
# Cell parsers
# ---------------------------------------------------------------------------

_CURRENCY_RE = re.compile(r"^(?:₹|rs\.?|inr)\s*", re.IGNORECASE)

_TRUE_WORDS = {"PAID", "YES", "Y", "TRUE", "1", "DONE"}
_FALSE_WORDS = {"UNPAID", "PENDING", "DUE", "NO", "N", "FALSE", "0"}

_KIT_YES = {"yes", "y", "true", "assigned", "given", "received", "issued", "done", "✓", "✔"}
_KIT_NO = {"no", "n", "false", "not assigned", "pending", "not given", "x", "✗", "-"}


def _clean(value: Any) -> Any:
    """Blank strings, NaN and NaT count as empty cells."""
    if isinstance(value, str):
        return value.strip() or None
    if value is pd.NaT or (isinstance(value, float) and value != value):
        return None
    return value


def _parse_amount(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise _RowError("INVALID_AMOUNT", f"fee amount must be numeric, got {value!r}")
    try:
        if isinstance(value, Decimal):
            amount = value
        elif isinstance(value, (int, float)):
            amount = Decimal(str(value))
        else:
            text = _CURRENCY_RE.sub("", str(value).strip()).replace(",", "")
            amount = Decimal(text)
    except InvalidOperation:
        raise _RowError("INVALID_AMOUNT", f"fee amount must be numeric, got {value!r}") from None
    if not amount.is_finite() or amount < 0:
        raise _RowError("INVALID_AMOUNT", f"fee amount must be a non-negative number, got {value!r}")
    return amount


def _parse_date(value: Any, dayfirst: bool) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):  # includes pd.Timestamp
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            ts = pd.to_datetime(value, dayfirst=dayfirst)
        except (ValueError, OverflowError):
            ts = None
        if ts is not None and not pd.isna(ts):
            return ts.date()
    raise _RowError("INVALID_DATE", f"unparseable date {value!r}")


def _parse_status(value: Any) -> bool | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    word = str(int(value) if isinstance(value, float) and value.is_integer() else value).strip().upper()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise _RowError("INVALID_STATUS", f"unknown payment status {value!r}")


def _parse_kit_cell(kit: str, value: Any) -> KitItemState:
    if value is None:
        raise _RowError("EMPTY_KIT_FIELD", f"kit '{kit}' is empty")
    if isinstance(value, bool):
        return KitItemState(assigned=value, quantity=1 if value else 0)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, int):
        if value < 0:
            raise _RowError("INVALID_KIT_VALUE", f"kit '{kit}' quantity is negative: {value}")
        return KitItemState(assigned=value > 0, quantity=value)
    word = str(value).strip().lower()
    if word in _KIT_YES:
        return KitItemState(assigned=True, quantity=1)
    if word in _KIT_NO:
        return KitItemState(assigned=False, quantity=0)
    if word.isdigit():
        qty = int(word)
        return KitItemState(assigned=qty > 0, quantity=qty)
    raise _RowError("INVALID_KIT_VALUE", f"kit '{kit}' has unrecognised value {value!r}")


# ---------------------------------------------------------------------------
# Fee column plan
# ---------------------------------------------------------------------------

_INSTALLMENT_RE = re.compile(r"^(?:installment|inst)\s*(\d+)(?:\s+(.*))?$")

_FEE_FIELDS: dict[str, str] = {
    "amount": "amount",
    "fee": "amount",
    "fee amount": "amount",
    "installment amount": "amount",
    "paid": "paid_amount",
    "paid amount": "paid_amount",
    "amount paid": "paid_amount",
    "due date": "due_date",
    "due": "due_date",
    "status": "status",
    "paid status": "status",
    "payment status": "status",
    "paid date": "paid_date",
    "payment date": "paid_date",
    "date of receipt": "paid_date",
}


@dataclass(frozen=True)
class _FeeColumn:
    installment: int
    field: str


def _fee_plan(headers: frozenset[str]) -> dict[str, _FeeColumn]:
    """Map canonical header -> (installment, field); unrelated columns are left out."""
    plan: dict[str, _FeeColumn] = {}
    taken: dict[tuple[int, str], str] = {}
    for header in sorted(headers):
        number, rest = 1, header
        m = _INSTALLMENT_RE.match(header)
        if m:
            number, rest = int(m.group(1)), (m.group(2) or "amount")
        fee_field = _FEE_FIELDS.get(rest)
        if fee_field is None or number < 1:
            continue
        # amount and paid amount both describe the installment's amount
        slot = (number, "amount" if fee_field == "paid_amount" else fee_field)
        if slot in taken:
            raise HeaderMismatchError(
                f"columns '{taken[slot]}' and '{header}' both describe installment {number} {slot[1]}"
            )
        taken[slot] = header
        plan[header] = _FeeColumn(installment=number, field=fee_field)
    if not any(c.field in ("amount", "paid_amount") for c in plan.values()):
        raise HeaderMismatchError("no fee amount column found in upload")
    return plan


def _fee_payload(cells: dict[str, Any], plan: dict[str, _FeeColumn], dayfirst: bool) -> FeePayload:
    groups: dict[int, dict[str, Any]] = {}
    for header, value in cells.items():
        col = plan.get(header)
        if col is None:
            continue
        groups.setdefault(col.installment, {})[col.field] = value

    installments: list[FeeInstallment] = []
    for number in sorted(groups):
        group = groups[number]
        if all(v is None for v in group.values()):
            continue  # installment not mentioned on this row
        implied_paid = group.get("paid_amount") is not None
        raw_amount = group.get("paid_amount") if implied_paid else group.get("amount")
        if raw_amount is None:
            raise _RowError("INVALID_AMOUNT", f"installment {number} has no amount")
        amount = _parse_amount(raw_amount)
        due_date = _parse_date(group.get("due_date"), dayfirst)
        paid_date = _parse_date(group.get("paid_date"), dayfirst)
        status = _parse_status(group.get("status"))
        paid = status if status is not None else (implied_paid or paid_date is not None)
        installments.append(
            FeeInstallment(
                number=number,
                amount=amount,
                due_date=due_date,
                paid=paid,
                paid_date=paid_date,
            )
        )
    if not installments:
        raise _RowError("NO_FEE_DATA", "row carries no fee installment amount")
    return FeePayload(installments=tuple(installments))


# ---------------------------------------------------------------------------
# Kit column plan
# ---------------------------------------------------------------------------

# Informational columns commonly left in kit sheets; never treated as kit items
KIT_IGNORED_HEADERS = frozenset(
    {"name", "student name", "s no", "sr no", "sl no", "serial no", "batch", "class"}
)


def _kit_plan(headers: frozenset[str]) -> frozenset[str]:
    kits = frozenset(h for h in headers if h not in KIT_IGNORED_HEADERS)
    if not kits:
        raise HeaderMismatchError("no kit columns found in upload")
    return kits


def _kit_payload(cells: dict[str, Any], kit_headers: frozenset[str]) -> KitPayload:
    items: dict[str, KitItemState] = {}
    for header, value in cells.items():
        if canonical_header(header) not in kit_headers:
            continue
        name = canonical_kit_name(header)
        items[name] = _parse_kit_cell(name, value)
    return KitPayload(items=items)


def kit_names(rows: Sequence[UploadRow]) -> list[str]:
    """Canonical kit names of an upload, in column order of its first row."""
    if not rows:
        return []
    kit_headers = _kit_plan(check_headers(rows))
    return [canonical_kit_name(h) for h in rows[0].cells if canonical_header(h) in kit_headers]


# ---------------------------------------------------------------------------
# normalize
# ---------------------------------------------------------------------------

def normalize(
    rows: Sequence[UploadRow],
    kind: UploadKind,
    *,
    dayfirst: bool = False,
) -> NormalizeResult:
    """Normalize an upload.

    Every row with a non-empty roll number yields exactly one NormalizedRecord unless its
    payload fails validation, in which case it yields one RejectedRow instead.

    Raises:
        HeaderMismatchError: header sets differ between rows or carry no usable columns
    """
    if not rows:
        return NormalizeResult(records=(), rejected=())

    headers = check_headers(rows)
    if kind is UploadKind.FEE:
        fee_plan = _fee_plan(headers)
    else:
        kit_headers = _kit_plan(headers)

    records: list[NormalizedRecord] = []
    rejected: list[RejectedRow] = []
    for row in rows:
        raw_roll = None if row.roll_number is None else str(row.roll_number)
        roll = normalize_roll_number(row.roll_number)
        if not roll:
            rejected.append(
                RejectedRow(
                    row_number=row.row_number,
                    roll_number=raw_roll,
                    error_type="EMPTY_ROLL_NUMBER",
                    message="roll number is empty",
                )
            )
            continue
        cells = {k: _clean(v) for k, v in row.cells.items()}
        try:
            payload: Payload
            if kind is UploadKind.FEE:
                canonical_cells = {canonical_header(k): v for k, v in cells.items()}
                payload = _fee_payload(canonical_cells, fee_plan, dayfirst)
            else:
                payload = _kit_payload(cells, kit_headers)
        except _RowError as e:
            rejected.append(
                RejectedRow(
                    row_number=row.row_number,
                    roll_number=raw_roll,
                    error_type=e.error_type,
                    message=str(e),
                )
            )
            continue
        records.append(NormalizedRecord(row_number=row.row_number, roll_number=roll, payload=payload))
    return NormalizeResult(records=tuple(records), rejected=tuple(rejected))
