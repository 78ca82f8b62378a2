from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

"""Roster domain models: RosterEntry with its fee and kit sub-documents.

The roster is the system of record. Entries are created at enrollment elsewhere and are
only ever replaced (never mutated in place) by the update applier, which builds new
frozen instances through the merge functions in services/merge.py.
"""

__all__ = [
    "FeeInstallment",
    "FeeStatus",
    "KitItemState",
    "KitRef",
    "RosterEntry",
    "normalize_roll_number",
    "canonical_kit_name",
]

_WS_RE = re.compile(r"\s+")
_NAME_SEP_RE = re.compile(r"[_\-.]+")


def normalize_roll_number(raw: Any) -> str:
    """Canonical roll number: trimmed, upper-cased, internal whitespace collapsed.

    Numeric cells are rendered as strings so that ``101`` and ``101.0`` (as pandas may
    hand back an integer column containing blanks) resolve to the same student.
    Returns an empty string for missing values.
    """
    if raw is None or isinstance(raw, bool):
        return ""
    if isinstance(raw, float):
        if raw != raw:  # NaN
            return ""
        if raw.is_integer():
            raw = int(raw)
    return _WS_RE.sub(" ", str(raw).strip()).upper()


def canonical_kit_name(raw: Any) -> str:
    """Lower-case, ``_ - .`` as spaces, whitespace collapsed.

    Same form as an upload column header, so ``School Bag``, ``school_bag`` and
    ``school-bag`` are one kit.
    """
    text = _NAME_SEP_RE.sub(" ", str(raw).strip().lower())
    return _WS_RE.sub(" ", text).strip()


class FeeStatus:
    """Backend fee status labels used by the dashboard."""
    PAID = "PAID"
    PARTIAL = "PARTIAL"
    UNPAID = "UNPAID"


@dataclass(frozen=True)
class FeeInstallment:
    """One installment of a student's fee schedule."""
    number: int  # 1-based installment index (primary merge key)
    amount: Decimal
    due_date: date | None = None  # secondary merge key
    paid: bool = False
    paid_date: date | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "amount": str(self.amount),
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "paid": self.paid,
            "paid_date": self.paid_date.isoformat() if self.paid_date else None,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> FeeInstallment:
        due = data.get("due_date")
        paid_on = data.get("paid_date")
        return FeeInstallment(
            number=int(data["number"]),
            amount=Decimal(str(data["amount"])),
            due_date=date.fromisoformat(due) if due else None,
            paid=bool(data.get("paid", False)),
            paid_date=date.fromisoformat(paid_on) if paid_on else None,
        )


@dataclass(frozen=True)
class KitItemState:
    assigned: bool
    quantity: int

    def to_dict(self) -> dict[str, Any]:
        return {"assigned": self.assigned, "quantity": self.quantity}

    @staticmethod
    def from_dict(data: dict[str, Any]) -> KitItemState:
        return KitItemState(assigned=bool(data["assigned"]), quantity=int(data["quantity"]))


@dataclass(frozen=True)
class KitRef:
    """Kit catalog entry, as reported back in EXISTED_KITS."""
    id: str
    name: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True)
class RosterEntry:
    """One student of the roster, keyed by normalized roll number.

    Attributes:
        roll_number: Normalized roll number (natural key)
        fee_record: Installments ordered by installment number
        kit_record: Kit name (canonical) -> assignment state
        name: Display name, informational only
    """
    roll_number: str
    fee_record: tuple[FeeInstallment, ...] = ()
    kit_record: dict[str, KitItemState] = field(default_factory=dict)
    name: str | None = None

    @property
    def total_amount(self) -> Decimal:
        return sum((i.amount for i in self.fee_record), Decimal(0))

    @property
    def paid_amount(self) -> Decimal:
        return sum((i.amount for i in self.fee_record if i.paid), Decimal(0))

    @property
    def pending_amount(self) -> Decimal:
        return self.total_amount - self.paid_amount

    @property
    def fee_status(self) -> str:
        # Same rule as the dashboard badge: nothing left -> PAID, something paid -> PARTIAL
        if self.total_amount > 0 and self.pending_amount == 0:
            return FeeStatus.PAID
        if self.paid_amount > 0:
            return FeeStatus.PARTIAL
        return FeeStatus.UNPAID

    def to_dict(self) -> dict[str, Any]:
        return {
            "roll_number": self.roll_number,
            "name": self.name,
            "fee_record": [i.to_dict() for i in self.fee_record],
            "kit_record": {k: v.to_dict() for k, v in self.kit_record.items()},
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> RosterEntry:
        fees = sorted(
            (FeeInstallment.from_dict(i) for i in data.get("fee_record") or []),
            key=lambda i: i.number,
        )
        kits = {
            canonical_kit_name(k): KitItemState.from_dict(v)
            for k, v in (data.get("kit_record") or {}).items()
        }
        return RosterEntry(
            roll_number=normalize_roll_number(data["roll_number"]),
            fee_record=tuple(fees),
            kit_record=kits,
            name=data.get("name"),
        )
