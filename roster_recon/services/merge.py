from __future__ import annotations

from dataclasses import replace

from ..models.roster import FeeInstallment, RosterEntry
from ..models.upload import FeePayload, KitPayload, Payload

"""Additive-safe merge of an upload payload into a roster entry.

Both merges only add or replace what the payload mentions and never delete existing
data, so merging the same payload twice yields an equal entry.
"""

__all__ = [
    "merge_fee",
    "merge_kit",
    "merge_payload",
]


def _replace_installment(current: FeeInstallment, incoming: FeeInstallment) -> FeeInstallment:
    # dates left blank in the upload keep their stored values
    due_date = incoming.due_date if incoming.due_date is not None else current.due_date
    paid_date = incoming.paid_date
    if paid_date is None and incoming.paid:
        paid_date = current.paid_date
    return replace(incoming, number=current.number, due_date=due_date, paid_date=paid_date)


def merge_fee(entry: RosterEntry, payload: FeePayload) -> RosterEntry:
    """Replace installments matched by number (else by due date), append the rest."""
    installments: list[FeeInstallment] = list(entry.fee_record)
    for incoming in payload.installments:
        pos = next(
            (i for i, cur in enumerate(installments) if cur.number == incoming.number),
            None,
        )
        if pos is None and incoming.due_date is not None:
            pos = next(
                (i for i, cur in enumerate(installments) if cur.due_date == incoming.due_date),
                None,
            )
        if pos is None:
            installments.append(incoming)
        else:
            # a date-key match keeps the stored installment's number
            installments[pos] = _replace_installment(installments[pos], incoming)
    installments.sort(key=lambda i: i.number)
    return replace(entry, fee_record=tuple(installments))


def merge_kit(entry: RosterEntry, payload: KitPayload) -> RosterEntry:
    """Key-by-key overwrite; kits absent from the payload are untouched."""
    kits = dict(entry.kit_record)
    kits.update(payload.items)
    return replace(entry, kit_record=kits)


def merge_payload(entry: RosterEntry, payload: Payload) -> RosterEntry:
    if isinstance(payload, FeePayload):
        return merge_fee(entry, payload)
    if isinstance(payload, KitPayload):
        return merge_kit(entry, payload)
    raise TypeError(f"unsupported payload type: {type(payload).__name__}")
