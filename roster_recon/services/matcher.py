from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import NamedTuple

from ..models.roster import RosterEntry
from ..models.upload import NormalizedRecord

"""Roster matcher: partition normalized records into matched and unmatched.

Exact lookup by normalized roll number against one roster snapshot. Pure; the roster
mapping is never mutated.
"""

__all__ = [
    "MatchResult",
    "match",
]

logger = logging.getLogger(__name__)


class MatchResult(NamedTuple):
    matched: tuple[tuple[NormalizedRecord, RosterEntry], ...]
    unmatched: tuple[str, ...]  # file order, duplicates preserved


def match(records: Sequence[NormalizedRecord], roster: Mapping[str, RosterEntry]) -> MatchResult:
    """Partition records by whether their roll number exists in ``roster``.

    ``unmatched`` is a flat, order-preserving list: a roll number appearing on three
    unknown rows appears three times.
    """
    matched: list[tuple[NormalizedRecord, RosterEntry]] = []
    unmatched: list[str] = []
    for record in records:
        entry = roster.get(record.roll_number)
        if entry is None:
            unmatched.append(record.roll_number)
        else:
            matched.append((record, entry))
    logger.debug("match matched=%d unmatched=%d", len(matched), len(unmatched))
    return MatchResult(matched=tuple(matched), unmatched=tuple(unmatched))
