from __future__ import annotations

"""Exception taxonomy for the reconciliation pipeline.

FormatError and its subclasses abort a whole upload before any roster write.
PersistenceError is raised by roster stores and recovered per record by the applier.
"""

__all__ = [
    "FormatError",
    "HeaderMismatchError",
    "MissingRollColumnError",
    "SpreadsheetFormatError",
    "PersistenceError",
]


class FormatError(Exception):
    """Whole-upload failure: nothing is processed, nothing is written."""


class HeaderMismatchError(FormatError):
    """Raised when rows of one upload do not share an identical header set."""


class MissingRollColumnError(FormatError):
    """Raised when no column of the upload is recognised as the roll number."""


class SpreadsheetFormatError(FormatError):
    """Raised when the uploaded file cannot be decoded into rows."""


class PersistenceError(Exception):
    """Raised by a roster store when a lookup or write fails."""
