"""Bulk roster reconciliation engine.

Ingests fee-installment and kit-distribution spreadsheet uploads, matches each row to a
student by roll number, applies the row as an additive-safe update and reports what was
updated, what was not found and what was rejected.
"""

from .services.pipeline import process_fee_upload, process_kit_upload, process_upload_file

__all__ = [
    "process_fee_upload",
    "process_kit_upload",
    "process_upload_file",
]

__version__ = "0.1.0"
