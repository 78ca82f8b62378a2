from __future__ import annotations

import json
import re

from roster_recon.models.error_record import ErrorRecord


def test_create_stamps_utc_z_timestamp():
    rec = ErrorRecord.create("kits.xlsx", "kit", 5, "R7", "INVALID_KIT_VALUE", "kit 'bag' has unrecognised value 'lost'")
    assert rec.timestamp.endswith("Z")
    assert re.match(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}", rec.timestamp)


def test_json_line_has_fixed_keys_and_keeps_unicode():
    rec = ErrorRecord.create("फीस.xlsx", "fee", 2, None, "INVALID_AMOUNT", "fee amount must be numeric, got '₹abc'")
    data = json.loads(rec.to_json_line())
    assert set(data) == {"timestamp", "file", "kind", "row", "roll_number", "error_type", "message"}
    assert "₹" in rec.to_json_line()
    assert data["file"] == "फीस.xlsx"
