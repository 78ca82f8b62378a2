from __future__ import annotations

import pytest

from roster_recon import process_fee_upload, process_kit_upload
from roster_recon.models.config_models import ReconConfig, ResponseConfig
from roster_recon.models.roster import KitRef

"""UI response contract: the renderer depends on these keys."""

STABLE_KEYS = ["message", "updatedCount", "NOT_FOUND_ROLL_NUMBERS"]


def test_fee_response_keys(roster_store, recon_config):
    result = process_fee_upload([{"Roll No": "R001", "Paid": 100}], roster_store, config=recon_config)
    body = result.to_response()
    assert list(body)[:3] == STABLE_KEYS
    assert "EXISTED_KITS" not in body
    assert isinstance(body["updatedCount"], int)
    assert isinstance(body["NOT_FOUND_ROLL_NUMBERS"], list)


def test_kit_response_keys(roster_entries, recon_config):
    from roster_recon.db.roster_store import InMemoryRosterStore

    store = InMemoryRosterStore(roster_entries, kits=[KitRef("1", "bag")])
    result = process_kit_upload([{"Roll No": "R001", "Bag": 1, "Cap": 0}], store, config=recon_config)
    body = result.to_response()
    assert list(body)[:4] == STABLE_KEYS + ["EXISTED_KITS"]
    assert body["EXISTED_KITS"] == [{"id": "1", "name": "bag"}]


@pytest.mark.parametrize(
    "response_cfg, expected_extra",
    [
        (ResponseConfig(), {"rejectedCount": 1, "failedWriteCount": 0}),
        (ResponseConfig("invalidRows", "writeFailures"), {"invalidRows": 1, "writeFailures": 0}),
        (ResponseConfig(None, None), {}),
    ],
)
def test_count_fields_are_named_by_configuration(roster_store, tmp_path, response_cfg, expected_extra):
    cfg = ReconConfig(response=response_cfg, error_log_dir=str(tmp_path))
    rows = [{"Roll No": "R001", "Paid": 10}, {"Roll No": "R002", "Paid": "abc"}]
    result = process_fee_upload(rows, roster_store, config=cfg)
    body = result.to_response(cfg.response.rejected_count_field, cfg.response.failed_write_count_field)
    extra = {k: v for k, v in body.items() if k not in STABLE_KEYS}
    assert extra == expected_extra


def test_message_template(roster_store, recon_config):
    one = process_fee_upload([{"Roll No": "R001", "Paid": 1}], roster_store, config=recon_config)
    assert one.message == "Fee installments uploaded successfully: 1 record updated"
    none = process_kit_upload([{"Roll No": "R404", "Bag": 1}], roster_store, config=recon_config)
    assert none.message == "Kits uploaded successfully: 0 records updated"
