from __future__ import annotations

import logging

from roster_recon.logging.init import (
    LOGGER_NAME,
    SUMMARY_LEVEL,
    get_logger,
    log_summary,
    reset_logging,
    setup_logging,
    upload_logger,
)


def test_setup_logging_is_idempotent():
    reset_logging()
    a = setup_logging()
    b = setup_logging()
    assert a is b
    assert a.name == LOGGER_NAME
    assert len(a.handlers) == 1
    assert a.propagate is False


def test_labeled_output(capsys):
    reset_logging()
    logger = setup_logging()
    logger.info("hello")
    logger.warning("careful")
    logger.error("broken")
    log_summary("kind=fee rows=1")
    out = capsys.readouterr().out.splitlines()
    assert out == ["INFO hello", "WARN careful", "ERROR broken", "SUMMARY kind=fee rows=1"]


def test_child_loggers_inherit_handler(capsys):
    reset_logging()
    setup_logging()
    logging.getLogger("roster_recon.services.pipeline").warning("from child")
    assert "WARN from child" in capsys.readouterr().out


def test_get_logger_sets_up_when_needed():
    reset_logging()
    logger = get_logger()
    assert logger.name == LOGGER_NAME
    assert logging.getLevelName(SUMMARY_LEVEL) == "SUMMARY"


def test_upload_logger_tags_lines(capsys):
    reset_logging()
    setup_logging()
    log = upload_logger(logging.getLogger("roster_recon.services.pipeline"), "kit", "kits.xlsx")
    log.warning("not_found=%d", 2)
    logging.getLogger("roster_recon.services.pipeline").info("untagged")
    assert capsys.readouterr().out.splitlines() == ["WARN [kit:kits.xlsx] not_found=2", "INFO untagged"]


def test_summary_line_tagged_with_upload(capsys):
    reset_logging()
    setup_logging()
    log_summary("kind=fee rows=2", kind="fee", source="fees.xlsx")
    log_summary("kind=fee rows=2", kind="fee")
    assert capsys.readouterr().out.splitlines() == [
        "SUMMARY [fee:fees.xlsx] kind=fee rows=2",
        "SUMMARY kind=fee rows=2",
    ]
