from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

from roster_recon.config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from roster_recon.db.roster_store import InMemoryRosterStore, PostgresRosterStore
from roster_recon.errors import FormatError, PersistenceError
from roster_recon.excel.reader import read_upload_file
from roster_recon.logging.init import log_summary, setup_logging
from roster_recon.models.upload import UploadKind
from roster_recon.services.pipeline import run_upload_file
from roster_recon.services.summary import render_summary_line

"""CLI entrypoint.

    python -m roster_recon.cli {fee|kit} FILE [--config PATH] [--roster-file JSON]
                                               [--json] [--debug] [--inspect-data]

Flow: load .env -> load config -> open roster store -> run upload -> SUMMARY line.
"""

EXIT_SUCCESS_ALL = 0
EXIT_FATAL = 1
EXIT_PARTIAL_FAILURE = 2


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env; its values take precedence over the process environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="roster-recon",
        description="Apply a bulk fee-installment or kit-distribution upload to the student roster",
    )
    p.add_argument("kind", choices=[k.value for k in UploadKind], help="Upload domain")
    p.add_argument("file", type=Path, help="Excel file (.xlsx / .xls)")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Config YAML")
    p.add_argument(
        "--roster-file",
        type=Path,
        help="Use a JSON roster file instead of PostgreSQL (saved back after the run)",
    )
    p.add_argument("--sheet", default=0, help="Sheet name or 0-based index (default: first sheet)")
    p.add_argument("--json", action="store_true", help="Print the UI response JSON to stdout")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print headers & first rows then exit")
    return p.parse_args(argv)


def _sheet_arg(value: str | int) -> str | int:
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return value


def _inspect_data(path: Path, sheet: str | int) -> int:
    try:
        data = read_upload_file(path, sheet=sheet)
    except FormatError as e:
        print(f"inspect: {e}")
        return EXIT_FATAL
    print(f"FILE: {path.name} SHEET: {data.sheet_name} cols={data.columns}")
    for number, row in zip(data.row_numbers[:3], data.rows[:3], strict=True):
        safe = {k: (v.isoformat() if hasattr(v, "isoformat") else v) for k, v in row.items()}
        print(f"  row {number}: {safe}")
    print(f"  rows={len(data.rows)}")
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # None only: an explicit [] must not fall back to sys.argv (pytest flags would leak in)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        for h in logger.handlers:
            h.setLevel("DEBUG")
        logger.setLevel("DEBUG")
        logger.debug("debug mode enabled")

    sheet = _sheet_arg(args.sheet)
    if args.inspect_data:
        return _inspect_data(args.file, sheet)

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    kind = UploadKind(args.kind)
    logger.info(f"Processing {kind.value} upload: {args.file}")

    try:
        if args.roster_file is not None:
            store = InMemoryRosterStore.load_json(args.roster_file)
            mode = "file"
        else:
            store = PostgresRosterStore.connect(cfg.database, cfg.roster, cfg.upload.max_workers)
            mode = "live"
    except PersistenceError as e:
        logger.error(f"roster: {e}")
        return EXIT_FATAL

    try:
        result, metrics = run_upload_file(args.file, kind, store, config=cfg, sheet=sheet)
    except FormatError as e:
        logger.error(f"format: {e}")
        return EXIT_FATAL
    except PersistenceError as e:
        logger.error(f"roster: {e}")
        return EXIT_FATAL
    finally:
        if isinstance(store, PostgresRosterStore):
            store.close()

    if isinstance(store, InMemoryRosterStore):
        store.save_json(args.roster_file)

    logger.info(f"mode={mode} {result.message}")
    if result.not_found_roll_numbers:
        logger.warning(f"roll numbers not found: {', '.join(result.not_found_roll_numbers)}")

    if args.json:
        response = result.to_response(
            cfg.response.rejected_count_field,
            cfg.response.failed_write_count_field,
        )
        print(json.dumps(response, ensure_ascii=False))

    # log_summary adds the "SUMMARY [kind:file]" prefix itself
    log_summary(render_summary_line(result, metrics)[len("SUMMARY "):], kind=kind.value, source=args.file.name)

    if result.fully_applied:
        return EXIT_SUCCESS_ALL
    return EXIT_PARTIAL_FAILURE


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
