from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import (
    DatabaseConfig,
    ReconConfig,
    ResponseConfig,
    RosterTableConfig,
    UploadConfig,
)
from ..models.upload import canonical_header

"""Config loader.

Responsibilities:
- Load YAML config (config/recon.yml by default)
- Validate against the JSON schema shipped next to this module
- Apply defaults for every omitted key
"""

SCHEMA_PATH = Path(__file__).parent / "recon_schema.json"
DEFAULT_CONFIG_PATH = Path("config/recon.yml")


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: If the schema file is missing or unreadable, or the data violates it
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def config_from_dict(data: dict[str, Any]) -> ReconConfig:
    """Build a ReconConfig from already-parsed data (validated first)."""
    _validate_config_schema(data)

    db_raw = data.get("database") or {}
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )

    roster = RosterTableConfig(**(data.get("roster") or {}))

    up_raw = dict(data.get("upload") or {})
    if "roll_number_headers" in up_raw:
        # Aliases are compared against canonical headers, so store them canonical too
        up_raw["roll_number_headers"] = tuple(
            canonical_header(h) for h in up_raw["roll_number_headers"]
        )
    upload = UploadConfig(**up_raw)

    response = ResponseConfig(**(data.get("response") or {}))

    return ReconConfig(
        database=db,
        roster=roster,
        upload=upload,
        response=response,
        error_log_dir=data.get("error_log_dir", "./logs"),
    )


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> ReconConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping, got {type(data).__name__}")
    return config_from_dict(data)
