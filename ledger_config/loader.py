"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads a YAML configuration document and parses it into the typed
``ledger_config.schema`` dataclasses.  The public runtime entry point is
``ledger_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or invalid values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import (
    BillingSettings,
    DatabaseSettings,
    LedgerConfig,
    LoggingSettings,
    PharmacySettings,
)

_SECTIONS = ("billing", "pharmacy", "database", "logging")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of a parsed configuration document."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"'{name}' section must be a mapping")
    return section


def parse_config(data: dict[str, Any]) -> LedgerConfig:
    """Parse a whole configuration document into a LedgerConfig."""
    unknown = set(data) - set(_SECTIONS) - {"name"}
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")
    return LedgerConfig(
        billing=BillingSettings.from_dict(_section(data, "billing")),
        pharmacy=PharmacySettings.from_dict(_section(data, "pharmacy")),
        database=DatabaseSettings.from_dict(_section(data, "database")),
        logging=LoggingSettings.from_dict(_section(data, "logging")),
        name=str(data.get("name", "default")),
        checksum=compute_checksum(data),
    )


def load_config_file(path: Path) -> LedgerConfig:
    return parse_config(load_yaml_file(path))
