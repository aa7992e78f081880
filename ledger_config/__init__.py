"""
ledger_config -- single public entrypoint for ledger configuration.

Responsibility:
    ``get_active_config()`` returns the validated ``LedgerConfig``.  Services
    receive the settings objects they need through their constructors and
    never read configuration files themselves.

Architecture position:
    Configuration -- sits above ``ledger_kernel`` and below
    ``ledger_modules``.  The kernel MUST NEVER import from ``ledger_config``.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``LEDGER_CONFIG_TRACE`` log entry with the config name and checksum.
"""

from __future__ import annotations

from pathlib import Path

from ledger_config.loader import load_config_file
from ledger_config.schema import (
    BillingSettings,
    DatabaseSettings,
    LedgerConfig,
    LoggingSettings,
    PharmacySettings,
)
from ledger_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | None = None) -> LedgerConfig:
    """
    Load and validate the active configuration.

    Raises:
        FileNotFoundError: the configuration file does not exist.
        ValueError: the document fails schema validation.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    config = load_config_file(path)
    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LEDGER_CONFIG_TRACE",
            "config_name": config.name,
            "config_path": str(path),
            "checksum": config.checksum,
            "currency": config.billing.currency,
            "invoice_prefix": config.billing.invoice_prefix,
        },
    )
    return config


__all__ = [
    "BillingSettings",
    "DatabaseSettings",
    "LedgerConfig",
    "LoggingSettings",
    "PharmacySettings",
    "get_active_config",
]
