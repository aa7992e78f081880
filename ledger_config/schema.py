"""
Configuration Schema (``ledger_config.schema``).

Frozen dataclasses describing every tunable of the ledger.  Field defaults
match the behaviour of the hospital dashboard the ledger serves; override
them from YAML through ``ledger_config.get_active_config()``.

Invariants enforced
-------------------
* Every dataclass validates itself in ``__post_init__`` and raises
  ``ValueError`` with a descriptive message.
* Configuration objects are immutable once constructed.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Self

from ledger_kernel.logging_config import get_logger

logger = get_logger("config.schema")


DEFAULT_PAYMENT_METHODS = (
    "cash",
    "card",
    "bank_transfer",
    "insurance",
    "mobile_money",
)

DEFAULT_UNITS = ("tablets", "capsules", "ml", "mg", "units")

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _known_fields(cls: type, data: dict[str, Any]) -> dict[str, Any]:
    names = {f.name for f in fields(cls)}
    unknown = set(data) - names
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} keys: {sorted(unknown)}")
    return dict(data)


@dataclass(frozen=True)
class BillingSettings:
    """
    Invoice numbering, retry and payment settings.

        settings = BillingSettings(invoice_prefix="HSP", default_due_days=14)
    """

    invoice_prefix: str = "INV"
    number_width: int = 5
    number_sequence: str = "invoice_number"

    # Collision handling for invoice numbers
    max_number_attempts: int = 5
    retry_backoff_seconds: float = 0.05

    default_due_days: int = 30
    currency: str = "USD"
    payment_methods: tuple[str, ...] = DEFAULT_PAYMENT_METHODS

    def __post_init__(self):
        if not self.invoice_prefix or not self.invoice_prefix.isalnum():
            raise ValueError(
                f"invoice_prefix must be non-empty and alphanumeric, got '{self.invoice_prefix}'"
            )
        if not 1 <= self.number_width <= 12:
            raise ValueError("number_width must be between 1 and 12")
        if self.max_number_attempts < 1:
            raise ValueError("max_number_attempts must be at least 1")
        if self.retry_backoff_seconds < 0:
            raise ValueError("retry_backoff_seconds cannot be negative")
        if self.default_due_days < 1:
            raise ValueError("default_due_days must be at least 1")
        if len(self.currency) != 3 or not self.currency.isalpha() or not self.currency.isupper():
            raise ValueError(f"currency must be a 3-letter uppercase code, got '{self.currency}'")
        if not self.payment_methods:
            raise ValueError("payment_methods cannot be empty")

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create settings from a parsed YAML mapping."""
        values = _known_fields(cls, data)
        if "payment_methods" in values:
            values["payment_methods"] = tuple(values["payment_methods"])
        if "retry_backoff_seconds" in values:
            values["retry_backoff_seconds"] = float(values["retry_backoff_seconds"])
        return cls(**values)


@dataclass(frozen=True)
class PharmacySettings:
    """Inventory defaults and alert windows."""

    default_reorder_level: int = 10
    default_unit: str = "tablets"
    units: tuple[str, ...] = DEFAULT_UNITS

    # Batches expiring within this many days are reported as expiring soon
    expiry_warning_days: int = 90

    def __post_init__(self):
        if self.default_reorder_level < 0:
            raise ValueError("default_reorder_level cannot be negative")
        if self.expiry_warning_days < 0:
            raise ValueError("expiry_warning_days cannot be negative")
        if not self.units:
            raise ValueError("units cannot be empty")
        if self.default_unit not in self.units:
            raise ValueError(
                f"default_unit must be one of {self.units}, got '{self.default_unit}'"
            )

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        values = _known_fields(cls, data)
        if "units" in values:
            values["units"] = tuple(values["units"])
        return cls(**values)


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///hospital_ledger.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10

    def __post_init__(self):
        if not self.url:
            raise ValueError("database url cannot be empty")
        if self.pool_size < 1:
            raise ValueError("pool_size must be at least 1")
        if self.max_overflow < 0:
            raise ValueError("max_overflow cannot be negative")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(**_known_fields(cls, data))


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"
    json_output: bool = True

    def __post_init__(self):
        if self.level.upper() not in VALID_LOG_LEVELS:
            raise ValueError(f"level must be one of {sorted(VALID_LOG_LEVELS)}, got '{self.level}'")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(**_known_fields(cls, data))


@dataclass(frozen=True)
class LedgerConfig:
    """The complete, validated ledger configuration."""

    billing: BillingSettings = field(default_factory=BillingSettings)
    pharmacy: PharmacySettings = field(default_factory=PharmacySettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    name: str = "default"
    checksum: str = ""
