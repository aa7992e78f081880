"""
Invoice number generators.

Both implementations produce ``PREFIX-NNNNN`` strings.  Numbers are
allocated outside the invoice insert's transaction, so a failed insert
leaves a gap rather than a reused number.
"""

from __future__ import annotations

import itertools
import threading

from sqlalchemy.orm import Session, sessionmaker

from ledger_config.schema import BillingSettings
from ledger_kernel.logging_config import get_logger
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("modules.billing.numbering")


def format_invoice_number(prefix: str, value: int, width: int) -> str:
    """format_invoice_number("INV", 1, 5) -> "INV-00001"."""
    return f"{prefix}-{value:0{width}d}"


class SequenceInvoiceNumberGenerator:
    """Allocates numbers from the locked ``sequence_counters`` row."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: BillingSettings | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or BillingSettings.with_defaults()

    def next_number(self) -> str:
        with self._session_factory() as session:
            with session.begin():
                value = SequenceService(session).next_value(self._settings.number_sequence)
        number = format_invoice_number(
            self._settings.invoice_prefix, value, self._settings.number_width
        )
        logger.debug("invoice_number_allocated", extra={"invoice_number": number})
        return number


class CounterInvoiceNumberGenerator:
    """In-process counter for single-process deployments and tests."""

    def __init__(self, settings: BillingSettings | None = None, start: int = 1):
        self._settings = settings or BillingSettings.with_defaults()
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def next_number(self) -> str:
        with self._lock:
            value = next(self._counter)
        return format_invoice_number(
            self._settings.invoice_prefix, value, self._settings.number_width
        )
