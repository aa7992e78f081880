"""
Pytest fixtures for the hospital ledger test suite.

Provides:
- Structured log capture
- A deterministic clock and a fixed actor id
- A file-backed SQLite database created once per session, emptied per test
- ``store``: parametrised over the in-memory and SQLAlchemy stores, so every
  module test runs against both backends
- Service fixtures wired to the selected store
"""

import json
import logging
from datetime import UTC, datetime
from io import StringIO

import pytest
from sqlalchemy import text

from ledger_config.schema import BillingSettings, PharmacySettings
from ledger_kernel.db.base import Base
from ledger_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_modules.billing.models import InvoiceItem
from ledger_modules.billing.numbering import (
    CounterInvoiceNumberGenerator,
    SequenceInvoiceNumberGenerator,
)
from ledger_modules.billing.reconciliation import PaymentReconciliationService
from ledger_modules.billing.service import InvoiceLedgerService
from ledger_modules.pharmacy.dispensing import DispensingService
from ledger_modules.pharmacy.service import StockManager
from ledger_modules.reporting.service import ReportingService
from ledger_modules.stores import InMemoryLedgerStore, SqlAlchemyLedgerStore

TEST_ACTOR_ID = "test-actor"
TEST_NOW = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.create_invoice(...)
            logs = captured_logs()
            assert any(r["message"] == "invoice_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Session-scoped DB infrastructure (create engine + tables ONCE per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine(tmp_path_factory):
    """File-backed SQLite so worker threads share one database."""
    path = tmp_path_factory.mktemp("ledger") / "ledger_test.db"
    engine = init_engine_from_url(f"sqlite:///{path}")
    create_tables()
    yield engine
    reset_engine()


def _delete_all_rows(engine):
    """Raw DELETE bypasses the ORM immutability listeners."""
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(text(f"DELETE FROM {table.name}"))


@pytest.fixture
def session_factory(db_engine):
    _delete_all_rows(db_engine)
    yield get_session_factory()
    _delete_all_rows(get_engine())


# =============================================================================
# Stores and services
# =============================================================================


@pytest.fixture
def memory_store():
    return InMemoryLedgerStore()


@pytest.fixture
def sql_store(session_factory):
    return SqlAlchemyLedgerStore(session_factory)


@pytest.fixture(params=["memory", "sql"])
def store_backend(request):
    return request.param


@pytest.fixture
def store(store_backend, request):
    return request.getfixturevalue(f"{store_backend}_store")


@pytest.fixture
def billing_settings():
    return BillingSettings(retry_backoff_seconds=0.0)


@pytest.fixture
def pharmacy_settings():
    return PharmacySettings.with_defaults()


@pytest.fixture
def number_generator(store_backend, billing_settings, request):
    if store_backend == "sql":
        factory = request.getfixturevalue("session_factory")
        return SequenceInvoiceNumberGenerator(factory, billing_settings)
    return CounterInvoiceNumberGenerator(billing_settings)


@pytest.fixture
def test_actor_id() -> str:
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock():
    """Clock fixed at 2024-01-01 12:00 UTC."""
    return DeterministicClock(TEST_NOW)


@pytest.fixture
def ledger(store, number_generator, billing_settings, deterministic_clock):
    return InvoiceLedgerService(
        store, number_generator, billing_settings, deterministic_clock
    )


@pytest.fixture
def payments(store, billing_settings, deterministic_clock):
    return PaymentReconciliationService(store, billing_settings, deterministic_clock)


@pytest.fixture
def stock(store, pharmacy_settings, deterministic_clock):
    return StockManager(store, pharmacy_settings, deterministic_clock)


@pytest.fixture
def dispensing(store, deterministic_clock):
    return DispensingService(store, deterministic_clock)


@pytest.fixture
def reporting(store, deterministic_clock, pharmacy_settings):
    return ReportingService(store, deterministic_clock, pharmacy_settings)


# =============================================================================
# Data helpers
# =============================================================================


@pytest.fixture
def create_invoice(ledger, test_actor_id):
    """
    Create the reference invoice: subtotal 100.00, tax 10.00, discount 5.00.
    """

    def _create(
        patient_id="P-1001",
        due_in_days=30,
        items=None,
        tax_amount="10.00",
        discount_amount="5.00",
    ):
        if items is None:
            items = [InvoiceItem.create("Consultation", 1, "100.00")]
        return ledger.create_invoice(
            patient_id,
            due_in_days,
            items,
            actor_id=test_actor_id,
            tax_amount=tax_amount,
            discount_amount=discount_amount,
        )

    return _create


@pytest.fixture
def create_item(stock, test_actor_id):
    def _create(
        drug_name="Amoxicillin 500mg",
        quantity=100,
        reorder_level=10,
        unit_price="0.50",
        **kwargs,
    ):
        return stock.register_item(
            drug_name=drug_name,
            category=kwargs.pop("category", "antibiotic"),
            unit_price=unit_price,
            actor_id=test_actor_id,
            quantity=quantity,
            reorder_level=reorder_level,
            **kwargs,
        )

    return _create
