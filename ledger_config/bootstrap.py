"""
Process start-up from a validated LedgerConfig.

Applies the ``logging`` and ``database`` sections: configures the ledger
logger hierarchy, then initializes the kernel engine.  Services still take
their billing and pharmacy settings through their constructors.

Usage:
    config = get_active_config()
    engine = bootstrap(config, create_schema=True)
    store = SqlAlchemyLedgerStore(get_session_factory())
"""

from __future__ import annotations

from sqlalchemy.engine import Engine

from ledger_config.schema import LedgerConfig
from ledger_kernel.db.engine import create_tables, init_engine_from_url
from ledger_kernel.logging_config import configure_logging, get_logger

_logger = get_logger("config.bootstrap")


def bootstrap(config: LedgerConfig, *, create_schema: bool = False) -> Engine:
    """
    Configure logging and the database engine from ``config``.

    Logging is configured first so that engine initialization is logged in
    the configured format.  ``configure_logging`` is idempotent; an earlier
    configuration wins.
    """
    configure_logging(
        level=config.logging.level,
        json_output=config.logging.json_output,
    )
    engine = init_engine_from_url(
        config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
    )
    if create_schema:
        create_tables()

    _logger.info(
        "ledger_bootstrapped",
        extra={
            "config_name": config.name,
            "checksum": config.checksum,
            "dialect": engine.dialect.name,
            "create_schema": create_schema,
        },
    )
    return engine
