"""
Module ORM Registry (``ledger_modules._orm_registry``).

Ensures every SQLAlchemy ORM model is imported so that ``Base.metadata``
contains its table before ``create_tables()`` runs and before immutability
listeners are registered.
"""


def import_all_orm_models() -> None:
    """Import kernel and module ORM models. Idempotent."""
    # fmt: off
    import ledger_kernel.services.sequence_service  # noqa: F401
    import ledger_modules.billing.orm  # noqa: F401
    import ledger_modules.pharmacy.orm  # noqa: F401
