"""
ORM-level immutability enforcement.

Payments, invoice items, dispensed records and stock movements are
append-only: once flushed they are never updated or deleted.  Invoices and
inventory items may be edited but never physically deleted; an invoice is
cancelled instead, and an inventory item simply runs down to zero.

ORM classes opt in by declaring a class attribute:

    __immutability__ = "append_only"   # no UPDATE, no DELETE
    __immutability__ = "no_delete"     # UPDATE allowed, no DELETE

register_immutability_listeners() walks the mapper registry and attaches
before_update / before_delete listeners accordingly:

    session.flush()
         |
         v
    [before_update event] --> _reject_update() --> ImmutabilityViolationError

Raw SQL (including the conditional stock UPDATE, which targets
inventory items) bypasses these listeners.
"""

from sqlalchemy import event

from ledger_kernel.db.base import Base
from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

APPEND_ONLY = "append_only"
NO_DELETE = "no_delete"


def _reject_update(mapper, connection, target):
    """Block any UPDATE of an append-only row."""
    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=f"{entity_type} rows are append-only and cannot be modified",
    )


def _reject_delete(mapper, connection, target):
    """Block physical deletion of ledger rows."""
    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=f"{entity_type} rows cannot be deleted",
    )


def _guarded_classes() -> list[tuple[type, str]]:
    guarded = []
    for mapper in Base.registry.mappers:
        mode = getattr(mapper.class_, "__immutability__", None)
        if mode in (APPEND_ONLY, NO_DELETE):
            guarded.append((mapper.class_, mode))
    return guarded


def register_immutability_listeners() -> None:
    """
    Register immutability listeners on every guarded ORM class.

    Idempotent: a listener already attached is not attached twice.  Call
    after the ORM modules are imported (create_tables() does both).
    """
    from ledger_modules._orm_registry import import_all_orm_models

    import_all_orm_models()
    for cls, mode in _guarded_classes():
        if mode == APPEND_ONLY and not event.contains(cls, "before_update", _reject_update):
            event.listen(cls, "before_update", _reject_update)
        if not event.contains(cls, "before_delete", _reject_delete):
            event.listen(cls, "before_delete", _reject_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability listeners.

    WARNING: Only use this in tests that intentionally bypass the guard.
    """
    for cls, _mode in _guarded_classes():
        _safe_remove_listener(cls, "before_update", _reject_update)
        _safe_remove_listener(cls, "before_delete", _reject_delete)
