"""
ORM-level append-only enforcement.

FX snapshots, ledger postings and ledger entries are never modified after
insert; corrections are new rows.  SQLAlchemy fires ``before_update`` and
``before_delete`` before any SQL reaches the database, so the listeners here
abort the flush with ImmutableRecordError.

Bulk ``UPDATE``/``DELETE`` statements bypass mapper events; nothing in the
settlement packages issues them against these tables.

Call ``register_immutability_listeners()`` once at startup (the engine does
this in ``init_engine_from_url``; the test suite does it in conftest).
"""

from sqlalchemy import event

from settlement_kernel.exceptions import ImmutableRecordError
from settlement_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _reject(operation: str):
    def listener(mapper, connection, target):
        entity_type = type(target).__name__
        logger.error(
            "immutability_violation_blocked",
            extra={
                "entity_type": entity_type,
                "entity_id": str(target.id),
                "operation": operation,
            },
        )
        raise ImmutableRecordError(entity_type, str(target.id), operation)

    return listener


_reject_update = _reject("UPDATE")
_reject_delete = _reject("DELETE")


def _protected_models():
    from settlement_kernel.models.fx_snapshot import FxSnapshot
    from settlement_kernel.models.ledger import LedgerEntry, LedgerPosting

    return (FxSnapshot, LedgerPosting, LedgerEntry)


def register_immutability_listeners() -> None:
    """Install the append-only listeners (idempotent)."""
    for model in _protected_models():
        if not event.contains(model, "before_update", _reject_update):
            event.listen(model, "before_update", _reject_update)
        if not event.contains(model, "before_delete", _reject_delete):
            event.listen(model, "before_delete", _reject_delete)


def unregister_immutability_listeners() -> None:
    """Remove the listeners. Tests only."""
    for model in _protected_models():
        if event.contains(model, "before_update", _reject_update):
            event.remove(model, "before_update", _reject_update)
        if event.contains(model, "before_delete", _reject_delete):
            event.remove(model, "before_delete", _reject_delete)
