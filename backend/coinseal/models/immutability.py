# Overview: ORM guards that keep ledger and audit rows append-only.

from __future__ import annotations

from sqlalchemy import event

from .activity import ActivityLogEntry
from .ledger import CoinTransaction
from .trips import Comment


class ImmutableRecordError(RuntimeError):
    """Raised when code tries to update or delete an append-only row."""


def _reject_update(mapper, connection, target):
    raise ImmutableRecordError(f"{type(target).__name__} {target.id} is append-only and cannot be updated")


def _reject_delete(mapper, connection, target):
    raise ImmutableRecordError(f"{type(target).__name__} {target.id} is append-only and cannot be deleted")


def register_immutability_guards() -> None:
    """Idempotent; called once from models/__init__.py."""
    for model in (CoinTransaction, ActivityLogEntry, Comment):
        if not event.contains(model, "before_update", _reject_update):
            event.listen(model, "before_update", _reject_update)
        if not event.contains(model, "before_delete", _reject_delete):
            event.listen(model, "before_delete", _reject_delete)
