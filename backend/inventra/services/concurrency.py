# Overview: Transaction boundary and row-locking helpers shared by every mutating service.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for ledger mutations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Optimistic version_id columns still catch lost updates there.
    """
    return query.with_for_update()


def run_atomic(func):
    """
    Execute one multi-step mutation as a single transaction.

    `func` does its writes and commits. Any exception rolls the session back so
    no partial ledger or stock state survives. Persistence conflicts are raised
    as ConflictError; there are no retries.
    """
    try:
        return func()
    except StaleDataError as exc:
        db.session.rollback()
        raise ConflictError("Record was modified by another operation; reload and try again") from exc
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError(f"Constraint violation: {exc.orig}") from exc
    except Exception:
        db.session.rollback()
        raise
