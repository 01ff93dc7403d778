# Overview: Best-effort audit history for ledger actions.

"""
History Invariants

- record_history writes AFTER the primary operation commits; a failure there
  is logged and rolled back, and never re-raised.
- add_history_entry stages the row in the caller's transaction for actions
  whose audit trail must commit with them (credit journal entries).
- Rows are append-only.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import History


def record_history(
    *,
    action: str,
    user_id: int | None = None,
    entity: str | None = None,
    entity_id: int | None = None,
    details: dict | None = None,
) -> History | None:
    try:
        entry = History(
            user_id=user_id,
            action=action,
            entity=entity,
            entity_id=entity_id,
            details=details,
        )
        db.session.add(entry)
        db.session.commit()
        return entry
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Failed to record history for %s", action, exc_info=True)
        return None


def add_history_entry(
    *,
    action: str,
    user_id: int | None = None,
    entity: str | None = None,
    entity_id: int | None = None,
    details: dict | None = None,
) -> History:
    """Stage a history row inside the caller's transaction (flush only)."""
    entry = History(user_id=user_id, action=action, entity=entity, entity_id=entity_id, details=details)
    db.session.add(entry)
    db.session.flush()
    return entry


def list_history(*, entity: str | None = None, entity_id: int | None = None, limit: int = 100) -> list[History]:
    query = db.session.query(History)
    if entity:
        query = query.filter(History.entity == entity)
    if entity_id is not None:
        query = query.filter(History.entity_id == entity_id)
    return query.order_by(History.created_at.desc(), History.id.desc()).limit(limit).all()
