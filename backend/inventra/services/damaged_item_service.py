# Overview: Service-layer operations for damaged returned items awaiting resale.

from __future__ import annotations

from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..models import DamagedItem
from ..time_utils import utcnow
from ..validation import require_choice, require_non_negative_int
from .concurrency import lock_for_update, run_atomic
from .history_service import record_history


DAMAGED_STATUS_AVAILABLE = "AVAILABLE"
DAMAGED_STATUS_SOLD = "SOLD"
DAMAGED_STATUS_DISCARDED = "DISCARDED"
VALID_DAMAGED_STATUSES = [DAMAGED_STATUS_AVAILABLE, DAMAGED_STATUS_SOLD, DAMAGED_STATUS_DISCARDED]


def list_damaged_items(*, status: str | None = None, product_variant_id: int | None = None) -> list[DamagedItem]:
    query = db.session.query(DamagedItem)
    if status:
        query = query.filter(DamagedItem.status == require_choice(status, "status", VALID_DAMAGED_STATUSES))
    if product_variant_id is not None:
        query = query.filter(DamagedItem.product_variant_id == product_variant_id)
    return query.order_by(DamagedItem.created_at.desc(), DamagedItem.id.desc()).all()


def _lock_available(damaged_item_id: int) -> DamagedItem:
    item = lock_for_update(db.session.query(DamagedItem).filter_by(id=damaged_item_id)).first()
    if item is None:
        raise NotFoundError(f"Damaged item {damaged_item_id} not found")
    if item.status != DAMAGED_STATUS_AVAILABLE:
        raise InvalidStateError(f"Damaged item {damaged_item_id} is {item.status}")
    return item


def update_damaged_item_price(
    *,
    damaged_item_id: int,
    resale_price_cents: int,
    note: str | None = None,
    user_id: int | None = None,
) -> DamagedItem:
    """Reprice an AVAILABLE damaged item. Sold or discarded items are frozen."""
    resale_price_cents = require_non_negative_int(resale_price_cents, "resale_price_cents")

    def _op():
        item = _lock_available(damaged_item_id)
        old_price = item.resale_price_cents
        item.resale_price_cents = resale_price_cents
        if note is not None:
            item.note = note
        db.session.commit()
        return item, old_price

    item, old_price = run_atomic(_op)

    record_history(
        user_id=user_id,
        action="UPDATE_DAMAGED_PRICE",
        entity="DamagedItem",
        entity_id=item.id,
        details={"old_price_cents": old_price, "new_price_cents": resale_price_cents},
    )
    return item


def discard_damaged_item(*, damaged_item_id: int, note: str | None = None, user_id: int | None = None) -> DamagedItem:
    """Write off an AVAILABLE damaged item. It can no longer be resold."""
    if note is not None and not isinstance(note, str):
        raise ValidationError("note must be a string")

    def _op():
        item = _lock_available(damaged_item_id)
        item.status = DAMAGED_STATUS_DISCARDED
        item.discarded_at = utcnow()
        if note:
            item.note = note
        db.session.commit()
        return item

    item = run_atomic(_op)

    record_history(
        user_id=user_id,
        action="DISCARD_DAMAGED_ITEM",
        entity="DamagedItem",
        entity_id=item.id,
        details={"product_variant_id": item.product_variant_id, "quantity": item.quantity},
    )
    return item
