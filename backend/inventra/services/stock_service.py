# Overview: Service-layer operations for the stock ledger; encapsulates business logic and database work.

"""
Stock Ledger Invariants (authoritative)

- Stock.quantity is a stored per-(warehouse, subject) counter and is never negative.
- Every quantity change appends exactly one StockMovement in the same transaction.
- IN on a missing Stock row creates the row with the incoming quantity.
- OUT on a missing Stock row is an InsufficientStockError, never an implicit zero row.
- TRANSFER is OUT at source + IN at destination + one TRANSFER movement; no
  partial transfer is observable.

Subjects:
- A stock row tracks exactly one of a Material or a ProductVariant. Callers pass a
  StockSubject; the two nullable foreign keys are a storage detail.

Composition:
- `_adjust_stock_inner()` only flushes. Invoice and return services call it inside
  their own transaction; the public functions here wrap it with run_atomic + commit.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Material, ProductVariant, Stock, StockMovement, Warehouse
from ..validation import require_choice, require_positive_int
from .concurrency import lock_for_update, run_atomic
from .history_service import record_history


MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_TRANSFER = "TRANSFER"

SUBJECT_MATERIAL = "MATERIAL"
SUBJECT_PRODUCT_VARIANT = "PRODUCT_VARIANT"

WAREHOUSE_TYPE_PRODUCT = "PRODUCT"
WAREHOUSE_TYPE_MATERIAL = "MATERIAL"


@dataclass(frozen=True)
class StockSubject:
    """What a stock row counts: one material or one product variant."""

    kind: str
    id: int

    @classmethod
    def material(cls, material_id: int) -> "StockSubject":
        return cls(SUBJECT_MATERIAL, material_id)

    @classmethod
    def variant(cls, product_variant_id: int) -> "StockSubject":
        return cls(SUBJECT_PRODUCT_VARIANT, product_variant_id)

    @classmethod
    def from_ids(cls, *, material_id=None, product_variant_id=None) -> "StockSubject":
        """Build from request fields; exactly one must be given."""
        if (material_id is None) == (product_variant_id is None):
            raise ValidationError("Must provide either material_id or product_variant_id")
        if material_id is not None:
            return cls.material(require_positive_int(material_id, "material_id"))
        return cls.variant(require_positive_int(product_variant_id, "product_variant_id"))

    @property
    def column_values(self) -> dict:
        if self.kind == SUBJECT_MATERIAL:
            return {"material_id": self.id, "product_variant_id": None}
        return {"material_id": None, "product_variant_id": self.id}


@dataclass(frozen=True)
class TransferResult:
    source: Stock
    destination: Stock
    movement: StockMovement

    def to_dict(self) -> dict:
        return {
            "source": self.source.to_dict(),
            "destination": self.destination.to_dict(),
            "movement": self.movement.to_dict(),
        }


# =============================================================================
# LOOKUPS
# =============================================================================

def _ensure_warehouse(warehouse_id: int) -> Warehouse:
    warehouse = db.session.get(Warehouse, warehouse_id)
    if warehouse is None:
        raise NotFoundError(f"Warehouse {warehouse_id} not found")
    return warehouse


def _ensure_subject(subject: StockSubject) -> None:
    model = Material if subject.kind == SUBJECT_MATERIAL else ProductVariant
    if db.session.get(model, subject.id) is None:
        label = "Material" if subject.kind == SUBJECT_MATERIAL else "Product variant"
        raise NotFoundError(f"{label} {subject.id} not found")


def _find_stock(warehouse_id: int, subject: StockSubject, *, lock: bool = False) -> Stock | None:
    query = db.session.query(Stock).filter_by(warehouse_id=warehouse_id)
    if subject.kind == SUBJECT_MATERIAL:
        query = query.filter(Stock.material_id == subject.id)
    else:
        query = query.filter(Stock.product_variant_id == subject.id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def get_stock_quantity(warehouse_id: int, subject: StockSubject) -> int:
    stock = _find_stock(warehouse_id, subject)
    return stock.quantity if stock else 0


# =============================================================================
# CORE MUTATION (no commit)
# =============================================================================

def _apply_delta(*, warehouse_id: int, subject: StockSubject, delta: int) -> Stock:
    """Apply a signed delta to one stock row, creating it on first IN."""
    stock = _find_stock(warehouse_id, subject, lock=True)
    current = stock.quantity if stock else 0
    new_quantity = current + delta

    if new_quantity < 0:
        raise InsufficientStockError(
            f"Insufficient stock in warehouse {warehouse_id} for "
            f"{subject.kind.lower()} {subject.id}. On-hand: {current}, requested: {-delta}"
        )

    if stock is None:
        stock = Stock(warehouse_id=warehouse_id, quantity=new_quantity, **subject.column_values)
        db.session.add(stock)
    else:
        stock.quantity = new_quantity

    db.session.flush()
    return stock


def _record_movement(
    *,
    movement_type: str,
    quantity: int,
    subject: StockSubject,
    warehouse_from_id: int | None = None,
    warehouse_to_id: int | None = None,
    user_id: int | None = None,
    note: str | None = None,
) -> StockMovement:
    movement = StockMovement(
        type=movement_type,
        quantity=quantity,
        warehouse_from_id=warehouse_from_id,
        warehouse_to_id=warehouse_to_id,
        user_id=user_id,
        note=note,
        **subject.column_values,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def _adjust_stock_inner(
    *,
    warehouse_id: int,
    subject: StockSubject,
    quantity: int,
    movement_type: str,
    user_id: int | None = None,
    note: str | None = None,
) -> Stock:
    """Core IN/OUT logic without commit. Called by invoice and return services."""
    delta = quantity if movement_type == MOVEMENT_IN else -quantity
    stock = _apply_delta(warehouse_id=warehouse_id, subject=subject, delta=delta)
    _record_movement(
        movement_type=movement_type,
        quantity=quantity,
        subject=subject,
        warehouse_to_id=warehouse_id if movement_type == MOVEMENT_IN else None,
        warehouse_from_id=warehouse_id if movement_type == MOVEMENT_OUT else None,
        user_id=user_id,
        note=note,
    )
    return stock


# =============================================================================
# PUBLIC OPERATIONS
# =============================================================================

def adjust_stock(
    *,
    warehouse_id: int,
    subject: StockSubject,
    quantity: int,
    movement_type: str,
    user_id: int | None = None,
    note: str | None = None,
) -> Stock:
    """
    Receive (IN) or remove (OUT) stock in one warehouse.

    Raises:
        ValidationError: bad movement type or non-positive quantity
        NotFoundError: warehouse or subject missing
        InsufficientStockError: OUT would drive quantity negative
    """
    warehouse_id = require_positive_int(warehouse_id, "warehouse_id")
    movement_type = require_choice(movement_type, "movement_type", (MOVEMENT_IN, MOVEMENT_OUT))
    quantity = require_positive_int(quantity, "quantity")

    def _op():
        _ensure_warehouse(warehouse_id)
        _ensure_subject(subject)

        stock = _adjust_stock_inner(
            warehouse_id=warehouse_id,
            subject=subject,
            quantity=quantity,
            movement_type=movement_type,
            user_id=user_id,
            note=note,
        )

        db.session.commit()
        return stock

    stock = run_atomic(_op)

    record_history(
        user_id=user_id,
        action=f"STOCK_{movement_type}",
        entity="Stock",
        entity_id=stock.id,
        details={"quantity": quantity, "new_quantity": stock.quantity},
    )
    return stock


def transfer_stock(
    *,
    from_warehouse_id: int,
    to_warehouse_id: int,
    subject: StockSubject,
    quantity: int,
    user_id: int | None = None,
    note: str | None = None,
) -> TransferResult:
    """
    Move stock between warehouses atomically.

    Rows are locked in warehouse-id order so two opposite transfers of the same
    subject cannot deadlock each other.
    """
    from_warehouse_id = require_positive_int(from_warehouse_id, "from_warehouse_id")
    to_warehouse_id = require_positive_int(to_warehouse_id, "to_warehouse_id")
    quantity = require_positive_int(quantity, "quantity")
    if from_warehouse_id == to_warehouse_id:
        raise ValidationError("Cannot transfer to the same warehouse")

    def _op():
        _ensure_warehouse(from_warehouse_id)
        _ensure_warehouse(to_warehouse_id)
        _ensure_subject(subject)

        for warehouse_id in sorted((from_warehouse_id, to_warehouse_id)):
            _find_stock(warehouse_id, subject, lock=True)

        source = _apply_delta(warehouse_id=from_warehouse_id, subject=subject, delta=-quantity)
        destination = _apply_delta(warehouse_id=to_warehouse_id, subject=subject, delta=quantity)
        movement = _record_movement(
            movement_type=MOVEMENT_TRANSFER,
            quantity=quantity,
            subject=subject,
            warehouse_from_id=from_warehouse_id,
            warehouse_to_id=to_warehouse_id,
            user_id=user_id,
            note=note,
        )

        db.session.commit()
        return TransferResult(source=source, destination=destination, movement=movement)

    result = run_atomic(_op)

    record_history(
        user_id=user_id,
        action="STOCK_TRANSFER",
        entity="Stock",
        entity_id=result.source.id,
        details={
            "warehouse_from_id": from_warehouse_id,
            "warehouse_to_id": to_warehouse_id,
            "quantity": quantity,
        },
    )
    return result


# =============================================================================
# QUERIES
# =============================================================================

def list_stock(*, warehouse_id: int | None = None, subject_kind: str | None = None) -> list[Stock]:
    query = db.session.query(Stock)
    if warehouse_id is not None:
        query = query.filter(Stock.warehouse_id == warehouse_id)
    if subject_kind == SUBJECT_MATERIAL:
        query = query.filter(Stock.material_id.isnot(None))
    elif subject_kind == SUBJECT_PRODUCT_VARIANT:
        query = query.filter(Stock.product_variant_id.isnot(None))
    return query.order_by(Stock.updated_at.desc(), Stock.id.desc()).all()


def list_movements(
    *,
    subject: StockSubject | None = None,
    warehouse_id: int | None = None,
    limit: int = 200,
) -> list[StockMovement]:
    query = db.session.query(StockMovement)
    if subject is not None:
        if subject.kind == SUBJECT_MATERIAL:
            query = query.filter(StockMovement.material_id == subject.id)
        else:
            query = query.filter(StockMovement.product_variant_id == subject.id)
    if warehouse_id is not None:
        query = query.filter(
            (StockMovement.warehouse_from_id == warehouse_id)
            | (StockMovement.warehouse_to_id == warehouse_id)
        )
    return query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).limit(limit).all()
