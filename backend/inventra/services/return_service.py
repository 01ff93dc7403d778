# Overview: Service-layer operations for customer returns against invoices.

"""
Returns

WHY: A return reverses part of a sale. Goods come back (to stock, or into the
damaged-items pool) and, for CREDIT invoices, the customer's account is
credited by the returned value.

RULES:
- Per variant, quantity returned across all returns of an invoice never
  exceeds quantity sold on that invoice.
- Line price defaults to the invoice's line price for the variant; an
  explicit price must match one of the invoice's prices for that variant.
- NON_DAMAGED: goods restock into the invoice's warehouse, or the first
  PRODUCT warehouse when the invoice has none, with an IN movement.
- DAMAGED: no restock; each line becomes an AVAILABLE DamagedItem.
- CREDIT invoice: account balance -= return total. CASH invoice: no balance
  change (cash refunds go through the credit journal).
- The invoice itself (paid/remaining/status) is not adjusted.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass

from sqlalchemy import func

from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, DamagedItem, Invoice, Return, ReturnItem, Warehouse
from ..time_utils import utcnow
from ..validation import require_choice, require_non_negative_int, require_positive_int
from .concurrency import lock_for_update, run_atomic
from .damaged_item_service import DAMAGED_STATUS_AVAILABLE
from .document_service import RETURN_DOCUMENT, next_document_number
from .history_service import record_history
from .invoice_service import PAYMENT_TYPE_CREDIT
from .stock_service import MOVEMENT_IN, WAREHOUSE_TYPE_PRODUCT, StockSubject, _adjust_stock_inner


RETURN_TYPE_DAMAGED = "DAMAGED"
RETURN_TYPE_NON_DAMAGED = "NON_DAMAGED"
VALID_RETURN_TYPES = [RETURN_TYPE_DAMAGED, RETURN_TYPE_NON_DAMAGED]


@dataclass(frozen=True)
class ReturnLine:
    product_variant_id: int
    quantity: int
    price_cents: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "ReturnLine":
        if not isinstance(data, dict):
            raise ValidationError("Each item must be an object")
        price = data.get("price_cents")
        return cls(
            product_variant_id=require_positive_int(data.get("product_variant_id"), "product_variant_id"),
            quantity=require_positive_int(data.get("quantity"), "quantity"),
            price_cents=require_non_negative_int(price, "price_cents") if price is not None else None,
        )


def _sold_by_variant(invoice: Invoice) -> dict[int, int]:
    sold: dict[int, int] = defaultdict(int)
    for item in invoice.items:
        sold[item.product_variant_id] += item.quantity
    return dict(sold)


def _returned_by_variant(invoice_id: int) -> dict[int, int]:
    rows = (
        db.session.query(ReturnItem.product_variant_id, func.sum(ReturnItem.quantity))
        .join(Return, Return.id == ReturnItem.return_id)
        .filter(Return.invoice_id == invoice_id)
        .group_by(ReturnItem.product_variant_id)
        .all()
    )
    return {variant_id: int(total or 0) for variant_id, total in rows}


def returnable_quantities(invoice_id: int) -> dict[int, int]:
    """Remaining returnable quantity per product variant on an invoice."""
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_id} not found")
    returned = _returned_by_variant(invoice_id)
    return {
        variant_id: sold - returned.get(variant_id, 0)
        for variant_id, sold in _sold_by_variant(invoice).items()
    }


def _resolve_price(invoice: Invoice, line: ReturnLine) -> int:
    prices = [item.price_cents for item in invoice.items if item.product_variant_id == line.product_variant_id]
    if line.price_cents is None:
        return prices[0]
    if line.price_cents not in prices:
        raise ValidationError(
            f"Return price {line.price_cents} for variant {line.product_variant_id} "
            f"does not match any invoice line price"
        )
    return line.price_cents


def _restock_warehouse_for(invoice: Invoice) -> Warehouse:
    if invoice.warehouse_id is not None:
        warehouse = db.session.get(Warehouse, invoice.warehouse_id)
        if warehouse is not None:
            return warehouse
    warehouse = (
        db.session.query(Warehouse)
        .filter(Warehouse.type == WAREHOUSE_TYPE_PRODUCT)
        .order_by(Warehouse.id.asc())
        .first()
    )
    if warehouse is None:
        raise InvalidStateError("No product warehouse found for restocking")
    return warehouse


def create_return(
    *,
    invoice_id: int,
    type: str,
    items,
    notes: str | None = None,
    user_id: int | None = None,
) -> Return:
    """
    Book a return against an invoice.

    Args:
        invoice_id: Invoice the goods were sold on
        type: DAMAGED or NON_DAMAGED
        items: ReturnLine objects or dicts with product_variant_id, quantity
            and optional price_cents

    Raises:
        ValidationError, NotFoundError, InvalidStateError
    """
    invoice_id = require_positive_int(invoice_id, "invoice_id")
    return_type = require_choice(type, "return type", VALID_RETURN_TYPES)
    if not items:
        raise ValidationError("Return must have at least one item")
    lines = [item if isinstance(item, ReturnLine) else ReturnLine.from_dict(item) for item in items]

    def _op():
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")

        sold = _sold_by_variant(invoice)
        returned = _returned_by_variant(invoice_id)

        requested: dict[int, int] = defaultdict(int)
        for line in lines:
            requested[line.product_variant_id] += line.quantity

        for variant_id, quantity in requested.items():
            if variant_id not in sold:
                raise InvalidStateError(f"Product variant {variant_id} was not sold on invoice {invoice.invoice_number}")
            already = returned.get(variant_id, 0)
            if already + quantity > sold[variant_id]:
                raise InvalidStateError(
                    f"Cannot return {quantity} of variant {variant_id}. "
                    f"Sold: {sold[variant_id]}, previously returned: {already}"
                )

        priced = [(line, _resolve_price(invoice, line)) for line in lines]
        total_amount = sum(price * line.quantity for line, price in priced)

        restock = _restock_warehouse_for(invoice) if return_type == RETURN_TYPE_NON_DAMAGED else None

        return_doc = Return(
            document_number=next_document_number(document_type=RETURN_DOCUMENT, prefix="R"),
            invoice_id=invoice.id,
            customer_id=invoice.customer_id,
            restock_warehouse_id=restock.id if restock is not None else None,
            user_id=user_id,
            type=return_type,
            notes=notes,
            total_amount_cents=total_amount,
            created_at=utcnow(),
        )
        db.session.add(return_doc)
        db.session.flush()

        for line, price in priced:
            return_item = ReturnItem(
                return_id=return_doc.id,
                product_variant_id=line.product_variant_id,
                quantity=line.quantity,
                price_cents=price,
                total_cents=price * line.quantity,
            )
            db.session.add(return_item)
            db.session.flush()

            if restock is not None:
                _adjust_stock_inner(
                    warehouse_id=restock.id,
                    subject=StockSubject.variant(line.product_variant_id),
                    quantity=line.quantity,
                    movement_type=MOVEMENT_IN,
                    user_id=user_id,
                    note=f"Return: {return_doc.document_number} (Invoice: {invoice.invoice_number})",
                )
            else:
                db.session.add(DamagedItem(
                    return_item_id=return_item.id,
                    product_variant_id=line.product_variant_id,
                    quantity=line.quantity,
                    status=DAMAGED_STATUS_AVAILABLE,
                    resale_price_cents=price,
                ))

        if invoice.payment_type == PAYMENT_TYPE_CREDIT:
            customer = lock_for_update(db.session.query(Customer).filter_by(id=invoice.customer_id)).first()
            customer.account_balance_cents -= total_amount

        db.session.commit()
        return return_doc

    return_doc = run_atomic(_op)

    record_history(
        user_id=user_id,
        action="RETURN_CREATED",
        entity="Return",
        entity_id=return_doc.id,
        details={
            "document_number": return_doc.document_number,
            "invoice_id": invoice_id,
            "type": return_type,
            "total_amount_cents": return_doc.total_amount_cents,
        },
    )
    return return_doc


def get_return(return_id: int) -> Return:
    return_doc = db.session.get(Return, return_id)
    if return_doc is None:
        raise NotFoundError(f"Return {return_id} not found")
    return return_doc


def list_returns(*, type: str | None = None, limit: int | None = None) -> list[Return]:
    query = db.session.query(Return)
    if type:
        query = query.filter(Return.type == require_choice(type, "return type", VALID_RETURN_TYPES))
    query = query.order_by(Return.created_at.desc(), Return.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def get_invoice_returns(invoice_id: int) -> list[Return]:
    if db.session.get(Invoice, invoice_id) is None:
        raise NotFoundError(f"Invoice {invoice_id} not found")
    return (
        db.session.query(Return)
        .filter_by(invoice_id=invoice_id)
        .order_by(Return.created_at.asc(), Return.id.asc())
        .all()
    )


def get_customer_returns(customer_id: int) -> list[Return]:
    if db.session.get(Customer, customer_id) is None:
        raise NotFoundError(f"Customer {customer_id} not found")
    return (
        db.session.query(Return)
        .filter_by(customer_id=customer_id)
        .order_by(Return.created_at.desc(), Return.id.desc())
        .all()
    )
