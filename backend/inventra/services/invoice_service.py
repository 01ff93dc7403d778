# Overview: Service-layer operations for invoices; encapsulates business logic and database work.

"""
Invoice State Machine

WHY: An invoice is the single entry point that moves goods out of stock and,
for CREDIT sales, moves debt onto the customer's account. Both must happen in
one transaction or not at all.

PAYMENT TYPES:
- CASH: settled at creation. paid = final, remaining = 0, status PAID.
  No customer balance change.
- CREDIT: paid = 0, remaining = final, status UNPAID. Customer balance += final.

STATUS: UNPAID -> PARTIAL -> PAID

STOCK:
- Ordinary lines decrement stock in the invoice's warehouse (OUT movement).
- Lines reselling a DamagedItem take units from that lot (SOLD once empty) and
  never touch regular stock; damaged units left regular stock when their
  return was booked.
- Any insufficient line aborts the whole invoice, including earlier decrements.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..errors import InvalidStateError, NotFoundError, OverpaymentError, ValidationError
from ..extensions import db
from ..models import Customer, DamagedItem, Invoice, InvoiceItem, Payment, ProductVariant, Warehouse
from ..time_utils import utcnow
from ..validation import (
    MAX_BALANCE_CENTS,
    MAX_TOTAL_CENTS,
    coerce_int,
    require_choice,
    require_non_negative_int,
    require_positive_int,
)
from .concurrency import lock_for_update, run_atomic
from .damaged_item_service import DAMAGED_STATUS_AVAILABLE, DAMAGED_STATUS_SOLD
from .document_service import INVOICE_DOCUMENT, next_document_number
from .history_service import record_history
from .stock_service import MOVEMENT_OUT, StockSubject, _adjust_stock_inner


# =============================================================================
# CONSTANTS
# =============================================================================

PAYMENT_TYPE_CASH = "CASH"
PAYMENT_TYPE_CREDIT = "CREDIT"
VALID_PAYMENT_TYPES = [PAYMENT_TYPE_CASH, PAYMENT_TYPE_CREDIT]

INVOICE_STATUS_UNPAID = "UNPAID"
INVOICE_STATUS_PARTIAL = "PARTIAL"
INVOICE_STATUS_PAID = "PAID"
OPEN_INVOICE_STATUSES = (INVOICE_STATUS_UNPAID, INVOICE_STATUS_PARTIAL)

DISCOUNT_FIXED = "FIXED"
DISCOUNT_PERCENTAGE = "PERCENTAGE"
VALID_DISCOUNT_TYPES = [DISCOUNT_FIXED, DISCOUNT_PERCENTAGE]

# Remaining balances at or below this are treated as settled
SETTLEMENT_TOLERANCE_CENTS = 1


@dataclass(frozen=True)
class InvoiceLine:
    product_variant_id: int
    quantity: int
    price_cents: int
    damaged_item_id: int | None = None

    @property
    def total_cents(self) -> int:
        return self.price_cents * self.quantity

    @classmethod
    def from_dict(cls, data: dict) -> "InvoiceLine":
        if not isinstance(data, dict):
            raise ValidationError("Each item must be an object")
        damaged_item_id = data.get("damaged_item_id")
        return cls(
            product_variant_id=require_positive_int(data.get("product_variant_id"), "product_variant_id"),
            quantity=require_positive_int(data.get("quantity"), "quantity"),
            price_cents=require_non_negative_int(data.get("price_cents"), "price_cents"),
            damaged_item_id=(
                require_positive_int(damaged_item_id, "damaged_item_id")
                if damaged_item_id is not None else None
            ),
        )


def _normalize_lines(items) -> list[InvoiceLine]:
    if not items:
        raise ValidationError("Invoice must have at least one item")
    lines = [item if isinstance(item, InvoiceLine) else InvoiceLine.from_dict(item) for item in items]
    for line in lines:
        if line.total_cents > MAX_TOTAL_CENTS:
            raise ValidationError(f"Line total for variant {line.product_variant_id} cannot exceed {MAX_TOTAL_CENTS}")
    if sum(line.total_cents for line in lines) > MAX_TOTAL_CENTS:
        raise ValidationError(f"Invoice subtotal cannot exceed {MAX_TOTAL_CENTS}")
    return lines


# =============================================================================
# CALCULATIONS
# =============================================================================

def calculate_discount(subtotal_cents: int, discount_type: str | None, discount_value: int | None) -> int:
    """
    Return the final total after discount, floored at zero.

    FIXED subtracts discount_value cents. PERCENTAGE treats discount_value as
    basis points (1000 = 10%) and rounds the discount to the nearest cent, half-up.
    """
    if not discount_type or not discount_value:
        return subtotal_cents

    if discount_type == DISCOUNT_FIXED:
        return max(0, subtotal_cents - discount_value)

    discount_cents = (subtotal_cents * discount_value + 5_000) // 10_000
    return max(0, subtotal_cents - discount_cents)


def apply_invoice_payment(invoice: Invoice, amount_cents: int, *, note: str | None = None) -> Payment:
    """
    Record a Payment row and move the invoice's bookkeeping fields.

    Shared by direct invoice payments and credit-funded payments. Caller has
    already checked amount <= remaining and holds the invoice lock.
    """
    payment = Payment(invoice_id=invoice.id, amount_cents=amount_cents, note=note, payment_date=utcnow())
    db.session.add(payment)

    invoice.paid_amount_cents += amount_cents
    invoice.remaining_balance_cents = invoice.final_total_cents - invoice.paid_amount_cents
    invoice.status = (
        INVOICE_STATUS_PAID if invoice.remaining_balance_cents == 0 else INVOICE_STATUS_PARTIAL
    )

    db.session.flush()
    return payment


def _lock_invoice(invoice_id: int) -> Invoice:
    invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_id} not found")
    return invoice


def _claim_damaged_item(line: InvoiceLine) -> DamagedItem:
    damaged = lock_for_update(db.session.query(DamagedItem).filter_by(id=line.damaged_item_id)).first()
    if damaged is None:
        raise NotFoundError(f"Damaged item {line.damaged_item_id} not found")
    if damaged.status != DAMAGED_STATUS_AVAILABLE:
        raise InvalidStateError(f"Damaged item {damaged.id} is not available for sale (status: {damaged.status})")
    if damaged.product_variant_id != line.product_variant_id:
        raise ValidationError(
            f"Damaged item {damaged.id} belongs to variant {damaged.product_variant_id}, "
            f"not {line.product_variant_id}"
        )
    if line.quantity > damaged.quantity:
        raise ValidationError(
            f"Cannot sell {line.quantity} units of damaged item {damaged.id}; only {damaged.quantity} available"
        )

    # Partial sales shrink the lot; it is SOLD once nothing is left
    damaged.quantity -= line.quantity
    if damaged.quantity == 0:
        damaged.status = DAMAGED_STATUS_SOLD
        damaged.sold_at = utcnow()
    return damaged


# =============================================================================
# INVOICE CREATION
# =============================================================================

def create_invoice(
    *,
    customer_id: int,
    payment_type: str,
    items,
    warehouse_id: int,
    discount_type: str | None = None,
    discount_value: int | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> Invoice:
    """
    Create an invoice with its items, stock decrements and (CREDIT) balance change.

    Args:
        customer_id: Customer being invoiced
        payment_type: CASH or CREDIT
        items: InvoiceLine objects or dicts with product_variant_id, quantity,
            price_cents and optional damaged_item_id
        warehouse_id: Warehouse the goods leave from
        discount_type: FIXED (cents) or PERCENTAGE (basis points), optional
        discount_value: Discount amount in the unit of discount_type

    Raises:
        ValidationError, NotFoundError, InvalidStateError, InsufficientStockError
    """
    customer_id = require_positive_int(customer_id, "customer_id")
    warehouse_id = require_positive_int(warehouse_id, "warehouse_id")
    payment_type = require_choice(payment_type, "payment type", VALID_PAYMENT_TYPES)
    if discount_type is not None:
        discount_type = require_choice(discount_type, "discount type", VALID_DISCOUNT_TYPES)
        discount_value = require_non_negative_int(discount_value, "discount_value")
    elif discount_value is not None:
        raise ValidationError("discount_type is required when discount_value is given")
    lines = _normalize_lines(items)

    def _op():
        customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
        if customer is None:
            raise NotFoundError(f"Customer {customer_id} not found")
        if db.session.get(Warehouse, warehouse_id) is None:
            raise NotFoundError(f"Warehouse {warehouse_id} not found")
        for line in lines:
            if db.session.get(ProductVariant, line.product_variant_id) is None:
                raise NotFoundError(f"Product variant {line.product_variant_id} not found")

        for line in lines:
            if line.damaged_item_id is not None:
                _claim_damaged_item(line)

        subtotal = sum(line.total_cents for line in lines)
        final_total = calculate_discount(subtotal, discount_type, discount_value)

        if payment_type == PAYMENT_TYPE_CASH:
            status, paid, remaining = INVOICE_STATUS_PAID, final_total, 0
        else:
            status, paid, remaining = INVOICE_STATUS_UNPAID, 0, final_total

        invoice = Invoice(
            invoice_number=next_document_number(document_type=INVOICE_DOCUMENT, prefix="INV"),
            customer_id=customer_id,
            warehouse_id=warehouse_id,
            user_id=user_id,
            payment_type=payment_type,
            status=status,
            discount_type=discount_type,
            discount_value=discount_value,
            subtotal_cents=subtotal,
            final_total_cents=final_total,
            paid_amount_cents=paid,
            remaining_balance_cents=remaining,
            notes=notes,
            created_at=utcnow(),
        )
        db.session.add(invoice)
        db.session.flush()

        for line in lines:
            db.session.add(InvoiceItem(
                invoice_id=invoice.id,
                product_variant_id=line.product_variant_id,
                damaged_item_id=line.damaged_item_id,
                quantity=line.quantity,
                price_cents=line.price_cents,
                total_cents=line.total_cents,
            ))

        if payment_type == PAYMENT_TYPE_CREDIT:
            if customer.account_balance_cents + final_total > MAX_BALANCE_CENTS:
                raise ValidationError(f"Customer balance cannot exceed {MAX_BALANCE_CENTS}")
            customer.account_balance_cents += final_total

        for line in lines:
            if line.damaged_item_id is not None:
                continue
            _adjust_stock_inner(
                warehouse_id=warehouse_id,
                subject=StockSubject.variant(line.product_variant_id),
                quantity=line.quantity,
                movement_type=MOVEMENT_OUT,
                user_id=user_id,
                note=f"Invoice: {invoice.invoice_number}",
            )

        db.session.commit()
        return invoice

    invoice = run_atomic(_op)

    record_history(
        user_id=user_id,
        action="CREATE_INVOICE",
        entity="Invoice",
        entity_id=invoice.id,
        details={
            "invoice_number": invoice.invoice_number,
            "customer_id": customer_id,
            "payment_type": payment_type,
            "total_cents": invoice.final_total_cents,
        },
    )
    return invoice


# =============================================================================
# DIRECT INVOICE PAYMENTS
# =============================================================================

def add_payment(
    *,
    invoice_id: int,
    amount_cents: int,
    note: str | None = None,
    user_id: int | None = None,
) -> Payment:
    """
    Apply a payment directly to one CREDIT invoice.

    Only invoice bookkeeping moves; the customer's account balance is left to
    customer-level payment registration.

    Raises:
        InvalidStateError: invoice is CASH (already settled)
        OverpaymentError: amount exceeds remaining balance
    """
    amount_cents = require_positive_int(amount_cents, "amount_cents")

    def _op():
        invoice = _lock_invoice(invoice_id)

        if invoice.payment_type != PAYMENT_TYPE_CREDIT:
            raise InvalidStateError("Cannot add payment to cash invoice")

        if amount_cents > invoice.remaining_balance_cents:
            raise OverpaymentError(
                f"Payment amount ({amount_cents}) exceeds remaining balance ({invoice.remaining_balance_cents})"
            )

        payment = apply_invoice_payment(invoice, amount_cents, note=note)

        db.session.commit()
        return payment

    payment = run_atomic(_op)

    record_history(
        user_id=user_id,
        action="ADD_PAYMENT",
        entity="Payment",
        entity_id=payment.id,
        details={"invoice_id": invoice_id, "amount_cents": amount_cents},
    )
    return payment


# =============================================================================
# QUERIES
# =============================================================================

def get_invoice(invoice_id: int) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_id} not found")
    return invoice


def list_invoices(
    *,
    customer_id: int | None = None,
    status: str | None = None,
    limit: int | None = None,
) -> list[Invoice]:
    query = db.session.query(Invoice)
    if customer_id is not None:
        query = query.filter(Invoice.customer_id == coerce_int(customer_id, "customer_id"))
    if status:
        query = query.filter(Invoice.status == status)
    query = query.order_by(Invoice.created_at.desc(), Invoice.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()
