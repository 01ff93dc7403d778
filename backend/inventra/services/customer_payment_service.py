# Overview: Service-layer operations for customer-level payments and their oldest-first allocation.

"""
Customer Payment Allocation

WHY: Customers pay against their account, not against one invoice. A lump
sum reduces the account balance once, then settles open CREDIT invoices
oldest first so aging reports stay truthful.

FLOW (register):
1. Reject amount <= 0 and amounts that would push the balance below zero.
2. Insert CustomerPayment; balance -= amount.
3. Walk UNPAID/PARTIAL invoices by (created_at, id) and allocate
   min(remaining amount, invoice remaining) to each.
4. Each allocation writes a Payment row linked to the CustomerPayment.

REVERSAL (delete):
- Every Payment linked to the CustomerPayment is removed and its invoice's
  paid/remaining/status recomputed; the balance is restored by the full amount.
- Restricted to the REVERSE_PAYMENT capability at the route layer.

Allocations never create credit: leftover after all invoices are settled is
already reflected in the balance decrement.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from ..errors import NotFoundError, OverpaymentError
from ..extensions import db
from ..models import Customer, CustomerPayment, Invoice, Payment
from ..time_utils import utcnow
from ..validation import require_positive_int
from .concurrency import lock_for_update, run_atomic
from .history_service import record_history
from .invoice_service import (
    INVOICE_STATUS_PAID,
    INVOICE_STATUS_PARTIAL,
    INVOICE_STATUS_UNPAID,
    OPEN_INVOICE_STATUSES,
    SETTLEMENT_TOLERANCE_CENTS,
)


@dataclass(frozen=True)
class Allocation:
    invoice: Invoice
    amount_cents: int

    def to_dict(self) -> dict:
        return {
            "invoice_id": self.invoice.id,
            "invoice_number": self.invoice.invoice_number,
            "amount_cents": self.amount_cents,
        }


def allocate_oldest_first(invoices: Iterable[Invoice], amount_cents: int) -> list[Allocation]:
    """
    Split amount_cents across invoices in the order given.

    Pure function: no rows are touched. Invoices with nothing remaining are
    skipped; allocation stops once the amount is exhausted.
    """
    remaining = amount_cents
    allocations: list[Allocation] = []
    for invoice in invoices:
        if remaining <= 0:
            break
        applied = min(remaining, invoice.remaining_balance_cents)
        if applied <= 0:
            continue
        allocations.append(Allocation(invoice=invoice, amount_cents=applied))
        remaining -= applied
    return allocations


def open_invoices_oldest_first(customer_id: int, *, lock: bool = False) -> list[Invoice]:
    query = (
        db.session.query(Invoice)
        .filter(Invoice.customer_id == customer_id)
        .filter(Invoice.status.in_(OPEN_INVOICE_STATUSES))
        .order_by(Invoice.created_at.asc(), Invoice.id.asc())
    )
    if lock:
        query = lock_for_update(query)
    return query.all()


def settle_invoice(invoice: Invoice, amount_cents: int) -> None:
    """Move amount_cents from remaining to paid, PAID within settlement tolerance."""
    invoice.paid_amount_cents += amount_cents
    invoice.remaining_balance_cents -= amount_cents
    invoice.status = (
        INVOICE_STATUS_PAID
        if invoice.remaining_balance_cents <= SETTLEMENT_TOLERANCE_CENTS
        else INVOICE_STATUS_PARTIAL
    )


def _unsettle_invoice(invoice: Invoice, amount_cents: int) -> None:
    invoice.paid_amount_cents -= amount_cents
    invoice.remaining_balance_cents += amount_cents
    if invoice.paid_amount_cents <= 0:
        invoice.status = INVOICE_STATUS_UNPAID
    elif invoice.remaining_balance_cents <= SETTLEMENT_TOLERANCE_CENTS:
        invoice.status = INVOICE_STATUS_PAID
    else:
        invoice.status = INVOICE_STATUS_PARTIAL


def _lock_customer(customer_id: int) -> Customer:
    customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
    if customer is None:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


def register_customer_payment(
    *,
    customer_id: int,
    amount_cents: int,
    note: str | None = None,
    user_id: int | None = None,
) -> tuple[CustomerPayment, list[Allocation]]:
    """
    Record a lump-sum payment and auto-settle open invoices oldest first.

    Returns:
        (CustomerPayment, allocations applied)

    Raises:
        ValidationError: amount not a positive integer
        NotFoundError: customer absent
        OverpaymentError: balance would go below zero
    """
    amount_cents = require_positive_int(amount_cents, "amount_cents")

    def _op():
        customer = _lock_customer(customer_id)

        previous_balance = customer.account_balance_cents
        if previous_balance - amount_cents < 0:
            raise OverpaymentError(
                f"Payment amount ({amount_cents}) exceeds customer balance ({previous_balance})"
            )

        customer_payment = CustomerPayment(
            customer_id=customer_id,
            amount_cents=amount_cents,
            note=note,
            user_id=user_id,
            payment_date=utcnow(),
        )
        db.session.add(customer_payment)
        db.session.flush()

        customer.account_balance_cents = previous_balance - amount_cents

        allocations = allocate_oldest_first(open_invoices_oldest_first(customer_id, lock=True), amount_cents)
        for allocation in allocations:
            db.session.add(Payment(
                invoice_id=allocation.invoice.id,
                customer_payment_id=customer_payment.id,
                amount_cents=allocation.amount_cents,
                note=f"Auto-settled via customer payment #{customer_payment.id}",
                payment_date=customer_payment.payment_date,
            ))
            settle_invoice(allocation.invoice, allocation.amount_cents)

        db.session.commit()
        return customer_payment, allocations, previous_balance

    customer_payment, allocations, previous_balance = run_atomic(_op)

    record_history(
        user_id=user_id,
        action="REGISTER_PAYMENT",
        entity="CustomerPayment",
        entity_id=customer_payment.id,
        details={
            "customer_id": customer_id,
            "amount_cents": amount_cents,
            "previous_balance_cents": previous_balance,
            "new_balance_cents": previous_balance - amount_cents,
            "allocations": [a.to_dict() for a in allocations],
        },
    )
    return customer_payment, allocations


def delete_customer_payment(*, customer_payment_id: int, user_id: int | None = None) -> dict:
    """
    Reverse a customer payment and every invoice allocation it produced.

    Returns a summary dict with the restored amount and reversed allocations.
    """

    def _op():
        customer_payment = lock_for_update(
            db.session.query(CustomerPayment).filter_by(id=customer_payment_id)
        ).first()
        if customer_payment is None:
            raise NotFoundError(f"Customer payment {customer_payment_id} not found")

        customer = _lock_customer(customer_payment.customer_id)

        linked = (
            db.session.query(Payment)
            .filter(Payment.customer_payment_id == customer_payment.id)
            .order_by(Payment.id.asc())
            .all()
        )
        reversed_allocations = []
        for payment in linked:
            invoice = lock_for_update(db.session.query(Invoice).filter_by(id=payment.invoice_id)).first()
            _unsettle_invoice(invoice, payment.amount_cents)
            reversed_allocations.append({"invoice_id": invoice.id, "amount_cents": payment.amount_cents})
            db.session.delete(payment)
        db.session.flush()

        customer.account_balance_cents += customer_payment.amount_cents
        summary = {
            "customer_payment_id": customer_payment.id,
            "customer_id": customer.id,
            "restored_cents": customer_payment.amount_cents,
            "new_balance_cents": customer.account_balance_cents,
            "reversed_allocations": reversed_allocations,
        }

        db.session.delete(customer_payment)
        db.session.commit()
        return summary

    summary = run_atomic(_op)

    record_history(
        user_id=user_id,
        action="DELETE_PAYMENT",
        entity="CustomerPayment",
        entity_id=customer_payment_id,
        details=summary,
    )
    return summary


def list_customer_payments(customer_id: int) -> list[CustomerPayment]:
    if db.session.get(Customer, customer_id) is None:
        raise NotFoundError(f"Customer {customer_id} not found")
    return (
        db.session.query(CustomerPayment)
        .filter_by(customer_id=customer_id)
        .order_by(CustomerPayment.payment_date.desc(), CustomerPayment.id.desc())
        .all()
    )
