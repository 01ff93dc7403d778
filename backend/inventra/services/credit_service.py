# Overview: Service-layer operations for customer credit (negative account balances).

"""
Credit Journal

A negative account balance is credit the business owes the customer
(usually from returns on CREDIT invoices). Credit leaves the account two ways:

- CASH_REFUND: cash handed back; balance moves toward zero.
- INVOICE_PAYMENT: credit applied to an open invoice; a Payment is recorded
  on the invoice in the same transaction.

Both write a CreditTransaction and a history row atomically. Neither may
drive the balance above zero.
"""

from __future__ import annotations

from ..errors import InsufficientCreditError, NotFoundError, OverpaymentError
from ..extensions import db
from ..models import CreditTransaction, Customer, Invoice
from ..validation import require_positive_int
from .concurrency import lock_for_update, run_atomic
from .history_service import add_history_entry
from .invoice_service import apply_invoice_payment


CREDIT_TYPE_CASH_REFUND = "CASH_REFUND"
CREDIT_TYPE_INVOICE_PAYMENT = "INVOICE_PAYMENT"


def available_credit_cents(customer: Customer) -> int:
    return max(0, -customer.account_balance_cents)


def _check_available_credit(customer: Customer, amount_cents: int) -> None:
    if customer.account_balance_cents >= 0:
        raise InsufficientCreditError("Customer has no credit balance")
    if customer.account_balance_cents + amount_cents > 0:
        raise InsufficientCreditError(
            f"Amount ({amount_cents}) exceeds available credit ({available_credit_cents(customer)})"
        )


def _lock_customer(customer_id: int) -> Customer:
    customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
    if customer is None:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


def process_cash_refund(
    *,
    customer_id: int,
    amount_cents: int,
    notes: str | None = None,
    user_id: int | None = None,
) -> CreditTransaction:
    """Pay out part or all of a customer's credit in cash."""
    customer_id = require_positive_int(customer_id, "customer_id")
    amount_cents = require_positive_int(amount_cents, "amount_cents")

    def _op():
        customer = _lock_customer(customer_id)
        _check_available_credit(customer, amount_cents)

        previous_balance = customer.account_balance_cents
        transaction = CreditTransaction(
            customer_id=customer_id,
            type=CREDIT_TYPE_CASH_REFUND,
            amount_cents=amount_cents,
            description=notes or "Cash refund to customer",
            user_id=user_id,
        )
        db.session.add(transaction)
        customer.account_balance_cents = previous_balance + amount_cents
        db.session.flush()

        add_history_entry(
            user_id=user_id,
            action="CASH_REFUND",
            entity="CreditTransaction",
            entity_id=transaction.id,
            details={
                "customer_id": customer_id,
                "amount_cents": amount_cents,
                "previous_balance_cents": previous_balance,
                "new_balance_cents": customer.account_balance_cents,
            },
        )

        db.session.commit()
        return transaction

    return run_atomic(_op)


def pay_invoice_with_credit(
    *,
    invoice_id: int,
    amount_cents: int,
    user_id: int | None = None,
) -> CreditTransaction:
    """
    Apply customer credit to one of their open invoices.

    Raises:
        NotFoundError: invoice absent
        InsufficientCreditError: no credit, or amount exceeds it
        OverpaymentError: amount exceeds invoice remaining balance
    """
    invoice_id = require_positive_int(invoice_id, "invoice_id")
    amount_cents = require_positive_int(amount_cents, "amount_cents")

    def _op():
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")

        customer = _lock_customer(invoice.customer_id)
        _check_available_credit(customer, amount_cents)

        if amount_cents > invoice.remaining_balance_cents:
            raise OverpaymentError(
                f"Amount ({amount_cents}) exceeds invoice remaining balance ({invoice.remaining_balance_cents})"
            )

        transaction = CreditTransaction(
            customer_id=customer.id,
            type=CREDIT_TYPE_INVOICE_PAYMENT,
            amount_cents=amount_cents,
            description=f"Payment for Invoice #{invoice.invoice_number}",
            reference_id=invoice.id,
            user_id=user_id,
        )
        db.session.add(transaction)
        customer.account_balance_cents += amount_cents

        apply_invoice_payment(invoice, amount_cents, note="Paid using customer credit")

        add_history_entry(
            user_id=user_id,
            action="PAY_WITH_CREDIT",
            entity="Invoice",
            entity_id=invoice.id,
            details={
                "credit_transaction_id": transaction.id,
                "amount_cents": amount_cents,
                "invoice_status": invoice.status,
            },
        )

        db.session.commit()
        return transaction

    return run_atomic(_op)


def get_credit_history(customer_id: int) -> dict:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError(f"Customer {customer_id} not found")

    transactions = (
        db.session.query(CreditTransaction)
        .filter_by(customer_id=customer_id)
        .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
        .all()
    )
    return {
        "customer_id": customer_id,
        "account_balance_cents": customer.account_balance_cents,
        "available_credit_cents": available_credit_cents(customer),
        "transactions": [t.to_dict() for t in transactions],
    }
