# Overview: Service-layer operations for customers and their account view.

from __future__ import annotations

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import CreditTransaction, Customer, CustomerPayment, Invoice, Return
from .concurrency import run_atomic
from .history_service import record_history


CUSTOMER_FIELDS = ("name", "email", "phone", "address")


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


def create_customer(
    *,
    name: str,
    email: str | None = None,
    phone: str | None = None,
    address: str | None = None,
    user_id: int | None = None,
) -> Customer:
    """Register a customer. New accounts always start at a zero balance."""
    if not (name or "").strip():
        raise ValidationError("name is required")

    def _op():
        customer = Customer(
            name=name.strip(),
            email=email,
            phone=phone,
            address=address,
            account_balance_cents=0,
        )
        db.session.add(customer)
        db.session.commit()
        return customer

    customer = run_atomic(_op)
    record_history(
        user_id=user_id,
        action="CREATE_CUSTOMER",
        entity="Customer",
        entity_id=customer.id,
        details={"name": customer.name},
    )
    return customer


def update_customer(customer_id: int, *, user_id: int | None = None, **fields) -> Customer:
    """
    Update contact fields only.

    account_balance_cents is deliberately not writable here; it moves only
    through invoices, payments, credit entries and returns.
    """
    unknown = set(fields) - set(CUSTOMER_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")
    if "name" in fields and not (fields["name"] or "").strip():
        raise ValidationError("name cannot be blank")

    def _op():
        customer = get_customer(customer_id)
        for key, value in fields.items():
            setattr(customer, key, value)
        db.session.commit()
        return customer

    customer = run_atomic(_op)
    record_history(
        user_id=user_id,
        action="UPDATE_CUSTOMER",
        entity="Customer",
        entity_id=customer.id,
        details={"fields": sorted(fields)},
    )
    return customer


def list_customers() -> list[Customer]:
    return db.session.query(Customer).order_by(Customer.created_at.desc(), Customer.id.desc()).all()


def get_customer_account(customer_id: int) -> dict:
    """
    Full account view: balance, invoices, lump-sum payments, credit journal and returns.

    Read-only and non-transactional; may observe a stale snapshot.
    """
    from .invoice_service import OPEN_INVOICE_STATUSES

    customer = get_customer(customer_id)

    invoices = (
        db.session.query(Invoice)
        .filter_by(customer_id=customer_id)
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .all()
    )
    payments = (
        db.session.query(CustomerPayment)
        .filter_by(customer_id=customer_id)
        .order_by(CustomerPayment.payment_date.desc(), CustomerPayment.id.desc())
        .all()
    )
    credit = (
        db.session.query(CreditTransaction)
        .filter_by(customer_id=customer_id)
        .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
        .all()
    )
    returns = (
        db.session.query(Return)
        .filter_by(customer_id=customer_id)
        .order_by(Return.created_at.desc(), Return.id.desc())
        .all()
    )

    open_debt = sum(
        inv.remaining_balance_cents for inv in invoices if inv.status in OPEN_INVOICE_STATUSES
    )

    return {
        "customer": customer.to_dict(),
        "available_credit_cents": max(0, -customer.account_balance_cents),
        "open_invoice_debt_cents": open_debt,
        "invoices": [inv.to_dict() for inv in invoices],
        "customer_payments": [p.to_dict() for p in payments],
        "credit_transactions": [c.to_dict() for c in credit],
        "returns": [r.to_dict() for r in returns],
    }
