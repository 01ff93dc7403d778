from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Customer(db.Model):
    """
    Customer master data and accounts-receivable balance.

    account_balance_cents:
    - positive: customer owes the business
    - negative: business owes the customer (available credit)

    The balance is the source of truth for aggregate debt; invoice-level
    paid/remaining fields are advisory bookkeeping.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.Text, nullable=True)

    account_balance_cents = db.Column(db.BigInteger, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Customer id={self.id} name={self.name!r} balance={self.account_balance_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "account_balance_cents": self.account_balance_cents,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class CustomerPayment(db.Model):
    """
    Lump-sum money received against a customer's account.

    The amount is auto-settled across open invoices oldest-first; the resulting
    invoice Payment rows point back here via customer_payment_id.
    """
    __tablename__ = "customer_payments"
    __table_args__ = (
        db.Index("ix_customer_payments_customer_date", "customer_id", "payment_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    amount_cents = db.Column(db.BigInteger, nullable=False)
    note = db.Column(db.String(255), nullable=True)
    user_id = db.Column(db.Integer, nullable=True)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    customer = db.relationship("Customer", backref=db.backref("customer_payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "amount_cents": self.amount_cents,
            "note": self.note,
            "user_id": self.user_id,
            "payment_date": to_utc_z(self.payment_date),
        }


class CreditTransaction(db.Model):
    """
    Append-only journal of credit-balance movements.

    TYPES:
    - CASH_REFUND: credit paid out to the customer in cash
    - INVOICE_PAYMENT: credit consumed to pay an invoice (reference_id = invoice id)

    amount_cents is the signed change applied to account_balance_cents.
    """
    __tablename__ = "credit_transactions"
    __table_args__ = (
        db.Index("ix_credit_transactions_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    type = db.Column(db.String(32), nullable=False, index=True)
    amount_cents = db.Column(db.BigInteger, nullable=False)
    description = db.Column(db.String(255), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True, index=True)
    user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    customer = db.relationship("Customer", backref=db.backref("credit_transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "reference_id": self.reference_id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
