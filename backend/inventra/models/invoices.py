from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Invoice(db.Model):
    """
    Sales invoice.

    PAYMENT TYPES:
    - CASH: settled at creation (status PAID, remaining 0), no balance change
    - CREDIT: added to the customer's account balance, settled later

    STATUS: UNPAID -> PARTIAL -> PAID (CASH invoices enter at PAID)

    INVARIANT: paid_amount_cents + remaining_balance_cents == final_total_cents
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("invoice_number", name="uq_invoices_number"),
        db.Index("ix_invoices_customer_status_created", "customer_id", "status", "created_at"),
        db.CheckConstraint("final_total_cents >= 0", name="ck_invoices_final_total_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(64), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, nullable=True)

    payment_type = db.Column(db.String(16), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="UNPAID", index=True)

    # FIXED: discount_value is cents; PERCENTAGE: discount_value is basis points
    discount_type = db.Column(db.String(16), nullable=True)
    discount_value = db.Column(db.Integer, nullable=True)

    subtotal_cents = db.Column(db.BigInteger, nullable=False)
    final_total_cents = db.Column(db.BigInteger, nullable=False)
    paid_amount_cents = db.Column(db.BigInteger, nullable=False, default=0)
    remaining_balance_cents = db.Column(db.BigInteger, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("invoices", lazy=True))
    warehouse = db.relationship("Warehouse")
    items = db.relationship("InvoiceItem", back_populates="invoice", lazy=True, order_by="InvoiceItem.id")
    payments = db.relationship("Payment", back_populates="invoice", lazy=True, order_by="Payment.id")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} number={self.invoice_number!r} status={self.status}>"

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "warehouse_id": self.warehouse_id,
            "user_id": self.user_id,
            "payment_type": self.payment_type,
            "status": self.status,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "subtotal_cents": self.subtotal_cents,
            "final_total_cents": self.final_total_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "remaining_balance_cents": self.remaining_balance_cents,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["items"] = [item.to_dict() for item in self.items]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class InvoiceItem(db.Model):
    """
    Invoice line. Immutable after creation.

    damaged_item_id is set when the line resells a DamagedItem; such lines do
    not touch regular stock.
    """
    __tablename__ = "invoice_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_invoice_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    product_variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)
    damaged_item_id = db.Column(db.Integer, db.ForeignKey("damaged_items.id"), nullable=True, unique=True)

    quantity = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.BigInteger, nullable=False)
    total_cents = db.Column(db.BigInteger, nullable=False)

    invoice = db.relationship("Invoice", back_populates="items")
    product_variant = db.relationship("ProductVariant")
    damaged_item = db.relationship("DamagedItem", foreign_keys=[damaged_item_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "product_variant_id": self.product_variant_id,
            "damaged_item_id": self.damaged_item_id,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "total_cents": self.total_cents,
        }


class Payment(db.Model):
    """
    Money applied to one invoice.

    Append-only. The only deletion path is reversal of the CustomerPayment
    that produced it (customer_payment_id).
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    customer_payment_id = db.Column(db.Integer, db.ForeignKey("customer_payments.id"), nullable=True, index=True)
    amount_cents = db.Column(db.BigInteger, nullable=False)
    note = db.Column(db.String(255), nullable=True)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    invoice = db.relationship("Invoice", back_populates="payments")
    customer_payment = db.relationship("CustomerPayment", backref=db.backref("allocations", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "customer_payment_id": self.customer_payment_id,
            "amount_cents": self.amount_cents,
            "note": self.note,
            "payment_date": to_utc_z(self.payment_date),
        }
