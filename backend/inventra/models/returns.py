from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Return(db.Model):
    """
    Merchandise return booked against one invoice.

    TYPES:
    - NON_DAMAGED: units go back into regular stock (restock_warehouse_id)
    - DAMAGED: units become DamagedItem rows, regular stock untouched

    INVARIANT: per (invoice, variant), cumulative returned quantity never
    exceeds the quantity sold on the invoice.
    """
    __tablename__ = "returns"
    __table_args__ = (
        db.UniqueConstraint("document_number", name="uq_returns_document_number"),
        db.Index("ix_returns_invoice_created", "invoice_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_number = db.Column(db.String(64), nullable=False)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    restock_warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=True)
    user_id = db.Column(db.Integer, nullable=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    notes = db.Column(db.Text, nullable=True)
    total_amount_cents = db.Column(db.BigInteger, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    invoice = db.relationship("Invoice", backref=db.backref("returns", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("returns", lazy=True))
    items = db.relationship("ReturnItem", back_populates="return_doc", lazy=True, order_by="ReturnItem.id")

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "document_number": self.document_number,
            "invoice_id": self.invoice_id,
            "customer_id": self.customer_id,
            "restock_warehouse_id": self.restock_warehouse_id,
            "user_id": self.user_id,
            "type": self.type,
            "notes": self.notes,
            "total_amount_cents": self.total_amount_cents,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class ReturnItem(db.Model):
    __tablename__ = "return_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_return_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=False, index=True)
    product_variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.BigInteger, nullable=False)
    total_cents = db.Column(db.BigInteger, nullable=False)

    return_doc = db.relationship("Return", back_populates="items")
    damaged_item = db.relationship("DamagedItem", back_populates="return_item", uselist=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "product_variant_id": self.product_variant_id,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "total_cents": self.total_cents,
            "damaged_item_id": self.damaged_item.id if self.damaged_item else None,
        }


class DamagedItem(db.Model):
    """
    Damaged units pulled out of sellable stock by a DAMAGED return.

    STATUS: AVAILABLE -> SOLD (every unit resold on invoices) | DISCARDED
    quantity counts the units still unsold; partial resales decrement it.
    resale_price_cents is editable only while AVAILABLE.
    """
    __tablename__ = "damaged_items"
    __table_args__ = (
        db.UniqueConstraint("return_item_id", name="uq_damaged_items_return_item"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    return_item_id = db.Column(db.Integer, db.ForeignKey("return_items.id"), nullable=False)
    product_variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="AVAILABLE", index=True)
    resale_price_cents = db.Column(db.BigInteger, nullable=False, default=0)
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    sold_at = db.Column(db.DateTime(timezone=True), nullable=True)
    discarded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    return_item = db.relationship("ReturnItem", back_populates="damaged_item")
    product_variant = db.relationship("ProductVariant")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_item_id": self.return_item_id,
            "product_variant_id": self.product_variant_id,
            "quantity": self.quantity,
            "status": self.status,
            "resale_price_cents": self.resale_price_cents,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
            "sold_at": to_utc_z(self.sold_at) if self.sold_at else None,
            "discarded_at": to_utc_z(self.discarded_at) if self.discarded_at else None,
            "version_id": self.version_id,
        }
