from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Stock(db.Model):
    """
    Quantity of one material OR one product variant in one warehouse.

    INVARIANTS (enforced by the database as well as the service layer):
    - quantity >= 0
    - exactly one of material_id / product_variant_id is set
    - unique per (warehouse, material) and per (warehouse, variant)

    The service API never exposes the two nullable keys directly; callers pass a
    StockSubject (see stock_service).
    """
    __tablename__ = "stocks"
    __table_args__ = (
        db.UniqueConstraint("warehouse_id", "material_id", name="uq_stocks_warehouse_material"),
        db.UniqueConstraint("warehouse_id", "product_variant_id", name="uq_stocks_warehouse_variant"),
        db.CheckConstraint("quantity >= 0", name="ck_stocks_quantity_non_negative"),
        db.CheckConstraint(
            "(material_id IS NULL AND product_variant_id IS NOT NULL) OR "
            "(material_id IS NOT NULL AND product_variant_id IS NULL)",
            name="ck_stocks_single_subject",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    material_id = db.Column(db.Integer, db.ForeignKey("materials.id"), nullable=True, index=True)
    product_variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True, index=True)

    quantity = db.Column(db.BigInteger, nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    warehouse = db.relationship("Warehouse", backref=db.backref("stocks", lazy=True))
    material = db.relationship("Material")
    product_variant = db.relationship("ProductVariant")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        subject = f"material={self.material_id}" if self.material_id else f"variant={self.product_variant_id}"
        return f"<Stock id={self.id} warehouse={self.warehouse_id} {subject} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "warehouse_id": self.warehouse_id,
            "material_id": self.material_id,
            "product_variant_id": self.product_variant_id,
            "quantity": self.quantity,
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class StockMovement(db.Model):
    """
    Append-only audit record of every stock quantity change.

    TYPES:
    - IN: warehouse_to_id set
    - OUT: warehouse_from_id set
    - TRANSFER: both set

    quantity is always positive; direction comes from the type.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_variant_created", "product_variant_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    warehouse_from_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=True, index=True)
    warehouse_to_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=True, index=True)
    material_id = db.Column(db.Integer, db.ForeignKey("materials.id"), nullable=True, index=True)
    product_variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True, index=True)

    # Actor id from the upstream auth layer (no users table here)
    user_id = db.Column(db.Integer, nullable=True)
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "quantity": self.quantity,
            "warehouse_from_id": self.warehouse_from_id,
            "warehouse_to_id": self.warehouse_to_id,
            "material_id": self.material_id,
            "product_variant_id": self.product_variant_id,
            "user_id": self.user_id,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
