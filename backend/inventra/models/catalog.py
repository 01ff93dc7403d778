from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Brand(db.Model):
    __tablename__ = "brands"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_brands_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    products = db.relationship("Product", back_populates="brand", lazy=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "product_count": len(self.products),
            "created_at": to_utc_z(self.created_at),
        }


class Category(db.Model):
    """Product category (e.g. T-Shirts, Hoodies)."""
    __tablename__ = "product_categories"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_product_categories_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    products = db.relationship("Product", back_populates="category", lazy=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "product_count": len(self.products),
            "created_at": to_utc_z(self.created_at),
        }


class Unit(db.Model):
    """Unit of measure for materials (meter / m, kilogram / kg)."""
    __tablename__ = "units"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_units_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    abbreviation = db.Column(db.String(16), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    materials = db.relationship("Material", back_populates="unit", lazy=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "abbreviation": self.abbreviation,
            "material_count": len(self.materials),
            "created_at": to_utc_z(self.created_at),
        }


class Warehouse(db.Model):
    """
    A physical stock location.

    TYPES:
    - PRODUCT: finished product variants (sold on invoices, restocked by returns)
    - MATERIAL: raw materials
    """
    __tablename__ = "warehouses"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_warehouses_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    type = db.Column(db.String(16), nullable=False, default="PRODUCT", index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Warehouse id={self.id} name={self.name!r} type={self.type}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "created_at": to_utc_z(self.created_at),
        }


class Material(db.Model):
    __tablename__ = "materials"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_materials_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    unit = db.relationship("Unit", back_populates="materials")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "unit_id": self.unit_id,
            "unit": self.unit.abbreviation if self.unit else None,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """Product master data; stock and sales are tracked per ProductVariant."""
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_products_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    brand = db.relationship("Brand", back_populates="products")
    category = db.relationship("Category", back_populates="products")
    variants = db.relationship(
        "ProductVariant",
        back_populates="product",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="ProductVariant.id",
    )

    def to_dict(self, include_variants: bool = False) -> dict:
        data = {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "brand_id": self.brand_id,
            "brand": self.brand.name if self.brand else None,
            "category_id": self.category_id,
            "category": self.category.name if self.category else None,
            "created_at": to_utc_z(self.created_at),
        }
        if include_variants:
            data["variants"] = [v.to_dict() for v in self.variants]
        return data


class ProductVariant(db.Model):
    """A sellable color/finish of a product. Unique per (product, color)."""
    __tablename__ = "product_variants"
    __table_args__ = (
        db.UniqueConstraint("product_id", "color", name="uq_product_variants_product_color"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    color = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product", back_populates="variants")

    def __repr__(self) -> str:
        return f"<ProductVariant id={self.id} product_id={self.product_id} color={self.color!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "color": self.color,
            "created_at": to_utc_z(self.created_at),
        }
