# Overview: Service-layer operations for brands, categories, units, warehouses, materials and products.

"""
Catalog maintenance.

Every create/update checks name uniqueness up front and reports it as a
ConflictError; the unique constraints on the tables stay as the last guard.

DELETE GUARDS:
- Brand / Category: no product may reference it
- Unit: no material may reference it
- Warehouse: no stock rows, movements or invoices
- Material: no stock rows or movements
- Product: none of its variants may appear in stock, movements, invoices,
  returns or damaged items; variants are deleted with the product
"""

from __future__ import annotations

from sqlalchemy import or_

from ..errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..models import (
    Brand,
    Category,
    DamagedItem,
    Invoice,
    InvoiceItem,
    Material,
    Product,
    ProductVariant,
    ReturnItem,
    Stock,
    StockMovement,
    Unit,
    Warehouse,
)
from ..validation import require_choice, require_positive_int
from .concurrency import run_atomic
from .history_service import record_history
from .stock_service import WAREHOUSE_TYPE_MATERIAL, WAREHOUSE_TYPE_PRODUCT


VALID_WAREHOUSE_TYPES = [WAREHOUSE_TYPE_PRODUCT, WAREHOUSE_TYPE_MATERIAL]


def _require_name(value: str | None, field: str = "name") -> str:
    name = (value or "").strip()
    if not name:
        raise ValidationError(f"{field} is required")
    return name


def _get_or_404(model, object_id, label: str):
    object_id = require_positive_int(object_id, f"{label.lower()}_id")
    obj = db.session.get(model, object_id)
    if obj is None:
        raise NotFoundError(f"{label} {object_id} not found")
    return obj


def _name_taken(model, column, value, *, exclude_id: int | None = None) -> bool:
    query = db.session.query(model).filter(column == value)
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    return db.session.query(query.exists()).scalar()


def _count(model, *criteria) -> int:
    return db.session.query(model).filter(*criteria).count()


# =============================================================================
# BRANDS & CATEGORIES
# =============================================================================

def create_brand(*, name: str, user_id: int | None = None) -> Brand:
    name = _require_name(name)

    def _op():
        if _name_taken(Brand, Brand.name, name):
            raise ConflictError("A brand with this name already exists")
        brand = Brand(name=name)
        db.session.add(brand)
        db.session.commit()
        return brand

    brand = run_atomic(_op)
    record_history(user_id=user_id, action="CREATE_BRAND", entity="Brand", entity_id=brand.id, details={"name": name})
    return brand


def update_brand(brand_id: int, *, name: str, user_id: int | None = None) -> Brand:
    name = _require_name(name)

    def _op():
        brand = _get_or_404(Brand, brand_id, "Brand")
        if _name_taken(Brand, Brand.name, name, exclude_id=brand.id):
            raise ConflictError("A brand with this name already exists")
        previous = brand.name
        brand.name = name
        db.session.commit()
        return brand, previous

    brand, previous = run_atomic(_op)
    record_history(
        user_id=user_id,
        action="UPDATE_BRAND",
        entity="Brand",
        entity_id=brand.id,
        details={"previous_name": previous, "name": name},
    )
    return brand


def delete_brand(brand_id: int, *, user_id: int | None = None) -> None:
    def _op():
        brand = _get_or_404(Brand, brand_id, "Brand")
        products = _count(Product, Product.brand_id == brand.id)
        if products:
            raise InvalidStateError(f"Cannot delete brand. {products} product(s) use this brand.")
        name = brand.name
        db.session.delete(brand)
        db.session.commit()
        return name

    name = run_atomic(_op)
    record_history(user_id=user_id, action="DELETE_BRAND", entity="Brand", entity_id=brand_id, details={"name": name})


def list_brands() -> list[Brand]:
    return db.session.query(Brand).order_by(Brand.name).all()


def create_category(*, name: str, user_id: int | None = None) -> Category:
    name = _require_name(name)

    def _op():
        if _name_taken(Category, Category.name, name):
            raise ConflictError("A category with this name already exists")
        category = Category(name=name)
        db.session.add(category)
        db.session.commit()
        return category

    category = run_atomic(_op)
    record_history(
        user_id=user_id, action="CREATE_CATEGORY", entity="Category", entity_id=category.id, details={"name": name},
    )
    return category


def update_category(category_id: int, *, name: str, user_id: int | None = None) -> Category:
    name = _require_name(name)

    def _op():
        category = _get_or_404(Category, category_id, "Category")
        if _name_taken(Category, Category.name, name, exclude_id=category.id):
            raise ConflictError("A category with this name already exists")
        previous = category.name
        category.name = name
        db.session.commit()
        return category, previous

    category, previous = run_atomic(_op)
    record_history(
        user_id=user_id,
        action="UPDATE_CATEGORY",
        entity="Category",
        entity_id=category.id,
        details={"previous_name": previous, "name": name},
    )
    return category


def delete_category(category_id: int, *, user_id: int | None = None) -> None:
    def _op():
        category = _get_or_404(Category, category_id, "Category")
        products = _count(Product, Product.category_id == category.id)
        if products:
            raise InvalidStateError(f"Cannot delete category. {products} product(s) are using this category.")
        name = category.name
        db.session.delete(category)
        db.session.commit()
        return name

    name = run_atomic(_op)
    record_history(
        user_id=user_id, action="DELETE_CATEGORY", entity="Category", entity_id=category_id, details={"name": name},
    )


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name).all()


# =============================================================================
# UNITS
# =============================================================================

def create_unit(*, name: str, abbreviation: str, user_id: int | None = None) -> Unit:
    name = _require_name(name)
    abbreviation = _require_name(abbreviation, "abbreviation")

    def _op():
        if _name_taken(Unit, Unit.name, name):
            raise ConflictError("A unit with this name already exists")
        unit = Unit(name=name, abbreviation=abbreviation)
        db.session.add(unit)
        db.session.commit()
        return unit

    unit = run_atomic(_op)
    record_history(
        user_id=user_id,
        action="CREATE_UNIT",
        entity="Unit",
        entity_id=unit.id,
        details={"name": name, "abbreviation": abbreviation},
    )
    return unit


def update_unit(
    unit_id: int,
    *,
    name: str | None = None,
    abbreviation: str | None = None,
    user_id: int | None = None,
) -> Unit:
    if name is not None:
        name = _require_name(name)
    if abbreviation is not None:
        abbreviation = _require_name(abbreviation, "abbreviation")

    def _op():
        unit = _get_or_404(Unit, unit_id, "Unit")
        if name is not None:
            if _name_taken(Unit, Unit.name, name, exclude_id=unit.id):
                raise ConflictError("A unit with this name already exists")
            unit.name = name
        if abbreviation is not None:
            unit.abbreviation = abbreviation
        db.session.commit()
        return unit

    unit = run_atomic(_op)
    record_history(
        user_id=user_id,
        action="UPDATE_UNIT",
        entity="Unit",
        entity_id=unit.id,
        details={"name": unit.name, "abbreviation": unit.abbreviation},
    )
    return unit


def delete_unit(unit_id: int, *, user_id: int | None = None) -> None:
    def _op():
        unit = _get_or_404(Unit, unit_id, "Unit")
        materials = _count(Material, Material.unit_id == unit.id)
        if materials:
            raise InvalidStateError(f"Cannot delete unit. {materials} material(s) use this unit.")
        name = unit.name
        db.session.delete(unit)
        db.session.commit()
        return name

    name = run_atomic(_op)
    record_history(user_id=user_id, action="DELETE_UNIT", entity="Unit", entity_id=unit_id, details={"name": name})


def list_units() -> list[Unit]:
    return db.session.query(Unit).order_by(Unit.name).all()


# =============================================================================
# WAREHOUSES
# =============================================================================

def create_warehouse(*, name: str, type: str = WAREHOUSE_TYPE_PRODUCT, user_id: int | None = None) -> Warehouse:
    name = _require_name(name)
    type = require_choice(type, "warehouse type", VALID_WAREHOUSE_TYPES)

    def _op():
        if _name_taken(Warehouse, Warehouse.name, name):
            raise ConflictError(f"Warehouse {name!r} already exists")
        warehouse = Warehouse(name=name, type=type)
        db.session.add(warehouse)
        db.session.commit()
        return warehouse

    warehouse = run_atomic(_op)
    record_history(
        user_id=user_id,
        action="CREATE_WAREHOUSE",
        entity="Warehouse",
        entity_id=warehouse.id,
        details={"name": name, "type": type},
    )
    return warehouse


def update_warehouse(
    warehouse_id: int,
    *,
    name: str | None = None,
    type: str | None = None,
    user_id: int | None = None,
) -> Warehouse:
    """
    Rename a warehouse or change its type.

    The type is fixed once the warehouse holds stock rows, since PRODUCT and
    MATERIAL warehouses carry different stock subjects.
    """
    if name is not None:
        name = _require_name(name)
    if type is not None:
        type = require_choice(type, "warehouse type", VALID_WAREHOUSE_TYPES)

    def _op():
        warehouse = _get_or_404(Warehouse, warehouse_id, "Warehouse")
        if name is not None:
            if _name_taken(Warehouse, Warehouse.name, name, exclude_id=warehouse.id):
                raise ConflictError(f"Warehouse {name!r} already exists")
            warehouse.name = name
        if type is not None and type != warehouse.type:
            if _count(Stock, Stock.warehouse_id == warehouse.id):
                raise InvalidStateError("Cannot change the type of a warehouse that holds stock")
            warehouse.type = type
        db.session.commit()
        return warehouse

    warehouse = run_atomic(_op)
    record_history(
        user_id=user_id,
        action="UPDATE_WAREHOUSE",
        entity="Warehouse",
        entity_id=warehouse.id,
        details={"name": warehouse.name, "type": warehouse.type},
    )
    return warehouse


def delete_warehouse(warehouse_id: int, *, user_id: int | None = None) -> None:
    def _op():
        warehouse = _get_or_404(Warehouse, warehouse_id, "Warehouse")
        stocks = _count(Stock, Stock.warehouse_id == warehouse.id)
        if stocks:
            raise InvalidStateError(f"Cannot delete warehouse. {stocks} stock record(s) exist in it.")
        movements = _count(
            StockMovement,
            or_(StockMovement.warehouse_from_id == warehouse.id, StockMovement.warehouse_to_id == warehouse.id),
        )
        if movements:
            raise InvalidStateError(f"Cannot delete warehouse. {movements} stock movement(s) reference it.")
        invoices = _count(Invoice, Invoice.warehouse_id == warehouse.id)
        if invoices:
            raise InvalidStateError(f"Cannot delete warehouse. {invoices} invoice(s) were fulfilled from it.")
        name = warehouse.name
        db.session.delete(warehouse)
        db.session.commit()
        return name

    name = run_atomic(_op)
    record_history(
        user_id=user_id, action="DELETE_WAREHOUSE", entity="Warehouse", entity_id=warehouse_id, details={"name": name},
    )


def list_warehouses(*, type: str | None = None) -> list[Warehouse]:
    query = db.session.query(Warehouse)
    if type:
        query = query.filter_by(type=type)
    return query.order_by(Warehouse.id).all()


# =============================================================================
# MATERIALS
# =============================================================================

def create_material(*, name: str, unit_id: int, user_id: int | None = None) -> Material:
    name = _require_name(name)

    def _op():
        unit = _get_or_404(Unit, unit_id, "Unit")
        if _name_taken(Material, Material.name, name):
            raise ConflictError("A material with this name already exists")
        material = Material(name=name, unit_id=unit.id)
        db.session.add(material)
        db.session.commit()
        return material

    material = run_atomic(_op)
    record_history(
        user_id=user_id,
        action="CREATE_MATERIAL",
        entity="Material",
        entity_id=material.id,
        details={"name": name, "unit_id": material.unit_id},
    )
    return material


def update_material(
    material_id: int,
    *,
    name: str | None = None,
    unit_id: int | None = None,
    user_id: int | None = None,
) -> Material:
    if name is not None:
        name = _require_name(name)

    def _op():
        material = _get_or_404(Material, material_id, "Material")
        if name is not None:
            if _name_taken(Material, Material.name, name, exclude_id=material.id):
                raise ConflictError("A material with this name already exists")
            material.name = name
        if unit_id is not None:
            material.unit_id = _get_or_404(Unit, unit_id, "Unit").id
        db.session.commit()
        return material

    material = run_atomic(_op)
    record_history(
        user_id=user_id,
        action="UPDATE_MATERIAL",
        entity="Material",
        entity_id=material.id,
        details={"name": material.name, "unit_id": material.unit_id},
    )
    return material


def delete_material(material_id: int, *, user_id: int | None = None) -> None:
    def _op():
        material = _get_or_404(Material, material_id, "Material")
        stocks = _count(Stock, Stock.material_id == material.id)
        if stocks:
            raise InvalidStateError(f"Cannot delete material. {stocks} stock record(s) exist for this material.")
        movements = _count(StockMovement, StockMovement.material_id == material.id)
        if movements:
            raise InvalidStateError(f"Cannot delete material. {movements} stock movement(s) reference it.")
        name = material.name
        db.session.delete(material)
        db.session.commit()
        return name

    name = run_atomic(_op)
    record_history(
        user_id=user_id, action="DELETE_MATERIAL", entity="Material", entity_id=material_id, details={"name": name},
    )


def list_materials() -> list[Material]:
    return db.session.query(Material).order_by(Material.name).all()


# =============================================================================
# PRODUCTS & VARIANTS
# =============================================================================

def create_product(
    *,
    code: str,
    name: str,
    brand_id: int,
    category_id: int,
    description: str | None = None,
    user_id: int | None = None,
) -> Product:
    code = _require_name(code, "code")
    name = _require_name(name)

    def _op():
        brand = _get_or_404(Brand, brand_id, "Brand")
        category = _get_or_404(Category, category_id, "Category")
        if _name_taken(Product, Product.code, code):
            raise ConflictError(f"Product with code {code!r} already exists")
        product = Product(code=code, name=name, description=description, brand_id=brand.id, category_id=category.id)
        db.session.add(product)
        db.session.commit()
        return product

    product = run_atomic(_op)
    record_history(
        user_id=user_id,
        action="CREATE_PRODUCT",
        entity="Product",
        entity_id=product.id,
        details={
            "code": code,
            "name": name,
            "brand_id": product.brand_id,
            "brand_name": product.brand.name,
            "category_id": product.category_id,
            "category_name": product.category.name,
        },
    )
    return product


def update_product(
    product_id: int,
    *,
    code: str | None = None,
    name: str | None = None,
    description: str | None = None,
    brand_id: int | None = None,
    category_id: int | None = None,
    user_id: int | None = None,
) -> Product:
    if code is not None:
        code = _require_name(code, "code")
    if name is not None:
        name = _require_name(name)

    def _op():
        product = _get_or_404(Product, product_id, "Product")
        if code is not None:
            if _name_taken(Product, Product.code, code, exclude_id=product.id):
                raise ConflictError(f"Product with code {code!r} already exists")
            product.code = code
        if name is not None:
            product.name = name
        if description is not None:
            product.description = description
        if brand_id is not None:
            product.brand_id = _get_or_404(Brand, brand_id, "Brand").id
        if category_id is not None:
            product.category_id = _get_or_404(Category, category_id, "Category").id
        db.session.commit()
        return product

    product = run_atomic(_op)
    record_history(
        user_id=user_id,
        action="UPDATE_PRODUCT",
        entity="Product",
        entity_id=product.id,
        details={
            "code": product.code,
            "name": product.name,
            "brand_id": product.brand_id,
            "category_id": product.category_id,
        },
    )
    return product


def _variant_usage(variant_ids: list[int]) -> dict[str, int]:
    if not variant_ids:
        return {}
    usage = {
        "stock record(s)": _count(Stock, Stock.product_variant_id.in_(variant_ids)),
        "stock movement(s)": _count(StockMovement, StockMovement.product_variant_id.in_(variant_ids)),
        "invoice line(s)": _count(InvoiceItem, InvoiceItem.product_variant_id.in_(variant_ids)),
        "return line(s)": _count(ReturnItem, ReturnItem.product_variant_id.in_(variant_ids)),
        "damaged item(s)": _count(DamagedItem, DamagedItem.product_variant_id.in_(variant_ids)),
    }
    return {label: count for label, count in usage.items() if count}


def delete_product(product_id: int, *, user_id: int | None = None) -> None:
    """Delete a product and its variants, refusing when any variant has ledger history."""

    def _op():
        product = _get_or_404(Product, product_id, "Product")
        variants = list(product.variants)
        usage = _variant_usage([v.id for v in variants])
        if usage:
            summary = ", ".join(f"{count} {label}" for label, count in usage.items())
            raise InvalidStateError(f"Cannot delete product. Its variants are referenced by {summary}.")
        code = product.code
        # Variants go with the product (delete-orphan cascade)
        db.session.delete(product)
        db.session.commit()
        return code, len(variants)

    code, variant_count = run_atomic(_op)
    record_history(
        user_id=user_id,
        action="DELETE_PRODUCT",
        entity="Product",
        entity_id=product_id,
        details={"code": code, "variants_deleted": variant_count},
    )


def create_product_variant(*, product_id: int, color: str, user_id: int | None = None) -> ProductVariant:
    color = _require_name(color, "color")

    def _op():
        if db.session.get(Product, product_id) is None:
            raise NotFoundError(f"Product {product_id} not found")
        exists = db.session.query(ProductVariant).filter_by(product_id=product_id, color=color).first()
        if exists:
            raise ConflictError("This color already exists for this product")
        variant = ProductVariant(product_id=product_id, color=color)
        db.session.add(variant)
        db.session.commit()
        return variant

    variant = run_atomic(_op)
    record_history(
        user_id=user_id,
        action="CREATE_PRODUCT_VARIANT",
        entity="ProductVariant",
        entity_id=variant.id,
        details={"product_id": product_id, "color": color},
    )
    return variant


def list_products() -> list[Product]:
    return db.session.query(Product).order_by(Product.id.desc()).all()
