# backend/inventra/routes/catalog.py
"""
Catalog routes: brands, categories, units, warehouses, materials, products and variants.

SECURITY:
- Listing requires VIEW_LEDGER
- Create, update and delete require MANAGE_CATALOG
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..models import Brand, Category, Material, Product, ProductVariant, Unit, Warehouse
from ..errors import LedgerError
from ..validation import ModelValidationPolicy, validate_payload
from ..services import catalog_service
from ..decorators import require_capability


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")

WAREHOUSE_POLICY = ModelValidationPolicy(writable_fields={"name", "type"}, required_on_create={"name"})
BRAND_POLICY = ModelValidationPolicy(writable_fields={"name"}, required_on_create={"name"})
CATEGORY_POLICY = ModelValidationPolicy(writable_fields={"name"}, required_on_create={"name"})
UNIT_POLICY = ModelValidationPolicy(writable_fields={"name", "abbreviation"}, required_on_create={"name", "abbreviation"})
MATERIAL_POLICY = ModelValidationPolicy(writable_fields={"name", "unit_id"}, required_on_create={"name", "unit_id"})
PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"code", "name", "description", "brand_id", "category_id"},
    required_on_create={"code", "name", "brand_id", "category_id"},
)
VARIANT_POLICY = ModelValidationPolicy(writable_fields={"color"}, required_on_create={"color"})


# =============================================================================
# BRANDS
# =============================================================================

@catalog_bp.post("/brands/")
@require_capability("MANAGE_CATALOG")
def create_brand_route():
    try:
        patch = validate_payload(
            model=Brand,
            payload=request.get_json(silent=True),
            policy=BRAND_POLICY,
            partial=False,
        )
        brand = catalog_service.create_brand(user_id=g.user_id, **patch)
        return jsonify({"brand": brand.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create brand")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/brands/")
@require_capability("VIEW_LEDGER")
def list_brands_route():
    return jsonify({"brands": [b.to_dict() for b in catalog_service.list_brands()]}), 200


@catalog_bp.put("/brands/<int:brand_id>")
@require_capability("MANAGE_CATALOG")
def update_brand_route(brand_id: int):
    try:
        patch = validate_payload(
            model=Brand,
            payload=request.get_json(silent=True),
            policy=BRAND_POLICY,
            partial=False,
        )
        brand = catalog_service.update_brand(brand_id, user_id=g.user_id, **patch)
        return jsonify({"brand": brand.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update brand")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.delete("/brands/<int:brand_id>")
@require_capability("MANAGE_CATALOG")
def delete_brand_route(brand_id: int):
    try:
        catalog_service.delete_brand(brand_id, user_id=g.user_id)
        return jsonify({"deleted": True}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete brand")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# CATEGORIES
# =============================================================================

@catalog_bp.post("/categories/")
@require_capability("MANAGE_CATALOG")
def create_category_route():
    try:
        patch = validate_payload(
            model=Category,
            payload=request.get_json(silent=True),
            policy=CATEGORY_POLICY,
            partial=False,
        )
        category = catalog_service.create_category(user_id=g.user_id, **patch)
        return jsonify({"category": category.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/categories/")
@require_capability("VIEW_LEDGER")
def list_categories_route():
    return jsonify({"categories": [c.to_dict() for c in catalog_service.list_categories()]}), 200


@catalog_bp.put("/categories/<int:category_id>")
@require_capability("MANAGE_CATALOG")
def update_category_route(category_id: int):
    try:
        patch = validate_payload(
            model=Category,
            payload=request.get_json(silent=True),
            policy=CATEGORY_POLICY,
            partial=False,
        )
        category = catalog_service.update_category(category_id, user_id=g.user_id, **patch)
        return jsonify({"category": category.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update category")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.delete("/categories/<int:category_id>")
@require_capability("MANAGE_CATALOG")
def delete_category_route(category_id: int):
    try:
        catalog_service.delete_category(category_id, user_id=g.user_id)
        return jsonify({"deleted": True}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete category")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# UNITS
# =============================================================================

@catalog_bp.post("/units/")
@require_capability("MANAGE_CATALOG")
def create_unit_route():
    try:
        patch = validate_payload(
            model=Unit,
            payload=request.get_json(silent=True),
            policy=UNIT_POLICY,
            partial=False,
        )
        unit = catalog_service.create_unit(user_id=g.user_id, **patch)
        return jsonify({"unit": unit.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create unit")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/units/")
@require_capability("VIEW_LEDGER")
def list_units_route():
    return jsonify({"units": [u.to_dict() for u in catalog_service.list_units()]}), 200


@catalog_bp.put("/units/<int:unit_id>")
@require_capability("MANAGE_CATALOG")
def update_unit_route(unit_id: int):
    try:
        patch = validate_payload(
            model=Unit,
            payload=request.get_json(silent=True),
            policy=UNIT_POLICY,
            partial=True,
        )
        unit = catalog_service.update_unit(unit_id, user_id=g.user_id, **patch)
        return jsonify({"unit": unit.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update unit")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.delete("/units/<int:unit_id>")
@require_capability("MANAGE_CATALOG")
def delete_unit_route(unit_id: int):
    try:
        catalog_service.delete_unit(unit_id, user_id=g.user_id)
        return jsonify({"deleted": True}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete unit")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# WAREHOUSES
# =============================================================================

@catalog_bp.post("/warehouses/")
@require_capability("MANAGE_CATALOG")
def create_warehouse_route():
    try:
        patch = validate_payload(
            model=Warehouse,
            payload=request.get_json(silent=True),
            policy=WAREHOUSE_POLICY,
            partial=False,
        )
        warehouse = catalog_service.create_warehouse(user_id=g.user_id, **patch)
        return jsonify({"warehouse": warehouse.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create warehouse")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/warehouses/")
@require_capability("VIEW_LEDGER")
def list_warehouses_route():
    try:
        warehouses = catalog_service.list_warehouses(type=request.args.get("type"))
        return jsonify({"warehouses": [w.to_dict() for w in warehouses]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@catalog_bp.put("/warehouses/<int:warehouse_id>")
@require_capability("MANAGE_CATALOG")
def update_warehouse_route(warehouse_id: int):
    try:
        patch = validate_payload(
            model=Warehouse,
            payload=request.get_json(silent=True),
            policy=WAREHOUSE_POLICY,
            partial=True,
        )
        warehouse = catalog_service.update_warehouse(warehouse_id, user_id=g.user_id, **patch)
        return jsonify({"warehouse": warehouse.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update warehouse")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.delete("/warehouses/<int:warehouse_id>")
@require_capability("MANAGE_CATALOG")
def delete_warehouse_route(warehouse_id: int):
    try:
        catalog_service.delete_warehouse(warehouse_id, user_id=g.user_id)
        return jsonify({"deleted": True}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete warehouse")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# MATERIALS
# =============================================================================

@catalog_bp.post("/materials/")
@require_capability("MANAGE_CATALOG")
def create_material_route():
    try:
        patch = validate_payload(
            model=Material,
            payload=request.get_json(silent=True),
            policy=MATERIAL_POLICY,
            partial=False,
        )
        material = catalog_service.create_material(user_id=g.user_id, **patch)
        return jsonify({"material": material.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create material")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/materials/")
@require_capability("VIEW_LEDGER")
def list_materials_route():
    return jsonify({"materials": [m.to_dict() for m in catalog_service.list_materials()]}), 200


@catalog_bp.put("/materials/<int:material_id>")
@require_capability("MANAGE_CATALOG")
def update_material_route(material_id: int):
    try:
        patch = validate_payload(
            model=Material,
            payload=request.get_json(silent=True),
            policy=MATERIAL_POLICY,
            partial=True,
        )
        material = catalog_service.update_material(material_id, user_id=g.user_id, **patch)
        return jsonify({"material": material.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update material")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.delete("/materials/<int:material_id>")
@require_capability("MANAGE_CATALOG")
def delete_material_route(material_id: int):
    try:
        catalog_service.delete_material(material_id, user_id=g.user_id)
        return jsonify({"deleted": True}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete material")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PRODUCTS & VARIANTS
# =============================================================================

@catalog_bp.post("/products/")
@require_capability("MANAGE_CATALOG")
def create_product_route():
    try:
        patch = validate_payload(
            model=Product,
            payload=request.get_json(silent=True),
            policy=PRODUCT_POLICY,
            partial=False,
        )
        product = catalog_service.create_product(user_id=g.user_id, **patch)
        return jsonify({"product": product.to_dict(include_variants=True)}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/products/")
@require_capability("VIEW_LEDGER")
def list_products_route():
    products = catalog_service.list_products()
    return jsonify({"products": [p.to_dict(include_variants=True) for p in products]}), 200


@catalog_bp.put("/products/<int:product_id>")
@require_capability("MANAGE_CATALOG")
def update_product_route(product_id: int):
    try:
        patch = validate_payload(
            model=Product,
            payload=request.get_json(silent=True),
            policy=PRODUCT_POLICY,
            partial=True,
        )
        product = catalog_service.update_product(product_id, user_id=g.user_id, **patch)
        return jsonify({"product": product.to_dict(include_variants=True)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.delete("/products/<int:product_id>")
@require_capability("MANAGE_CATALOG")
def delete_product_route(product_id: int):
    try:
        catalog_service.delete_product(product_id, user_id=g.user_id)
        return jsonify({"deleted": True}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/products/<int:product_id>/variants")
@require_capability("MANAGE_CATALOG")
def create_variant_route(product_id: int):
    try:
        patch = validate_payload(
            model=ProductVariant,
            payload=request.get_json(silent=True),
            policy=VARIANT_POLICY,
            partial=False,
        )
        variant = catalog_service.create_product_variant(product_id=product_id, user_id=g.user_id, **patch)
        return jsonify({"variant": variant.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product variant")
        return jsonify({"error": "Internal server error"}), 500
