"""
Catalog maintenance tests.

Verifies:
- Brands, categories and units support create / update / delete
- Products need a brand and a category; materials need a unit
- Deletes are refused while anything still references the row
- Deleting an unused product removes its variants
"""

import pytest

from inventra.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from inventra.models import Brand, Product, ProductVariant, Unit, Warehouse
from inventra.services import catalog_service, stock_service
from inventra.services.stock_service import StockSubject


# =============================================================================
# BRANDS, CATEGORIES, UNITS
# =============================================================================

class TestTaxonomy:

    def test_rename_brand(self, db_session, brand):
        updated = catalog_service.update_brand(brand.id, name="  Delta Apparel ")
        assert updated.name == "Delta Apparel"

    def test_rename_to_existing_name_conflicts(self, db_session, brand):
        other = catalog_service.create_brand(name="Delta")
        with pytest.raises(ConflictError):
            catalog_service.update_brand(other.id, name="Nile Cotton")

    def test_blank_name_rejected(self, db_session, category):
        with pytest.raises(ValidationError):
            catalog_service.update_category(category.id, name="   ")

    def test_delete_unused_brand(self, db_session, brand):
        catalog_service.delete_brand(brand.id)
        assert db_session.get(Brand, brand.id) is None

    def test_brand_in_use_cannot_be_deleted(self, db_session, product):
        with pytest.raises(InvalidStateError, match="1 product"):
            catalog_service.delete_brand(product.brand_id)
        with pytest.raises(InvalidStateError):
            catalog_service.delete_category(product.category_id)

    def test_unit_update_is_partial(self, db_session, unit):
        updated = catalog_service.update_unit(unit.id, abbreviation="mtr")
        assert updated.name == "Meter"
        assert updated.abbreviation == "mtr"

    def test_unit_in_use_cannot_be_deleted(self, db_session, material):
        with pytest.raises(InvalidStateError, match="material"):
            catalog_service.delete_unit(material.unit_id)
        assert db_session.get(Unit, material.unit_id) is not None

    def test_unknown_ids(self, db_session):
        with pytest.raises(NotFoundError):
            catalog_service.update_category(404, name="Ghost")
        with pytest.raises(NotFoundError):
            catalog_service.delete_unit(404)


# =============================================================================
# WAREHOUSES & MATERIALS
# =============================================================================

class TestWarehouses:

    def test_rename_and_retype_empty_warehouse(self, db_session, warehouse):
        updated = catalog_service.update_warehouse(warehouse.id, name="Depot", type="MATERIAL")
        assert (updated.name, updated.type) == ("Depot", "MATERIAL")

    def test_type_is_fixed_once_stocked(self, db_session, warehouse, stocked_variant):
        with pytest.raises(InvalidStateError):
            catalog_service.update_warehouse(warehouse.id, type="MATERIAL")
        db_session.refresh(warehouse)
        assert warehouse.type == "PRODUCT"

    def test_delete_empty_warehouse(self, db_session, second_warehouse):
        catalog_service.delete_warehouse(second_warehouse.id)
        assert db_session.get(Warehouse, second_warehouse.id) is None

    def test_stocked_warehouse_cannot_be_deleted(self, db_session, warehouse, stocked_variant):
        with pytest.raises(InvalidStateError, match="stock record"):
            catalog_service.delete_warehouse(warehouse.id)


class TestMaterials:

    def test_material_requires_existing_unit(self, db_session):
        with pytest.raises(NotFoundError):
            catalog_service.create_material(name="Thread", unit_id=999)

    def test_change_unit(self, db_session, material):
        kilo = catalog_service.create_unit(name="Kilogram", abbreviation="kg")
        updated = catalog_service.update_material(material.id, unit_id=kilo.id)
        assert updated.to_dict()["unit"] == "kg"

    def test_stocked_material_cannot_be_deleted(self, db_session, material, material_warehouse):
        stock_service.adjust_stock(
            warehouse_id=material_warehouse.id,
            subject=StockSubject.material(material.id),
            quantity=5,
            movement_type="IN",
        )
        with pytest.raises(InvalidStateError, match="stock record"):
            catalog_service.delete_material(material.id)

    def test_delete_unused_material_frees_unit(self, db_session, material):
        unit_id = material.unit_id
        catalog_service.delete_material(material.id)
        catalog_service.delete_unit(unit_id)
        assert db_session.get(Unit, unit_id) is None


# =============================================================================
# PRODUCTS
# =============================================================================

class TestProducts:

    def test_product_requires_brand_and_category(self, db_session, brand):
        with pytest.raises(NotFoundError):
            catalog_service.create_product(code="HD-1", name="Hoodie", brand_id=brand.id, category_id=999)
        assert db_session.query(Product).count() == 0

    def test_product_dict_names_brand_and_category(self, db_session, product):
        data = product.to_dict()
        assert data["brand"] == "Nile Cotton"
        assert data["category"] == "T-Shirts"

    def test_code_change_conflicts_with_other_product(self, db_session, product, brand, category):
        other = catalog_service.create_product(code="TS-002", name="Tee", brand_id=brand.id, category_id=category.id)
        with pytest.raises(ConflictError):
            catalog_service.update_product(other.id, code="TS-001")

    def test_delete_unused_product_removes_variants(self, db_session, variant, other_variant):
        product_id = variant.product_id
        catalog_service.delete_product(product_id)

        assert db_session.get(Product, product_id) is None
        assert db_session.query(ProductVariant).count() == 0

    def test_product_with_sales_cannot_be_deleted(self, db_session, make_invoice):
        invoice = make_invoice(quantity=1)
        product_id = invoice.items[0].product_variant.product_id

        with pytest.raises(InvalidStateError, match="invoice line"):
            catalog_service.delete_product(product_id)
        assert db_session.get(Product, product_id) is not None


# =============================================================================
# HTTP
# =============================================================================

def test_catalog_routes_update_and_guarded_delete(client, db_session, manager_headers, sales_headers, product):
    resp = client.put(f"/api/brands/{product.brand_id}", json={"name": "Nile"}, headers=manager_headers)
    assert resp.status_code == 200
    assert resp.get_json()["brand"]["name"] == "Nile"

    resp = client.put(f"/api/products/{product.id}", json={"description": "Crew neck"}, headers=manager_headers)
    assert resp.status_code == 200
    assert resp.get_json()["product"]["description"] == "Crew neck"

    resp = client.delete(f"/api/categories/{product.category_id}", headers=manager_headers)
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "InvalidStateError"

    resp = client.delete(f"/api/products/{product.id}", headers=sales_headers)
    assert resp.status_code == 403

    resp = client.delete(f"/api/products/{product.id}", headers=manager_headers)
    assert resp.status_code == 200
    assert client.get("/api/products/", headers=manager_headers).get_json()["products"] == []


def test_unit_payload_validated(client, db_session, manager_headers):
    resp = client.post("/api/units/", json={"name": "Meter"}, headers=manager_headers)
    assert resp.status_code == 400

    resp = client.post("/api/units/", json={"name": "Meter", "abbreviation": "m"}, headers=manager_headers)
    assert resp.status_code == 201
    unit_id = resp.get_json()["unit"]["id"]

    resp = client.post("/api/materials/", json={"name": "Denim", "unit_id": unit_id}, headers=manager_headers)
    assert resp.status_code == 201
    assert resp.get_json()["material"]["unit"] == "m"
