"""
Pytest fixtures for inventra backend tests.

Provides test database setup, catalog/customer fixtures, and test client.
"""

import pytest

from inventra import create_app
from inventra.config import TestConfig
from inventra.extensions import db
from inventra.services import catalog_service, customer_service, stock_service
from inventra.services.stock_service import StockSubject


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def role_headers(role: str, user_id: int = 1) -> dict:
    return {"X-User-Id": str(user_id), "X-User-Role": role}


@pytest.fixture
def super_admin_headers():
    return role_headers("SUPER_ADMIN", user_id=1)


@pytest.fixture
def admin_headers():
    return role_headers("ADMIN", user_id=2)


@pytest.fixture
def manager_headers():
    return role_headers("MANAGER", user_id=3)


@pytest.fixture
def sales_headers():
    return role_headers("SALES", user_id=4)


# =============================================================================
# DOMAIN FIXTURES
# =============================================================================

@pytest.fixture(scope='function')
def warehouse(db_session):
    """Main product warehouse."""
    return catalog_service.create_warehouse(name="Main Warehouse", type="PRODUCT")


@pytest.fixture(scope='function')
def second_warehouse(db_session):
    return catalog_service.create_warehouse(name="Branch Warehouse", type="PRODUCT")


@pytest.fixture(scope='function')
def material_warehouse(db_session):
    return catalog_service.create_warehouse(name="Raw Materials", type="MATERIAL")


@pytest.fixture(scope='function')
def unit(db_session):
    return catalog_service.create_unit(name="Meter", abbreviation="m")


@pytest.fixture(scope='function')
def brand(db_session):
    return catalog_service.create_brand(name="Nile Cotton")


@pytest.fixture(scope='function')
def category(db_session):
    return catalog_service.create_category(name="T-Shirts")


@pytest.fixture(scope='function')
def material(db_session, unit):
    return catalog_service.create_material(name="Cotton Fabric", unit_id=unit.id)


@pytest.fixture(scope='function')
def product(db_session, brand, category):
    return catalog_service.create_product(code="TS-001", name="T-Shirt", brand_id=brand.id, category_id=category.id)


@pytest.fixture(scope='function')
def variant(db_session, product):
    return catalog_service.create_product_variant(product_id=product.id, color="Red")


@pytest.fixture(scope='function')
def other_variant(db_session, product):
    return catalog_service.create_product_variant(product_id=product.id, color="Blue")


@pytest.fixture(scope='function')
def customer(db_session):
    return customer_service.create_customer(name="Nour Trading", phone="0100000000")


@pytest.fixture(scope='function')
def stocked_variant(db_session, warehouse, variant):
    """Variant with 10 units in the main warehouse."""
    stock_service.adjust_stock(
        warehouse_id=warehouse.id,
        subject=StockSubject.variant(variant.id),
        quantity=10,
        movement_type="IN",
        note="Opening stock",
    )
    return variant


@pytest.fixture
def make_invoice(db_session, customer, warehouse, stocked_variant):
    """Factory for invoices against the stocked variant."""
    from inventra.services import invoice_service

    def _make(*, price_cents=10_000, quantity=1, payment_type="CREDIT", **kwargs):
        return invoice_service.create_invoice(
            customer_id=kwargs.pop("customer_id", customer.id),
            payment_type=payment_type,
            warehouse_id=kwargs.pop("warehouse_id", warehouse.id),
            items=[{
                "product_variant_id": kwargs.pop("product_variant_id", stocked_variant.id),
                "quantity": quantity,
                "price_cents": price_cents,
            }],
            **kwargs,
        )

    return _make
