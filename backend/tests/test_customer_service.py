"""Catalog and customer services, plus strict payload validation."""

import pytest

from inventra.errors import ConflictError, NotFoundError, ValidationError
from inventra.models import Customer
from inventra.services import catalog_service, customer_service, invoice_service, return_service
from inventra.validation import ModelValidationPolicy, coerce_int, validate_payload


class TestCatalog:

    def test_duplicate_names_conflict(self, db_session, warehouse, material, product):
        with pytest.raises(ConflictError):
            catalog_service.create_warehouse(name="Main Warehouse")
        with pytest.raises(ConflictError):
            catalog_service.create_material(name="Cotton Fabric", unit_id=material.unit_id)
        with pytest.raises(ConflictError):
            catalog_service.create_product(
                code="TS-001", name="Again", brand_id=product.brand_id, category_id=product.category_id,
            )
        with pytest.raises(ConflictError):
            catalog_service.create_brand(name="Nile Cotton")

    def test_duplicate_variant_color_conflict(self, db_session, variant):
        with pytest.raises(ConflictError):
            catalog_service.create_product_variant(product_id=variant.product_id, color="Red")

    def test_variant_requires_product(self, db_session):
        with pytest.raises(NotFoundError):
            catalog_service.create_product_variant(product_id=999, color="Green")

    def test_warehouse_type_validated(self, db_session):
        with pytest.raises(ValidationError):
            catalog_service.create_warehouse(name="Odd", type="VIRTUAL")

    def test_list_warehouses_by_type(self, db_session, warehouse, material_warehouse):
        assert [w.id for w in catalog_service.list_warehouses(type="MATERIAL")] == [material_warehouse.id]


class TestCustomers:

    def test_new_customer_starts_at_zero(self, db_session, customer):
        assert customer.account_balance_cents == 0

    def test_update_contact_fields(self, db_session, customer):
        updated = customer_service.update_customer(customer.id, email="ops@nour.example")
        assert updated.email == "ops@nour.example"

    def test_balance_not_writable(self, db_session, customer):
        with pytest.raises(ValidationError):
            customer_service.update_customer(customer.id, account_balance_cents=-500)
        assert db_session.get(Customer, customer.id).account_balance_cents == 0

    def test_account_view(self, db_session, customer, stocked_variant, make_invoice):
        invoice = make_invoice(price_cents=2_000, quantity=2)
        return_service.create_return(
            invoice_id=invoice.id,
            type="DAMAGED",
            items=[{"product_variant_id": stocked_variant.id, "quantity": 1}],
        )
        invoice_service.add_payment(invoice_id=invoice.id, amount_cents=1_000)

        account = customer_service.get_customer_account(customer.id)

        assert account["customer"]["account_balance_cents"] == 2_000
        assert account["open_invoice_debt_cents"] == 3_000
        assert account["available_credit_cents"] == 0
        assert len(account["invoices"]) == 1
        assert len(account["returns"]) == 1

    def test_missing_customer(self, db_session):
        with pytest.raises(NotFoundError):
            customer_service.get_customer(31337)


class TestValidation:

    @pytest.mark.parametrize("value", ["1e3", "2.5", 2.5, True, "", None, "abc"])
    def test_coerce_int_rejects(self, value):
        with pytest.raises(ValidationError):
            coerce_int(value, "amount_cents")

    def test_coerce_int_accepts_plain_strings(self):
        assert coerce_int(" 42 ", "amount_cents") == 42

    def test_validate_payload_enforces_required_and_length(self, db_session):
        policy = ModelValidationPolicy(writable_fields={"name", "phone"}, required_on_create={"name"})
        with pytest.raises(ValidationError):
            validate_payload(model=Customer, payload={"phone": "1"}, policy=policy, partial=False)
        with pytest.raises(ValidationError):
            validate_payload(model=Customer, payload={"name": "A", "phone": "9" * 40}, policy=policy, partial=False)
        assert validate_payload(model=Customer, payload={"name": " A "}, policy=policy, partial=False) == {"name": "A"}
