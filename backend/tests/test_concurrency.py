"""
Lost-update detection.

Verifies:
- A row changed by another writer between load and flush raises ConflictError
- The failed operation leaves no partial ledger or stock state behind
"""

import pytest
from sqlalchemy import text

from inventra.errors import ConflictError
from inventra.models import Customer, CustomerPayment, Invoice, Payment, StockMovement
from inventra.services import customer_payment_service, invoice_service, stock_service
from inventra.services.stock_service import StockSubject


def _bump_version(session, table: str, row_id: int) -> None:
    """Simulate a concurrent commit on one versioned row."""
    session.execute(
        text(f"UPDATE {table} SET version_id = version_id + 1 WHERE id = :id"),
        {"id": row_id},
    )


def test_stock_row_changed_mid_invoice(db_session, monkeypatch, customer, warehouse, stocked_variant):
    original_find_stock = stock_service._find_stock

    def _find_then_race(warehouse_id, subject, *, lock=False):
        stock = original_find_stock(warehouse_id, subject, lock=lock)
        if lock and stock is not None:
            _bump_version(db_session, "stocks", stock.id)
        return stock

    monkeypatch.setattr(stock_service, "_find_stock", _find_then_race)

    with pytest.raises(ConflictError):
        invoice_service.create_invoice(
            customer_id=customer.id,
            payment_type="CREDIT",
            warehouse_id=warehouse.id,
            items=[{"product_variant_id": stocked_variant.id, "quantity": 4, "price_cents": 2_500}],
        )

    monkeypatch.undo()
    db_session.expire_all()
    assert db_session.query(Invoice).count() == 0
    assert db_session.get(Customer, customer.id).account_balance_cents == 0
    assert stock_service.get_stock_quantity(warehouse.id, StockSubject.variant(stocked_variant.id)) == 10
    # Only the opening IN movement
    assert db_session.query(StockMovement).count() == 1


def test_invoice_changed_during_auto_settlement(db_session, monkeypatch, customer, make_invoice):
    invoice = make_invoice(price_cents=10_000)
    invoice_id = invoice.id
    original_allocate = customer_payment_service.allocate_oldest_first

    def _allocate_then_race(invoices, amount_cents):
        allocations = original_allocate(invoices, amount_cents)
        for allocation in allocations:
            _bump_version(db_session, "invoices", allocation.invoice.id)
        return allocations

    monkeypatch.setattr(customer_payment_service, "allocate_oldest_first", _allocate_then_race)

    with pytest.raises(ConflictError):
        customer_payment_service.register_customer_payment(customer_id=customer.id, amount_cents=4_000)

    monkeypatch.undo()
    db_session.expire_all()
    assert db_session.get(Customer, customer.id).account_balance_cents == 10_000
    assert db_session.query(CustomerPayment).count() == 0
    assert db_session.query(Payment).count() == 0
    invoice = db_session.get(Invoice, invoice_id)
    assert invoice.status == "UNPAID"
    assert invoice.paid_amount_cents == 0
    assert invoice.remaining_balance_cents == 10_000


def test_conflict_surfaces_as_http_409(db_session, monkeypatch, client, manager_headers, customer, make_invoice):
    make_invoice(price_cents=10_000)
    original_allocate = customer_payment_service.allocate_oldest_first

    def _allocate_then_race(invoices, amount_cents):
        allocations = original_allocate(invoices, amount_cents)
        for allocation in allocations:
            _bump_version(db_session, "invoices", allocation.invoice.id)
        return allocations

    monkeypatch.setattr(customer_payment_service, "allocate_oldest_first", _allocate_then_race)

    response = client.post(
        f"/api/customers/{customer.id}/payments",
        json={"amount_cents": 4_000},
        headers=manager_headers,
    )

    assert response.status_code == 409
    assert response.get_json()["code"] == "ConflictError"
