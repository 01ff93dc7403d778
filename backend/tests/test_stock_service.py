"""
Stock ledger tests.

Verifies:
- IN creates missing rows and appends a movement
- OUT never drives a row negative
- Transfers move quantity atomically with one TRANSFER movement
- StockSubject requires exactly one of material / variant
"""

import pytest

from inventra.errors import InsufficientStockError, NotFoundError, ValidationError
from inventra.models import Stock, StockMovement
from inventra.services import stock_service
from inventra.services.stock_service import StockSubject


class TestStockSubject:

    def test_requires_exactly_one_id(self):
        with pytest.raises(ValidationError):
            StockSubject.from_ids()
        with pytest.raises(ValidationError):
            StockSubject.from_ids(material_id=1, product_variant_id=2)

    def test_column_values(self):
        assert StockSubject.material(5).column_values == {"material_id": 5, "product_variant_id": None}
        assert StockSubject.variant(7).column_values == {"material_id": None, "product_variant_id": 7}


class TestAdjustStock:

    def test_in_creates_row_and_movement(self, db_session, material_warehouse, material):
        subject = StockSubject.material(material.id)

        stock = stock_service.adjust_stock(
            warehouse_id=material_warehouse.id,
            subject=subject,
            quantity=25,
            movement_type="IN",
            user_id=9,
        )

        assert stock.quantity == 25
        assert stock.material_id == material.id
        assert stock.product_variant_id is None

        movements = stock_service.list_movements(subject=subject)
        assert len(movements) == 1
        assert movements[0].type == "IN"
        assert movements[0].warehouse_to_id == material_warehouse.id
        assert movements[0].user_id == 9

    def test_out_decrements(self, db_session, warehouse, stocked_variant):
        subject = StockSubject.variant(stocked_variant.id)
        stock = stock_service.adjust_stock(
            warehouse_id=warehouse.id, subject=subject, quantity=4, movement_type="OUT",
        )
        assert stock.quantity == 6
        assert stock_service.get_stock_quantity(warehouse.id, subject) == 6

    def test_out_beyond_available_is_rejected(self, db_session, warehouse, stocked_variant):
        subject = StockSubject.variant(stocked_variant.id)

        with pytest.raises(InsufficientStockError):
            stock_service.adjust_stock(
                warehouse_id=warehouse.id, subject=subject, quantity=11, movement_type="OUT",
            )

        assert stock_service.get_stock_quantity(warehouse.id, subject) == 10
        assert db_session.query(StockMovement).filter_by(type="OUT").count() == 0

    def test_out_without_row_is_insufficient(self, db_session, warehouse, variant):
        with pytest.raises(InsufficientStockError):
            stock_service.adjust_stock(
                warehouse_id=warehouse.id,
                subject=StockSubject.variant(variant.id),
                quantity=1,
                movement_type="OUT",
            )
        assert db_session.query(Stock).count() == 0

    @pytest.mark.parametrize("quantity", [0, -3, "1.5", True])
    def test_rejects_non_positive_or_fractional_quantity(self, db_session, warehouse, variant, quantity):
        with pytest.raises(ValidationError):
            stock_service.adjust_stock(
                warehouse_id=warehouse.id,
                subject=StockSubject.variant(variant.id),
                quantity=quantity,
                movement_type="IN",
            )

    def test_unknown_subject(self, db_session, warehouse):
        with pytest.raises(NotFoundError):
            stock_service.adjust_stock(
                warehouse_id=warehouse.id,
                subject=StockSubject.variant(999),
                quantity=1,
                movement_type="IN",
            )


class TestTransferStock:

    def test_moves_quantity_and_creates_destination(self, db_session, warehouse, second_warehouse, stocked_variant):
        subject = StockSubject.variant(stocked_variant.id)

        result = stock_service.transfer_stock(
            from_warehouse_id=warehouse.id,
            to_warehouse_id=second_warehouse.id,
            subject=subject,
            quantity=3,
        )

        assert result.source.quantity == 7
        assert result.destination.quantity == 3
        assert result.movement.type == "TRANSFER"
        assert result.movement.warehouse_from_id == warehouse.id
        assert result.movement.warehouse_to_id == second_warehouse.id

    def test_insufficient_source_leaves_both_sides_untouched(
        self, db_session, warehouse, second_warehouse, stocked_variant
    ):
        subject = StockSubject.variant(stocked_variant.id)

        with pytest.raises(InsufficientStockError):
            stock_service.transfer_stock(
                from_warehouse_id=warehouse.id,
                to_warehouse_id=second_warehouse.id,
                subject=subject,
                quantity=50,
            )

        assert stock_service.get_stock_quantity(warehouse.id, subject) == 10
        assert stock_service.get_stock_quantity(second_warehouse.id, subject) == 0
        assert db_session.query(StockMovement).filter_by(type="TRANSFER").count() == 0

    def test_same_warehouse_rejected(self, db_session, warehouse, stocked_variant):
        with pytest.raises(ValidationError):
            stock_service.transfer_stock(
                from_warehouse_id=warehouse.id,
                to_warehouse_id=warehouse.id,
                subject=StockSubject.variant(stocked_variant.id),
                quantity=1,
            )


def test_stock_never_negative_after_mixed_operations(db_session, warehouse, second_warehouse, stocked_variant):
    subject = StockSubject.variant(stocked_variant.id)
    operations = [
        ("OUT", 4), ("OUT", 7), ("IN", 2), ("TRANSFER", 9), ("TRANSFER", 8), ("OUT", 1),
    ]
    for kind, quantity in operations:
        try:
            if kind == "TRANSFER":
                stock_service.transfer_stock(
                    from_warehouse_id=warehouse.id,
                    to_warehouse_id=second_warehouse.id,
                    subject=subject,
                    quantity=quantity,
                )
            else:
                stock_service.adjust_stock(
                    warehouse_id=warehouse.id, subject=subject, quantity=quantity, movement_type=kind,
                )
        except InsufficientStockError:
            pass

    assert all(row.quantity >= 0 for row in db_session.query(Stock).all())
    assert stock_service.get_stock_quantity(warehouse.id, subject) == 0
    assert stock_service.get_stock_quantity(second_warehouse.id, subject) == 8
