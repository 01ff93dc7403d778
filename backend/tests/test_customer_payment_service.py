"""
Payment allocation engine tests.

Verifies:
- Lump payments lower the balance and settle invoices oldest first
- Allocation is deterministic and never exceeds what an invoice owes
- Overpaying the account is rejected
- Reversal unwinds the exact allocations and restores the balance
"""

from types import SimpleNamespace

import pytest

from inventra.errors import NotFoundError, OverpaymentError, ValidationError
from inventra.models import Customer, CustomerPayment, Payment
from inventra.services import customer_payment_service, invoice_service
from inventra.services.customer_payment_service import allocate_oldest_first


def _invoice(invoice_id, remaining):
    return SimpleNamespace(id=invoice_id, invoice_number=f"INV-{invoice_id}", remaining_balance_cents=remaining)


# =============================================================================
# PURE ALLOCATION
# =============================================================================

class TestAllocateOldestFirst:

    def test_fills_oldest_first(self):
        invoices = [_invoice(1, 5_000), _invoice(2, 3_000), _invoice(3, 4_000)]
        allocations = allocate_oldest_first(invoices, 7_000)
        assert [(a.invoice.id, a.amount_cents) for a in allocations] == [(1, 5_000), (2, 2_000)]

    def test_skips_settled_invoices(self):
        invoices = [_invoice(1, 0), _invoice(2, 3_000)]
        allocations = allocate_oldest_first(invoices, 1_000)
        assert [(a.invoice.id, a.amount_cents) for a in allocations] == [(2, 1_000)]

    def test_leftover_is_not_allocated(self):
        invoices = [_invoice(1, 2_000)]
        allocations = allocate_oldest_first(invoices, 9_000)
        assert sum(a.amount_cents for a in allocations) == 2_000

    def test_same_input_same_output(self):
        invoices = [_invoice(1, 1_234), _invoice(2, 5_678), _invoice(3, 910)]
        first = [(a.invoice.id, a.amount_cents) for a in allocate_oldest_first(invoices, 6_000)]
        second = [(a.invoice.id, a.amount_cents) for a in allocate_oldest_first(invoices, 6_000)]
        assert first == second


# =============================================================================
# REGISTRATION
# =============================================================================

class TestRegisterCustomerPayment:

    def test_partial_settlement(self, db_session, customer, make_invoice):
        """Balance 200.00 with one UNPAID invoice of 200.00; pay 150.00."""
        invoice = make_invoice(price_cents=20_000)

        payment, allocations = customer_payment_service.register_customer_payment(
            customer_id=customer.id, amount_cents=15_000,
        )

        assert db_session.get(Customer, customer.id).account_balance_cents == 5_000
        invoice = invoice_service.get_invoice(invoice.id)
        assert invoice.paid_amount_cents == 15_000
        assert invoice.remaining_balance_cents == 5_000
        assert invoice.status == "PARTIAL"

        assert len(allocations) == 1
        linked = db_session.query(Payment).filter_by(customer_payment_id=payment.id).one()
        assert linked.amount_cents == 15_000
        assert linked.invoice_id == invoice.id

    def test_settles_oldest_invoice_first(self, db_session, customer, make_invoice):
        oldest = make_invoice(price_cents=3_000)
        middle = make_invoice(price_cents=4_000)
        newest = make_invoice(price_cents=5_000)

        customer_payment_service.register_customer_payment(customer_id=customer.id, amount_cents=5_000)

        oldest = invoice_service.get_invoice(oldest.id)
        middle = invoice_service.get_invoice(middle.id)
        newest = invoice_service.get_invoice(newest.id)
        assert (oldest.status, oldest.remaining_balance_cents) == ("PAID", 0)
        assert (middle.status, middle.remaining_balance_cents) == ("PARTIAL", 2_000)
        assert (newest.status, newest.remaining_balance_cents) == ("UNPAID", 5_000)

    def test_cannot_pay_more_than_owed(self, db_session, customer, make_invoice):
        make_invoice(price_cents=1_000)

        with pytest.raises(OverpaymentError):
            customer_payment_service.register_customer_payment(customer_id=customer.id, amount_cents=1_001)

        assert db_session.query(CustomerPayment).count() == 0
        assert db_session.get(Customer, customer.id).account_balance_cents == 1_000

    def test_zero_balance_customer_cannot_pay(self, db_session, customer):
        with pytest.raises(OverpaymentError):
            customer_payment_service.register_customer_payment(customer_id=customer.id, amount_cents=100)

    @pytest.mark.parametrize("amount", [0, -5, 12.5])
    def test_invalid_amount(self, db_session, customer, amount):
        with pytest.raises(ValidationError):
            customer_payment_service.register_customer_payment(customer_id=customer.id, amount_cents=amount)

    def test_unknown_customer(self, db_session):
        with pytest.raises(NotFoundError):
            customer_payment_service.register_customer_payment(customer_id=999, amount_cents=100)

    def test_history_records_balances(self, db_session, customer, make_invoice):
        from inventra.services.history_service import list_history

        make_invoice(price_cents=2_000)
        payment, _ = customer_payment_service.register_customer_payment(customer_id=customer.id, amount_cents=500)

        entry = list_history(entity="CustomerPayment", entity_id=payment.id)[0]
        assert entry.action == "REGISTER_PAYMENT"
        assert entry.details["previous_balance_cents"] == 2_000
        assert entry.details["new_balance_cents"] == 1_500


# =============================================================================
# REVERSAL
# =============================================================================

class TestDeleteCustomerPayment:

    def test_reverses_allocations_and_restores_balance(self, db_session, customer, make_invoice):
        first = make_invoice(price_cents=3_000)
        second = make_invoice(price_cents=4_000)
        payment, _ = customer_payment_service.register_customer_payment(
            customer_id=customer.id, amount_cents=5_000,
        )

        summary = customer_payment_service.delete_customer_payment(customer_payment_id=payment.id)

        assert summary["restored_cents"] == 5_000
        assert len(summary["reversed_allocations"]) == 2
        assert db_session.get(Customer, customer.id).account_balance_cents == 7_000
        assert db_session.query(CustomerPayment).count() == 0
        assert db_session.query(Payment).count() == 0

        for invoice_id, total in ((first.id, 3_000), (second.id, 4_000)):
            invoice = invoice_service.get_invoice(invoice_id)
            assert invoice.status == "UNPAID"
            assert invoice.paid_amount_cents == 0
            assert invoice.remaining_balance_cents == total

    def test_keeps_direct_payments(self, db_session, customer, make_invoice):
        invoice = make_invoice(price_cents=10_000)
        invoice_service.add_payment(invoice_id=invoice.id, amount_cents=2_000)
        payment, _ = customer_payment_service.register_customer_payment(
            customer_id=customer.id, amount_cents=3_000,
        )

        customer_payment_service.delete_customer_payment(customer_payment_id=payment.id)

        invoice = invoice_service.get_invoice(invoice.id)
        assert invoice.status == "PARTIAL"
        assert invoice.paid_amount_cents == 2_000
        assert invoice.remaining_balance_cents == 8_000
        assert db_session.query(Payment).count() == 1

    def test_unknown_payment(self, db_session):
        with pytest.raises(NotFoundError):
            customer_payment_service.delete_customer_payment(customer_payment_id=12345)
