"""
Credit journal tests.

Verifies:
- Refunds and credit payments need a negative balance
- Neither can push the balance above zero
- Paying with credit records a Payment and updates invoice status
- Journal and history rows commit with the operation
"""

import pytest

from inventra.errors import InsufficientCreditError, OverpaymentError, ValidationError
from inventra.models import CreditTransaction, Customer, History
from inventra.services import credit_service, customer_service, invoice_service


@pytest.fixture
def credit_customer(db_session):
    """Customer the business owes 100.00."""
    customer = customer_service.create_customer(name="Credit Holder")
    customer.account_balance_cents = -10_000
    db_session.commit()
    return customer


class TestCashRefund:

    def test_refund_moves_balance_toward_zero(self, db_session, credit_customer):
        transaction = credit_service.process_cash_refund(customer_id=credit_customer.id, amount_cents=4_000)

        assert transaction.type == "CASH_REFUND"
        assert transaction.amount_cents == 4_000
        assert db_session.get(Customer, credit_customer.id).account_balance_cents == -6_000
        assert db_session.query(History).filter_by(action="CASH_REFUND").count() == 1

    def test_full_refund_reaches_zero(self, db_session, credit_customer):
        credit_service.process_cash_refund(customer_id=credit_customer.id, amount_cents=10_000)
        assert db_session.get(Customer, credit_customer.id).account_balance_cents == 0

    def test_exceeding_credit_rejected(self, db_session, credit_customer):
        """Balance -100.00, refund 150.00."""
        with pytest.raises(InsufficientCreditError):
            credit_service.process_cash_refund(customer_id=credit_customer.id, amount_cents=15_000)

        assert db_session.get(Customer, credit_customer.id).account_balance_cents == -10_000
        assert db_session.query(CreditTransaction).count() == 0
        assert db_session.query(History).filter_by(action="CASH_REFUND").count() == 0

    def test_no_credit_rejected(self, db_session, customer):
        with pytest.raises(InsufficientCreditError):
            credit_service.process_cash_refund(customer_id=customer.id, amount_cents=100)

    def test_non_positive_rejected(self, db_session, credit_customer):
        with pytest.raises(ValidationError):
            credit_service.process_cash_refund(customer_id=credit_customer.id, amount_cents=0)


class TestPayInvoiceWithCredit:

    @pytest.fixture
    def credit_invoice(self, db_session, customer, make_invoice):
        """Customer owes a 60.00 invoice but also holds 100.00 credit (net -40.00)."""
        invoice = make_invoice(price_cents=6_000)
        customer = db_session.get(Customer, customer.id)
        customer.account_balance_cents = -4_000
        db_session.commit()
        return invoice

    def test_pays_invoice_and_consumes_credit(self, db_session, customer, credit_invoice):
        transaction = credit_service.pay_invoice_with_credit(invoice_id=credit_invoice.id, amount_cents=4_000)

        assert transaction.type == "INVOICE_PAYMENT"
        assert transaction.reference_id == credit_invoice.id
        assert db_session.get(Customer, customer.id).account_balance_cents == 0

        invoice = invoice_service.get_invoice(credit_invoice.id)
        assert invoice.status == "PARTIAL"
        assert invoice.paid_amount_cents == 4_000
        assert invoice.remaining_balance_cents == 2_000
        assert invoice.payments[-1].note == "Paid using customer credit"

    def test_exceeding_credit_rejected(self, db_session, credit_invoice):
        with pytest.raises(InsufficientCreditError):
            credit_service.pay_invoice_with_credit(invoice_id=credit_invoice.id, amount_cents=5_000)

    def test_exceeding_invoice_remaining_rejected(self, db_session, customer, credit_invoice):
        customer = db_session.get(Customer, customer.id)
        customer.account_balance_cents = -50_000
        db_session.commit()

        with pytest.raises(OverpaymentError):
            credit_service.pay_invoice_with_credit(invoice_id=credit_invoice.id, amount_cents=6_001)

    def test_credit_ceiling_invariant(self, db_session, credit_customer):
        for amount in (3_000, 3_000, 3_000, 3_000):
            try:
                credit_service.process_cash_refund(customer_id=credit_customer.id, amount_cents=amount)
            except InsufficientCreditError:
                pass
        assert db_session.get(Customer, credit_customer.id).account_balance_cents == -1_000


def test_credit_history(db_session, credit_customer):
    credit_service.process_cash_refund(customer_id=credit_customer.id, amount_cents=1_000)
    history = credit_service.get_credit_history(credit_customer.id)
    assert history["available_credit_cents"] == 9_000
    assert [t["type"] for t in history["transactions"]] == ["CASH_REFUND"]
