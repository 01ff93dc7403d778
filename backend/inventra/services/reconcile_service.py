# Overview: Offline repair and diagnostics over invoice and stock bookkeeping.

"""
Reconciliation Repair

The customer's account balance is authoritative for aggregate debt. Invoice
paid/remaining/status fields are per-invoice bookkeeping that can drift (for
example after returns on CREDIT invoices, which lower the balance without
touching the invoice).

For each customer:
    invoice_debt = sum(remaining) over UNPAID/PARTIAL invoices
    actual_debt  = max(0, account_balance)
    gap          = invoice_debt - actual_debt

When gap exceeds the settlement tolerance it is spread across open invoices
oldest first, exactly like payment auto-settlement, but without Payment rows
and without touching the balance.
"""

from __future__ import annotations

from collections import defaultdict

from sqlalchemy import func

from ..extensions import db
from ..models import Customer, Invoice, InvoiceItem, Return, ReturnItem, Stock
from .concurrency import lock_for_update, run_atomic
from .customer_payment_service import allocate_oldest_first, open_invoices_oldest_first, settle_invoice
from .history_service import record_history
from .invoice_service import SETTLEMENT_TOLERANCE_CENTS


def reconcile_all_customers(*, dry_run: bool = False, user_id: int | None = None) -> dict:
    """
    Align invoice bookkeeping with customer balances.

    Returns:
        {"updated_count": invoices touched, "dry_run": bool, "customers": [per-customer report]}
    """

    def _op():
        customers = lock_for_update(db.session.query(Customer).order_by(Customer.id.asc())).all()

        updated_count = 0
        report = []
        for customer in customers:
            invoices = open_invoices_oldest_first(customer.id, lock=True)
            invoice_debt = sum(inv.remaining_balance_cents for inv in invoices)
            actual_debt = max(0, customer.account_balance_cents)
            gap = invoice_debt - actual_debt
            if gap <= SETTLEMENT_TOLERANCE_CENTS:
                continue

            allocations = allocate_oldest_first(invoices, gap)
            report.append({
                "customer_id": customer.id,
                "invoice_debt_cents": invoice_debt,
                "actual_debt_cents": actual_debt,
                "repaired_cents": sum(a.amount_cents for a in allocations),
                "invoices": [a.to_dict() for a in allocations],
            })
            updated_count += len(allocations)

            if not dry_run:
                for allocation in allocations:
                    settle_invoice(allocation.invoice, allocation.amount_cents)

        if dry_run:
            db.session.rollback()
        else:
            db.session.commit()
        return {"updated_count": updated_count, "dry_run": dry_run, "customers": report}

    result = run_atomic(_op)

    if not dry_run and result["updated_count"]:
        record_history(
            user_id=user_id,
            action="RECONCILE",
            entity="Customer",
            details={
                "updated_count": result["updated_count"],
                "customer_ids": [c["customer_id"] for c in result["customers"]],
            },
        )
    return result


def check_invariants() -> dict:
    """
    Report ledger invariant violations without repairing anything.

    Checks negative stock, invoices whose paid + remaining differs from the
    final total by more than the tolerance, and returns exceeding sold quantities.
    """
    negative_stock = [
        row.to_dict()
        for row in db.session.query(Stock).filter(Stock.quantity < 0).order_by(Stock.id.asc()).all()
    ]

    unbalanced = []
    for invoice in db.session.query(Invoice).order_by(Invoice.id.asc()).all():
        drift = invoice.paid_amount_cents + invoice.remaining_balance_cents - invoice.final_total_cents
        if abs(drift) > SETTLEMENT_TOLERANCE_CENTS:
            unbalanced.append({
                "invoice_id": invoice.id,
                "invoice_number": invoice.invoice_number,
                "drift_cents": drift,
            })

    sold: dict[tuple[int, int], int] = defaultdict(int)
    for invoice_id, variant_id, quantity in (
        db.session.query(InvoiceItem.invoice_id, InvoiceItem.product_variant_id, func.sum(InvoiceItem.quantity))
        .group_by(InvoiceItem.invoice_id, InvoiceItem.product_variant_id)
        .all()
    ):
        sold[(invoice_id, variant_id)] = int(quantity)

    over_returned = []
    for invoice_id, variant_id, quantity in (
        db.session.query(Return.invoice_id, ReturnItem.product_variant_id, func.sum(ReturnItem.quantity))
        .join(Return, Return.id == ReturnItem.return_id)
        .group_by(Return.invoice_id, ReturnItem.product_variant_id)
        .all()
    ):
        if int(quantity) > sold.get((invoice_id, variant_id), 0):
            over_returned.append({
                "invoice_id": invoice_id,
                "product_variant_id": variant_id,
                "returned": int(quantity),
                "sold": sold.get((invoice_id, variant_id), 0),
            })

    return {
        "ok": not (negative_stock or unbalanced or over_returned),
        "negative_stock": negative_stock,
        "unbalanced_invoices": unbalanced,
        "over_returned": over_returned,
    }
