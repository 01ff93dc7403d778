# Overview: Flask CLI command groups for schema bootstrap and ledger maintenance.

# backend/inventra/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Ledger maintenance:
# - python -m flask ledger reconcile [--dry-run]
#   Align invoice paid/remaining/status with customer balances.
# - python -m flask ledger check
#   Report invariant violations; exits 1 when any are found.

import json

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import reconcile_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Schema created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('ledger')
def ledger_group():
    """Ledger reconciliation and diagnostics."""


@ledger_group.command('reconcile')
@click.option('--dry-run', is_flag=True, help='Report what would change without writing')
@with_appcontext
def reconcile_cli(dry_run):
    """Repair invoice bookkeeping drift against customer balances."""
    result = reconcile_service.reconcile_all_customers(dry_run=dry_run)

    label = "Would update" if dry_run else "Updated"
    click.echo(f"{label} {result['updated_count']} invoice(s) across {len(result['customers'])} customer(s)")
    for entry in result["customers"]:
        click.echo(
            f"  customer {entry['customer_id']}: invoice debt {entry['invoice_debt_cents']}, "
            f"balance debt {entry['actual_debt_cents']}, repaired {entry['repaired_cents']}"
        )


@ledger_group.command('check')
@with_appcontext
def check_cli():
    """Print invariant violations. Exit code 1 when any exist."""
    report = reconcile_service.check_invariants()
    if report["ok"]:
        click.echo("PASS No invariant violations.")
        return

    for key in ("negative_stock", "unbalanced_invoices", "over_returned"):
        for violation in report[key]:
            click.echo(f"FAIL {key}: {json.dumps(violation, sort_keys=True)}")
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
