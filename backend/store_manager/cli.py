# Overview: Flask CLI command groups for bootstrap, tenant sessions, and ledger maintenance.

# backend/store_manager/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent). Use "flask db upgrade" for migrated deployments.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stores (tenants) and API tokens:
# - python -m flask stores create --name "Corner Shop" --email shop@example.com
#   Create a store and print a bearer token for it.
# - python -m flask stores list
# - python -m flask stores issue-token --store-id 1 --label "tablet" --days 30
#   Issue another bearer token (printed once, only its hash is stored).
# - python -m flask stores revoke-tokens --store-id 1
#
# Customer ledger maintenance:
# - python -m flask ledger verify --store-id 1
#   Report customers whose cached balance differs from their payment history.
# - python -m flask ledger repair --store-id 1
#   Recompute drifted balances from payment history and persist them.

import click
from datetime import timedelta
from flask.cli import with_appcontext

from .extensions import db
from .services import ledger_service, session_service, store_service
from .services.errors import StoreManagerError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


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


@click.group('stores')
def stores_group():
    """Store (tenant) management commands."""


@stores_group.command('create')
@click.option('--name', prompt=True, help='Store name')
@click.option('--email', prompt=True, help='Store contact email (unique)')
@click.option('--logo-url', default=None, help='Optional logo URL')
@with_appcontext
def create_store_cmd(name, email, logo_url):
    """Create a store and issue its first API token."""
    try:
        store = store_service.create_store(name, email, logo_url=logo_url)
    except StoreManagerError as e:
        raise click.ClickException(str(e))

    _, token = session_service.create_session(store.id, label="initial")
    click.echo(f"PASS Created store: {store.name} (ID: {store.id})")
    click.echo(f"TOKEN {token}")
    click.echo("WARN Store this token now; it cannot be shown again.")


@stores_group.command('list')
@with_appcontext
def list_stores_cmd():
    """List all stores."""
    stores = store_service.list_stores()
    if not stores:
        click.echo("No stores found.")
        return

    click.echo(f"\n{'ID':<5} {'Name':<30} {'Email':<35}")
    click.echo("-" * 72)
    for store in stores:
        click.echo(f"{store.id:<5} {store.name:<30} {store.email:<35}")
    click.echo(f"\nTotal: {len(stores)} stores")


@stores_group.command('issue-token')
@click.option('--store-id', type=int, required=True, help='Store ID')
@click.option('--label', default=None, help='Label to identify the token')
@click.option('--days', type=int, default=None, help='Expire after N days (default: never)')
@with_appcontext
def issue_token_cmd(store_id, label, days):
    """Issue a bearer token bound to a store."""
    try:
        session, token = session_service.create_session(
            store_id,
            label=label,
            expires_in=timedelta(days=days) if days else None,
        )
    except StoreManagerError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Issued token #{session.id} for store {store_id}")
    click.echo(f"TOKEN {token}")


@stores_group.command('revoke-tokens')
@click.option('--store-id', type=int, required=True, help='Store ID')
@with_appcontext
def revoke_tokens_cmd(store_id):
    """Revoke every active token of a store."""
    count = session_service.revoke_store_sessions(store_id)
    click.echo(f"PASS Revoked {count} token(s) for store {store_id}")


@click.group('ledger')
def ledger_group():
    """Customer ledger verification and repair."""


def _print_drift(rows):
    click.echo(f"\n{'Customer':<10} {'Name':<30} {'Cached':>12} {'History':>12} {'Drift':>10}")
    click.echo("-" * 78)
    for row in rows:
        click.echo(
            f"{row['customer_id']:<10} {row['name'][:30]:<30} "
            f"{row['balance_cents']:>12} {row['recomputed_balance_cents']:>12} {row['drift_cents']:>10}"
        )


@ledger_group.command('verify')
@click.option('--store-id', type=int, required=True, help='Store ID')
@with_appcontext
def verify_ledger_cmd(store_id):
    """Report customers whose balance differs from SUM(payments)."""
    drifted = ledger_service.verify_store_balances(store_id)
    if not drifted:
        click.echo("PASS All customer balances match payment history.")
        return

    _print_drift(drifted)
    click.echo(f"\nFAIL {len(drifted)} customer balance(s) drifted. Run 'flask ledger repair --store-id {store_id}'.")
    raise SystemExit(1)


@ledger_group.command('repair')
@click.option('--store-id', type=int, required=True, help='Store ID')
@with_appcontext
def repair_ledger_cmd(store_id):
    """Recompute drifted balances from payment history."""
    try:
        repaired = ledger_service.repair_store_balances(store_id)
    except StoreManagerError as e:
        raise click.ClickException(str(e))

    if not repaired:
        click.echo("PASS Nothing to repair.")
        return

    _print_drift(repaired)
    click.echo(f"\nPASS Repaired {len(repaired)} customer balance(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stores_group)
    app.cli.add_command(ledger_group)
