# Overview: Flask CLI command groups for schema bootstrap, stock inspection and ledger maintenance.

# backend/consigna/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to consigna (PowerShell: $env:FLASK_APP="consigna").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Apply the current schema to the configured database (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stock inspection/maintenance:
# - python -m flask stock balance 12
#   Print the ledger-derived stock of product 12.
# - python -m flask stock movements 12 --limit 20
#   Print the most recent movements of product 12.
# - python -m flask stock add 12 100 --note "Batch 42"
#   Append an inbound/production movement.
# - python -m flask stock rebuild-balances
#   Recompute every cached balance from the movement ledger.
# - python -m flask stock verify
#   Report products whose cached balance disagrees with the ledger.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .decorators import current_store
from .services import ledger_service, products_service
from .services.store import run_in_transaction
from .validation import NotFoundError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create any missing tables for the current schema."""
    current_store().ensure_schema()
    click.echo("PASS Schema is up to date.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the stock ledger!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    engine = current_store().engine
    click.echo("DELETE  Dropping all tables...")
    db.metadata.drop_all(engine)

    click.echo("BUILD  Creating all tables...")
    db.metadata.create_all(engine)

    click.echo("PASS Database reset complete.")


@click.group('stock')
def stock_group():
    """Stock ledger inspection and maintenance."""


@stock_group.command('balance')
@click.argument('product_id', type=int)
@with_appcontext
def stock_balance(product_id):
    """Print the current stock of a product."""
    try:
        product = products_service.get_product(current_store(), product_id)
    except NotFoundError as e:
        raise click.ClickException(str(e))
    click.echo(f"{product['id']}\t{product['name']}\t{product['stock']} {product['unit']}")


@stock_group.command('movements')
@click.argument('product_id', type=int)
@click.option('--limit', default=20, show_default=True, type=int)
@with_appcontext
def stock_movements(product_id, limit):
    """List recent movements of a product, newest first."""
    try:
        movements = products_service.product_movements(current_store(), product_id, limit=limit)
    except NotFoundError as e:
        raise click.ClickException(str(e))

    if not movements:
        click.echo("No movements.")
        return
    for m in movements:
        sign = "+" if m["direction"] == "inbound" else "-"
        origin = f"#{m['origin_id']}" if m["origin_id"] is not None else ""
        click.echo(f"{m['date']}\t{sign}{m['quantity']}\t{m['category']}{origin}\t{m['note'] or ''}")


@stock_group.command('add')
@click.argument('product_id', type=int)
@click.argument('quantity', type=int)
@click.option('--note', default=None, help='Free-text note for the movement')
@with_appcontext
def stock_add(product_id, quantity, note):
    """Append an inbound/production movement."""
    try:
        result = ledger_service.add_stock(current_store(), product_id=product_id, quantity=quantity, note=note)
    except (NotFoundError, ValidationError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Product {product_id} stock is now {result['stock']}")


@stock_group.command('rebuild-balances')
@with_appcontext
def rebuild_balances():
    """Recompute the cached balance of every product from the ledger."""
    count = run_in_transaction(current_store(), ledger_service.rebuild_balances)
    current_app.logger.info("Rebuilt %d cached stock balances", count)
    click.echo(f"PASS Rebuilt {count} balance(s).")


@stock_group.command('verify')
@with_appcontext
def verify_balances():
    """Compare cached balances with the ledger sums."""
    with current_store().reader() as session:
        drift = ledger_service.find_balance_drift(session)

    if not drift:
        click.echo("PASS Cached balances match the ledger.")
        return
    for row in drift:
        click.echo(f"FAIL product {row['product_id']}: cached {row['cached']}, ledger {row['ledger']}")
    raise click.ClickException(f"{len(drift)} product(s) out of sync; run 'flask stock rebuild-balances'")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
