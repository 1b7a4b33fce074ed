# Overview: Flask CLI command groups for POS sync, order sweeps, and reservation repair.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Schema:
# - python -m flask db upgrade
#   Apply migrations (creates the orders (status, created_at) index the sweep needs).
#
# POS:
# - python -m flask pos sync-stock
#   Pull items and inventory from Loyverse and mirror stock onto the catalog.
#   Unknown SKUs become draft products.
#
# Orders:
# - python -m flask orders cleanup-stale [--days 7]
#   Delete PENDING / PENDING_PAYMENT / FAILED orders older than the threshold.
#   Schedule this (cron) to bound storage growth.
# - python -m flask orders process 'ORD-1700000000000'
#   Re-run fulfillment for a PAID order (skips steps already done).
#
# Reservations:
# - python -m flask reservations reset --yes
#   Zero reserved_quantity on every product and variant.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import CLIENTS_KEY
from .services import fulfillment_service, maintenance_service, stock_sync_service


def _clients() -> dict:
    return current_app.extensions[CLIENTS_KEY]


@click.group('pos')
def pos_group():
    """Loyverse POS commands."""


@pos_group.command('sync-stock')
@with_appcontext
def sync_stock_cli():
    """Mirror POS stock onto catalog products and variants."""
    stats = stock_sync_service.sync_stock_from_pos(_clients()["pos"])
    if not stats["success"]:
        raise click.ClickException(f"Stock sync failed: {stats['error']}")
    click.echo(
        f"PASS Fetched {stats['total_items_fetched']} items: "
        f"{stats['updated']} updated, {stats['created']} drafts created, "
        f"{stats['skipped']} skipped ({stats['batches']} batches)"
    )


@click.group('orders')
def orders_group():
    """Order maintenance commands."""


@orders_group.command('cleanup-stale')
@click.option('--days', type=int, default=None, help='Age threshold in days (default STALE_ORDER_DAYS)')
@with_appcontext
def cleanup_stale_cli(days):
    """Delete unpaid and failed orders older than the threshold."""
    if days is not None and days < 1:
        raise click.BadParameter("must be at least 1", param_hint="--days")
    result = maintenance_service.cleanup_stale_orders(days=days)
    if not result["success"]:
        raise click.ClickException(result["error"])
    click.echo(f"Deleted {result['deleted']} orders created before {result['cutoff']}.")


@orders_group.command('process')
@click.argument('order_id')
@with_appcontext
def process_order_cli(order_id):
    """Re-run fulfillment for a PAID order."""
    clients = _clients()
    result = fulfillment_service.process_successful_order(
        order_id, pos=clients["pos"], shipping=clients.get("shipping")
    )
    if not result["success"]:
        raise click.ClickException(result["error"])
    click.echo(
        f"Order {order_id}: POS {result['loyverse_status']}, shipping {result['shipping_status']}"
    )
    if result.get("loyverse_error"):
        click.echo(f"WARN POS error: {result['loyverse_error']}")


@click.group('reservations')
def reservations_group():
    """Stock reservation repair commands."""


@reservations_group.command('reset')
@click.option('--yes', is_flag=True, help='Confirm resetting every reservation')
@with_appcontext
def reset_reservations_cli(yes):
    """Zero reserved_quantity everywhere (use after clearing orders)."""
    if not yes:
        raise click.UsageError("Refusing to reset reservations without --yes")
    result = maintenance_service.reset_reserved_stock()
    if not result["success"]:
        raise click.ClickException(result["error"])
    click.echo(f"Reset {result['products_reset']} products and {result['variants_reset']} variants.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(pos_group)
    app.cli.add_command(orders_group)
    app.cli.add_command(reservations_group)
