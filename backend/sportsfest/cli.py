# Overview: Flask CLI command groups for cron sweeps, inventory inspection, and database reset.

# backend/sportsfest/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "sportsfest:create_app" (PowerShell: $env:FLASK_APP="sportsfest:create_app").
# - Use: python -m flask <group> <command> [options]
#
# Maintenance (schedule these from cron):
# - python -m flask maintenance cleanup-carts
#   Delete expired carts and release their reserved inventory.
# - python -m flask maintenance cleanup-orders [--older-than-hours 24] [--event-year-id 3]
#   Dry run: count pending orders with no payment older than the threshold.
# - python -m flask maintenance cleanup-orders --execute
#   Delete them and release the inventory they hold.
# - python -m flask maintenance cleanup-orders --quick --execute
#   Same with the short (1 hour) threshold.
#
# Inventory inspection:
# - python -m flask inventory status 12
#   Show capacity, reserved and available units of a product.
# - python -m flask inventory check 12
#   Recompute reserved units from carts and orders and report drift.
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import inventory_service, maintenance_service
from .services.errors import CommerceError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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


@click.group('inventory')
def inventory_group():
    """Inventory ledger inspection."""


@inventory_group.command('status')
@click.argument('product_id', type=int)
@with_appcontext
def inventory_status(product_id):
    """Show capacity, reserved and available units."""
    try:
        status = inventory_service.get_inventory_status(product_id)
    except CommerceError as e:
        raise click.ClickException(e.message)

    total = "unbounded" if status["unbounded"] else status["total_inventory"]
    available = "unbounded" if status["unbounded"] else status["available_quantity"]
    click.echo(f"{status['name']} (#{status['product_id']}, {status['product_type']})")
    click.echo(f"  total:     {total}")
    click.echo(f"  reserved:  {status['reserved_count']}")
    click.echo(f"  available: {available}")


@inventory_group.command('check')
@click.argument('product_id', type=int)
@with_appcontext
def inventory_check(product_id):
    """
    Compare reserved_count against live carts + live orders.

    Exits with status 1 when drift is found.
    """
    try:
        report = inventory_service.check_ledger_integrity(product_id)
    except CommerceError as e:
        raise click.ClickException(e.message)

    click.echo(f"{report['name']} (#{report['product_id']})")
    click.echo(f"  reserved_count: {report['reserved_count']}")
    click.echo(f"  expected:       {report['expected_reserved_count']}")
    if report["consistent"]:
        click.echo("PASS Ledger is consistent.")
        return
    click.echo(f"FAIL Drift of {report['drift']} units.")
    raise SystemExit(1)


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-carts')
@with_appcontext
def cleanup_carts_cli():
    """Delete expired carts and release their inventory."""
    result = maintenance_service.cleanup_expired_carts()
    click.echo(
        f"Deleted {result['deleted_cart_count']} expired carts, released "
        f"{result['total_units_released']} units across {result['affected_product_count']} products."
    )
    if result["errors"]:
        click.echo(f"WARN {result['errors']} carts failed and will be retried on the next run.")


@maintenance_group.command('cleanup-orders')
@click.option('--older-than-hours', type=float, default=None, help='Default: ABANDONED_ORDER_HOURS')
@click.option('--execute', is_flag=True, help='Delete (default is a dry run)')
@click.option('--event-year-id', type=int, default=None)
@click.option('--quick', is_flag=True, help='Use QUICK_CLEANUP_HOURS (overrides --older-than-hours)')
@with_appcontext
def cleanup_orders_cli(older_than_hours, execute, event_year_id, quick):
    """Find (and with --execute delete) abandoned pending orders."""
    try:
        if quick:
            result = maintenance_service.quick_cleanup_abandoned_orders(
                execute=execute,
                event_year_id=event_year_id,
            )
        else:
            result = maintenance_service.cleanup_abandoned_orders(
                older_than_hours=older_than_hours,
                execute=execute,
                event_year_id=event_year_id,
            )
    except CommerceError as e:
        raise click.ClickException(e.message)

    if result["dry_run"]:
        click.echo(
            f"DRY RUN: {result['found_orders']} abandoned orders older than "
            f"{result['older_than_hours']}h. Re-run with --execute to delete."
        )
    else:
        click.echo(
            f"Deleted {result['deleted_orders']} abandoned orders older than "
            f"{result['older_than_hours']}h, released {result['units_released']} units."
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(maintenance_group)
