# Overview: Flask CLI command groups for bootstrap, stock operations and shift inspection.

# backend/riderops/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stock:
# - python -m flask stock send --branch-id 1 --rider-id 7 --item 3:20 --item 4:10
#   Send stock to a rider (one 'sent' movement per --item PRODUCT:QTY).
# - python -m flask stock balances --rider-id 7 [--all]
#   Show what a rider currently holds.
# - python -m flask stock audit --rider-id 7
#   Recompute balances from the movement log and report drift (exit code 1 on drift).
#
# Shifts:
# - python -m flask shifts list [--rider-id 7] [--date 2026-10-18] [--status active]
#   List shifts, newest first.
# - python -m flask shifts show 12
#   Show one shift with its daily report and expenses.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import report_service, shift_service, stock_service
from .validation import EngineError, parse_date


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


@click.group('stock')
def stock_group():
    """Rider stock commands."""


def _parse_item(value: str) -> dict:
    try:
        product_id, quantity = value.split(":", 1)
        return {"product_id": int(product_id), "quantity": int(quantity)}
    except ValueError:
        raise click.BadParameter(f"expected PRODUCT:QTY, got {value!r}")


@stock_group.command('send')
@click.option('--branch-id', type=int, required=True)
@click.option('--rider-id', type=int, required=True)
@click.option('--item', 'items', multiple=True, required=True, help='PRODUCT_ID:QUANTITY')
@click.option('--notes', default=None)
@with_appcontext
def send_stock_cli(branch_id, rider_id, items, notes):
    """
    Send stock from a branch to a rider.

    Example:
        flask stock send --branch-id 1 --rider-id 7 --item 3:20 --item 4:10
    """
    try:
        movements = stock_service.send_stock(
            branch_id=branch_id,
            rider_id=rider_id,
            items=[_parse_item(i) for i in items],
            notes=notes,
        )
    except EngineError as e:
        db.session.rollback()
        raise click.ClickException(f"{e.code}: {e}")

    click.echo(f"PASS Sent {len(movements)} line(s) to rider {rider_id} (ref {movements[0].reference_id})")
    for m in movements:
        click.echo(f"   movement {m.id}: product {m.product_id} x {m.quantity}")


@stock_group.command('balances')
@click.option('--rider-id', type=int, required=True)
@click.option('--all', 'show_all', is_flag=True, help='Include products with zero stock')
@with_appcontext
def balances_cli(rider_id, show_all):
    """Show a rider's current stock."""
    balances = stock_service.get_balances(rider_id, include_empty=show_all)
    if not balances:
        click.echo("No stock held.")
        return

    click.echo("\n" + "="*60)
    click.echo(f"{'Balance':<10} {'Product':<10} {'Branch':<10} {'Quantity'}")
    click.echo("="*60)
    for b in balances:
        click.echo(f"{b.id:<10} {b.product_id:<10} {b.branch_id:<10} {b.stock_quantity}")
    click.echo("="*60)
    click.echo(f"Outstanding lines: {stock_service.remaining_stock_count(rider_id)}")


@stock_group.command('audit')
@click.option('--rider-id', type=int, required=True)
@with_appcontext
def audit_cli(rider_id):
    """Compare stored balances with the movement log."""
    report = stock_service.audit_balances(rider_id)
    drifted = [line for line in report if line["drift"] != 0]

    click.echo(f"{'Product':<10} {'Stored':<10} {'Ledger':<10} {'Drift'}")
    for line in report:
        click.echo(f"{line['product_id']:<10} {line['stock_quantity']:<10} {line['ledger_quantity']:<10} {line['drift']}")

    if drifted:
        click.echo(f"FAIL {len(drifted)} product(s) drifted from the movement log")
        raise SystemExit(1)
    click.echo("PASS Balances match the movement log")


@click.group('shifts')
def shifts_group():
    """Shift inspection commands."""


@shifts_group.command('list')
@click.option('--rider-id', type=int, default=None)
@click.option('--date', 'day', default=None, help='YYYY-MM-DD')
@click.option('--status', default=None)
@click.option('--limit', type=int, default=50)
@with_appcontext
def list_shifts_cli(rider_id, day, status, limit):
    """List shifts, newest first."""
    shift_date = parse_date(day, "date") if day else None
    shifts, total = shift_service.list_shifts(
        rider_id=rider_id,
        from_date=shift_date,
        to_date=shift_date,
        status=status,
        limit=limit,
    )
    if not shifts:
        click.echo("No shifts found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<6} {'Rider':<8} {'Date':<12} {'#':<4} {'Status':<11} {'Sales':<12} {'Deposit':<12} {'Verified'}")
    click.echo("="*90)
    for s in shifts:
        click.echo(
            f"{s.id:<6} {s.rider_id:<8} {s.shift_date.isoformat():<12} {s.shift_number:<4} "
            f"{s.status:<11} {s.total_sales:<12} {s.cash_collected:<12} {'yes' if s.report_verified else 'no'}"
        )
    click.echo(f"\n{len(shifts)} of {total} shift(s)")


@shifts_group.command('show')
@click.argument('shift_id', type=int)
@with_appcontext
def show_shift_cli(shift_id):
    """Show one shift with its daily report and expenses."""
    try:
        shift = shift_service.get_shift(shift_id)
    except EngineError as e:
        raise click.ClickException(str(e))

    click.echo(f"Shift {shift.id}: rider {shift.rider_id}, {shift.shift_date} #{shift.shift_number} ({shift.status})")
    click.echo(f"   started {shift.shift_start_time}, ended {shift.shift_end_time}")

    report = report_service.get_report_for_shift(shift_id)
    if report is None:
        click.echo("   no daily report yet")
        return

    click.echo(
        f"   sales {report.total_sales} (cash {report.cash_sales}, qris {report.qris_sales}, "
        f"transfer {report.transfer_sales}), {report.total_transactions} transaction(s)"
    )
    click.echo(f"   expenses {report.total_expenses}, deposit {report.cash_collected}")
    for e in shift.expenses:
        click.echo(f"      - {e.expense_type}: {e.amount} {e.description or ''}")
    verified = f"by {report.verified_by_user_id} at {report.verified_at}" if report.verified_at else "pending"
    click.echo(f"   verification: {verified}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(shifts_group)
