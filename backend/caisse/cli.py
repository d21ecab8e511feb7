# Overview: Flask CLI command groups for bootstrap, till operations and inspection.

# backend/caisse/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent; use "flask db upgrade" for migrated deployments).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Locations:
# - python -m flask locations create --code BTQ-01 --name "Boutique Plateau" --city Dakar
# - python -m flask locations list [--all]
#
# Till sessions (amounts in minor units):
# - python -m flask sessions open --location-id 1 --opening 50000
# - python -m flask sessions status --location-id 1
#   Show the open session with its running theoretical balance.
# - python -m flask sessions close --session-id 1 --counted 82500 [--notes "..."]
# - python -m flask sessions list [--location-id 1] [--status OPEN] [--limit 20]

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import location_service, session_service, reconciliation_service
from .validation import ValidationError, ConflictError, InvalidStateError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema ready.")


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


# =============================================================================
# LOCATION COMMANDS
# =============================================================================

@click.group('locations')
def locations_group():
    """Location registry commands."""


@locations_group.command('create')
@click.option('--code', required=True, help='Unique location code')
@click.option('--name', required=True, help='Display name')
@click.option('--kind', type=click.Choice(['STORE', 'WAREHOUSE', 'MOBILE', 'OTHER']), default='STORE', show_default=True)
@click.option('--city', help='City')
@with_appcontext
def create_location_cli(code, name, kind, city):
    """
    Create a new location.

    Example:
        flask locations create --code BTQ-01 --name "Boutique Plateau" --city Dakar
    """
    try:
        location = location_service.create_location(code=code, name=name, kind=kind, city=city)
        click.echo(f"PASS Created location: {location.code} - {location.name}")
        click.echo(f"   Location ID: {location.id}")
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL Error: {str(e)}")


@locations_group.command('list')
@click.option('--all', 'show_all', is_flag=True, help='Show inactive locations too')
@with_appcontext
def list_locations_cli(show_all):
    """List locations and whether their till is open."""
    locations = location_service.list_locations(include_inactive=show_all)

    if not locations:
        click.echo("No locations found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Code':<16} {'Name':<30} {'Active':<8} {'Till'}")
    click.echo("="*80)
    for location in locations:
        active_session = session_service.get_active_session(location.id)
        till = f"OPEN (session {active_session.id})" if active_session else "closed"
        click.echo(
            f"{location.id:<5} {location.code:<16} {location.name[:30]:<30} "
            f"{'yes' if location.is_active else 'no':<8} {till}"
        )
    click.echo("="*80 + "\n")


# =============================================================================
# SESSION COMMANDS
# =============================================================================

@click.group('sessions')
def sessions_group():
    """Till session commands."""


@sessions_group.command('open')
@click.option('--location-id', type=int, required=True, help='Location ID')
@click.option('--opening', 'opening_cents', type=int, required=True, help='Opening balance (minor units)')
@click.option('--notes', help='Opening notes')
@click.option('--operator', help='Operator opening the till')
@with_appcontext
def open_session_cli(location_id, opening_cents, notes, operator):
    """Open the till of a location."""
    try:
        session = session_service.open_session(location_id, opening_cents, notes, opened_by=operator)
        click.echo(f"PASS Opened session {session.id} on location {location_id}")
        click.echo(f"   Opening balance: {session.opening_balance_cents}")
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL Error: {str(e)}")


@sessions_group.command('status')
@click.option('--location-id', type=int, required=True, help='Location ID')
@with_appcontext
def session_status_cli(location_id):
    """Show the open session of a location with its running balance."""
    session = session_service.get_active_session(location_id)
    if not session:
        click.echo(f"No open session on location {location_id}.")
        return

    stats = reconciliation_service.statistics_for(session)
    click.echo(f"\nSession {session.id} (opened {session.opened_at:%Y-%m-%d %H:%M})")
    click.echo("-"*50)
    click.echo(f"  {'Opening balance':<28} {stats.opening_balance_cents:>14}")
    click.echo(f"  {'Sales (' + str(stats.sales_count) + ')':<28} {stats.total_sales_cents:>14}")
    for method, total in stats.sales_by_payment_method.items():
        if total:
            click.echo(f"    {method:<26} {total:>14}")
    click.echo(f"  {'Entries':<28} {stats.total_entries_cents:>14}")
    click.echo(f"  {'Exits':<28} {-stats.total_exits_cents:>14}")
    click.echo("-"*50)
    click.echo(f"  {'Theoretical balance':<28} {stats.theoretical_balance_cents:>14}\n")


@sessions_group.command('close')
@click.option('--session-id', type=int, required=True, help='Session ID')
@click.option('--counted', 'counted_cents', type=int, required=True, help='Counted drawer amount (minor units)')
@click.option('--notes', help='Closing notes')
@click.option('--operator', help='Operator closing the till')
@with_appcontext
def close_session_cli(session_id, counted_cents, notes, operator):
    """Close a session and print the reconciliation."""
    try:
        result = session_service.close_session(session_id, counted_cents, notes, closed_by=operator)
    except (ValidationError, InvalidStateError) as e:
        click.echo(f"FAIL Error: {str(e)}")
        return

    rec = result.reconciliation
    label = "WARN" if rec.is_flagged else "PASS"
    click.echo(f"{label} Session {session_id} closed")
    click.echo(f"   Theoretical: {rec.theoretical_balance_cents}")
    click.echo(f"   Counted:     {rec.counted_balance_cents}")
    click.echo(f"   Variance:    {rec.variance_cents:+d} ({rec.variance_flag})")


@sessions_group.command('list')
@click.option('--location-id', type=int, help='Filter by location ID')
@click.option('--status', type=click.Choice(['OPEN', 'CLOSED']), help='Filter by status')
@click.option('--limit', type=int, default=20, help='Max sessions to show')
@with_appcontext
def list_sessions_cli(location_id, status, limit):
    """
    List cash sessions.

    Example:
        flask sessions list
        flask sessions list --location-id 1 --status CLOSED
    """
    sessions = session_service.list_sessions(location_id=location_id, status=status, limit=limit)

    if not sessions:
        click.echo("No sessions found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Location':<10} {'Date':<12} {'Status':<8} {'Opening':>12} {'Counted':>12} {'Variance':>10} {'Flag'}")
    click.echo("="*100)

    for session in sessions:
        counted = "-" if session.closing_counted_cents is None else str(session.closing_counted_cents)
        variance = "-" if session.variance_cents is None else f"{session.variance_cents:+d}"
        click.echo(
            f"{session.id:<5} {session.location_id:<10} {session.business_date.isoformat():<12} "
            f"{session.status:<8} {session.opening_balance_cents:>12} {counted:>12} {variance:>10} "
            f"{session.variance_flag or ''}"
        )

    click.echo("="*100 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(locations_group)
    app.cli.add_command(sessions_group)
