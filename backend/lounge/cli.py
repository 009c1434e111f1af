# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/lounge/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create all tables and stamp the schema version (idempotent).
# - python -m flask system check-schema
#   Exit non-zero when the database schema version does not match the code.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stations:
# - python -m flask stations list [--status AVAILABLE]
# - python -m flask stations create --name "PS5 #1" --type PS5 [--hourly-cents 20000] [--game-cents 4000]
# - python -m flask stations maintenance 3 --reason "Controller drift" [--eta "Friday"]
# - python -m flask stations maintenance 3 --clear
#
# Stats:
# - python -m flask stats show [--date 2024-05-01]
# - python -m flask stats recompute [--date 2024-05-01]

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import LoungeError, SchemaMismatchError
from .models import SCHEMA_VERSION
from .services import schema_service, station_service, stats_service
from .time_utils import business_date, parse_iso_date


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create tables and stamp the schema version."""
    click.echo("START Initializing lounge database...")
    db.create_all()
    found = schema_service.current_version()
    if found is None:
        schema_service.stamp_schema()
        click.echo(f"PASS Stamped schema version {SCHEMA_VERSION}")
    elif found == SCHEMA_VERSION:
        click.echo(f"PASS Schema already at version {found}")
    else:
        raise click.ClickException(
            f"Database is stamped with version {found}, code expects {SCHEMA_VERSION}; migrate before init"
        )
    click.echo("DONE Lounge database ready")


@system_group.command('check-schema')
@with_appcontext
def check_schema():
    try:
        found = schema_service.check_schema()
    except SchemaMismatchError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Schema version {found}")


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
    click.echo("BUILD Creating all tables...")
    db.create_all()
    schema_service.stamp_schema()
    click.echo(f"PASS Database reset complete (schema version {SCHEMA_VERSION})")


@click.group('stations')
def stations_group():
    """Station inspection and maintenance."""


@stations_group.command('list')
@click.option('--status', default=None, help='AVAILABLE, ACTIVE or MAINTENANCE')
@with_appcontext
def list_stations(status):
    stations = station_service.list_stations(status=status)
    if not stations:
        click.echo("No stations found")
        return
    for s in stations:
        rate = s.rate_per_hour_cents if s.rate_per_hour_cents is not None else "default"
        click.echo(f"{s.id:>4}  {s.name:<24} {s.station_type:<5} {s.status:<12} hourly={rate}")


@stations_group.command('create')
@click.option('--name', required=True)
@click.option('--type', 'station_type', required=True, type=click.Choice(["PS5", "XBOX", "PC", "VR"]))
@click.option('--hourly-cents', type=int, default=None)
@click.option('--game-cents', type=int, default=None)
@with_appcontext
def create_station(name, station_type, hourly_cents, game_cents):
    try:
        station = station_service.create_station(name, station_type, hourly_cents, game_cents)
    except LoungeError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created station {station.name} (ID: {station.id})")


@stations_group.command('maintenance')
@click.argument('station_id', type=int)
@click.option('--reason', default=None)
@click.option('--eta', default=None)
@click.option('--clear', is_flag=True, help='Return the station to service')
@with_appcontext
def station_maintenance(station_id, reason, eta, clear):
    try:
        if clear:
            station = station_service.clear_maintenance(station_id)
        else:
            station = station_service.set_maintenance(station_id, reason, eta=eta)
    except LoungeError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Station {station.id} is now {station.status}")


@click.group('stats')
def stats_group():
    """Daily stats inspection and rebuild."""


def _date_option(value):
    try:
        return parse_iso_date(value) if value else business_date()
    except ValueError:
        raise click.BadParameter("date must be YYYY-MM-DD")


@stats_group.command('show')
@click.option('--date', 'day', default=None, help='YYYY-MM-DD (default today)')
@with_appcontext
def show_stats(day):
    stat_date = _date_option(day)
    row = stats_service.get_day(stat_date)
    if not row:
        click.echo(f"No stats recorded for {stat_date.isoformat()}")
        return
    for key, value in row.to_dict().items():
        click.echo(f"{key:<22} {value}")


@stats_group.command('recompute')
@click.option('--date', 'day', default=None, help='YYYY-MM-DD (default today)')
@with_appcontext
def recompute_stats(day):
    stat_date = _date_option(day)
    row = stats_service.recompute_day(stat_date)
    click.echo(
        f"PASS Rebuilt {stat_date.isoformat()}: stations={row.active_stations} users={row.active_users} "
        f"hours={row.total_hours:.2f} revenue_cents={row.total_revenue_cents}"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stations_group)
    app.cli.add_command(stats_group)
