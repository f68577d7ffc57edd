# Overview: Flask CLI command groups for schema bootstrap, batch ingestion, and reporting.

# backend/kiosk_pnl/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Schema bootstrap/repair:
# - python -m flask db-admin init
#   Create any missing tables (idempotent).
# - python -m flask db-admin reset --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Provider batches:
# - python -m flask ingest detect export.csv
#   Print headers and the detected provider preset without importing.
# - python -m flask ingest run export.csv --year 2024 --quarter Q1
#   Import a batch using its detected preset.
# - python -m flask ingest run ledger.xlsx --year 2024 --quarter Q2 --map amount="Total" --map city="Branch"
#   Import an unrecognized file with a manual column mapping.
#
# Reporting:
# - python -m flask reports profitability [--year 2024] [--quarter Q1]
#   Print per-location profitability, worst performers first.

from pathlib import Path

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import import_service
from .services import reporting_service
from .services.batch_reader import BatchFormatError
from .services.import_service import IngestError
from .services.import_workflow import WorkflowError
from .services.manual_mapping import MappingError
from .services.sync_service import SyncError


@click.group('db-admin')
def db_admin_group():
    """Schema bootstrap and repair commands."""


@db_admin_group.command('init')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema ready.")


@db_admin_group.command('reset')
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


@click.group('ingest')
def ingest_group():
    """Provider batch ingestion commands."""


def _parse_mapping(pairs) -> dict:
    mapping = {}
    for pair in pairs:
        field, sep, column = pair.partition("=")
        if not sep or not field.strip():
            raise click.BadParameter(f"Expected field=Column, got '{pair}'", param_hint="--map")
        mapping[field.strip()] = column.strip()
    return mapping


@ingest_group.command('detect')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def detect_cmd(path):
    """Show headers, sample rows and the detected preset for a file."""
    file = Path(path)
    try:
        preview = import_service.preview_file(file.name, file.read_bytes())
    except BatchFormatError as e:
        raise click.ClickException(str(e))

    click.echo(f"File: {preview['file_name']} ({preview['file_format']})")
    click.echo(f"Headers: {', '.join(preview['headers'])}")
    if preview["detected_preset"]:
        click.echo(f"PASS Detected {preview['preset_label']} ({preview['detected_preset']} Preset)")
    else:
        click.echo("WARN Unknown format. Map headers with --map field=Column when running the import.")
    for row in preview["rows"]:
        click.echo(f"  {row}")


@ingest_group.command('run')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--year', required=True, type=int, help='Reporting year')
@click.option('--quarter', required=True, type=click.Choice(reporting_service.QUARTERS, case_sensitive=False), help='Reporting quarter')
@click.option('--source', default='OTHER', show_default=True, help='Data source (auto-switched when a preset is detected)')
@click.option('--map', 'mapping', multiple=True, help='Manual column mapping, field=Column')
@with_appcontext
def run_cmd(path, year, quarter, source, mapping):
    """Import a provider file into the network dataset."""
    file = Path(path)
    try:
        outcome = import_service.run_import(
            file_name=file.name,
            data=file.read_bytes(),
            source=source.upper(),
            year=year,
            quarter=quarter,
            mapping=_parse_mapping(mapping) or None,
        )
    except (BatchFormatError, MappingError, WorkflowError, IngestError) as e:
        raise click.ClickException(str(e))
    except SyncError as e:
        raise click.ClickException(f"Sync failed, nothing was saved: {e}")

    result = outcome.to_dict()
    summary = result["summary"]
    sync = result["sync"]
    click.echo(f"PASS {result['message']}")
    click.echo(
        f"   rows: {summary['accepted_rows'] + summary['skipped_rows']} total, {summary['accepted_rows']} accepted, "
        f"{summary['skipped_rows']} skipped"
    )
    click.echo(
        f"   transactions: {sync['transactions_inserted']} inserted, "
        f"{sync['transactions_ignored']} already present"
    )


@click.group('reports')
def reports_group():
    """Reporting commands."""


@reports_group.command('profitability')
@click.option('--year', default=None, type=int, help='Filter by year')
@click.option('--quarter', default=None, help='Q1-Q4 or ALL')
@with_appcontext
def profitability_cmd(year, quarter):
    """Print the per-location profitability report."""
    try:
        report = reporting_service.profitability_report(year=year, quarter=quarter)
    except reporting_service.ReportError as e:
        raise click.ClickException(str(e))

    if not report["rows"]:
        click.echo("No locations recorded yet.")
        return

    click.echo(f"{'Location':<24} {'Volume':>14} {'Gross':>12} {'Rent':>12} {'Net':>12} {'Margin':>8}")
    for row in report["rows"]:
        click.echo(
            f"{row['name'][:24]:<24} {row['totalVolume']:>14,.2f} {row['grossProfit']:>12,.2f} "
            f"{row['rentExpense']:>12,.2f} {row['netIncome']:>12,.2f} {row['margin']:>7.2f}%"
        )
    click.echo(f"\nNetwork net income: {report['totalNetIncome']:,.2f}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(db_admin_group)
    app.cli.add_command(ingest_group)
    app.cli.add_command(reports_group)
