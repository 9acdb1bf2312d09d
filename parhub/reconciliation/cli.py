"""
``flask reconcile`` commands.

Every batch command prints its run summary on success and on failure, and
``--summary-json`` adds a machine-readable payload. Failures exit nonzero
through ``click.ClickException``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import click
from flask.cli import AppGroup, ScriptInfo

from .customer_import import import_customers
from .errors import MigrationNotFound, ReconciliationError
from .event_import import import_events
from .maintenance import repair_customer_phones, verify_counts
from .orchestrator import build_orchestrator
from .runtime import get_legacy_discovery, get_schema_context
from .summary import RunSummary
from .tabular import read_tabular_rows
from .vin_decode import decode_vin

reconcile_cli = AppGroup("reconcile", help="Legacy data reconciliation commands.")

_summary_json_option = click.option(
    "--summary-json",
    is_flag=True,
    help="Emit a machine-readable summary payload after the text summary.",
)
_file_argument = click.argument(
    "file_path",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
)


def _echo_summaries(summaries: list[RunSummary], summary_json: bool) -> None:
    for summary in summaries:
        click.echo(summary.format())
    if summary_json:
        payload = [summary.to_dict() for summary in summaries]
        click.echo(json.dumps(payload if len(payload) != 1 else payload[0], indent=2, sort_keys=True, default=str))


def _load_rows(file_path: Path) -> list[dict]:
    try:
        return read_tabular_rows(file_path)
    except ReconciliationError as exc:
        raise click.ClickException(str(exc)) from exc


@reconcile_cli.command("migrate")
@click.option("--version", "version", default=None, help="Apply a single migration version.")
@_summary_json_option
@click.pass_context
def migrate_command(ctx, version: Optional[str], summary_json: bool):
    """Apply pending migrations (or one ``--version``) in order."""
    app = ctx.ensure_object(ScriptInfo).load_app()
    orchestrator = build_orchestrator(app)
    try:
        if version:
            summaries = [orchestrator.run_migration(version)]
        else:
            summaries = orchestrator.run_all()
    except MigrationNotFound as exc:
        raise click.ClickException(str(exc)) from exc
    except Exception as exc:
        failed = orchestrator.summaries if not version else []
        if orchestrator.last_summary is not None and orchestrator.last_summary not in failed:
            failed = [*failed, orchestrator.last_summary]
        _echo_summaries(failed, summary_json)
        raise click.ClickException(f"Migration failed: {exc}") from exc

    if not summaries:
        click.echo("No pending migrations.")
        return
    _echo_summaries(summaries, summary_json)


@reconcile_cli.command("import-customers")
@_file_argument
@_summary_json_option
def import_customers_command(file_path: Path, summary_json: bool):
    """Import a customer export spreadsheet (.xlsx or .csv)."""
    rows = _load_rows(file_path)
    summary = RunSummary(name="customer import")
    try:
        import_customers(rows, source=str(file_path), summary=summary)
    except Exception as exc:
        _echo_summaries([summary], summary_json)
        raise click.ClickException(f"Customer import run {summary.run_id} failed: {exc}") from exc
    _echo_summaries([summary], summary_json)


@reconcile_cli.command("import-events")
@_file_argument
@_summary_json_option
def import_events_command(file_path: Path, summary_json: bool):
    """Import a calendar export spreadsheet (.xlsx or .csv)."""
    rows = _load_rows(file_path)
    summary = RunSummary(name="event import")
    try:
        import_events(rows, source=str(file_path), summary=summary)
    except Exception as exc:
        _echo_summaries([summary], summary_json)
        raise click.ClickException(f"Event import run {summary.run_id} failed: {exc}") from exc
    _echo_summaries([summary], summary_json)


@reconcile_cli.command("repair-phones")
@click.option("--dry-run", is_flag=True, help="Report what would change without writing.")
@_summary_json_option
def repair_phones_command(dry_run: bool, summary_json: bool):
    """Re-normalize stored customer phone columns."""
    summary = RunSummary(name="phone repair" + (" (dry run)" if dry_run else ""))
    try:
        repair_customer_phones(summary=summary, dry_run=dry_run)
    except Exception as exc:
        _echo_summaries([summary], summary_json)
        raise click.ClickException(f"Phone repair failed: {exc}") from exc
    _echo_summaries([summary], summary_json)


@reconcile_cli.command("verify")
@_summary_json_option
def verify_command(summary_json: bool):
    """Compare legacy and target row counts."""
    report = verify_counts()

    def _display(value):
        return "(no legacy table)" if value is None else value

    click.echo(f"Legacy customer count: {_display(report.legacy_customers)}")
    click.echo(f"New customer count: {report.new_customers}")
    click.echo(f"Legacy vehicle count: {_display(report.legacy_vehicles)}")
    click.echo(f"New vehicle count: {report.new_vehicles} (+{report.preserved_vehicles} preserved)")
    if summary_json:
        click.echo(json.dumps(report.to_dict(), indent=2, sort_keys=True))
    if not report.ok:
        raise click.ClickException(
            "Verification failed: record counts do not match. Investigate before continuing."
        )
    click.echo("Verification passed: counts are aligned.")


@reconcile_cli.command("decode-vin")
@click.argument("vin")
def decode_vin_command(vin: str):
    """Decode one VIN through the cache and print the result as JSON."""
    try:
        result = decode_vin(vin)
    except ReconciliationError as exc:
        raise click.ClickException(str(exc)) from exc
    if result.stale:
        click.echo(f"warning: {result.warning}", err=True)
    click.echo(json.dumps(result.to_dict(), indent=2, sort_keys=True, default=str))


@reconcile_cli.command("schema-report")
@click.option(
    "--target",
    "target",
    is_flag=True,
    help="Report the target database instead of the legacy source.",
)
@_summary_json_option
def schema_report_command(target: bool, summary_json: bool):
    """List tables and columns discovered in the legacy source (or target)."""
    if target:
        context = get_schema_context()
        tables = context.reload()
    else:
        tables = get_legacy_discovery().snapshot()

    if not tables:
        click.echo("No schema information found.")
    for name in sorted(tables):
        click.echo(f"Table: {name}")
        for position, column in enumerate(tables[name], start=1):
            click.echo(f"  {position}. {column}")
    if summary_json:
        click.echo(json.dumps({name: list(columns) for name, columns in sorted(tables.items())}, indent=2))
