"""
Operator commands, available as ``flask applications ...``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import click
from flask import current_app
from flask.cli import with_appcontext

from intake_app.lifecycle.errors import LifecycleError
from intake_app.lifecycle.intake import IMPORT_ACTOR, IntakeService
from intake_app.sync.client import BackendClient, BackendError, remote_to_payload


def _service() -> IntakeService:
    return IntakeService.from_config(current_app.config)


@click.group(name="applications")
def applications_cli():
    """Application intake maintenance commands."""


@applications_cli.command("import-csv")
@click.argument("csv_path", type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.option("--actor", default=IMPORT_ACTOR, show_default=True, help="Operator id recorded in the audit log.")
@click.option("--summary-json", is_flag=True, help="Print the import summary as JSON.")
@with_appcontext
def import_csv(csv_path: Path, actor: str, summary_json: bool):
    """Import applications from a migration CSV; existing ids are skipped."""
    service = _service()
    with csv_path.open("r", encoding="utf-8-sig", newline="") as handle:
        payloads = service.read_import_csv(handle)
    try:
        summary = service.bulk_import(payloads, actor)
    except LifecycleError as exc:
        raise click.ClickException(f"Import failed, nothing was saved: {exc}") from exc

    if summary_json:
        click.echo(json.dumps(summary.to_dict()))
        return
    click.echo(f"Imported {summary.imported} application(s), skipped {summary.skipped} existing.")
    for app_id in summary.skipped_ids:
        click.echo(f"  - skipped {app_id}")


@applications_cli.command("find-duplicates")
@click.option("--app-id", "app_ids", multiple=True, help="Limit the scan to these application ids.")
@click.option("--project-id", default=None, help="Limit the scan to active records of one project.")
@click.option("--json", "as_json", is_flag=True, help="Emit findings as JSON.")
@with_appcontext
def find_duplicates(app_ids: tuple[str, ...], project_id: Optional[str], as_json: bool):
    """Report duplicate findings for stored applications."""
    service = _service()
    if app_ids:
        try:
            records = [service.store.require(app_id) for app_id in app_ids]
        except LifecycleError as exc:
            raise click.ClickException(str(exc)) from exc
    else:
        records = service.store.active_records(project_id)

    report = {}
    for record in records:
        screening = service.workflow.screen(record)
        if screening.findings:
            report[record.id] = screening

    if as_json:
        click.echo(json.dumps({app_id: screening.to_dict() for app_id, screening in report.items()}))
        return
    if not report:
        click.echo(f"No duplicates found across {len(records)} application(s).")
        return
    for app_id, screening in report.items():
        marker = "REVIEW" if screening.requires_review else "advisory"
        click.echo(f"{app_id} [{marker}]")
        for finding in screening.findings:
            click.echo(
                f"  {finding.field:<16} {finding.match_type.value:<5} {finding.confidence:.2f} "
                f"-> {finding.source_id} ({finding.matched_stage.value})"
            )


@applications_cli.command("stats")
@click.option("--project-id", default=None)
@with_appcontext
def stats(project_id: Optional[str]):
    """Print dashboard counts."""
    click.echo(json.dumps(_service().dashboard_stats(project_id), indent=2))


@applications_cli.command("sync")
@click.option("--username", required=True)
@click.option("--password", required=True, prompt=True, hide_input=True)
@click.option("--actor", default="sync", show_default=True)
@with_appcontext
def sync(username: str, password: str, actor: str):
    """Pull applications from the remote backend and import the ones not held locally."""
    client = BackendClient.from_config(current_app.config)
    try:
        client.authenticate(username, password)
        remote = client.fetch_applications()
    except BackendError as exc:
        raise click.ClickException(str(exc)) from exc

    try:
        summary = _service().bulk_import([remote_to_payload(item) for item in remote], actor, source="backend sync")
    except LifecycleError as exc:
        raise click.ClickException(f"Sync import failed, nothing was saved: {exc}") from exc
    click.echo(f"Pulled {len(remote)} application(s): {summary.imported} imported, {summary.skipped} already present.")


def init_cli(app):
    app.cli.add_command(applications_cli)
